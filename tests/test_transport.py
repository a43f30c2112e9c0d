# vim: ts=4 sw=4 noet

# Copyright 2025 The Board of Trustees of the Leland Stanford Junior University
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#	http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# Test the UDP transport over the loopback interface.

# Stdlib imports
import collections.abc
import socket

# PyPi imports
import pytest

# Local imports
from localdns.transport import TransportTimeout, UDPTransport


@pytest.fixture
def transport() -> collections.abc.Iterator[UDPTransport]:
	with UDPTransport('127.0.0.1', 0, timeout=0.1, buffer_size=64) as transport:
		yield transport

@pytest.fixture
def client() -> collections.abc.Iterator[socket.socket]:
	client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
	client.settimeout(5.0)
	yield client
	client.close()


def test_constructor() -> None:
	with pytest.raises(ValueError):
		UDPTransport('127.0.0.1', 65536)

def test_bind_conflict(transport) -> None:
	with pytest.raises(OSError):
		UDPTransport('127.0.0.1', transport.address[1])

def test_timeout(transport) -> None:
	with pytest.raises(TransportTimeout):
		transport.receive()

def test_round_trip(transport, client) -> None:
	client.sendto(b'printer.lan', transport.address)
	(query, address) = transport.receive()
	assert query == 'printer.lan'

	transport.send('192.168.1.20', address)
	(answer, _) = client.recvfrom(1024)
	assert answer == b'192.168.1.20'

	# A failed lookup is an empty datagram
	client.sendto(b'nothing.invalid', transport.address)
	(query, address) = transport.receive()
	transport.send('', address)
	(answer, _) = client.recvfrom(1024)
	assert answer == b''

def test_lossy_decode(transport, client) -> None:
	"""Bad UTF-8 is replaced, and long queries are truncated.
	"""
	client.sendto(b'bad\xff.example', transport.address)
	(query, _) = transport.receive()
	assert query == 'bad�.example'

	client.sendto(b'a' * 100, transport.address)
	(query, _) = transport.receive()
	assert query == 'a' * 64
