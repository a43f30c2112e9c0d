# vim: ts=4 sw=4 noet

# Copyright 2025 The Board of Trustees of the Leland Stanford Junior University
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""The UDP transport

One datagram in is one query: its payload is the name, as text.  One datagram
out is one answer: its payload is the address, as text, or empty if the name
could not be resolved.  There is no other framing.
"""

# stdlib imports
import logging
import socket
from typing import Any

# PyPi imports

# Local imports

BUFFER_SIZE: int = 1024
"""The largest query we read.  Longer datagrams are truncated.
"""

RECEIVE_TIMEOUT: float = 0.5
"""How long, in seconds, does one receive wait for a datagram?
"""

# Set up logging
logger = logging.getLogger(__name__)
exception = logger.exception
error = logger.error
warning = logger.warning
info = logger.info
debug = logger.debug

Address = tuple[Any, ...]


class TransportTimeout(Exception):
	"""No datagram arrived before the receive timeout."""
	pass


class UDPTransport():
	"""A bound UDP socket, shared by every request worker.

	:param host: The address to bind to.

	:param port: The port to bind to.

	:param timeout: How long, in seconds, each `receive` waits.

	:param buffer_size: The largest datagram to read.

	:raise OSError: The socket could not be bound.
	"""

	_socket: socket.socket
	_buffer_size: int

	def __init__(self,
		host: str,
		port: int,
		timeout: float = RECEIVE_TIMEOUT,
		buffer_size: int = BUFFER_SIZE,
	) -> None:
		if (port < 0) or (port > 65535):
			raise ValueError(f"Invalid port {port}")
		self._buffer_size = buffer_size
		self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
		try:
			self._socket.bind((host, port))
		except OSError:
			self._socket.close()
			raise
		self._socket.settimeout(timeout)
		info(f"Listening for queries on {self.address}")

	@property
	def address(self) -> Address:
		"""The (host, port) we are bound to."""
		return self._socket.getsockname()

	def receive(self) -> tuple[str, Address]:
		"""Wait for one query.

		:returns: The query text and the client's address.

		:raises TransportTimeout: Nothing arrived in time.

		:raises OSError: There was a problem with the socket.
		"""
		try:
			(data, address) = self._socket.recvfrom(self._buffer_size)
		except socket.timeout:
			raise TransportTimeout()
		return (data.decode('utf-8', errors='replace'), address)

	def send(self,
		answer: str,
		address: Address,
	) -> None:
		"""Send one answer back to a client.
		"""
		self._socket.sendto(answer.encode('utf-8'), address)

	def close(self) -> None:
		self._socket.close()

	def __enter__(self) -> 'UDPTransport':
		return self

	def __exit__(self, *args: Any) -> None:
		self.close()
