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

# Test the system resolver client.  Instead of `dig`, we run commands that are
# always available, and whose output we know.

# Stdlib imports
import ipaddress
import os
import shutil
import sys

# PyPi imports
import pytest

# Local imports
import localdns.clients.exceptions
import localdns.clients.system


def python_command(code: str) -> list[str]:
	"""Make a command that runs a bit of Python code.
	"""
	return [sys.executable, '-c', code]


def test_constructor() -> None:
	with pytest.raises(ValueError):
		localdns.clients.system.SystemClient(command=[])
	with pytest.raises(ValueError):
		localdns.clients.system.SystemClient(timeout=-1.0)

def test_command_for() -> None:
	client = localdns.clients.system.SystemClient()
	assert client.command_for('example.com') == ['dig', '+short', '-q', 'example.com']

	# Names are arguments, not shell text
	assert client.command_for('a.com; rm -rf /') == ['dig', '+short', '-q', 'a.com; rm -rf /']

	# Names that look like options are still the query name
	assert client.command_for('-f/etc/passwd') == ['dig', '+short', '-q', '-f/etc/passwd']
	assert client.command_for('+tcp') == ['dig', '+short', '-q', '+tcp']

def test_output_is_trimmed() -> None:
	client = localdns.clients.system.SystemClient(
		command=python_command('print("  10.1.2.3  ")'),
	)
	assert client.get_ip('example.com') == '10.1.2.3'

def test_name_is_passed() -> None:
	client = localdns.clients.system.SystemClient(
		command=python_command('import sys; print(sys.argv[1])') + ['{name}'],
	)
	assert client.get_ip('printer.lan') == 'printer.lan'

def test_failure_has_stderr() -> None:
	client = localdns.clients.system.SystemClient(
		command=python_command(
			'import sys; sys.stderr.write("lookup broke\\n"); sys.exit(9)'
		),
	)
	with pytest.raises(localdns.clients.exceptions.ResolverError) as e:
		client.get_ip('example.com')
	assert 'lookup broke' in str(e.value)
	assert '9' in str(e.value)

def test_empty_output() -> None:
	"""`dig +short` prints nothing (and exits 0) for a name with no records.
	"""
	client = localdns.clients.system.SystemClient(
		command=python_command('pass'),
	)
	with pytest.raises(localdns.clients.exceptions.NoAnswer):
		client.get_ip('nothing.invalid')

def test_missing_command() -> None:
	client = localdns.clients.system.SystemClient(
		command=['/nonexistent/localdns-test-command', '{name}'],
	)
	with pytest.raises(localdns.clients.exceptions.ResolverError):
		client.get_ip('example.com')

def test_timeout() -> None:
	client = localdns.clients.system.SystemClient(
		command=python_command('import time; time.sleep(10)'),
		timeout=0.2,
	)
	with pytest.raises(localdns.clients.exceptions.ResolverError, match='timed out'):
		client.get_ip('example.com')

def test_live_dig() -> None:
	"""Run the real `dig`.

	This needs the Internet and `dig`, so it only runs if `TEST_NETWORK` is set.
	"""
	if 'TEST_NETWORK' not in os.environ:
		pytest.skip('No network access configured')
	if shutil.which('dig') is None:
		pytest.skip('dig is not installed')
	client = localdns.clients.system.SystemClient()
	result = client.get_ip('web.stanford.edu')
	last_line = result.splitlines()[-1]
	assert ipaddress.ip_address(last_line).version == 4
