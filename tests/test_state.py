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

# Test the server state: control flags, the worker registry, and commands.

# Stdlib imports
import collections.abc
import threading

# PyPi imports
import pytest

# Local imports
from localdns.cache import ExpiringCache
from localdns.state import Command, ServerState, WorkerKind


class SpawnRecorder():
	"""Stands in for the supervisor's spawn_request_worker."""
	def __init__(self) -> None:
		self.count = 0

	def __call__(self) -> None:
		self.count += 1

@pytest.fixture
def state() -> collections.abc.Iterator[ServerState]:
	cache = ExpiringCache(ttl=60)
	yield ServerState(
		static_table={},
		cache=cache,
		name='Test DNS',
		port=10053,
		remote='https://doh.invalid/resolve',
		config_file_path='config.json',
	)
	cache.stop()

def idle_thread() -> threading.Thread:
	return threading.Thread(target=lambda: None)


def test_command_parse() -> None:
	assert Command.parse('stop') is Command.STOP
	assert Command.parse('start\n') is Command.START
	assert Command.parse('  exit \r\n') is Command.EXIT
	assert Command.parse('listen') is Command.LISTEN
	assert Command.parse('') is None
	assert Command.parse('STOP') is None
	assert Command.parse('restart') is None

def test_initial(state) -> None:
	assert state.is_accepting is True
	assert state.is_exited is False
	assert state.fatal_error is None

def test_stop_start_exit(state) -> None:
	spawn = SpawnRecorder()

	assert state.apply_command('stop\n', spawn) is Command.STOP
	assert state.is_accepting is False
	assert state.is_exited is False

	assert state.apply_command('start\n', spawn) is Command.START
	assert state.is_accepting is True

	assert state.apply_command('exit\n', spawn) is Command.EXIT
	assert state.is_accepting is True
	assert state.is_exited is True
	assert spawn.count == 0

def test_exit_is_terminal(state) -> None:
	"""Nothing after `exit` has any effect.
	"""
	spawn = SpawnRecorder()
	state.apply_command('exit', spawn)

	state.apply_command('stop', spawn)
	assert state.is_accepting is True
	state.stop()
	assert state.is_accepting is True

	state.apply_command('listen', spawn)
	assert spawn.count == 0

	state.apply_command('start', spawn)
	state.apply_command('exit', spawn)
	assert state.is_exited is True

def test_unknown_and_empty(state) -> None:
	spawn = SpawnRecorder()
	assert state.apply_command('', spawn) is None
	assert state.apply_command('\n', spawn) is None
	assert state.apply_command('reboot\n', spawn) is None
	assert state.is_accepting is True
	assert state.is_exited is False
	assert spawn.count == 0

def test_listen_spawns(state) -> None:
	"""With only a command worker, `listen` spawns a request worker.
	"""
	spawn = SpawnRecorder()
	state.register(WorkerKind.COMMAND, idle_thread())

	assert state.apply_command('listen', spawn) is Command.LISTEN
	assert spawn.count == 1

def test_listen_restarts(state) -> None:
	"""With a request worker registered, `listen` just re-asserts accepting.
	"""
	spawn = SpawnRecorder()
	state.register(WorkerKind.REQUEST, idle_thread())
	state.stop()

	state.apply_command('listen', spawn)
	assert spawn.count == 0
	assert state.is_accepting is True

def test_registry(state) -> None:
	assert not state.has_worker(WorkerKind.REQUEST)
	request = state.register(WorkerKind.REQUEST, idle_thread())
	command = state.register(WorkerKind.COMMAND, idle_thread())
	assert state.has_worker(WorkerKind.REQUEST)
	assert state.has_worker(WorkerKind.COMMAND)

	# Each handle is only reported once.
	assert state.pending_handles() == [request, command]
	assert request.logged and command.logged
	assert state.pending_handles() == []
	late = state.register(WorkerKind.REQUEST, idle_thread())
	assert state.pending_handles() == [late]

	# Draining hands back everything, in order, and empties the registry.
	assert state.drain() == [request, command, late]
	assert state.drain() == []
	assert not state.has_worker(WorkerKind.REQUEST)

def test_register_after_exit(state) -> None:
	"""Once exited, the registry takes no new workers.
	"""
	request = state.register(WorkerKind.REQUEST, idle_thread())
	state.exit()
	assert state.register(WorkerKind.REQUEST, idle_thread()) is None
	assert state.register(WorkerKind.COMMAND, idle_thread()) is None
	assert state.drain() == [request]
	assert not state.has_worker(WorkerKind.COMMAND)

def test_fail(state) -> None:
	first = RuntimeError('first')
	state.fail(first)
	state.fail(RuntimeError('second'))
	assert state.fatal_error is first
	assert state.is_exited is True

def test_concurrent_flags(state) -> None:
	"""Flag changes from one thread are seen by another.
	"""
	seen = threading.Event()

	def watcher() -> None:
		if state.exited.wait(timeout=5.0):
			seen.set()

	thread = threading.Thread(target=watcher)
	thread.start()
	state.exit()
	thread.join(timeout=5.0)
	assert seen.is_set()

def test_str(state) -> None:
	assert str(state) == (
		'DNS Server: { Name: Test DNS, Port: 10053, ' +
		'Remote: https://doh.invalid/resolve, Config File: config.json }'
	)
	assert str(WorkerKind.REQUEST) == 'ProcessingRequest'
