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

"""Shared server state

The request workers, the command worker, and the supervisor all share one
`ServerState`.  Each piece of it has its own synchronization: the cache has its
own lock, the two control flags are `threading.Event` objects, and the worker
registry has its own lock.  No two of these are ever held at the same time.

The control flags form a small state machine:

* Serving (the starting state): `accepting` is set, `exited` is clear.

* `stop` clears `accepting`.  Request workers keep running, but do no work.

* `start` sets `accepting` again.

* `exit` sets `exited`.  This is final: nothing clears it, and every command
  after it is ignored.
"""

# stdlib imports
import collections.abc
import dataclasses
import enum
import logging
import threading

# PyPi imports

# Local imports
from localdns.cache import ExpiringCache
from localdns.engine import normalize

# Set up logging
logger = logging.getLogger(__name__)
exception = logger.exception
error = logger.error
warning = logger.warning
info = logger.info
debug = logger.debug


class Command(enum.Enum):
	"""An operator command."""
	START = 'start'
	STOP = 'stop'
	EXIT = 'exit'
	LISTEN = 'listen'

	@classmethod
	def parse(cls,
		line: str,
	) -> 'Command | None':
		"""Turn a line of operator input into a Command.

		:returns: The command, or None if the line is not a known command.
		"""
		try:
			return cls(normalize(line))
		except ValueError:
			return None


class WorkerKind(enum.Enum):
	REQUEST = 'ProcessingRequest'
	COMMAND = 'ProcessingCommand'

	def __str__(self) -> str:
		return self.value


@dataclasses.dataclass
class WorkerHandle():
	kind: WorkerKind
	thread: threading.Thread
	logged: bool = False
	"""Has the supervisor said that it is waiting for this worker?"""


class ServerState():
	"""Everything the workers share.

	:param static_table: The local name-to-address table.

	:param cache: The answer cache.

	:param name: The server's name, for display.

	:param port: The server's listening port, for display.

	:param remote: The remote resolver's address, for display.

	:param config_file_path: Where the configuration came from, for display.
	"""

	static_table: collections.abc.Mapping[str, str]
	cache: ExpiringCache
	accepting: threading.Event
	exited: threading.Event
	name: str
	port: int
	remote: str
	config_file_path: str

	_workers: list[WorkerHandle]
	_workers_lock: threading.Lock
	_fatal_error: BaseException | None
	_fatal_lock: threading.Lock

	def __init__(self,
		static_table: collections.abc.Mapping[str, str],
		cache: ExpiringCache,
		name: str = 'Local DNS',
		port: int = 0,
		remote: str = '',
		config_file_path: str = '',
	) -> None:
		self.static_table = static_table
		self.cache = cache
		self.name = name
		self.port = port
		self.remote = remote
		self.config_file_path = config_file_path

		self.accepting = threading.Event()
		self.accepting.set()
		self.exited = threading.Event()

		self._workers = list()
		self._workers_lock = threading.Lock()
		self._fatal_error = None
		self._fatal_lock = threading.Lock()

	# Control flags

	@property
	def is_accepting(self) -> bool:
		return self.accepting.is_set()

	@property
	def is_exited(self) -> bool:
		return self.exited.is_set()

	def stop(self) -> None:
		"""Stop handling requests (but keep running)."""
		if self.is_exited:
			warning('Server has exited; ignoring stop')
			return
		self.accepting.clear()

	def start(self) -> None:
		"""Resume handling requests."""
		if self.is_exited:
			warning('Server has exited; ignoring start')
			return
		self.accepting.set()

	def exit(self) -> None:
		"""Tell every worker to finish.  This can't be undone."""
		self.exited.set()

	def fail(self,
		exc: BaseException,
	) -> None:
		"""Record a fatal error, and exit.

		Only the first fatal error is kept.
		"""
		with self._fatal_lock:
			if self._fatal_error is None:
				self._fatal_error = exc
		self.exit()

	@property
	def fatal_error(self) -> BaseException | None:
		with self._fatal_lock:
			return self._fatal_error

	# Worker registry

	def register(self,
		kind: WorkerKind,
		thread: threading.Thread,
	) -> WorkerHandle | None:
		"""Add a running worker to the registry.

		Once the server has exited, the registry may already have been
		drained, so nothing more is added.

		:returns: The worker's handle, or None if the server has exited.  In
		that case, the caller is responsible for joining the thread.
		"""
		handle = WorkerHandle(kind=kind, thread=thread)
		with self._workers_lock:
			# `exited` is always set before the registry is drained.
			if self.is_exited:
				return None
			self._workers.append(handle)
		return handle

	def has_worker(self,
		kind: WorkerKind,
	) -> bool:
		with self._workers_lock:
			return any(handle.kind is kind for handle in self._workers)

	def pending_handles(self) -> list[WorkerHandle]:
		"""Return the handles not yet reported, marking them as reported.
		"""
		with self._workers_lock:
			pending = [handle for handle in self._workers if not handle.logged]
			for handle in pending:
				handle.logged = True
		return pending

	def drain(self) -> list[WorkerHandle]:
		"""Empty the registry, returning its handles in registration order.
		"""
		with self._workers_lock:
			handles = self._workers
			self._workers = list()
		return handles

	# Commands

	def apply_command(self,
		line: str,
		spawn_request_worker: collections.abc.Callable[[], object],
	) -> Command | None:
		"""Apply one line of operator input.

		:param line: The line, as read.

		:param spawn_request_worker: Called to start a request worker, for the
		`listen` command when none is registered.

		:returns: The command that was applied, or None if the line was empty
		or not a command.
		"""
		command = Command.parse(line)
		if command is None:
			cleaned = normalize(line)
			if cleaned != '':
				debug(f"Unknown Command, Receiving {cleaned}")
			return None

		if self.is_exited:
			warning(f"Server has exited; ignoring {command.value}")
			return command

		if command is Command.STOP:
			warning('Stop Listening')
			self.stop()
		elif command is Command.START:
			warning('Start Listening')
			self.start()
		elif command is Command.EXIT:
			warning('DNS Server Exiting...')
			self.exit()
		elif command is Command.LISTEN:
			warning('Trying to start ProcessingRequest...')
			if self.has_worker(WorkerKind.REQUEST):
				warning('Found existing ProcessingRequest')
				self.start()
			else:
				warning('Existing ProcessingRequest not found.  Creating one...')
				spawn_request_worker()
		return command

	def __str__(self) -> str:
		return (
			f"DNS Server: {{ Name: {self.name}, Port: {self.port}, " +
			f"Remote: {self.remote}, Config File: {self.config_file_path} }}"
		)
