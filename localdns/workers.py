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

"""Request and command workers, and the supervisor that waits for them

There are two kinds of long-running worker threads:

* A request worker receives one query at a time from the transport, resolves
  it, and sends the answer back.  There may be more than one.

* The command worker reads operator commands (one per line) and applies them
  to the server state.

Both kinds check the server's `exited` flag at the top of every iteration.
No iteration blocks for longer than the poll interval, except for the
resolution of a query, which can't be interrupted.

The supervisor runs in the main thread.  It starts the workers, and then waits
for `exited`.  Once that is set, it takes every handle out of the registry and
joins each worker's thread.
"""

# stdlib imports
import collections.abc
import logging
import queue
import sys
import threading
from typing import TextIO

# PyPi imports

# Local imports
from localdns.engine import ResolutionEngine
from localdns.state import ServerState, WorkerHandle, WorkerKind
from localdns.transport import TransportTimeout, UDPTransport
from localdns.wait import FixedWaiter

POLL_INTERVAL: float = 0.1
"""How long, in seconds, does a worker wait for something to do?

This is also the longest it takes a worker to notice the `exited` flag (unless
it is in the middle of resolving a query).
"""

# Set up logging
logger = logging.getLogger(__name__)
exception = logger.exception
error = logger.error
warning = logger.warning
info = logger.info
debug = logger.debug

ControlChannel = queue.Queue
"""A queue of operator input lines.  `None` means the input was closed."""


class ControlChannelClosed(Exception):
	"""The operator input was closed.

	Without operator input, there is no way to tell the server to exit.
	"""
	pass


def spawn_stdin_channel(
	stream: TextIO | None = None,
) -> ControlChannel:
	"""Start a thread that copies lines of input into a queue.

	When the stream reaches end-of-file, `None` is put on the queue and the
	thread exits.

	:param stream: The stream to read.  Defaults to standard input.

	:returns: The queue.
	"""
	if stream is None:
		stream = sys.stdin
	channel: ControlChannel = queue.Queue()

	def read_lines() -> None:
		for line in iter(stream.readline, ''):
			channel.put(line)
		debug('Control input closed')
		channel.put(None)

	reader = threading.Thread(
		target=read_lines,
		name='stdin-reader',
		daemon=True,
	)
	reader.start()
	return channel


class RequestWorker(threading.Thread):
	"""Answer queries until the server exits.

	:param state: The shared server state.

	:param engine: Resolves each query.

	:param transport: Where queries come from, and answers go.

	:param poll_interval: How long to pause while requests are stopped.
	"""

	state: ServerState
	engine: ResolutionEngine
	transport: UDPTransport
	_waiter: FixedWaiter

	def __init__(self,
		state: ServerState,
		engine: ResolutionEngine,
		transport: UDPTransport,
		poll_interval: float = POLL_INTERVAL,
	) -> None:
		super().__init__(name='request-worker', daemon=True)
		self.state = state
		self.engine = engine
		self.transport = transport
		self._waiter = FixedWaiter(float(poll_interval))

	def handle_one(self) -> bool:
		"""Try to handle one query.

		:returns: True if a query was answered.
		"""
		if not self.state.is_accepting:
			self._waiter.wait(self.state.exited)
			return False

		try:
			(query, address) = self.transport.receive()
		except TransportTimeout:
			return False
		except OSError as e:
			debug(f"Receive failed: {e}")
			return False

		answer = self.engine.resolve(query)
		try:
			self.transport.send(answer, address)
		except OSError as e:
			debug(f"Could not send answer to {address}: {e}")
			return False
		return True

	def run(self) -> None:
		while not self.state.is_exited:
			self.handle_one()
		debug('Request worker exiting')


class CommandWorker(threading.Thread):
	"""Apply operator commands until the server exits.

	If the operator input is closed, that is fatal: the error is recorded in
	the server state (which also sets `exited`).

	:param state: The shared server state.

	:param channel: Where operator input lines come from.

	:param spawn_request_worker: Starts a new request worker.

	:param poll_interval: How long to wait for a line of input.
	"""

	state: ServerState
	channel: ControlChannel
	_spawn_request_worker: collections.abc.Callable[[], object]
	_poll_interval: float

	def __init__(self,
		state: ServerState,
		channel: ControlChannel,
		spawn_request_worker: collections.abc.Callable[[], object],
		poll_interval: float = POLL_INTERVAL,
	) -> None:
		super().__init__(name='command-worker', daemon=True)
		self.state = state
		self.channel = channel
		self._spawn_request_worker = spawn_request_worker
		self._poll_interval = poll_interval

	def handle_one(self) -> None:
		"""Wait for, and apply, one line of operator input.

		:raises ControlChannelClosed: The operator input was closed.
		"""
		try:
			line = self.channel.get(timeout=self._poll_interval)
		except queue.Empty:
			return
		if line is None:
			raise ControlChannelClosed('Control channel disconnected')
		self.state.apply_command(line, self._spawn_request_worker)
		sys.stdout.flush()

	def run(self) -> None:
		while not self.state.is_exited:
			try:
				self.handle_one()
			except ControlChannelClosed as e:
				error(f"{e}; shutting down")
				self.state.fail(e)
				break
		debug('Command worker exiting')


class Supervisor():
	"""Start the workers, and wait for them to finish.

	:param state: The shared server state.

	:param engine: The resolution engine, for request workers.

	:param transport: The transport, for request workers.

	:param channel: The operator input, for the command worker.

	:param poll_interval: Passed to every worker, and used by `wait_exit`.
	"""

	state: ServerState
	engine: ResolutionEngine
	transport: UDPTransport
	channel: ControlChannel
	poll_interval: float
	_joining: list[WorkerHandle]

	def __init__(self,
		state: ServerState,
		engine: ResolutionEngine,
		transport: UDPTransport,
		channel: ControlChannel,
		poll_interval: float = POLL_INTERVAL,
	) -> None:
		self.state = state
		self.engine = engine
		self.transport = transport
		self.channel = channel
		self.poll_interval = poll_interval
		self._joining = list()

	def _register(self,
		kind: WorkerKind,
		worker: threading.Thread,
	) -> WorkerHandle | None:
		"""Register a started worker.

		If the server has already exited, the worker will stop on its own
		right away, so it is joined here instead.
		"""
		handle = self.state.register(kind, worker)
		if handle is None:
			debug(f"Server has exited; not keeping the new {kind}")
			worker.join()
		return handle

	def spawn_request_worker(self) -> WorkerHandle | None:
		"""Start a request worker, and register it."""
		worker = RequestWorker(
			state=self.state,
			engine=self.engine,
			transport=self.transport,
			poll_interval=self.poll_interval,
		)
		worker.start()
		handle = self._register(WorkerKind.REQUEST, worker)
		if handle is None:
			return None
		info('Run Processing Request.')
		if self.state.has_worker(WorkerKind.COMMAND):
			info('ProcessingCommand found')
		else:
			warning('ProcessingCommand not found.  Commands not enabled.')
		return handle

	def spawn_command_worker(self) -> WorkerHandle | None:
		"""Start the command worker, and register it."""
		worker = CommandWorker(
			state=self.state,
			channel=self.channel,
			spawn_request_worker=self.spawn_request_worker,
			poll_interval=self.poll_interval,
		)
		worker.start()
		handle = self._register(WorkerKind.COMMAND, worker)
		if handle is None:
			return None
		info('Run Processing Command.')
		if self.state.has_worker(WorkerKind.REQUEST):
			info('ProcessingRequest found.  You can type commands to control the DNS server.')
		else:
			warning('ProcessingRequest not found.  Type `listen` to start one.')
		return handle

	def wait_exit(self) -> None:
		"""Block until the server exits and every worker has finished.

		Until `exited` is set, this only reports (once per worker) what it is
		waiting for.  It never joins a worker before then, so a worker that is
		still registering other workers can't deadlock with us.

		This may be called again if it was interrupted (for example, by
		`KeyboardInterrupt`) while joining.  Workers not yet joined are still
		waited for.

		:raises ControlChannelClosed: The server exited because the operator
		input was closed.
		"""
		waiter = FixedWaiter(float(self.poll_interval))
		while True:
			for handle in self.state.pending_handles():
				warning(f"Wait {handle.kind} to Exit.")
			if self.state.is_exited:
				self._joining.extend(self.state.drain())
				break
			waiter.wait(self.state.exited)

		# A handle stays on the list until its thread has been joined.
		while len(self._joining) > 0:
			handle = self._joining[0]
			handle.thread.join()
			self._joining.pop(0)
			warning(f"{handle.kind} Exited.")

		self.state.cache.stop()
		debug(str(self.state.cache))
		warning('All Handles Exited.  DNS Server Exited.')

		fatal = self.state.fatal_error
		if fatal is not None:
			raise fatal
