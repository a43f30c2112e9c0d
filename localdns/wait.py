#!python3
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

# Stdlib imports
import abc
import datetime
import logging
import threading

# PyPi imports

# local imports

# Set up logging
logger = logging.getLogger(__name__)
exception = logger.exception
error = logger.error
warning = logger.warning
info = logger.info
debug = logger.debug

class Waiter(metaclass=abc.ABCMeta):
	"""Something that knows how long to pause between two polls.

	Every long-running loop in the server (the cache sweeper, a paused request
	worker, the supervisor) pauses between iterations.  Instead of sleeping,
	the pause is a wait on a `threading.Event`, so that setting the event (for
	example, the server's `exited` flag) ends the pause right away.
	"""

	def __init__(self,
		*args,
		**kwargs
	) -> None:
		...

	@abc.abstractmethod
	def step(self) -> datetime.timedelta:
		"""Return how long to wait before the next poll.

		This is called once per wait, right before waiting, so subclasses may
		change their internal state here.
		"""
		...

	def wait(self,
		event: threading.Event | None = None,
	) -> bool:
		"""Wait.

		This calls `step`, then waits for that amount of time.

		:param event: If provided, stop waiting as soon as this event is set.

		:returns: True if the event was set, else False.
		"""
		how_long = self.step().total_seconds()
		if event is None:
			event = threading.Event()
		return event.wait(how_long)

class FixedWaiter(Waiter):
	"""Wait for a fixed amount of time.

	:param how_long: How many seconds to wait (greater than or equal to zero).

	:raises TypeError: Wait time must be a float.

	:raises ValueError: Waiting for a negative amount of time.
	"""

	def __init__(self,
		how_long: float,
	) -> None:
		if not isinstance(how_long, float):
			raise TypeError('Wait time must be a floating-point number.')
		if how_long < 0.0:
			raise ValueError('Waiting for a negative amount of time.')
		super().__init__()
		self.how_long = how_long

	def step(self) -> datetime.timedelta:
		return datetime.timedelta(seconds=self.how_long)
