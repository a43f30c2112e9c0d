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

"""An expiring cache of name-to-address answers

Every answer the server hands out (except for failures) goes into this cache,
and stays there for a fixed amount of time.  A background thread wakes up once
a second to throw away entries that have expired.

The sweeper is only housekeeping.  Lookups check the expiry time themselves,
so an entry that has expired (but which the sweeper has not reached yet) is
never returned.
"""

# stdlib imports
import dataclasses
import logging
import threading
import time

# PyPi imports
import humanfriendly

# Local imports
from localdns.wait import FixedWaiter

SWEEP_INTERVAL: float = 1.0
"""How often, in seconds, do we sweep out expired entries?
"""

# Set up logging
logger = logging.getLogger(__name__)
exception = logger.exception
error = logger.error
warning = logger.warning
info = logger.info
debug = logger.debug


@dataclasses.dataclass
class CacheEntry():
	value: str
	expires_at: float
	"""When the entry expires, on the `time.monotonic()` clock."""


class ExpiringCache():
	"""A thread-safe mapping of names to addresses, where entries expire.

	All access to the mapping (reads, writes, and the sweeper) happens under a
	single lock.  Critical sections are a handful of dict operations, so there
	is no per-key locking.

	:param ttl: How long, in seconds, an entry lives after it is written.

	:param sweep_interval: How often, in seconds, the sweeper runs.

	:raises ValueError: The TTL or sweep interval is not positive.
	"""

	_entries: dict[str, CacheEntry]
	_lock: threading.Lock
	_ttl: float
	_stopped: threading.Event
	_sweeper: threading.Thread

	def __init__(self,
		ttl: float,
		sweep_interval: float = SWEEP_INTERVAL,
	) -> None:
		if ttl <= 0:
			raise ValueError(f"Invalid TTL {ttl}")
		if sweep_interval <= 0:
			raise ValueError(f"Invalid sweep interval {sweep_interval}")
		self._entries = dict()
		self._lock = threading.Lock()
		self._ttl = float(ttl)

		# Start our sweeper
		self._stopped = threading.Event()
		self._sweeper = threading.Thread(
			target=self._sweep_loop,
			args=(FixedWaiter(float(sweep_interval)),),
			name='cache-sweeper',
			daemon=True,
		)
		self._sweeper.start()
		debug(f"Started cache sweeper, every {sweep_interval} seconds")

	@property
	def ttl(self) -> float:
		"""How long, in seconds, new entries live."""
		return self._ttl

	@property
	def running(self) -> bool:
		"""Is the sweeper still supposed to be running?"""
		return not self._stopped.is_set()

	def put(self,
		key: str,
		value: str,
	) -> None:
		"""Insert (or overwrite) an entry.

		The entry expires `ttl` seconds from now.
		"""
		expires_at = time.monotonic() + self._ttl
		with self._lock:
			self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

	def get(self,
		key: str,
		refresh: bool = False,
	) -> str | None:
		"""Look up an entry.

		:param key: The key to look up.

		:param refresh: If True, a valid entry gets its expiry time pushed out
		to `ttl` seconds from now (sliding expiry).  If False, the expiry time
		is left alone.

		:returns: The value, or None if there is no entry or it has expired.
		"""
		with self._lock:
			entry = self._entries.get(key)
			if entry is None:
				return None
			now = time.monotonic()
			if entry.expires_at <= now:
				# The sweeper hasn't got to this one yet.
				del self._entries[key]
				return None
			if refresh:
				entry.expires_at = now + self._ttl
			return entry.value

	def size(self) -> int:
		"""Return the number of entries.

		This may include expired entries which have not been swept yet.
		"""
		with self._lock:
			return len(self._entries)

	def __len__(self) -> int:
		return self.size()

	def __contains__(self,
		key: object,
	) -> bool:
		if not isinstance(key, str):
			return False
		return self.get(key, refresh=False) is not None

	def sweep(self) -> int:
		"""Remove every expired entry.

		:returns: The number of entries removed.
		"""
		now = time.monotonic()
		with self._lock:
			expired = [
				key
				for (key, entry) in self._entries.items()
				if entry.expires_at <= now
			]
			for key in expired:
				del self._entries[key]
		return len(expired)

	def _sweep_loop(self,
		waiter: FixedWaiter,
	) -> None:
		try:
			while not waiter.wait(self._stopped):
				removed = self.sweep()
				if removed > 0:
					debug(f"Swept {removed} expired cache entries")
		finally:
			debug('Cache sweeper exiting')

	def stop(self) -> None:
		"""Tell the sweeper to stop.

		This does not wait for the sweeper thread to exit.  The entries stay
		readable until the cache itself is dropped.
		"""
		self._stopped.set()

	def __str__(self) -> str:
		return (
			'[Cache] Running: ' + ('Yes' if self.running else 'No') +
			', Expiration Time: ' + humanfriendly.format_timespan(self._ttl) +
			f", Record Num: {self.size()}."
		)
