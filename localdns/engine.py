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

"""Tiered name resolution

A name is looked up in four places, in order, stopping at the first one that
has an answer:

1. The expiring cache.

2. The static table, from the local domain config file.

3. The remote (DNS-over-HTTPS) resolver.

4. The system resolver command.

Any answer from tiers 2-4 is written to the cache.  Failures are never cached:
if every tier fails, the next query for the same name goes through every tier
again.
"""

# stdlib imports
import collections.abc
import enum
import logging
from typing import NamedTuple

# PyPi imports

# Local imports
from localdns.cache import ExpiringCache
from localdns.clients.exceptions import *
from localdns.clients.remote import RemoteClient
from localdns.clients.system import SystemClient

# Set up logging
logger = logging.getLogger(__name__)
exception = logger.exception
error = logger.error
warning = logger.warning
info = logger.info
debug = logger.debug


def normalize(
	raw: str,
) -> str:
	"""Clean up a name from a client.

	Surrounding whitespace is removed, as is every character that is not
	printable, non-space ASCII.  Nothing else is done: no lowercasing, no
	length checks.
	"""
	return ''.join(c for c in raw.strip() if '!' <= c <= '~')


class ResolutionSource(enum.Enum):
	"""Where an answer came from."""
	CACHE = enum.auto()
	STATIC = enum.auto()
	REMOTE = enum.auto()
	SYSTEM = enum.auto()

	def __str__(self) -> str:
		return self.name.lower()


class Resolution(NamedTuple):
	domain: str
	ip: str
	source: ResolutionSource


class ResolutionEngine():
	"""Resolve names through the cache, static table, and upstream resolvers.

	:param cache: The cache to read from, and write new answers to.

	:param static_table: The local name-to-address table.  This is only read.

	:param remote: The DNS-over-HTTPS client.

	:param system: The system resolver client.
	"""

	cache: ExpiringCache
	static_table: collections.abc.Mapping[str, str]
	remote: RemoteClient
	system: SystemClient

	def __init__(self,
		cache: ExpiringCache,
		static_table: collections.abc.Mapping[str, str],
		remote: RemoteClient,
		system: SystemClient,
	) -> None:
		self.cache = cache
		self.static_table = static_table
		self.remote = remote
		self.system = system

	def lookup(self,
		raw_domain: str,
	) -> Resolution:
		"""Resolve a name, saying where the answer came from.

		:param raw_domain: The name, as received from the client.

		:returns: The answer, and the tier that provided it.

		:raises ResolutionFailed: Every upstream tier failed.  The exception
		holds each tier's error.
		"""
		domain = normalize(raw_domain)

		# Cache lookups don't extend the entry's life.
		cached = self.cache.get(domain, refresh=False)
		if cached is not None:
			info(f"Cached {domain}---->{cached}")
			return Resolution(domain, cached, ResolutionSource.CACHE)

		static_ip = self.static_table.get(domain)
		if static_ip is not None:
			info(f"Local DNS {domain}---->{static_ip}")
			self.cache.put(domain, static_ip)
			return Resolution(domain, static_ip, ResolutionSource.STATIC)

		errors: dict[ResolutionSource, Exception] = dict()

		try:
			remote_ip = self.remote.get_ip(domain, 'a')
		except ClientError as e:
			error(f"Error querying remote resolver for {domain}: {e}")
			errors[ResolutionSource.REMOTE] = e
		else:
			warning(f"Remote DNS {domain}---->{remote_ip}")
			self.cache.put(domain, remote_ip)
			return Resolution(domain, remote_ip, ResolutionSource.REMOTE)

		try:
			system_ip = self.system.get_ip(domain)
		except ClientError as e:
			error(f"System resolver failed for {domain}: {e}")
			errors[ResolutionSource.SYSTEM] = e
			raise ResolutionFailed(domain, errors)
		warning(f"Local DNS not found, system result: {domain}---->{system_ip}")
		self.cache.put(domain, system_ip)
		return Resolution(domain, system_ip, ResolutionSource.SYSTEM)

	def resolve(self,
		raw_domain: str,
	) -> str:
		"""Resolve a name to an address.

		:returns: The address, or an empty string if nothing could resolve it.
		"""
		try:
			return self.lookup(raw_domain).ip
		except ResolutionFailed as e:
			debug(str(e))
			return ''
