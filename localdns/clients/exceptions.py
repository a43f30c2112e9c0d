# vim: ts=4 sw=4 noet

# These are the exceptions that the resolver clients can throw.

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

from typing import Any

class ClientError(Exception):
	"""A client error.
	"""
	pass

class ClientErrorTemporary(ClientError):
	"""A client error, which should be temporary.
	"""
	pass

class ResolverError(ClientErrorTemporary):
	"""There was a problem with an upstream resolver.
	"""
	pass

class ResolverErrorPermanent(ResolverError):
	"""The upstream resolver answered, but the answer was not usable.

	Waiting a while will probably not help.
	"""
	pass

class NoAnswer(ResolverErrorPermanent):
	"""The upstream resolver had no address for the name."""
	pass

class ResolutionFailed(ClientError):
	"""Every resolution tier failed for a name.

	:param domain: The (normalized) name we tried to resolve.

	:param errors: The error from each tier that was tried, keyed by tier.
	"""

	domain: str
	errors: dict[Any, Exception]

	def __init__(self,
		domain: str,
		errors: dict[Any, Exception],
	) -> None:
		self.domain = domain
		self.errors = errors
		super().__init__(
			f"Could not resolve {domain!r}: " +
			'; '.join(f"{tier}: {e}" for (tier, e) in errors.items())
		)

__all__ = (
	'ClientError',
	'ClientErrorTemporary',
	'ResolverError',
	'ResolverErrorPermanent',
	'NoAnswer',
	'ResolutionFailed',
)
