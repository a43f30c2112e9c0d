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

"""A DNS-over-HTTPS client

This talks to a public resolver's JSON API (the one Google Public DNS serves at
`https://dns.google/resolve`).  A query is a GET with the name and record type
as query parameters; the response is a JSON envelope like this:

	{"Status": 0, "Answer": [{"name": "example.com.", "type": 1, "TTL": 300,
	"data": "93.184.215.14"}]}
"""

# stdlib imports
import logging
from typing import Any

# PyPi imports
import dns.exception
import dns.rcode
import dns.rdatatype
import requests

# Local imports
from localdns.clients.exceptions import *

REMOTE_URL: str = 'https://dns.google/resolve'
"""The default DNS-over-HTTPS JSON endpoint.
"""

REMOTE_TIMEOUT: float = 5.0
"""How long, in seconds, do we wait for the remote resolver?
"""

# Set up logging
logger = logging.getLogger(__name__)
exception = logger.exception
error = logger.error
warning = logger.warning
info = logger.info
debug = logger.debug


class RemoteClient():
	"""A client for a DNS-over-HTTPS JSON resolver.

	:param url: The resolver's JSON API endpoint.

	:param timeout: Timeout, in seconds, for each request.

	:param session: A `requests.Session` to use.  If not provided, one is made.

	:raise ValueError: Invalid URL or timeout.
	"""

	_url: str
	_timeout: float
	_session: requests.Session

	def __init__(self,
		url: str = REMOTE_URL,
		timeout: float = REMOTE_TIMEOUT,
		session: requests.Session | None = None,
	) -> None:
		if len(url) == 0:
			raise ValueError('No resolver URL')
		if timeout < 0:
			raise ValueError(f"Invalid timeout {timeout}")
		self._url = url
		self._timeout = timeout
		self._session = (requests.Session() if session is None else session)

	@property
	def url(self) -> str:
		return self._url

	def get_ip(self,
		domain: str,
		record_type: str = 'a',
	) -> str:
		"""Look up the address for a name.

		:param domain: The name to look up.

		:param record_type: The record type to ask for, as text.

		:returns: The data of the first answer record of the requested type.

		:raises ResolverError: The resolver could not be reached, or sent back
		something other than a well-formed JSON envelope.

		:raises NoAnswer: The resolver answered, but had no record for us.
		"""
		try:
			rdtype = dns.rdatatype.from_text(record_type)
		except dns.exception.DNSException:
			raise ValueError(f"Unknown record type {record_type}")

		debug(f"Asking {self._url} for {record_type.upper()} {domain}")
		try:
			response = self._session.get(
				self._url,
				params={
					'name': domain,
					'type': record_type,
					'do': 1,
				},
				timeout=self._timeout,
			)
			response.raise_for_status()
			envelope = response.json()
		except requests.exceptions.JSONDecodeError as e:
			raise ResolverError(f"Remote resolver sent back something that is not JSON: {e}")
		except requests.RequestException as e:
			raise ResolverError(f"Remote resolver request failed: {e}")

		return self._first_answer(domain, rdtype, envelope)

	@staticmethod
	def _first_answer(
		domain: str,
		rdtype: dns.rdatatype.RdataType,
		envelope: Any,
	) -> str:
		"""Pull the first answer of a given type out of a JSON envelope.
		"""
		if not isinstance(envelope, dict):
			raise ResolverError('Remote resolver response is not a JSON object')

		# A non-zero status is a DNS rcode (NXDOMAIN, SERVFAIL, …)
		status = envelope.get('Status', 0)
		if not isinstance(status, int) or isinstance(status, bool):
			raise ResolverError(f"Remote resolver sent an invalid status {status!r}")
		if status != 0:
			try:
				status_text = dns.rcode.to_text(status)
			except ValueError:
				status_text = str(status)
			raise NoAnswer(f"Remote resolver returned {status_text} for {domain}")

		# A missing (or null) answer section means no answers
		answers = envelope.get('Answer')
		if answers is None:
			answers = list()
		if not isinstance(answers, list):
			raise ResolverError(f"Remote resolver sent an invalid answer section {answers!r}")

		# The answer section may start with a CNAME chain
		for answer in answers:
			if not isinstance(answer, dict):
				continue
			if answer.get('type') == rdtype and 'data' in answer:
				return str(answer['data'])
		raise NoAnswer(f"Remote resolver had no {rdtype.name} record for {domain}")
