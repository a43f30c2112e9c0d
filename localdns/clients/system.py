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

"""A client for the system's DNS lookup utility

This is the resolver of last resort: it runs a lookup command (normally
`dig +short`) and takes whatever the command prints as the answer.
"""

# stdlib imports
import collections.abc
import logging
import subprocess

# PyPi imports

# Local imports
from localdns.clients.exceptions import *

SYSTEM_COMMAND: tuple[str, ...] = ('dig', '+short', '-q', '{name}')
"""The default lookup command.  `{name}` is replaced with the name to look up.

The name goes after `-q`, so `dig` never reads it as an option, even if it
starts with `-` or `+`.
"""

SYSTEM_TIMEOUT: float = 10.0
"""How long, in seconds, do we let the lookup command run?
"""

# Set up logging
logger = logging.getLogger(__name__)
exception = logger.exception
error = logger.error
warning = logger.warning
info = logger.info
debug = logger.debug


class SystemClient():
	"""Resolve names by running a command.

	The command is run directly (not through a shell), so a name is never
	parsed as shell syntax.  The default command puts the name after `-q`, so it
	is never taken for an option either.

	:param command: The command and its arguments.  Each argument is formatted
	with `name` set to the name being looked up.

	:param timeout: How long, in seconds, the command may run.

	:raise ValueError: Empty command or invalid timeout.
	"""

	_command: tuple[str, ...]
	_timeout: float

	def __init__(self,
		command: collections.abc.Sequence[str] = SYSTEM_COMMAND,
		timeout: float = SYSTEM_TIMEOUT,
	) -> None:
		if len(command) == 0:
			raise ValueError('No lookup command')
		if timeout < 0:
			raise ValueError(f"Invalid timeout {timeout}")
		self._command = tuple(command)
		self._timeout = timeout

	def command_for(self,
		domain: str,
	) -> list[str]:
		"""Return the command line used to look up a name.
		"""
		return [arg.format(name=domain) for arg in self._command]

	def get_ip(self,
		domain: str,
	) -> str:
		"""Look up the address for a name.

		:param domain: The name to look up.

		:returns: The command's standard output, with surrounding whitespace
		removed.

		:raises ResolverError: The command could not be run, timed out, or
		exited with an error.  The command's standard error is included.

		:raises NoAnswer: The command ran, but printed nothing.
		"""
		cmd = self.command_for(domain)
		debug(f"Running {cmd}")
		try:
			result = subprocess.run(
				cmd,
				capture_output=True,
				text=True,
				errors='replace',
				timeout=self._timeout,
			)
		except subprocess.TimeoutExpired:
			raise ResolverError(f"Command {cmd} timed out after {self._timeout} seconds")
		except OSError as e:
			raise ResolverError(f"Could not run {cmd}: {e}")

		if result.returncode != 0:
			raise ResolverError(
				f"Command failed with status code {result.returncode}: " +
				result.stderr.strip()
			)

		output = result.stdout.strip()
		if len(output) == 0:
			raise NoAnswer(f"Command {cmd} printed no answer for {domain}")
		return output
