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

"""Server configuration

There are two configuration files, both JSON.

The server configuration is an object:

	{
		"dns_config": "dns.json",
		"dns_port": 10053,
		"remote_dns_addr": "https://dns.google/resolve",
		"name": "Local DNS",
		"cache_time": 60
	}

`dns_config` points to the local domain table, which is an array of objects:

	[{"domain": "printer.lan", "ip": "192.168.1.20"}]

A relative `dns_config` path is taken relative to the server configuration's
directory.
"""

# stdlib imports
import collections.abc
import dataclasses
import json
import logging
import pathlib
import types
from typing import Any

# PyPi imports

# Local imports

# Set up logging
logger = logging.getLogger(__name__)
exception = logger.exception
error = logger.error
warning = logger.warning
info = logger.info
debug = logger.debug


class ConfigError(Exception):
	"""A configuration file is missing, or not valid.
	"""
	pass


@dataclasses.dataclass(frozen=True)
class ServerConfig():
	local_domain_table_path: pathlib.Path
	"""Where the local domain table lives."""

	listen_port: int
	"""The UDP port to listen on."""

	remote_resolver_address: str
	"""The DNS-over-HTTPS JSON endpoint."""

	server_name: str
	"""The server's name, used in logs."""

	cache_ttl_seconds: int
	"""How long answers stay in the cache."""

	listen_host: str = '0.0.0.0'
	"""The address to listen on."""

	config_file_path: pathlib.Path | None = None
	"""Where this configuration came from."""


def _read_json(
	path: pathlib.Path,
) -> Any:
	try:
		with path.open('r', encoding='utf-8') as f:
			return json.load(f)
	except OSError as e:
		raise ConfigError(f"Unable to read {path}: {e}")
	except json.JSONDecodeError as e:
		raise ConfigError(f"Unable to parse JSON in {path}: {e}")


def _require(
	data: dict[str, Any],
	key: str,
	kind: type,
	path: pathlib.Path,
) -> Any:
	if key not in data:
		raise ConfigError(f"{path}: missing key {key!r}")
	value = data[key]
	# bool is a subclass of int, but `true` is not a port number.
	if isinstance(value, bool) or not isinstance(value, kind):
		raise ConfigError(f"{path}: {key!r} must be a {kind.__name__}")
	return value


def load_config(
	path: pathlib.Path | str,
) -> ServerConfig:
	"""Load the server configuration.

	:param path: The configuration file.

	:returns: The parsed configuration.

	:raises ConfigError: The file is missing, is not JSON, or has missing or
	invalid settings.
	"""
	path = pathlib.Path(path)
	debug(f"Loading server configuration from {path}")
	data = _read_json(path)
	if not isinstance(data, dict):
		raise ConfigError(f"{path}: configuration must be a JSON object")

	table_path = pathlib.Path(_require(data, 'dns_config', str, path))
	if not table_path.is_absolute():
		table_path = path.parent / table_path

	port = _require(data, 'dns_port', int, path)
	if (port < 0) or (port > 65535):
		raise ConfigError(f"{path}: invalid port {port}")

	cache_time = _require(data, 'cache_time', int, path)
	if cache_time <= 0:
		raise ConfigError(f"{path}: cache_time must be positive")

	return ServerConfig(
		local_domain_table_path=table_path,
		listen_port=port,
		remote_resolver_address=_require(data, 'remote_dns_addr', str, path),
		server_name=_require(data, 'name', str, path),
		cache_ttl_seconds=cache_time,
		config_file_path=path,
	)


def load_static_table(
	path: pathlib.Path | str,
) -> collections.abc.Mapping[str, str]:
	"""Load the local domain table.

	:param path: The table file.

	:returns: A read-only mapping of domain to IP.  If a domain appears more
	than once, the last entry wins.

	:raises ConfigError: The file is missing, is not JSON, or has a malformed
	record.
	"""
	path = pathlib.Path(path)
	debug(f"Loading local domain table from {path}")
	data = _read_json(path)
	if not isinstance(data, list):
		raise ConfigError(f"{path}: local domain table must be a JSON array")

	table: dict[str, str] = dict()
	for (i, record) in enumerate(data):
		if not isinstance(record, dict):
			raise ConfigError(f"{path}: record {i} is not an object")
		domain = record.get('domain')
		ip = record.get('ip')
		if not isinstance(domain, str) or not isinstance(ip, str):
			raise ConfigError(f"{path}: record {i} needs string `domain` and `ip`")
		table[domain] = ip
	debug(f"[DNS Config] {table}")
	return types.MappingProxyType(table)
