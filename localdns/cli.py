#!python3
# vim: ts=4 sw=4 noet

# This runs the local DNS server.  Clients send a name in a UDP datagram, and
# get an address back in a UDP datagram.  The operator controls the server by
# typing commands on standard input:
# * `stop` stops answering queries (they queue up in the socket).
# * `start` starts answering queries again.
# * `listen` starts a request worker, if none is running.
# * `exit` shuts the server down.

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

# The minimum required Python version is 3.10.  That is because the code uses
# PEP 604 union types (`int | None` instead of `Optional[int]`, for example).

# stdlib imports
import argparse
import collections.abc
import logging
import pathlib
import sys

# PyPi imports

# local imports
import localdns.cache
import localdns.clients.remote
import localdns.clients.system
import localdns.config
import localdns.engine
import localdns.state
import localdns.transport
import localdns.workers

logger = logging.getLogger(__name__)
exception = logger.exception
error = logger.error
warn = logger.warning
info = logger.info
debug = logger.debug


def make_parser() -> argparse.ArgumentParser:
	argp = argparse.ArgumentParser(
		prog='localdns',
		description='A caching DNS server for the local network.',
		epilog='Once running, type `stop`, `start`, `listen` or `exit`.',
	)
	argp.add_argument('--host',
		help='The address to listen on.',
		default='0.0.0.0',
	)
	argp.add_argument('--no-listen',
		help='Do not answer queries until the `listen` command is given.',
		action='store_true',
	)
	argp.add_argument('--debug',
		help='Enable debug logging.  Overrides --verbose',
		action='store_true',
	)
	argp.add_argument('--verbose',
		help='Enable verbose logging.',
		action='store_true',
	)
	argp.add_argument('config',
		help='The server configuration file (JSON).',
		type=pathlib.Path,
	)
	return argp


def main(
	argv: collections.abc.Sequence[str] | None = None,
) -> int:
	args = make_parser().parse_args(argv)

	# Set up logging
	logging.basicConfig(
		level=(
			'DEBUG' if args.debug is True else (
				'INFO' if args.verbose is True else 'WARNING'
			)
		),
	)

	# Load our configuration.  Problems here are fatal.
	try:
		config = localdns.config.load_config(args.config)
		static_table = localdns.config.load_static_table(
			config.local_domain_table_path
		)
	except localdns.config.ConfigError as e:
		print(f"Configuration problem: {e}")
		return 1

	info('--------------------INIT--------------------')
	info('Setting Cache.')
	cache = localdns.cache.ExpiringCache(ttl=config.cache_ttl_seconds)
	debug(str(cache))

	state = localdns.state.ServerState(
		static_table=static_table,
		cache=cache,
		name=config.server_name,
		port=config.listen_port,
		remote=config.remote_resolver_address,
		config_file_path=str(config.config_file_path),
	)
	engine = localdns.engine.ResolutionEngine(
		cache=cache,
		static_table=static_table,
		remote=localdns.clients.remote.RemoteClient(
			url=config.remote_resolver_address,
		),
		system=localdns.clients.system.SystemClient(),
	)

	info('Creating Socket')
	try:
		transport = localdns.transport.UDPTransport(
			host=args.host,
			port=config.listen_port,
		)
	except OSError as e:
		print(f"Unable to listen on {args.host}:{config.listen_port}: {e}")
		cache.stop()
		return 1
	info('--------------------INIT--------------------')
	info(str(state))

	with transport:
		supervisor = localdns.workers.Supervisor(
			state=state,
			engine=engine,
			transport=transport,
			channel=localdns.workers.spawn_stdin_channel(),
		)
		supervisor.spawn_command_worker()
		if not args.no_listen:
			supervisor.spawn_request_worker()
		try:
			supervisor.wait_exit()
		except localdns.workers.ControlChannelClosed as e:
			print(f"Control input closed: {e}")
			return 1
		except KeyboardInterrupt:
			# Let the workers finish what they're doing.
			state.exit()
			supervisor.wait_exit()
	return 0


if __name__ == '__main__':
	sys.exit(main())
