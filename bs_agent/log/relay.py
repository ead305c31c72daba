# Copyright 2023 Scalyr Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ------------------------------------------------------------------------

"""
Syslog relay for the Docker syslog logging driver.

The driver writes lines like `<30>2015-06-05T16:13:47Z myhost docker/<container id>: message`.  The relay replaces
the host with the container id and the tag with the application name of the container, and writes the result to
every configured destination:

  <30>2015-06-05T16:13:47Z <container id> <application name>: message

The relay is also the sink of the Kubernetes log tailers, whose records are written in the same format.
"""

from collections import namedtuple
import re
import socket
import socketserver

import bs_agent.bs_logging as bs_logging
from bs_agent.log.forwarder import Forwarder, parse_address
from bs_agent.log.records import format_syslog_line, record_to_syslog_line
from bs_agent.log.resolver import ContainerNameResolver, DEFAULT_CACHE_SIZE
from bs_agent.runtime import DockerRuntime
from bs_agent.util import StoppableThread

log = bs_logging.getLogger(__name__)

SYSLOG_LINE_RE = re.compile(
    rb"^<(\d{1,3})>(\S+) \S+ docker/([^\s:\[]+)(?:\[\d+\])?: ?(.*)$", re.DOTALL
)

# The size of a single read from a tcp connection.
TCP_BUFFER_SIZE = 8192
# Lines longer than this are discarded.
MAX_LINE_SIZE = 64 * 1024
# How often tcp connections check whether the relay is stopping.
TCP_READ_TIMEOUT = 1.0
# How often the servers check whether they should shut down.
SERVE_POLL_INTERVAL = 0.5


class RelayConfig(
    namedtuple(
        "RelayConfig",
        [
            "bind_address",
            "forward_addresses",
            "runtime_endpoint",
            "app_name_env_var",
            "app_name_cache_size",
        ],
    )
):
    """The settings of a `SyslogRelay`.

    @ivar bind_address: Where inbound syslog lines are received, such as `udp://0.0.0.0:1514`.
    @ivar forward_addresses: The list of destinations, such as `tcp://collector:514`.
    @ivar runtime_endpoint: The address of the container runtime API.
    @ivar app_name_env_var: The container environment variable holding the application name, or None.
    @ivar app_name_cache_size: The number of cached application names.
    """

    __slots__ = ()

    def __new__(
        cls,
        bind_address,
        forward_addresses,
        runtime_endpoint=None,
        app_name_env_var=None,
        app_name_cache_size=DEFAULT_CACHE_SIZE,
    ):
        return super(RelayConfig, cls).__new__(
            cls,
            bind_address,
            tuple(forward_addresses),
            runtime_endpoint,
            app_name_env_var,
            app_name_cache_size,
        )


class RelayUDPHandler(socketserver.BaseRequestHandler):
    """Handles one datagram, which may hold several newline terminated lines."""

    def handle(self):
        data = self.request[0]
        for line in data.split(b"\n"):
            if line.strip():
                self.server.relay.handle_line(line)


class RelayTCPHandler(socketserver.BaseRequestHandler):
    """Reads newline terminated lines from a tcp connection until it is closed or the relay stops."""

    def handle(self):
        self.request.settimeout(TCP_READ_TIMEOUT)
        pending = b""
        try:
            while self.server.is_running():
                try:
                    data = self.request.recv(TCP_BUFFER_SIZE)
                except socket.timeout:
                    continue
                if not data:
                    break

                lines = (pending + data).split(b"\n")
                pending = lines.pop()
                for line in lines:
                    if line.strip():
                        self.server.relay.handle_line(line)

                if len(pending) > MAX_LINE_SIZE:
                    log.warning(
                        "Discarding syslog line from %s longer than %d bytes",
                        self.client_address[0],
                        MAX_LINE_SIZE,
                        limit_once_per_x_secs=300,
                        limit_key="relay-line-too-long",
                    )
                    pending = b""
        except OSError as e:
            log.warning(
                "Network error while reading from %s: %s",
                self.client_address[0],
                e,
                limit_once_per_x_secs=300,
                limit_key="relay-network-error",
            )

        if pending.strip():
            self.server.relay.handle_line(pending)


class _RelayServerMixin(object):
    """Gives the servers access to the relay and to the run state of their serving thread."""

    allow_reuse_address = True
    daemon_threads = True

    relay = None
    __run_state = None

    def set_run_state(self, run_state):
        self.__run_state = run_state

    def is_running(self):
        if self.__run_state:
            return self.__run_state.is_running()

        return False


class RelayUDPServer(_RelayServerMixin, socketserver.UDPServer):
    """UDP server handling datagrams one at a time, so lines are forwarded in the order they arrive."""

    max_packet_size = 65535

    def __init__(self, address, relay):
        self.relay = relay
        family = socket.AF_INET6 if ":" in address[0] else socket.AF_INET
        self.address_family = family
        socketserver.UDPServer.__init__(self, address, RelayUDPHandler)


class RelayTCPServer(_RelayServerMixin, socketserver.ThreadingMixIn, socketserver.TCPServer):
    """TCP server handling each connection on its own thread."""

    def __init__(self, address, relay):
        self.relay = relay
        family = socket.AF_INET6 if ":" in address[0] else socket.AF_INET
        self.address_family = family
        socketserver.TCPServer.__init__(self, address, RelayTCPHandler)


class SyslogRelay(object):
    """Receives syslog lines from the Docker syslog logging driver, rewrites and forwards them.

    `start` fails without leaving anything open if the bind address or a destination is invalid, or if a tcp
    destination cannot be reached.
    """

    def __init__(self, config, runtime=None, resolver=None):
        """
        @param config: The relay settings.
        @param runtime: The container runtime client.  Created from `config.runtime_endpoint` if None.
        @param resolver: The container name resolver.  Created from `runtime` and `config` if None.
        @type config: RelayConfig
        """
        self.__config = config
        if resolver is None:
            if runtime is None:
                runtime = DockerRuntime(config.runtime_endpoint)
            resolver = ContainerNameResolver(
                runtime,
                config.app_name_env_var,
                capacity=config.app_name_cache_size,
            )
        self.__resolver = resolver
        self.__forwarders = []
        self.__server = None
        self.__thread = None

    @property
    def config(self):
        return self.__config

    @property
    def resolver(self):
        return self.__resolver

    @property
    def server_address(self):
        """The (host, port) the relay listens on, or None if it is not started."""
        if self.__server is None:
            return None
        return self.__server.server_address[:2]

    def start(self):
        """Validates the addresses, connects to every destination and starts listening.

        @raise InvalidProtocol: If an address does not use tcp or udp.
        @raise AddressError: If an address cannot be parsed.
        @raise ForwardConnectionError: If a destination could not be connected to.
        """
        protocol, host, port = parse_address(self.__config.bind_address)
        forwarders = [Forwarder(address) for address in self.__config.forward_addresses]

        try:
            for forwarder in forwarders:
                forwarder.connect()

            if protocol == "tcp":
                server = RelayTCPServer((host, port), self)
            else:
                server = RelayUDPServer((host, port), self)
        except Exception:
            for forwarder in forwarders:
                forwarder.close()
            raise

        for forwarder in forwarders:
            forwarder.start()

        self.__forwarders = forwarders
        self.__server = server
        self.__thread = StoppableThread(
            target=self.__serve,
            name="Syslog relay for %s" % self.__config.bind_address,
        )
        self.__thread.start()

        log.info(
            "Relaying syslog lines from %s to %s",
            self.__config.bind_address,
            ", ".join(self.__config.forward_addresses) or "nowhere",
        )

    def __serve(self, run_state):
        self.__server.set_run_state(run_state)
        self.__server.serve_forever(poll_interval=SERVE_POLL_INTERVAL)

    def stop(self, wait_on_join=True, join_timeout=5):
        """Stops listening and stops the forwarders.  Safe to call more than once."""
        if self.__thread is not None:
            self.__server.shutdown()
            self.__thread.stop(wait_on_join=wait_on_join, join_timeout=join_timeout)
            self.__server.server_close()
            self.__thread = None

        for forwarder in self.__forwarders:
            forwarder.stop(wait_on_join=wait_on_join, join_timeout=join_timeout)
        self.__forwarders = []

    def wait(self, timeout=None):
        """Blocks until the serving thread has exited."""
        thread = self.__thread
        if thread is not None:
            thread.join(timeout)

    def is_alive(self):
        return self.__thread is not None and self.__thread.is_alive()

    def handle_line(self, line):
        """Rewrites one inbound syslog line and forwards it.

        @type line: bytes
        """
        line = line.rstrip(b"\r\n")
        m = SYSLOG_LINE_RE.match(line)
        if m is None:
            log.warning(
                "Dropping syslog line which is not from the docker logging driver: %r",
                line[:200],
                limit_once_per_x_secs=60,
                limit_key="relay-bad-line",
                error_code="badSyslogLine",
            )
            return

        priority, timestamp, container_id, message = m.groups()
        name = self.__resolver.resolve(container_id.decode("utf-8", "replace"))
        self.__forward(
            format_syslog_line(
                priority, timestamp, container_id, name.encode("utf-8"), message
            )
        )

    def handle_record(self, record):
        """Forwards a record read from a container log file.

        @type record: bs_agent.log.records.LogRecord
        """
        name = self.__resolver.resolve(record.source_id.decode("utf-8", "replace"))
        self.__forward(record_to_syslog_line(record, name.encode("utf-8")))

    def __forward(self, data):
        for forwarder in self.__forwarders:
            forwarder.send(data)
