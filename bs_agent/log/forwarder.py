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

import queue
import socket
import time

import bs_agent.bs_logging as bs_logging
from bs_agent.util import StoppableThread

log = bs_logging.getLogger(__name__)

SUPPORTED_PROTOCOLS = ("tcp", "udp")

# The maximum number of lines waiting to be written to one destination.
DEFAULT_QUEUE_SIZE = 10000
# The number of seconds a TCP connect or write may take.
DEFAULT_SEND_TIMEOUT = 5.0
# How often the writer thread checks whether it should stop while it has nothing to write.
QUEUE_POLL_INTERVAL = 0.2


class AddressError(ValueError):
    """Raised when an address is not of the form `<protocol>://<host>:<port>`."""


class InvalidProtocol(AddressError):
    """Raised when an address uses a protocol other than tcp or udp."""

    def __init__(self, protocol):
        AddressError.__init__(
            self,
            'invalid protocol "%s", expected %s'
            % (protocol, " or ".join(SUPPORTED_PROTOCOLS)),
        )
        self.protocol = protocol


class ForwardConnectionError(Exception):
    """Raised when the connection to a destination could not be established."""

    def __init__(self, address, cause):
        Exception.__init__(self, 'unable to connect to "%s": %s' % (address, cause))
        self.address = address
        self.cause = cause


def parse_address(address):
    """Splits an address like `udp://0.0.0.0:1514` into its protocol, host and port.

    IPv6 hosts must be written in brackets, such as `tcp://[::1]:514`.

    @type address: str
    @return: The tuple (protocol, host, port).
    @rtype: (str, str, int)
    @raise InvalidProtocol: If the protocol is not tcp or udp.
    @raise AddressError: If the address cannot be parsed otherwise.
    """
    protocol, sep, rest = address.partition("://")
    if not sep:
        raise AddressError('invalid address "%s", missing protocol' % address)
    if protocol not in SUPPORTED_PROTOCOLS:
        raise InvalidProtocol(protocol)

    host, sep, port_str = rest.rpartition(":")
    if not sep or not port_str:
        raise AddressError('invalid address "%s", missing port' % address)
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        port = int(port_str)
    except ValueError:
        raise AddressError('invalid address "%s", bad port "%s"' % (address, port_str))
    if not 0 <= port <= 65535:
        raise AddressError('invalid address "%s", port out of range' % address)

    return protocol, host, port


class Forwarder(object):
    """Writes syslog lines to one destination on a dedicated thread.

    `send` only queues the line, so a slow or unreachable destination never blocks the caller.  When the queue is
    full, lines are dropped.  A failed write is logged and the connection is dropped, it is reestablished when the
    next line is written.
    """

    def __init__(
        self, address, queue_size=DEFAULT_QUEUE_SIZE, send_timeout=DEFAULT_SEND_TIMEOUT
    ):
        """
        @param address: The destination, such as `tcp://collector:514`.
        @param queue_size: The maximum number of lines waiting to be written.
        @param send_timeout: The number of seconds a TCP connect or write may take.

        @raise AddressError: If the address is invalid.
        """
        self.__address = address
        self.__protocol, self.__host, self.__port = parse_address(address)
        self.__send_timeout = send_timeout
        self.__queue = queue.Queue(maxsize=queue_size)
        self.__socket = None
        self.__thread = None
        # The time after which the writer thread stops writing the lines still queued when it was stopped.
        self.__drain_deadline = 0.0

    @property
    def address(self):
        return self.__address

    @property
    def protocol(self):
        return self.__protocol

    def connect(self):
        """Establishes the connection.  For udp this never involves the network.

        @raise ForwardConnectionError: If the connection failed.
        """
        self.close()
        try:
            if self.__protocol == "tcp":
                sock = socket.create_connection(
                    (self.__host, self.__port), timeout=self.__send_timeout
                )
            else:
                family, socktype, proto, _, sockaddr = socket.getaddrinfo(
                    self.__host, self.__port, 0, socket.SOCK_DGRAM
                )[0]
                sock = socket.socket(family, socktype, proto)
                try:
                    sock.connect(sockaddr)
                except OSError:
                    sock.close()
                    raise
        except OSError as e:
            raise ForwardConnectionError(self.__address, e)
        self.__socket = sock

    def close(self):
        sock, self.__socket = self.__socket, None
        if sock is not None:
            sock.close()

    def start(self):
        """Starts the writer thread.  `connect` should be invoked first."""
        self.__thread = StoppableThread(
            target=self.__write_loop,
            name="Syslog forwarder for %s" % self.__address,
            is_daemon=True,
        )
        self.__thread.start()

    def stop(self, wait_on_join=True, join_timeout=5):
        """Stops the writer thread and closes the connection.

        Lines already queued are still written for at most `join_timeout` seconds, as long as the destination
        accepts them.  The lines left after that are dropped.
        """
        if self.__thread is not None:
            self.__drain_deadline = time.time() + join_timeout
            self.__thread.stop(wait_on_join=wait_on_join, join_timeout=join_timeout)
            self.__thread = None
        self.close()

    def is_alive(self):
        return self.__thread is not None and self.__thread.is_alive()

    def send(self, data):
        """Queues `data` to be written.

        @type data: bytes
        @return: False if the line was dropped because the queue is full.
        @rtype: bool
        """
        try:
            self.__queue.put_nowait(data)
            return True
        except queue.Full:
            log.warning(
                "Dropping syslog line for %s, too many lines are waiting to be written",
                self.__address,
                limit_once_per_x_secs=60,
                limit_key="forwarder-queue-full-%s" % self.__address,
                error_code="forwarderQueueFull",
            )
            return False

    def __write_loop(self, run_state):
        while run_state.is_running():
            try:
                data = self.__queue.get(timeout=QUEUE_POLL_INTERVAL)
            except queue.Empty:
                continue
            self.write(data)

        # Write what is still queued, until the deadline or the first failure.
        dropped = 0
        while True:
            try:
                data = self.__queue.get_nowait()
            except queue.Empty:
                break
            if dropped or time.time() >= self.__drain_deadline or not self.write(data):
                dropped += 1

        if dropped:
            log.warning(
                "Dropped %d syslog lines for %s that were still queued when stopping",
                dropped,
                self.__address,
                error_code="forwarderLinesDropped",
            )

    def write(self, data):
        """Writes `data` right away, reconnecting first if needed.

        @return: True if the data was written.
        @rtype: bool
        """
        sock = self.__socket
        if sock is None:
            try:
                self.connect()
            except ForwardConnectionError as e:
                log.warning(
                    "%s",
                    e,
                    limit_once_per_x_secs=60,
                    limit_key="forwarder-connect-%s" % self.__address,
                    error_code="forwarderConnectFailed",
                )
                return False
            sock = self.__socket

        # `stop` may close the connection concurrently.
        try:
            if self.__protocol == "tcp":
                sock.sendall(data)
            else:
                sock.send(data)
            return True
        except OSError as e:
            log.warning(
                'Unable to write to "%s": %s',
                self.__address,
                e,
                limit_once_per_x_secs=60,
                limit_key="forwarder-write-%s" % self.__address,
                error_code="forwarderWriteFailed",
            )
            self.close()
            return False
