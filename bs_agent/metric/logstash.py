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
Metric backend writing each metric as a JSON message to a logstash udp or tcp input.

The backend is configured with the following environment variables:

  BS_METRICS_LOGSTASH_CLIENT    -- The value of the `client` field of every message.  Defaults to `tsuru`.
  BS_METRICS_LOGSTASH_HOST      -- The logstash host.  Defaults to `localhost`.
  BS_METRICS_LOGSTASH_PORT      -- The logstash port.  Defaults to 1984.
  BS_METRICS_LOGSTASH_PROTOCOL  -- Either `udp` or `tcp`.  Defaults to `udp`.
"""

import json
import socket

import bs_agent.bs_logging as bs_logging
from bs_agent.config_util import BadConfiguration, get_config_from_env
from bs_agent.metric.base import Backend, register

log = bs_logging.getLogger(__name__)

DEFAULT_CLIENT = "tsuru"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 1984
DEFAULT_PROTOCOL = "udp"

# The number of seconds connecting and writing a message may take.
SEND_TIMEOUT = 5.0


class LogstashBackend(Backend):
    def __init__(
        self,
        client=DEFAULT_CLIENT,
        host=DEFAULT_HOST,
        port=DEFAULT_PORT,
        protocol=DEFAULT_PROTOCOL,
    ):
        if protocol not in ("udp", "tcp"):
            raise BadConfiguration(
                'Invalid logstash protocol "%s", expected tcp or udp' % protocol,
                "metrics_logstash_protocol",
                "badProtocol",
            )
        self.client = client
        self.host = host
        self.port = port
        self.protocol = protocol

    @classmethod
    def from_environment(cls, environ=None):
        """Creates the backend from the BS_METRICS_LOGSTASH_* environment variables."""

        def read(name, default, convert_to=str):
            value = get_config_from_env(name, convert_to=convert_to, environ=environ)
            if value is None or value == "":
                return default
            return value

        return cls(
            client=read("metrics_logstash_client", DEFAULT_CLIENT),
            host=read("metrics_logstash_host", DEFAULT_HOST),
            port=read("metrics_logstash_port", DEFAULT_PORT, convert_to=int),
            protocol=read("metrics_logstash_protocol", DEFAULT_PROTOCOL).lower(),
        )

    def send(self, container, key, value):
        message = {
            "client": self.client,
            "count": 1,
            "metric": key,
            "value": value,
        }
        self._append_info(message, container)
        self._send(message)

    def send_conn(self, container, host):
        message = {
            "client": self.client,
            "count": 1,
            "metric": "connection",
            "connection": host,
        }
        self._append_info(message, container)
        self._send(message)

    def send_host(self, host, key, value):
        message = {
            "client": self.client,
            "count": 1,
            "metric": "host_" + key,
            "value": value,
            "host": host.name,
            "addr": list(host.addrs or []),
        }
        self._send(message)

    @staticmethod
    def _append_info(message, container):
        message["host"] = container.hostname
        if container.app:
            message["app"] = container.app
            message["process"] = container.process
        else:
            message["container"] = container.name
            message["image"] = container.image
        message["labels"] = dict(container.labels or {})

    def _send(self, message):
        """Writes `message` on a new connection.

        @raise OSError: If the message could not be written.
        """
        data = json.dumps(message, sort_keys=True).encode("utf-8")
        socktype = socket.SOCK_STREAM if self.protocol == "tcp" else socket.SOCK_DGRAM

        try:
            family, socktype, proto, _, sockaddr = socket.getaddrinfo(
                self.host, self.port, 0, socktype
            )[0]
            sock = socket.socket(family, socktype, proto)
            try:
                sock.settimeout(SEND_TIMEOUT)
                sock.connect(sockaddr)
                sock.sendall(data)
            finally:
                sock.close()
        except OSError as e:
            log.error(
                "Unable to send metrics to logstash via %s at %s:%s: %s",
                self.protocol,
                self.host,
                self.port,
                e,
                limit_once_per_x_secs=300,
                limit_key="logstash-send-failed",
                error_code="metricSendFailed",
            )
            raise


register("logstash", LogstashBackend.from_environment)
