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

import json
import socket
import threading

from bs_agent.config_util import BadConfiguration
from bs_agent.metric import (
    Backend,
    ContainerInfo,
    HostInfo,
    get_backend,
    register,
    registered_backends,
)
from bs_agent.metric.base import BACKENDS_REGISTRY
from bs_agent.metric.fake import FakeBackend
from bs_agent.metric.logstash import LogstashBackend
from bs_agent.test_base import BsTestCase


class RegistryTestCase(BsTestCase):
    def setUp(self):
        super(RegistryTestCase, self).setUp()
        self.__saved = dict(BACKENDS_REGISTRY)

    def tearDown(self):
        BACKENDS_REGISTRY.clear()
        BACKENDS_REGISTRY.update(self.__saved)
        super(RegistryTestCase, self).tearDown()

    def test_builtin_backends(self):
        self.assertEqual(["fake", "logstash"], registered_backends())
        self.assertIsInstance(get_backend("fake"), FakeBackend)

    def test_register(self):
        class MyBackend(Backend):
            pass

        register("mine", MyBackend)
        self.assertIn("mine", registered_backends())
        self.assertIsInstance(get_backend("mine"), MyBackend)

    def test_unknown_backend(self):
        with self.assertRaises(BadConfiguration) as ctx:
            get_backend("statsd")
        self.assertEqual("metrics_backend", ctx.exception.field)
        self.assertEqual("unknownBackend", ctx.exception.error_code)
        self.assertIn("fake, logstash", ctx.exception.message)

    def test_base_backend_is_abstract(self):
        backend = Backend()
        host = HostInfo("node1", ["10.0.0.1"])
        self.assertRaises(NotImplementedError, backend.send_host, host, "cpu", 1)

    def test_fake_backend_discards(self):
        backend = FakeBackend()
        container = ContainerInfo("c1", "img", "node1")
        backend.send(container, "cpu_max", 10)
        backend.send_conn(container, "10.0.0.2:80")
        backend.send_host(HostInfo("node1", []), "cpu", 1)


class LogstashBackendTestCase(BsTestCase):
    def setUp(self):
        super(LogstashBackendTestCase, self).setUp()
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.settimeout(5)
        self.addCleanup(self.listener.close)
        self.backend = LogstashBackend(
            client="mytsuru", host="127.0.0.1", port=self.listener.getsockname()[1]
        )

    def _receive(self):
        return json.loads(self.listener.recv(65535).decode("utf-8"))

    def test_defaults(self):
        backend = LogstashBackend.from_environment(environ={})
        self.assertEqual("tsuru", backend.client)
        self.assertEqual("localhost", backend.host)
        self.assertEqual(1984, backend.port)
        self.assertEqual("udp", backend.protocol)

    def test_from_environment(self):
        backend = LogstashBackend.from_environment(
            environ={
                "BS_METRICS_LOGSTASH_CLIENT": "other",
                "BS_METRICS_LOGSTASH_HOST": "logstash.local",
                "BS_METRICS_LOGSTASH_PORT": "5000",
                "BS_METRICS_LOGSTASH_PROTOCOL": "TCP",
            }
        )
        self.assertEqual("other", backend.client)
        self.assertEqual("logstash.local", backend.host)
        self.assertEqual(5000, backend.port)
        self.assertEqual("tcp", backend.protocol)

    def test_invalid_protocol(self):
        with self.assertRaises(BadConfiguration) as ctx:
            LogstashBackend(protocol="http")
        self.assertEqual("metrics_logstash_protocol", ctx.exception.field)

    def test_send_app_container(self):
        container = ContainerInfo(
            "c1", "tsuru/app-myapp", "node1", app="myapp", process="web", labels={"pool": "a"}
        )
        self.backend.send(container, "cpu_max", 12.5)

        self.assertEqual(
            {
                "client": "mytsuru",
                "count": 1,
                "metric": "cpu_max",
                "value": 12.5,
                "host": "node1",
                "app": "myapp",
                "process": "web",
                "labels": {"pool": "a"},
            },
            self._receive(),
        )

    def test_send_plain_container(self):
        self.backend.send(ContainerInfo("c1", "redis", "node1"), "mem_max", 1024)

        self.assertEqual(
            {
                "client": "mytsuru",
                "count": 1,
                "metric": "mem_max",
                "value": 1024,
                "host": "node1",
                "container": "c1",
                "image": "redis",
                "labels": {},
            },
            self._receive(),
        )

    def test_send_conn(self):
        container = ContainerInfo("c1", "img", "node1", app="myapp", process="worker")
        self.backend.send_conn(container, "10.0.0.2:6379")

        message = self._receive()
        self.assertEqual("connection", message["metric"])
        self.assertEqual("10.0.0.2:6379", message["connection"])
        self.assertEqual("myapp", message["app"])
        self.assertNotIn("value", message)

    def test_send_host(self):
        self.backend.send_host(HostInfo("node1", ["10.0.0.1", "172.17.0.1"]), "cpu_busy", 42)

        self.assertEqual(
            {
                "client": "mytsuru",
                "count": 1,
                "metric": "host_cpu_busy",
                "value": 42,
                "host": "node1",
                "addr": ["10.0.0.1", "172.17.0.1"],
            },
            self._receive(),
        )

    def test_send_tcp(self):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.addCleanup(server.close)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        server.settimeout(5)

        received = []

        def accept():
            conn, _ = server.accept()
            with conn:
                data = b""
                while True:
                    chunk = conn.recv(4096)
                    if not chunk:
                        break
                    data += chunk
                received.append(data)

        thread = threading.Thread(target=accept)
        thread.start()

        backend = LogstashBackend(host="127.0.0.1", port=server.getsockname()[1], protocol="tcp")
        backend.send_host(HostInfo("node1", []), "mem", 1)
        thread.join(5)

        self.assertEqual(1, len(received))
        self.assertEqual("host_mem", json.loads(received[0].decode("utf-8"))["metric"])

    def test_send_failure_raises(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()

        backend = LogstashBackend(host="127.0.0.1", port=port, protocol="tcp")
        self.assertRaises(OSError, backend.send_host, HostInfo("node1", []), "mem", 1)
