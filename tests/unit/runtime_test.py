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

import mock

from bs_agent.runtime import DEFAULT_ENDPOINT, ContainerInfo, DockerRuntime
from bs_agent.test_base import BsTestCase


class DockerRuntimeTestCase(BsTestCase):
    def setUp(self):
        super(DockerRuntimeTestCase, self).setUp()
        patcher = mock.patch("bs_agent.runtime.docker.APIClient")
        self.api_client_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.api_client_class.return_value

    def test_client_created_lazily(self):
        runtime = DockerRuntime()
        self.assertEqual(DEFAULT_ENDPOINT, runtime.endpoint)
        self.assertEqual(0, self.api_client_class.call_count)

        runtime.start_container("c1")
        runtime.start_container("c2")

        self.api_client_class.assert_called_once_with(
            base_url=DEFAULT_ENDPOINT, version="auto", timeout=60
        )
        self.assertEqual([mock.call("c1"), mock.call("c2")], self.client.start.call_args_list)

    def test_inspect(self):
        self.client.inspect_container.return_value = {
            "Id": "contid1",
            "Name": "/web-1",
            "Image": "sha256:abcd",
            "Config": {"Image": "tsuru/app-myapp", "Env": ["TSURU_APPNAME=myapp", "PATH=/bin"]},
        }

        info = DockerRuntime("tcp://127.0.0.1:2375").inspect("contid1")

        self.assertEqual(
            ContainerInfo(
                id="contid1",
                name="web-1",
                image="sha256:abcd",
                environment=["TSURU_APPNAME=myapp", "PATH=/bin"],
            ),
            info,
        )
        self.client.inspect_container.assert_called_once_with("contid1")

    def test_inspect_without_env(self):
        self.client.inspect_container.return_value = {"Id": "contid1", "Config": None}
        info = DockerRuntime().inspect("contid1")
        self.assertEqual([], info.environment)
        self.assertEqual("", info.name)

    def test_inspect_error_propagates(self):
        self.client.inspect_container.side_effect = Exception("no such container")
        self.assertRaises(Exception, DockerRuntime().inspect, "missing")

    def test_container_lifecycle(self):
        self.client.create_container.return_value = {"Id": "newid", "Warnings": []}
        self.client.attach.return_value = iter([b"ok"])
        self.client.wait.return_value = {"StatusCode": 0}
        runtime = DockerRuntime()

        runtime.pull_image("tsuru/bs", tag="v1")
        container_id = runtime.create_container(
            "tsuru/bs:v1", ["echo", "-n", "ok"], name="check", entrypoint=[]
        )
        output = runtime.attach_container(container_id)
        runtime.start_container(container_id)
        self.assertEqual([b"ok"], list(output))
        self.assertEqual(0, runtime.wait_container(container_id))
        runtime.remove_container(container_id)

        self.assertEqual("newid", container_id)
        self.client.pull.assert_called_once_with("tsuru/bs", tag="v1")
        self.client.create_container.assert_called_once_with(
            "tsuru/bs:v1",
            command=["echo", "-n", "ok"],
            name="check",
            entrypoint=[],
            stdin_open=False,
            tty=False,
        )
        self.client.attach.assert_called_once_with(
            "newid", stdout=True, stderr=False, stream=True, logs=True
        )
        self.client.remove_container.assert_called_once_with("newid", force=True)

    def test_close(self):
        runtime = DockerRuntime()
        runtime.close()
        self.assertEqual(0, self.api_client_class.call_count)

        runtime.start_container("c1")
        runtime.close()
        self.client.close.assert_called_once_with()

        runtime.start_container("c1")
        self.assertEqual(2, self.api_client_class.call_count)
