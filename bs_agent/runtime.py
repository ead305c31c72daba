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
Thin wrapper around the Docker API client exposing the container runtime operations the agent needs.
"""

from collections import namedtuple
import threading

import docker

import bs_agent.bs_logging as bs_logging

log = bs_logging.getLogger(__name__)

DEFAULT_ENDPOINT = "unix://var/run/docker.sock"

# The Docker API version to use.  'auto' asks the daemon on first use.
DEFAULT_API_VERSION = "auto"

# The number of seconds an API request may take.
DEFAULT_TIMEOUT = 60


class ContainerInfo(namedtuple("ContainerInfo", ["id", "name", "image", "environment"])):
    """What the agent needs to know about a container.

    @ivar image: The id of the image the container runs.
    @ivar environment: The list of `KEY=VALUE` environment entries of the container.
    """

    __slots__ = ()


class DockerRuntime(object):
    """Container runtime client backed by `docker.APIClient`.

    The underlying client is only created on first use, so creating an instance never talks to the daemon.

    This abstraction is thread-safe.
    """

    def __init__(self, endpoint=None, api_version=DEFAULT_API_VERSION, timeout=DEFAULT_TIMEOUT):
        """
        @param endpoint: The address of the Docker API, such as `unix://var/run/docker.sock` or
            `tcp://127.0.0.1:2375`.
        @param api_version: The API version, or 'auto'.
        @param timeout: The number of seconds an API request may take.
        """
        self.__endpoint = endpoint or DEFAULT_ENDPOINT
        self.__api_version = api_version
        self.__timeout = timeout
        self.__client_lock = threading.Lock()
        self.__client = None

    @property
    def endpoint(self):
        return self.__endpoint

    def _get_client(self):
        with self.__client_lock:
            if self.__client is None:
                log.log(
                    bs_logging.DEBUG_LEVEL_1,
                    "Connecting to the Docker API at %s",
                    self.__endpoint,
                )
                self.__client = docker.APIClient(
                    base_url=self.__endpoint,
                    version=self.__api_version,
                    timeout=self.__timeout,
                )
            return self.__client

    def inspect(self, container_id):
        """Returns the details of a container.

        @rtype: ContainerInfo
        @raise docker.errors.APIError: If the container does not exist or the daemon failed.
        """
        info = self._get_client().inspect_container(container_id)
        config = info.get("Config") or {}
        return ContainerInfo(
            id=info.get("Id", container_id),
            name=(info.get("Name") or "").lstrip("/"),
            image=info.get("Image") or config.get("Image"),
            environment=list(config.get("Env") or []),
        )

    def pull_image(self, repository, tag=None):
        """Pulls an image, blocking until the pull finished."""
        self._get_client().pull(repository, tag=tag)

    def create_container(self, image, command, name=None, entrypoint=None):
        """Creates a container with stdout and stderr attachable.

        @return: The id of the new container.
        @rtype: str
        """
        result = self._get_client().create_container(
            image,
            command=command,
            name=name,
            entrypoint=entrypoint,
            stdin_open=False,
            tty=False,
        )
        return result["Id"]

    def start_container(self, container_id):
        self._get_client().start(container_id)

    def attach_container(self, container_id):
        """Attaches to the stdout of a container.

        @return: An iterator over the chunks of output written by the container until it exits.
        """
        return self._get_client().attach(
            container_id, stdout=True, stderr=False, stream=True, logs=True
        )

    def wait_container(self, container_id, timeout=None):
        """Blocks until the container exits.

        @return: The exit code of the container.
        @rtype: int
        """
        result = self._get_client().wait(container_id, timeout=timeout)
        if isinstance(result, dict):
            return result.get("StatusCode")
        return result

    def remove_container(self, container_id, force=True):
        self._get_client().remove_container(container_id, force=force)

    def close(self):
        with self.__client_lock:
            if self.__client is not None:
                self.__client.close()
                self.__client = None
