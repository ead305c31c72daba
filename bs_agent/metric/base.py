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

from collections import namedtuple
import threading

from bs_agent.config_util import BadConfiguration

# Maps backend name to the factory creating it.  A factory takes no arguments.
BACKENDS_REGISTRY = {}
_REGISTRY_LOCK = threading.Lock()


class ContainerInfo(
    namedtuple(
        "ContainerInfo", ["name", "image", "hostname", "app", "process", "labels"]
    )
):
    """The container a metric is about.

    @ivar app: The application running in the container, or an empty string for containers not belonging to an
        application.
    @ivar labels: A dict of the container labels.
    """

    __slots__ = ()

    def __new__(cls, name, image, hostname, app="", process="", labels=None):
        return super(ContainerInfo, cls).__new__(
            cls, name, image, hostname, app, process, labels or {}
        )


class HostInfo(namedtuple("HostInfo", ["name", "addrs"])):
    """The host a metric is about.

    @ivar addrs: The list of addresses of the host.
    """

    __slots__ = ()


class Backend(object):
    """Base class of metric backends."""

    def send(self, container, key, value):
        """Reports the metric `key` of a container.

        @type container: ContainerInfo
        @type key: str
        """
        raise NotImplementedError()

    def send_conn(self, container, host):
        """Reports that a container has a connection open to `host`.

        @type container: ContainerInfo
        @type host: str
        """
        raise NotImplementedError()

    def send_host(self, host, key, value):
        """Reports the metric `key` of the host.

        @type host: HostInfo
        @type key: str
        """
        raise NotImplementedError()


def register(name, factory):
    """Makes a backend available under `name`, replacing any backend previously registered with that name."""
    with _REGISTRY_LOCK:
        BACKENDS_REGISTRY[name] = factory


def registered_backends():
    """Returns the sorted names of the registered backends."""
    with _REGISTRY_LOCK:
        return sorted(BACKENDS_REGISTRY)


def get_backend(name):
    """Creates the backend registered under `name`.

    @rtype: Backend
    @raise BadConfiguration: If no backend is registered with that name.
    """
    with _REGISTRY_LOCK:
        factory = BACKENDS_REGISTRY.get(name)

    if factory is None:
        raise BadConfiguration(
            'Unknown metrics backend "%s", expected one of: %s'
            % (name, ", ".join(registered_backends())),
            "metrics_backend",
            "unknownBackend",
        )
    return factory()
