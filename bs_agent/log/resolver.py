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

import threading

from repoze.lru import LRUCache  # pylint: disable=import-error

import bs_agent.bs_logging as bs_logging

log = bs_logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 1000


class ContainerNameResolver(object):
    """Looks up the application name of a container based on its id.

    The name is read from an environment variable of the container.  Results are kept in a bounded LRU cache, and
    since a container id never changes its meaning, cached entries are never invalidated.

    Resolution always succeeds: if the variable is not configured, missing, empty, or the container runtime could
    not be queried, the container id itself is used (and cached) as the name.

    This abstraction is thread-safe.
    """

    def __init__(self, runtime, app_name_env_var, capacity=DEFAULT_CACHE_SIZE):
        """
        @param runtime: The container runtime client.  Must have an `inspect(container_id)` method returning an
            object with an `environment` list of `KEY=VALUE` strings.
        @param app_name_env_var: The name of the variable holding the application name, or None.  A trailing `=`
            is ignored, so both `TSURU_APPNAME` and `TSURU_APPNAME=` are accepted.
        @param capacity: The maximum number of cached names.
        @type app_name_env_var: str or None
        @type capacity: int
        """
        if app_name_env_var:
            app_name_env_var = app_name_env_var.rstrip("=")
        self.__runtime = runtime
        self.__env_prefix = (app_name_env_var + "=") if app_name_env_var else None
        self.__cache = LRUCache(capacity)
        # Serializes misses so concurrent lookups of one id query the runtime only once.
        self.__lookup_lock = threading.Lock()

    @property
    def cache(self):
        """The underlying `repoze.lru.LRUCache`, mapping container id to name."""
        return self.__cache

    def resolve(self, container_id):
        """Returns the name for the container.

        @type container_id: str
        @rtype: str
        """
        name = self.__cache.get(container_id)
        if name is not None:
            return name

        with self.__lookup_lock:
            name = self.__cache.get(container_id)
            if name is not None:
                return name

            name = self.__fetch_name(container_id)
            self.__cache.put(container_id, name)
            return name

    def __fetch_name(self, container_id):
        if self.__env_prefix is None:
            return container_id

        try:
            info = self.__runtime.inspect(container_id)
        except Exception as e:
            log.error(
                'Error seen while attempting to resolve cid="%s", using the id as name: %s',
                container_id,
                e,
                limit_once_per_x_secs=60,
                limit_key="resolver-inspect-failed",
                error_code="inspectFailed",
            )
            return container_id

        for entry in info.environment or []:
            if entry.startswith(self.__env_prefix):
                value = entry[len(self.__env_prefix) :]
                if value:
                    log.log(
                        bs_logging.DEBUG_LEVEL_1,
                        'Resolved cid="%s" -> "%s"',
                        container_id,
                        value,
                    )
                    return value
                break

        log.log(
            bs_logging.DEBUG_LEVEL_1,
            'No %s variable set for cid="%s", using the id as name',
            self.__env_prefix[:-1],
            container_id,
        )
        return container_id
