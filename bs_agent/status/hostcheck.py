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
Host health checks.

  writableRoot           -- The root filesystem can be written to.
  createContainer        -- The container runtime can create, run and remove a container.
  writableCustomPathN    -- One check per extra path configured with BS_HOSTCHECK_EXTRA_PATHS.
"""

from collections import namedtuple
import os
import re

import bs_agent.bs_logging as bs_logging

log = bs_logging.getLogger(__name__)

CHECK_FILE_NAME = "tsuru-bs-ro.check"
CHECK_CONTAINER_NAME = "bs-hostcheck-container"

CGROUP_FILE = "/proc/1/cgroup"
CGROUP_ID_RE = re.compile(r"/docker/(.*?)$", re.MULTILINE | re.DOTALL)


class HostCheckError(Exception):
    pass


class HostCheckResult(namedtuple("HostCheckResult", ["name", "err", "successful"])):
    """The outcome of one check.  `err` is the error message, or an empty string if the check succeeded."""

    __slots__ = ()


class WritableCheck(object):
    """Checks a directory can be written to by creating and removing a small file in it."""

    def __init__(self, path):
        self.path = path

    def run(self):
        """@raise OSError: If the file could not be written."""
        file_path = os.path.join(self.path.rstrip(os.sep) or os.sep, CHECK_FILE_NAME)
        try:
            with open(file_path, "w") as fp:
                fp.write("ok")
        finally:
            if os.path.exists(file_path):
                os.remove(file_path)


class CreateContainerCheck(object):
    """Checks the container runtime works by running a container which echoes a message.

    The container uses the image of the agent's own container, so no image has to be pulled.
    """

    def __init__(self, runtime, base_container_id=None, message="ok", cgroup_file=CGROUP_FILE):
        """
        @param runtime: The container runtime client.
        @param base_container_id: The id or name of the agent's container.  If None, it is read from
            `cgroup_file`.
        @param message: The message the check container prints.
        """
        self.__runtime = runtime
        self.base_container_id = base_container_id
        self.message = message
        self.__cgroup_file = cgroup_file

    def _resolve_base_container_id(self):
        if self.base_container_id:
            return self.base_container_id

        with open(self.__cgroup_file, "r") as fp:
            data = fp.read()
        m = CGROUP_ID_RE.search(data)
        if m is None or not m.group(1):
            raise HostCheckError(
                "unable to parse container id from %s, returned data:\n%s"
                % (self.__cgroup_file, data)
            )
        self.base_container_id = m.group(1)
        return self.base_container_id

    def run(self):
        """@raise Exception: If any step failed, or the container printed something unexpected."""
        base_container_id = self._resolve_base_container_id()

        # A container left behind by an interrupted previous run would make the creation fail.
        try:
            self.__runtime.remove_container(CHECK_CONTAINER_NAME, force=True)
        except Exception as e:
            log.log(
                bs_logging.DEBUG_LEVEL_2,
                "No leftover check container to remove: %s",
                e,
            )

        image = self.__runtime.inspect(base_container_id).image
        container_id = self.__runtime.create_container(
            image,
            ["echo", "-n", self.message],
            name=CHECK_CONTAINER_NAME,
            entrypoint=[],
        )
        try:
            output = self.__runtime.attach_container(container_id)
            self.__runtime.start_container(container_id)
            received = b"".join(output).decode("utf-8", "replace")
            self.__runtime.wait_container(container_id)
        finally:
            self.__runtime.remove_container(container_id, force=True)

        if received != self.message:
            raise HostCheckError("unexpected container response: %r" % received)


class CheckCollection(object):
    """A named set of checks run together."""

    def __init__(self, checks):
        """
        @param checks: A dict of check name to check.  A check has a `run()` method raising on failure.
        """
        self.checks = dict(checks)

    @classmethod
    def from_config(cls, runtime, config):
        """Builds the standard checks.

        @type config: bs_agent.configuration.Configuration
        """
        checks = {
            "writableRoot": WritableCheck("/"),
            "createContainer": CreateContainerCheck(
                runtime, base_container_id=config.hostcheck_base_container_name
            ),
        }
        for i, path in enumerate(config.hostcheck_extra_paths):
            checks["writableCustomPath%d" % (i + 1)] = WritableCheck(path)
        return cls(checks)

    def run(self):
        """Runs every check.

        @return: The result of each check, sorted by check name.
        @rtype: list of HostCheckResult
        """
        results = []
        for name in sorted(self.checks):
            try:
                self.checks[name].run()
                results.append(HostCheckResult(name, "", True))
            except Exception as e:
                log.error(
                    '[host check] failure running "%s" check: %s',
                    name,
                    e,
                    error_code="hostCheckFailed",
                )
                results.append(HostCheckResult(name, str(e), False))
        return results
