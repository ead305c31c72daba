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
Discovers the container log files Kubernetes links into a directory (normally /var/log/containers) and keeps one
`LogTailer` running per container.

Kubernetes names those files `<pod name>_<namespace>_<container name>-<container id>.log`.  Pod and namespace
names never contain `_`, and the container id never contains `-`, so the container name is everything between the
second `_` and the last `-`.
"""

from collections import namedtuple
import os
import re

import bs_agent.bs_logging as bs_logging
from bs_agent.log.tailer import LogTailer, LogFileNotFound
from bs_agent.util import StoppableThread

log = bs_logging.getLogger(__name__)

# Container name of the sandbox container which holds the pod's namespaces.  It never logs anything useful.
SANDBOX_CONTAINER_NAME = "POD"
# Namespace of the platform's own containers.
IGNORED_NAMESPACE = "kube-system"

# The number of seconds to wait for a stopping tailer to exit.
TAILER_JOIN_TIMEOUT = 5

LOG_FILE_RE = re.compile(r"^([^_]+)_([^_]+)_([^_]+)-([^_\-]+)\.log$")


class SourceFileEntry(
    namedtuple(
        "SourceFileEntry", ["pod_name", "namespace", "container_name", "container_id"]
    )
):
    """The container identity encoded in a container log file name."""

    __slots__ = ()

    def is_ignored(self):
        """Returns True if the container's logs should not be collected."""
        return (
            self.container_name == SANDBOX_CONTAINER_NAME
            or self.namespace == IGNORED_NAMESPACE
        )


def entry_from_name(filename):
    """Parses a container log file name.

    @param filename: The base name of the file, such as `mypod_default_web-0123abcd.log`.
    @type filename: str
    @return: The parsed entry, or None if the name does not follow the Kubernetes convention.
    @rtype: SourceFileEntry or None
    """
    m = LOG_FILE_RE.match(filename)
    if m is None:
        return None
    return SourceFileEntry(
        pod_name=m.group(1),
        namespace=m.group(2),
        container_name=m.group(3),
        container_id=m.group(4),
    )


class NoLogDirectory(Exception):
    """Raised when the directory to watch does not exist."""

    def __init__(self, log_dir):
        Exception.__init__(self, "log directory %s does not exist" % log_dir)
        self.log_dir = log_dir


class KubeLogWatcher(object):
    """Periodically scans a log directory and starts or stops tailers as container log files come and go.

    The map of container id to tailer is only modified by the scan cycle, so at most one tailer exists per
    container id.  A tailer whose thread died while its file still exists is replaced during the next cycle.
    """

    def __init__(
        self,
        sink,
        log_dir,
        pos_dir,
        scan_interval=1.0,
        tailer_factory=None,
        poll_interval=0.1,
        pos_update_interval=5.0,
    ):
        """
        @param sink: The object receiving the records of all tailers.
        @param log_dir: The directory holding the container log files.
        @param pos_dir: The directory holding one offset file per tailed container.  Created if missing.
        @param scan_interval: The number of seconds between two scans of `log_dir`.
        @param tailer_factory: If not None, used instead of `LogTailer` to create tailers.  It is invoked with the
            same arguments as `LogTailer`.
        @param poll_interval: Passed on to every tailer.
        @param pos_update_interval: Passed on to every tailer.

        @raise NoLogDirectory: If `log_dir` does not exist.
        """
        if not os.path.isdir(log_dir):
            raise NoLogDirectory(log_dir)

        self.__sink = sink
        self.__log_dir = log_dir
        self.__pos_dir = pos_dir
        self.__scan_interval = scan_interval
        self.__tailer_factory = tailer_factory or LogTailer
        self.__poll_interval = poll_interval
        self.__pos_update_interval = pos_update_interval

        # Maps container id to its running tailer.  Only modified by `watch_once` and `stop_tailers`.
        self.__tailers = {}

        self.__thread = None

    @property
    def tailers(self):
        """A copy of the container id to tailer map."""
        return dict(self.__tailers)

    def pos_file_for(self, container_id):
        """Returns the offset file used for the container."""
        return os.path.join(self.__pos_dir, "%s.pos" % container_id)

    def start(self):
        """Runs `watch` on a background thread."""
        self.__thread = StoppableThread(
            target=self.watch, name="Kubernetes log watcher for %s" % self.__log_dir
        )
        self.__thread.start()

    def stop(self, wait_on_join=True, join_timeout=5):
        """Stops scanning and stops every tailer."""
        if self.__thread is not None:
            self.__thread.stop(wait_on_join=wait_on_join, join_timeout=join_timeout)
            self.__thread = None
        self.stop_tailers(join_timeout=join_timeout)

    def is_alive(self):
        return self.__thread is not None and self.__thread.is_alive()

    def watch(self, run_state):
        """Repeats `watch_once` until `run_state` is stopped.

        @type run_state: bs_agent.util.RunState
        """
        while run_state.is_running():
            try:
                self.watch_once()
            except Exception:
                log.exception(
                    "Failed to scan %s for container logs",
                    self.__log_dir,
                    limit_once_per_x_secs=300,
                    limit_key="kube-watcher-scan",
                )
            run_state.sleep_but_awaken_if_stopped(self.__scan_interval)

    def watch_once(self):
        """Performs one scan of the log directory, and starts and stops tailers to match its content."""
        filenames = os.listdir(self.__log_dir)

        current = {}
        for filename in filenames:
            entry = entry_from_name(filename)
            if entry is None:
                log.log(
                    bs_logging.DEBUG_LEVEL_2,
                    "Excluding file '%s' because the filename doesn't match the expected log format",
                    filename,
                )
                continue
            if entry.is_ignored():
                log.log(
                    bs_logging.DEBUG_LEVEL_2,
                    "Excluding container '%s' of pod '%s' in namespace '%s'",
                    entry.container_name,
                    entry.pod_name,
                    entry.namespace,
                )
                continue
            current[entry.container_id] = os.path.join(self.__log_dir, filename)

        # get the tailers whose file has gone away, or whose thread died
        stopping = {}
        for container_id, tailer in self.__tailers.items():
            if container_id not in current:
                log.log(
                    bs_logging.DEBUG_LEVEL_1,
                    "Stopping tailer for container %s, its log file is gone",
                    container_id,
                )
                stopping[container_id] = tailer
            elif not tailer.is_alive():
                log.warning(
                    "Tailer for container %s is not running anymore, restarting it",
                    container_id,
                    limit_once_per_x_secs=60,
                    limit_key="kube-watcher-restart-%s" % container_id,
                )
                stopping[container_id] = tailer

        for container_id, tailer in stopping.items():
            tailer.stop(wait_on_join=False)
            tailer.wait(TAILER_JOIN_TIMEOUT)
            del self.__tailers[container_id]

        # start the new ones
        for container_id, file_path in current.items():
            if container_id in self.__tailers:
                continue
            tailer = self.__start_tailer(container_id, file_path)
            if tailer is not None:
                self.__tailers[container_id] = tailer

    def __start_tailer(self, container_id, file_path):
        if not os.path.isdir(self.__pos_dir):
            os.makedirs(self.__pos_dir)

        try:
            tailer = self.__tailer_factory(
                self.__sink,
                file_path,
                container_id,
                pos_file=self.pos_file_for(container_id),
                poll_interval=self.__poll_interval,
                pos_update_interval=self.__pos_update_interval,
            )
        except LogFileNotFound:
            # Removed between the listing and now.  The next scan takes care of it.
            log.log(
                bs_logging.DEBUG_LEVEL_1,
                "Log file %s disappeared before it could be tailed",
                file_path,
            )
            return None

        tailer.start()
        tailer.run()
        log.info("Started tailing %s for container %s", file_path, container_id)
        return tailer

    def stop_tailers(self, join_timeout=TAILER_JOIN_TIMEOUT):
        """Stops every tailer, and waits at most `join_timeout` seconds for each of them to exit."""
        for tailer in self.__tailers.values():
            tailer.stop(wait_on_join=False)
        for tailer in self.__tailers.values():
            tailer.wait(join_timeout)
        self.__tailers = {}
