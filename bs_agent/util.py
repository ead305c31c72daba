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

import os
import sys
import threading

import bs_agent.bs_logging as bs_logging

log = bs_logging.getLogger(__name__)


def atomic_write_file(file_path, tmp_path, content):
    """Writes `content` to `file_path` so readers never observe a partially written file.

    The content is first completely written to `tmp_path`, and then renamed to `file_path`.

    @param file_path: The final path of the file
    @param tmp_path: A temporary path to write the file to.  Must be on the same filesystem.
    @param content: The text to write.

    @raise OSError: If the file could not be written or renamed.
    """
    with open(tmp_path, "w") as fp:
        fp.write(content)
        fp.flush()
        os.fsync(fp.fileno())
    if sys.platform == "win32" and os.path.isfile(file_path):
        os.unlink(file_path)
    os.rename(tmp_path, file_path)


class RunState(object):
    """Keeps track of whether or not some process, such as the agent or a tailer, should be running.

    This abstraction can be used by multiple threads to efficiently monitor whether or not the process should
    still be running.  The expectation is that multiple threads will use this to attempt to quickly finish when
    the run state changes to false.
    """

    def __init__(self):
        self.__condition = threading.Condition()
        self.__is_running = True

    def is_running(self):
        """Returns True if the state is still set to running."""
        with self.__condition:
            return self.__is_running

    def sleep_but_awaken_if_stopped(self, timeout):
        """Sleeps for the specified amount of time, unless the run state changes to False, in which case the sleep is
        terminated as soon as possible.

        @param timeout: The number of seconds to sleep.

        @return: True if the run state has been set to stopped.
        """
        with self.__condition:
            if not self.__is_running:
                return True

            self._wait_on_condition(timeout)
            return not self.__is_running

    def stop(self):
        """Sets the run state to stopped.

        This also ensures that any threads currently sleeping in 'sleep_but_awaken_if_stopped' will be awoken.
        """
        with self.__condition:
            if self.__is_running:
                self.__is_running = False
                self.__condition.notify_all()

    def _wait_on_condition(self, timeout):
        """Blocks for the condition to be signaled for the specified timeout.

        This is only broken out for testing purposes.
        """
        self.__condition.wait(timeout)


class FakeRunState(RunState):
    """A RunState subclass that does not actually sleep when sleep_but_awaken_if_stopped that can be used for tests."""

    def __init__(self):
        # The number of times this instance would have slept.
        self.__total_times_slept = 0
        RunState.__init__(self)

    def _wait_on_condition(self, timeout):
        self.__total_times_slept += 1

    @property
    def total_times_slept(self):
        return self.__total_times_slept


class StoppableThread(threading.Thread):
    """A slight extension of a thread that uses a RunState instance to track if it should still be running.

    This abstraction also allows the caller to receive any exception that is raised during execution
    by calling `join`.

    It is expected that the run method or target of this thread periodically calls `_run_state.is_running`
    to determine if the thread has been stopped.
    """

    # Protects __name_prefix
    __name_lock = threading.Lock()
    # A prefix to add to all threads.  This is used for testing.
    __name_prefix = None

    def __init__(self, name=None, target=None, is_daemon=False):
        """Creates a new thread.

        You must invoke `start` to actually have the thread begin running.

        @param name: The name to give the thread.  Note, if a prefix has been specified via `set_name_prefix`,
            the name is created by concat'ing `name` to the prefix.
        @param target: If not None, a function that will be invoked when the thread is invoked to perform
            the work for the thread.  This function should accept a single argument, the `RunState` instance
            that will signal when the thread should stop work.
        @param is_daemon: If True, the thread does not keep the process alive.
        """
        name_prefix = StoppableThread._get_name_prefix()
        if name_prefix is not None:
            if name is not None:
                name = "%s%s" % (name_prefix, name)
            else:
                name = name_prefix
        # NOTE: We explicitly don't pass target= argument to the parent constructor since this
        # creates a cycle and a memory leak
        threading.Thread.__init__(self, name=name, daemon=is_daemon)

        self.__target = target
        self.__exception_info = None
        # Tracks whether or not the thread should still be running.
        self._run_state = RunState()

    @staticmethod
    def set_name_prefix(name_prefix):
        """Sets a prefix to add to the beginning of all threads from this point forward.

        @param name_prefix: The prefix or None if no prefix should be used.
        """
        with StoppableThread.__name_lock:
            StoppableThread.__name_prefix = name_prefix

    @staticmethod
    def _get_name_prefix():
        with StoppableThread.__name_lock:
            return StoppableThread.__name_prefix

    def run(self):
        try:
            if self.__target is not None:
                self.__target(self._run_state)
        except Exception as e:
            self.__exception_info = e
            log.warning(
                "Received exception from run method in StoppableThread %s: %s",
                self.name,
                e,
            )

    def is_running(self):
        """Return True if this thread has not been asked to stop."""
        return self._run_state.is_running()

    def stop(self, wait_on_join=True, join_timeout=5):
        """Stops the thread from running.

        By default, this will also block until the thread has completed (by performing a join).

        @param wait_on_join: If True, will block on a join of this thread.
        @param join_timeout: The maximum number of seconds to block for the join.
        """
        self._run_state.stop()
        if wait_on_join:
            self.join(join_timeout)

    def join(self, timeout=None):
        """Blocks until the thread has finished.

        If the thread also raised an uncaught exception, this method will raise that same exception.

        Note, the only way to tell for sure that the thread finished is by invoking 'is_alive' after this
        method returns.  If the thread is still alive, that means this method exited due to a timeout expiring.

        @param timeout: The number of seconds to wait for the thread to finish or None if it should block
            indefinitely.
        """
        threading.Thread.join(self, timeout)
        if not threading.Thread.is_alive(self) and self.__exception_info is not None:
            raise self.__exception_info
