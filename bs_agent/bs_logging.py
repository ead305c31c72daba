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
Logging support for the agent.

All modules should obtain their logger through `getLogger` so they receive an `AgentLogger`
instance.  On top of the standard `logging.Logger` interface, an `AgentLogger` accepts the
following extra keyword arguments on every logging call:

  limit_once_per_x_secs  -- If not None, the message is emitted at most once per this many seconds.
  limit_key              -- Required when `limit_once_per_x_secs` is used.  Messages sharing a key
                            share the same rate limit.
  error_code             -- If not None, appended to the message as `[errorCode="..."]` so the
                            line can easily be searched for.

It also defines the extra verbosity levels DEBUG_LEVEL_0 (the least verbose) to DEBUG_LEVEL_5.
"""

import logging
import logging.handlers
import os
import sys
import threading
import time

# The extra debug levels sit right below logging.DEBUG.  DEBUG_LEVEL_0 is logging.DEBUG itself.
DEBUG_LEVEL_0 = logging.DEBUG
DEBUG_LEVEL_1 = logging.DEBUG - 1
DEBUG_LEVEL_2 = logging.DEBUG - 2
DEBUG_LEVEL_3 = logging.DEBUG - 3
DEBUG_LEVEL_4 = logging.DEBUG - 4
DEBUG_LEVEL_5 = logging.DEBUG - 5

for _level in range(1, 6):
    logging.addLevelName(logging.DEBUG - _level, "DEBUG_%d" % _level)

# The name of the logger that is the parent of all of the agent's loggers.
ROOT_LOGGER_NAME = "bs_agent"

LOG_FORMAT = (
    "%(asctime)s %(levelname)s [%(threadName)s] [%(name)s:%(lineno)d] %(message)s"
)

# Rotation settings for the agent log file.
MAX_LOG_BYTES = 20 * 1024 * 1024
MAX_LOG_ROTATIONS = 2


class AgentLogger(logging.Logger):
    """A `logging.Logger` which supports rate limiting and error codes on every call."""

    # Guards __last_emit_times.  Shared by all instances since rate limit keys are global.
    __rate_limit_lock = threading.Lock()
    # Maps limit_key to the last time a message with that key was emitted.
    __last_emit_times = {}

    def _log(
        self,
        level,
        msg,
        args,
        limit_once_per_x_secs=None,
        limit_key=None,
        error_code=None,
        **kwargs
    ):
        if limit_once_per_x_secs is not None:
            if limit_key is None:
                raise ValueError(
                    "You must specify limit_key when using limit_once_per_x_secs"
                )
            if not AgentLogger._should_emit(limit_key, limit_once_per_x_secs):
                return

        if error_code is not None:
            msg = '%s [errorCode="%s"]' % (msg, error_code)

        # Skip this frame when looking up the caller's file and line number.
        kwargs["stacklevel"] = kwargs.get("stacklevel", 1) + 1
        logging.Logger._log(self, level, msg, args, **kwargs)

    @staticmethod
    def _should_emit(limit_key, limit_once_per_x_secs):
        """Returns True if a message with `limit_key` may be emitted now, recording the emit time."""
        current_time = time.time()
        with AgentLogger.__rate_limit_lock:
            last_time = AgentLogger.__last_emit_times.get(limit_key)
            if (
                last_time is not None
                and current_time - last_time < limit_once_per_x_secs
            ):
                return False
            AgentLogger.__last_emit_times[limit_key] = current_time
            return True

    @staticmethod
    def reset_rate_limits():
        """Forgets all previously emitted rate limited messages.  Used by tests."""
        with AgentLogger.__rate_limit_lock:
            AgentLogger.__last_emit_times.clear()


logging.setLoggerClass(AgentLogger)


def getLogger(name):
    """Returns the `AgentLogger` for `name`.

    @param name: The name of the logger, typically `__name__` of the calling module.
    @type name: str
    @rtype: AgentLogger
    """
    return logging.getLogger(name)


def set_log_destination(
    use_stdout=False,
    use_disk=False,
    logs_directory=None,
    agent_log_file_path="agent.log",
):
    """Sets where the agent's log lines are written.

    Any previously configured destination is closed and replaced.

    @param use_stdout: If True, lines are written to stdout.
    @param use_disk: If True, lines are written to a rotating file.
    @param logs_directory: The directory holding the log file.  Required if `use_disk` is True.
    @param agent_log_file_path: The file name (or absolute path) of the log file.
    """
    if use_disk and logs_directory is None:
        raise ValueError("logs_directory must be given when use_disk is True")

    close_handlers()

    root = logging.getLogger(ROOT_LOGGER_NAME)
    formatter = logging.Formatter(LOG_FORMAT)

    if use_stdout:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if use_disk:
        file_path = os.path.join(logs_directory, agent_log_file_path)
        handler = logging.handlers.RotatingFileHandler(
            file_path, maxBytes=MAX_LOG_BYTES, backupCount=MAX_LOG_ROTATIONS
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # The agent's log lines should not also be handled by whatever the root logger has.
    root.propagate = not (use_stdout or use_disk)


def set_log_level(level):
    """Sets the level of the agent's root logger.

    @param level: Either a level number or a level name such as `INFO` or `DEBUG_2`.
    """
    if not isinstance(level, int):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError("Unknown log level %r" % level)
        level = resolved
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)


def close_handlers():
    """Removes and closes all handlers installed by `set_log_destination`."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
