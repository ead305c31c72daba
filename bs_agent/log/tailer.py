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
Tails a container log file written by the container runtime's json-file logging driver.

Every line of such a file is a JSON object like:

  {"log":"msg1\n","stream":"stderr","time":"2017-03-21T21:28:22.123456789Z"}

The tailer polls the file size, reads whatever was appended since the last poll, and hands a `LogRecord` per
complete line to its sink.  The number of bytes handled so far is periodically written to an offset file, so a
restarted tailer continues where the previous one stopped instead of emitting the whole file again.
"""

import json
import os
import time

import bs_agent.bs_logging as bs_logging
from bs_agent.date_parsing_utils import rfc3339_to_datetime
from bs_agent.log.offset_store import OffsetStore
from bs_agent.log.records import LogRecord, STREAM_PRIORITIES
from bs_agent.util import StoppableThread

log = bs_logging.getLogger(__name__)

# The maximum number of bytes read from the file at once.
READ_CHUNK_SIZE = 64 * 1024


class LogFileNotFound(Exception):
    """Raised when creating a tailer for a file that does not exist."""

    def __init__(self, file_path):
        Exception.__init__(self, "log file %s does not exist" % file_path)
        self.file_path = file_path


class LogTailer(object):
    """Tails one container log file on a background thread.

    Lines are delivered to `sink.handle_record` in file order, from the tailer's thread.  If the sink (or anything
    else) raises unexpectedly, the error is logged and the thread ends.  `is_alive` then returns False, and it is up
    to the owner to create a new tailer.
    """

    def __init__(
        self,
        sink,
        file_path,
        source_id,
        pos_file=None,
        poll_interval=0.1,
        pos_update_interval=5.0,
    ):
        """
        @param sink: The object receiving the records.  Must have a `handle_record(record)` method.
        @param file_path: The path of the log file to tail.
        @param source_id: The id of the container writing the file.
        @param pos_file: The path of the offset file, or None if the offset should not be persisted.
        @param poll_interval: The number of seconds between two checks of the file size.
        @param pos_update_interval: The number of seconds between two writes of the offset file.

        @type file_path: str
        @type source_id: str or bytes
        @type pos_file: str or None
        @type poll_interval: float
        @type pos_update_interval: float

        @raise LogFileNotFound: If `file_path` does not exist.
        """
        if not os.path.isfile(file_path):
            raise LogFileNotFound(file_path)

        if not isinstance(source_id, bytes):
            source_id = source_id.encode("utf-8")

        self.__sink = sink
        self.__file_path = file_path
        self.__source_id = source_id
        self.__offset_store = OffsetStore(pos_file) if pos_file else None
        self.__poll_interval = poll_interval
        self.__pos_update_interval = pos_update_interval

        # The number of bytes of the file that have been handled.  Only modified by the thread running `poll`.
        self.__offset = 0
        # The offset last written to the offset file.
        self.__persisted_offset = None

        self.__thread = None

    @property
    def file_path(self):
        return self.__file_path

    @property
    def source_id(self):
        return self.__source_id

    @property
    def offset(self):
        return self.__offset

    @property
    def pos_file(self):
        if self.__offset_store is None:
            return None
        return self.__offset_store.path

    def start(self):
        """Prepares the tailer by resolving the offset to start reading from.

        If an offset file exists, reading resumes at the stored offset.  Otherwise the whole file is read.
        """
        stored = None
        if self.__offset_store is not None:
            stored = self.__offset_store.load()
        self.__offset = stored if stored is not None else 0
        self.__persisted_offset = stored

        log.log(
            bs_logging.DEBUG_LEVEL_1,
            "Starting to tail %s at offset %d",
            self.__file_path,
            self.__offset,
        )

        self.__thread = StoppableThread(
            target=self.__tail, name="Log tailer for %s" % self.__file_path
        )

    def run(self):
        """Starts reading the file on the background thread."""
        if self.__thread is None:
            self.start()
        self.__thread.start()

    def stop(self, wait_on_join=True, join_timeout=5):
        """Asks the background thread to stop.

        It is safe to call this more than once, or after the thread already ended.
        """
        if self.__thread is None or self.__thread.ident is None:
            return
        self.__thread.stop(wait_on_join=wait_on_join, join_timeout=join_timeout)

    def wait(self, timeout=None):
        """Blocks until the background thread has exited."""
        if self.__thread is None or self.__thread.ident is None:
            return
        self.__thread.join(timeout)

    def is_alive(self):
        """Returns True if the background thread is still executing."""
        return self.__thread is not None and self.__thread.is_alive()

    def __tail(self, run_state):
        try:
            last_persist_time = time.time()
            while run_state.is_running():
                self.poll(run_state)

                current_time = time.time()
                if current_time - last_persist_time >= self.__pos_update_interval:
                    self.__persist_offset()
                    last_persist_time = current_time

                run_state.sleep_but_awaken_if_stopped(self.__poll_interval)
        except Exception:
            log.exception(
                "Unhandled error while tailing %s, stopping the tailer",
                self.__file_path,
                error_code="tailerFailed",
            )
        finally:
            self.__persist_offset()

        log.log(
            bs_logging.DEBUG_LEVEL_1,
            "Stopped tailing %s at offset %d",
            self.__file_path,
            self.__offset,
        )

    def poll(self, run_state=None):
        """Checks the file once, and emits a record for every complete line appended since the last check.

        If the file shrank, it was truncated or replaced, so it is read again from the start.

        @param run_state: If not None, reading stops between two lines once it is stopped.  The remaining lines
            are read by a later poll.

        @return: The number of records emitted.
        @rtype: int
        """
        try:
            size = os.path.getsize(self.__file_path)
        except OSError as e:
            log.warning(
                "Unable to check the size of %s: %s",
                self.__file_path,
                e,
                limit_once_per_x_secs=300,
                limit_key="tailer-stat-%s" % self.__file_path,
            )
            return 0

        if size < self.__offset:
            log.info(
                "%s shrank from %d to %d bytes, reading it again from the start",
                self.__file_path,
                self.__offset,
                size,
            )
            self.__offset = 0

        if size == self.__offset:
            return 0

        emitted = 0
        with open(self.__file_path, "rb") as fp:
            fp.seek(self.__offset)
            remaining = size - self.__offset
            pending = b""
            while remaining > 0:
                chunk = fp.read(min(remaining, READ_CHUNK_SIZE))
                if not chunk:
                    break
                remaining -= len(chunk)

                lines = (pending + chunk).split(b"\n")
                # The last element is an incomplete line.  It is read again on a later poll if it is not
                # completed within this one.
                pending = lines.pop()
                for line in lines:
                    if run_state is not None and not run_state.is_running():
                        return emitted
                    record = self.__parse_line(line)
                    if record is not None:
                        self.__sink.handle_record(record)
                        emitted += 1
                    self.__offset += len(line) + 1

        return emitted

    def __parse_line(self, line):
        """Returns the record for the JSON encoded `line`, or None if the line should be skipped."""
        if not line.strip():
            return None

        try:
            entry = json.loads(line)
            text = entry["log"]
            stream = entry["stream"]
            time_str = entry["time"]
        except (ValueError, KeyError, TypeError) as e:
            self.__warn_bad_line("undecodable line (%s)" % e, line)
            return None

        priority = STREAM_PRIORITIES.get(stream) if isinstance(stream, str) else None
        if priority is None:
            self.__warn_bad_line("unknown stream %r" % (stream,), line)
            return None

        timestamp = rfc3339_to_datetime(time_str) if isinstance(time_str, str) else None
        if timestamp is None:
            self.__warn_bad_line("invalid time %r" % (time_str,), line)
            return None

        if not isinstance(text, str):
            self.__warn_bad_line("log field is not a string", line)
            return None

        content = text.encode("utf-8")
        if content.endswith(b"\n"):
            content = content[:-1]

        return LogRecord(
            content=content,
            timestamp=timestamp,
            source_id=self.__source_id,
            priority=priority,
        )

    def __warn_bad_line(self, reason, line):
        log.warning(
            "Dropping line from %s: %s: %r",
            self.__file_path,
            reason,
            line[:200],
            limit_once_per_x_secs=60,
            limit_key="tailer-bad-line-%s" % self.__file_path,
            error_code="badLogLine",
        )

    def __persist_offset(self):
        if self.__offset_store is None:
            return

        offset = self.__offset
        if offset == self.__persisted_offset:
            return

        try:
            self.__offset_store.save(offset)
            self.__persisted_offset = offset
        except OSError as e:
            log.warning(
                "Unable to write offset file %s, will retry: %s",
                self.__offset_store.path,
                e,
                limit_once_per_x_secs=300,
                limit_key="tailer-offset-%s" % self.__file_path,
                error_code="offsetWriteFailed",
            )

    def __repr__(self):
        return "LogTailer(%r, offset=%d)" % (self.__file_path, self.__offset)
