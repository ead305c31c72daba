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
The unit of data handed from the log pipelines to a record sink, and the syslog line format both pipelines write.
"""

from collections import namedtuple

from bs_agent.date_parsing_utils import datetime_to_rfc3339

# Syslog priorities used for lines read from container log files.  Both use the user facility (1), stderr lines
# get the error severity (3) and stdout lines the informational severity (6).
PRIORITY_STDERR = b"27"
PRIORITY_STDOUT = b"30"

STREAM_PRIORITIES = {
    "stderr": PRIORITY_STDERR,
    "stdout": PRIORITY_STDOUT,
}


class LogRecord(namedtuple("LogRecord", ["content", "timestamp", "source_id", "priority"])):
    """A single log line read from a container.

    @ivar content: The line, without its trailing newline.
    @ivar timestamp: When the container wrote the line, as a timezone aware UTC datetime.
    @ivar source_id: The id of the container which wrote the line.
    @ivar priority: The syslog priority, such as b"27".
    @type content: bytes
    @type timestamp: datetime.datetime
    @type source_id: bytes
    @type priority: bytes
    """

    __slots__ = ()


def format_syslog_line(priority, timestamp, host, tag, message):
    """Returns the syslog wire line `<priority>timestamp host tag: message` terminated by a newline.

    All arguments are bytes.
    """
    return b"<%s>%s %s %s: %s\n" % (priority, timestamp, host, tag, message)


def record_to_syslog_line(record, display_name):
    """Serializes `record` as a syslog line whose host is the container id and whose tag is `display_name`.

    @type record: LogRecord
    @type display_name: bytes
    @rtype: bytes
    """
    timestamp = datetime_to_rfc3339(record.timestamp).encode("utf-8")
    return format_syslog_line(
        record.priority, timestamp, record.source_id, display_name, record.content
    )
