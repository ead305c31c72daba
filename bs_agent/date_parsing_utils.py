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

"""
Module containing date parsing and formatting helpers for RFC3339 timestamps.

Parsing is part of the critical code path when tailing Kubernetes container logs, so the common
UTC case (a trailing `Z`) is handled with plain string splitting.  Timestamps carrying a numeric
offset fall back on python-dateutil which is noticeably slower.

Container runtimes write timestamps with nanosecond precision, e.g.
2017-03-21T21:28:22.123456789Z.  Python datetimes only hold microseconds, so the extra digits are
truncated.
"""

from typing import Optional

import datetime
import re

from dateutil.parser import isoparse

RFC3339_STR_NON_UTC_REGEX = re.compile(r"^.*[\+\-](\d{2}):(\d{2})$", re.ASCII)

TZ_UTC = datetime.timezone.utc


def _contains_non_utc_tz(string):
    # type: (str) -> bool
    """
    Returns True if the provided RFC3339 strings contains a non UTC timezone.
    """
    return bool(RFC3339_STR_NON_UTC_REGEX.match(string))


def _rfc3339_to_datetime_dateutil(string):
    # type: (str) -> Optional[datetime.datetime]
    """
    Version of rfc3339_to_datetime which supports timezones and uses dateutil library underneath.
    """
    # dateutil only accepts up to six fractional digits.
    parts = string.split(".")
    if len(parts) == 2:
        fractions = parts[1][:-6]
        string = "%s.%s%s" % (parts[0], fractions[:6], parts[1][-6:])

    try:
        return isoparse(string).astimezone(TZ_UTC)
    except ValueError:
        return None


def _add_fractional_part_to_dt(dt, parts):
    # type: (datetime.datetime, list) -> datetime.datetime
    """
    Add fractional part (if any) to the provided datetime object.
    """
    if len(parts) < 2:
        # No fractional component
        return dt

    fractions = parts[1]
    if fractions.endswith("Z"):
        fractions = fractions[:-1]

    # Anything beyond microseconds is dropped.
    fractions = fractions[:6]
    if not fractions.isdigit():
        raise ValueError("Invalid fractional seconds %r" % parts[1])

    micro = int(fractions) * 10 ** (6 - len(fractions))
    return dt.replace(microsecond=micro)


def rfc3339_to_datetime(string):
    # type: (str) -> Optional[datetime.datetime]
    """
    Returns a timezone aware (UTC) datetime from a rfc3339 formatted timestamp, or None if the
    string could not be parsed.

    @param string: a date/time in rfc3339 format, e.g. 2015-08-03T09:12:43.143757463Z
    """
    if _contains_non_utc_tz(string):
        return _rfc3339_to_datetime_dateutil(string)

    # split the string in to main time and fractional component
    parts = string.split(".")

    # it's possible that the time does not have a fractional component
    # e.g 2015-08-03T09:12:43Z, in this case 'parts' will only have a
    # single element that should end in Z.  Strip the Z if it exists
    # so we can use the same format string for processing the main
    # date+time regardless of whether the time has a fractional component.
    if parts[0].endswith("Z"):
        parts[0] = parts[0][:-1]

    try:
        date_parts, time_parts = parts[0].split("T")
        date_parts = date_parts.split("-")
        time_parts = time_parts.split(":")

        dt = datetime.datetime(
            int(date_parts[0]),
            int(date_parts[1]),
            int(date_parts[2]),
            int(time_parts[0]),
            int(time_parts[1]),
            int(time_parts[2]),
            tzinfo=TZ_UTC,
        )
        return _add_fractional_part_to_dt(dt=dt, parts=parts)
    except (ValueError, IndexError):
        return None


def datetime_to_rfc3339(dt):
    # type: (datetime.datetime) -> str
    """
    Formats a datetime as a RFC3339 UTC timestamp, e.g. 2017-03-21T21:28:22Z or
    2017-03-21T21:28:22.5Z.  Naive datetimes are assumed to already be in UTC.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(TZ_UTC)

    result = dt.strftime("%Y-%m-%dT%H:%M:%S")
    if dt.microsecond:
        result += (".%06d" % dt.microsecond).rstrip("0")
    return result + "Z"
