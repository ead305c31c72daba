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

import datetime

from bs_agent.date_parsing_utils import datetime_to_rfc3339, rfc3339_to_datetime
from bs_agent.test_base import BsTestCase

UTC = datetime.timezone.utc


class DateParsingUtilsTestCase(BsTestCase):
    def test_rfc3339_to_datetime(self):
        expected = datetime.datetime(2015, 8, 3, 9, 12, 43, tzinfo=UTC)
        self.assertEqual(expected, rfc3339_to_datetime("2015-08-03T09:12:43Z"))

    def test_fraction_truncated_to_microseconds(self):
        self.assertEqual(
            datetime.datetime(2015, 8, 3, 9, 12, 43, 143757, tzinfo=UTC),
            rfc3339_to_datetime("2015-08-03T09:12:43.143757463Z"),
        )
        self.assertEqual(
            datetime.datetime(2015, 8, 3, 9, 12, 43, 500000, tzinfo=UTC),
            rfc3339_to_datetime("2015-08-03T09:12:43.5Z"),
        )

    def test_non_utc_offset(self):
        self.assertEqual(
            datetime.datetime(2015, 8, 3, 7, 12, 43, 143757, tzinfo=UTC),
            rfc3339_to_datetime("2015-08-03T09:12:43.143757463+02:00"),
        )
        self.assertEqual(
            datetime.datetime(2015, 8, 3, 12, 12, 43, tzinfo=UTC),
            rfc3339_to_datetime("2015-08-03T09:12:43-03:00"),
        )

    def test_invalid(self):
        self.assertIsNone(rfc3339_to_datetime("not a date"))
        self.assertIsNone(rfc3339_to_datetime("2015-08-03"))
        self.assertIsNone(rfc3339_to_datetime("2015-13-03T09:12:43Z"))
        self.assertIsNone(rfc3339_to_datetime("2015-08-03T09:12:43.abcZ"))
        self.assertIsNone(rfc3339_to_datetime("2015-02-30T09:12:43+02:00"))

    def test_datetime_to_rfc3339(self):
        self.assertEqual(
            "2017-03-21T21:28:22Z",
            datetime_to_rfc3339(datetime.datetime(2017, 3, 21, 21, 28, 22, tzinfo=UTC)),
        )
        self.assertEqual(
            "2017-03-21T21:28:22.12Z",
            datetime_to_rfc3339(datetime.datetime(2017, 3, 21, 21, 28, 22, 120000, tzinfo=UTC)),
        )
        self.assertEqual(
            "2017-03-21T21:28:22.000001Z",
            datetime_to_rfc3339(datetime.datetime(2017, 3, 21, 21, 28, 22, 1)),
        )

    def test_datetime_to_rfc3339_converts_to_utc(self):
        tz = datetime.timezone(datetime.timedelta(hours=-3))
        self.assertEqual(
            "2017-03-22T00:28:22Z",
            datetime_to_rfc3339(datetime.datetime(2017, 3, 21, 21, 28, 22, tzinfo=tz)),
        )
