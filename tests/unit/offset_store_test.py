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

from bs_agent.log.offset_store import OffsetStore
from bs_agent.test_base import BsTestCase


class OffsetStoreTestCase(BsTestCase):
    def setUp(self):
        super(OffsetStoreTestCase, self).setUp()
        self.dir = self.create_temp_dir()
        self.path = os.path.join(self.dir, "contid.pos")

    def test_load_missing(self):
        self.assertIsNone(OffsetStore(self.path).load())

    def test_save_and_load(self):
        store = OffsetStore(self.path)
        store.save(1234)
        self.assertEqual(1234, store.load())

        store.save(10)
        self.assertEqual(10, OffsetStore(self.path).load())
        with open(self.path, "r") as fp:
            self.assertEqual("10", fp.read())
        self.assertFalse(os.path.exists(self.path + "~"))

    def test_load_corrupt(self):
        with open(self.path, "w") as fp:
            fp.write("garbage")
        self.assertIsNone(OffsetStore(self.path).load())

    def test_load_negative(self):
        with open(self.path, "w") as fp:
            fp.write("-5")
        self.assertIsNone(OffsetStore(self.path).load())

    def test_load_tolerates_whitespace(self):
        with open(self.path, "w") as fp:
            fp.write("42\n")
        self.assertEqual(42, OffsetStore(self.path).load())

    def test_save_to_missing_directory(self):
        store = OffsetStore(os.path.join(self.dir, "nope", "contid.pos"))
        self.assertRaises(OSError, store.save, 1)
