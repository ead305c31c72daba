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

import bs_agent.bs_logging as bs_logging
from bs_agent.util import atomic_write_file

log = bs_logging.getLogger(__name__)


class OffsetStore(object):
    """Persists the byte offset of a tailed log file in a small side file.

    The file holds the offset as a decimal number.  It is always rewritten as a whole, by first writing
    `<path>~` and then renaming it, so a crash never leaves a half written offset behind.
    """

    def __init__(self, path):
        """
        @param path: The path of the offset file.
        @type path: str
        """
        self.__path = path

    @property
    def path(self):
        return self.__path

    def load(self):
        """Returns the stored offset, or None if there is no usable offset file.

        @rtype: int or None
        """
        if not os.path.isfile(self.__path):
            return None

        try:
            with open(self.__path, "r") as fp:
                content = fp.read().strip()
            offset = int(content)
        except (OSError, ValueError) as e:
            log.warning(
                "Ignoring unreadable offset file %s: %s",
                self.__path,
                e,
                error_code="badOffsetFile",
            )
            return None

        if offset < 0:
            log.warning(
                "Ignoring negative offset %d in %s",
                offset,
                self.__path,
                error_code="badOffsetFile",
            )
            return None

        return offset

    def save(self, offset):
        """Durably records `offset`, replacing any previous value.

        @type offset: int
        @raise OSError: If the file could not be written.
        """
        atomic_write_file(self.__path, self.__path + "~", "%d" % offset)

    def __repr__(self):
        return "OffsetStore(%r)" % self.__path
