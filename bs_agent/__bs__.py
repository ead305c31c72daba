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

# NOTE: This file must not import anything from the rest of the package since setup.py reads the
# version from it before any dependency is installed.

import os

BS_VERSION = "1.4.0"


def get_package_root():
    """Returns the absolute path to the directory containing the bs_agent package."""
    return os.path.dirname(os.path.abspath(__file__))
