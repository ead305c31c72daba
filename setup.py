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
#
# Note, this setup is based on the Sample Project example from Python
# Packaging Authority.
#
# Note, to release a new version of the package
# 1.  Edit the version number in bs_agent/__bs__.py
# 2.  Build:
#     python setup.py sdist bdist_wheel

from setuptools import setup, find_packages  # Always prefer setuptools over distutils
from codecs import open  # To use a consistent encoding
from os import path

import re

here = path.abspath(path.dirname(__file__))

# The version is read rather than imported so the dependencies do not have to be installed yet.
with open(path.join(here, "bs_agent", "__bs__.py"), encoding="utf-8") as f:
    _file_version = re.search(r'^BS_VERSION = "([^"]+)"', f.read(), re.MULTILINE).group(1)

setup(
    name="bs-agent",
    version=_file_version,
    description="Node agent relaying container logs as syslog and running host checks",
    long_description=(
        "Receives the lines written by the Docker syslog logging driver, or tails the log files of "
        "Kubernetes containers, tags every line with the application name of its container and "
        "forwards the result to syslog collectors."
    ),
    # Author details
    author="Scalyr, Inc",
    author_email="contact@scalyr.com",
    # Choose your license
    license="Apache",
    # See https://pypi.python.org/pypi?%3Aaction=list_classifiers
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Logging",
        "Topic :: System :: Monitoring",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
    ],
    keywords="logging syslog docker kubernetes",
    packages=find_packages(exclude=["tests*"]),
    python_requires=">=3.8",
    # List run-time dependencies here.  These will be installed by pip when your
    # project is installed.
    install_requires=[
        "docker",
        "python-dateutil",
        "repoze.lru",
    ],
    extras_require={
        "test": [
            "mock",
            "pytest",
        ],
    },
    # To provide executable scripts, use entry points in preference to the
    # "scripts" keyword.
    entry_points={
        "console_scripts": [
            "bs-agent=bs_agent.agent_main:main",
        ],
    },
)
