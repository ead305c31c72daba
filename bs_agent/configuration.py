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
The agent configuration.

Every option is read from an environment variable named after the option with a `BS_` prefix, such as
`BS_SYSLOG_LISTEN_ADDRESS`.  Options which are not set use their default.
"""

import logging
import os

import bs_agent.bs_logging as bs_logging
from bs_agent.config_util import BadConfiguration, get_config_from_env
from bs_agent.log.forwarder import AddressError, parse_address
from bs_agent.log.relay import RelayConfig

log = bs_logging.getLogger(__name__)

# (option name, type, default)
OPTIONS = [
    ("syslog_listen_address", str, "udp://0.0.0.0:1514"),
    ("syslog_forward_addresses", list, []),
    ("docker_endpoint", str, "unix://var/run/docker.sock"),
    ("app_name_env_var", str, "TSURU_APPNAME="),
    ("app_name_cache_size", int, 1000),
    ("kubernetes_log_dir", str, ""),
    ("kubernetes_pos_dir", str, "/var/lib/bs/pos"),
    ("kubernetes_scan_interval", float, 1.0),
    ("tail_poll_interval", float, 0.1),
    ("tail_pos_update_interval", float, 5.0),
    ("metrics_backend", str, "fake"),
    ("metrics_interval", float, 60.0),
    ("hostcheck_base_container_name", str, ""),
    ("hostcheck_extra_paths", list, []),
    ("log_level", str, "INFO"),
]


class Configuration(object):
    """Immutable set of agent options.  Use `from_environment` to read it."""

    def __init__(self, **values):
        """
        @param values: Option values, keyed by option name.  Missing options get their default.
        @raise BadConfiguration: If an option is unknown or has an invalid value.
        """
        known = set(name for name, _, _ in OPTIONS)
        for name in values:
            if name not in known:
                raise BadConfiguration(
                    'Unknown option "%s"' % name, name, "unknownOption"
                )

        self.__values = {}
        for name, _, default in OPTIONS:
            value = values.get(name)
            if value is None:
                value = list(default) if isinstance(default, list) else default
            self.__values[name] = value

        self.__verify()

    @classmethod
    def from_environment(cls, environ=None):
        """Reads every option from the `BS_` environment variables.

        @param environ: The mapping to read from.  Defaults to os.environ.
        @raise BadConfiguration: If a variable has an invalid value.
        """
        if environ is None:
            environ = os.environ

        values = {}
        for name, convert_to, _ in OPTIONS:
            value = get_config_from_env(name, convert_to=convert_to, environ=environ)
            if value is not None:
                values[name] = value

        config = cls(**values)
        log.log(bs_logging.DEBUG_LEVEL_1, "Loaded %r", config)
        return config

    def __verify(self):
        addresses = [("syslog_listen_address", self.syslog_listen_address)]
        for address in self.syslog_forward_addresses:
            addresses.append(("syslog_forward_addresses", address))
        for field, address in addresses:
            try:
                parse_address(address)
            except AddressError as e:
                raise BadConfiguration(str(e), field, "badAddress")

        for name in (
            "app_name_cache_size",
            "kubernetes_scan_interval",
            "tail_poll_interval",
            "tail_pos_update_interval",
            "metrics_interval",
        ):
            if self.__values[name] <= 0:
                raise BadConfiguration(
                    'Option "%s" must be greater than zero' % name, name, "notPositive"
                )

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise BadConfiguration(
                'Unknown log level "%s"' % self.log_level, "log_level", "badLogLevel"
            )

    def get(self, name):
        return self.__values[name]

    def as_dict(self):
        return dict(self.__values)

    @property
    def syslog_listen_address(self):
        return self.__values["syslog_listen_address"]

    @property
    def syslog_forward_addresses(self):
        return list(self.__values["syslog_forward_addresses"])

    @property
    def docker_endpoint(self):
        return self.__values["docker_endpoint"]

    @property
    def app_name_env_var(self):
        return self.__values["app_name_env_var"] or None

    @property
    def app_name_cache_size(self):
        return self.__values["app_name_cache_size"]

    @property
    def kubernetes_log_dir(self):
        return self.__values["kubernetes_log_dir"] or None

    @property
    def kubernetes_enabled(self):
        return self.kubernetes_log_dir is not None

    @property
    def kubernetes_pos_dir(self):
        return self.__values["kubernetes_pos_dir"]

    @property
    def kubernetes_scan_interval(self):
        return self.__values["kubernetes_scan_interval"]

    @property
    def tail_poll_interval(self):
        return self.__values["tail_poll_interval"]

    @property
    def tail_pos_update_interval(self):
        return self.__values["tail_pos_update_interval"]

    @property
    def metrics_backend(self):
        return self.__values["metrics_backend"]

    @property
    def metrics_interval(self):
        return self.__values["metrics_interval"]

    @property
    def hostcheck_base_container_name(self):
        return self.__values["hostcheck_base_container_name"] or None

    @property
    def hostcheck_extra_paths(self):
        return list(self.__values["hostcheck_extra_paths"])

    @property
    def log_level(self):
        return self.__values["log_level"]

    def relay_config(self):
        """Returns the settings of the syslog relay.

        @rtype: RelayConfig
        """
        return RelayConfig(
            bind_address=self.syslog_listen_address,
            forward_addresses=self.syslog_forward_addresses,
            runtime_endpoint=self.docker_endpoint,
            app_name_env_var=self.app_name_env_var,
            app_name_cache_size=self.app_name_cache_size,
        )

    def __repr__(self):
        return "Configuration(%s)" % ", ".join(
            "%s=%r" % (name, self.__values[name]) for name, _, _ in OPTIONS
        )
