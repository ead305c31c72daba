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

from bs_agent.config_util import (
    BadConfiguration,
    convert_config_param,
    get_config_from_env,
    parse_array_of_strings,
)
from bs_agent.configuration import Configuration
from bs_agent.test_base import BsTestCase


class ParseArrayOfStringsTestCase(BsTestCase):
    def test_formats(self):
        expected = ["a", "b", "c"]
        self.assertEqual(expected, parse_array_of_strings("['a', 'b', 'c']"))
        self.assertEqual(expected, parse_array_of_strings('["a", "b", "c"]'))
        self.assertEqual(expected, parse_array_of_strings("'a', 'b', 'c'"))
        self.assertEqual(expected, parse_array_of_strings("a, b, c"))
        self.assertEqual(expected, parse_array_of_strings("a,,b,c,"))

    def test_empty(self):
        self.assertIsNone(parse_array_of_strings(None))
        self.assertEqual([], parse_array_of_strings(""))
        self.assertEqual([], parse_array_of_strings("[]"))

    def test_whitespace_separator(self):
        self.assertEqual(
            ["udp://a:1", "tcp://b:2"],
            parse_array_of_strings("udp://a:1  tcp://b:2", separators=[None]),
        )


class ConvertConfigParamTestCase(BsTestCase):
    def test_conversions(self):
        self.assertEqual("10", convert_config_param("f", "10", str))
        self.assertEqual(10, convert_config_param("f", "10", int))
        self.assertEqual(1.5, convert_config_param("f", "1.5", float))
        self.assertEqual(True, convert_config_param("f", "true", bool))
        self.assertEqual(False, convert_config_param("f", "0", bool))
        self.assertEqual(["x", "y"], convert_config_param("f", "x,y", list))
        self.assertEqual(3, convert_config_param("f", 3, int))

    def test_bad_number(self):
        with self.assertRaises(BadConfiguration) as ctx:
            convert_config_param("cache_size", "lots", int, is_environment_variable=True)
        self.assertEqual("cache_size", ctx.exception.field)
        self.assertEqual("notNumber", ctx.exception.error_code)
        self.assertIn('badField="cache_size"', str(ctx.exception))

    def test_bad_boolean(self):
        with self.assertRaises(BadConfiguration) as ctx:
            convert_config_param("flag", "maybe", bool)
        self.assertEqual("notBoolean", ctx.exception.error_code)

    def test_bool_is_not_int(self):
        with self.assertRaises(BadConfiguration) as ctx:
            convert_config_param("size", True, int)
        self.assertEqual("illegalConversion", ctx.exception.error_code)

    def test_missing(self):
        with self.assertRaises(BadConfiguration) as ctx:
            convert_config_param("size", None, int)
        self.assertEqual("missingValue", ctx.exception.error_code)


class GetConfigFromEnvTestCase(BsTestCase):
    def test_prefixed_name(self):
        environ = {"BS_SYSLOG_LISTEN_ADDRESS": "tcp://0.0.0.0:514"}
        self.assertEqual(
            "tcp://0.0.0.0:514", get_config_from_env("syslog_listen_address", environ=environ)
        )

    def test_lower_case_name(self):
        environ = {"bs_app_name_cache_size": "5"}
        self.assertEqual(
            5, get_config_from_env("app_name_cache_size", convert_to=int, environ=environ)
        )

    def test_custom_name(self):
        environ = {"DOCKER_HOST": "tcp://127.0.0.1:2375"}
        self.assertEqual(
            "tcp://127.0.0.1:2375",
            get_config_from_env("docker_endpoint", custom_env_name="DOCKER_HOST", environ=environ),
        )

    def test_unset(self):
        self.assertIsNone(get_config_from_env("docker_endpoint", convert_to=str, environ={}))


class ConfigurationTestCase(BsTestCase):
    def test_defaults(self):
        config = Configuration.from_environment(environ={})

        self.assertEqual("udp://0.0.0.0:1514", config.syslog_listen_address)
        self.assertEqual([], config.syslog_forward_addresses)
        self.assertEqual("TSURU_APPNAME=", config.app_name_env_var)
        self.assertEqual(1000, config.app_name_cache_size)
        self.assertIsNone(config.kubernetes_log_dir)
        self.assertFalse(config.kubernetes_enabled)
        self.assertEqual(5.0, config.tail_pos_update_interval)
        self.assertEqual("fake", config.metrics_backend)
        self.assertIsNone(config.hostcheck_base_container_name)
        self.assertEqual("INFO", config.log_level)

    def test_from_environment(self):
        config = Configuration.from_environment(
            environ={
                "BS_SYSLOG_LISTEN_ADDRESS": "tcp://0.0.0.0:5140",
                "BS_SYSLOG_FORWARD_ADDRESSES": "udp://collector1:514,tcp://collector2:514",
                "BS_APP_NAME_ENV_VAR": "APPNAMEVAR=",
                "BS_APP_NAME_CACHE_SIZE": "10",
                "BS_KUBERNETES_LOG_DIR": "/var/log/containers",
                "BS_TAIL_POLL_INTERVAL": "0.5",
                "BS_HOSTCHECK_EXTRA_PATHS": "/data, /logs",
            }
        )

        self.assertEqual("tcp://0.0.0.0:5140", config.syslog_listen_address)
        self.assertEqual(
            ["udp://collector1:514", "tcp://collector2:514"], config.syslog_forward_addresses
        )
        self.assertEqual(10, config.app_name_cache_size)
        self.assertEqual("/var/log/containers", config.kubernetes_log_dir)
        self.assertTrue(config.kubernetes_enabled)
        self.assertEqual(0.5, config.tail_poll_interval)
        self.assertEqual(["/data", "/logs"], config.hostcheck_extra_paths)

        relay_config = config.relay_config()
        self.assertEqual("tcp://0.0.0.0:5140", relay_config.bind_address)
        self.assertEqual(
            ("udp://collector1:514", "tcp://collector2:514"), relay_config.forward_addresses
        )
        self.assertEqual("APPNAMEVAR=", relay_config.app_name_env_var)
        self.assertEqual(10, relay_config.app_name_cache_size)

    def test_empty_app_name_env_var_disables_lookup(self):
        config = Configuration.from_environment(environ={"BS_APP_NAME_ENV_VAR": ""})
        self.assertIsNone(config.app_name_env_var)

    def test_invalid_listen_address(self):
        with self.assertRaises(BadConfiguration) as ctx:
            Configuration(syslog_listen_address="xudp://0.0.0.0:1514")
        self.assertEqual("syslog_listen_address", ctx.exception.field)
        self.assertEqual("badAddress", ctx.exception.error_code)
        self.assertIn('invalid protocol "xudp", expected tcp or udp', ctx.exception.message)

    def test_invalid_forward_address(self):
        with self.assertRaises(BadConfiguration) as ctx:
            Configuration(syslog_forward_addresses=["udp://collector"])
        self.assertEqual("syslog_forward_addresses", ctx.exception.field)

    def test_invalid_number(self):
        with self.assertRaises(BadConfiguration) as ctx:
            Configuration.from_environment(environ={"BS_APP_NAME_CACHE_SIZE": "many"})
        self.assertEqual("app_name_cache_size", ctx.exception.field)

    def test_non_positive_interval(self):
        with self.assertRaises(BadConfiguration) as ctx:
            Configuration(tail_poll_interval=0)
        self.assertEqual("notPositive", ctx.exception.error_code)

    def test_unknown_option(self):
        with self.assertRaises(BadConfiguration) as ctx:
            Configuration(no_such_option=1)
        self.assertEqual("unknownOption", ctx.exception.error_code)

    def test_bad_log_level(self):
        self.assertRaises(BadConfiguration, Configuration, log_level="LOUD")
        self.assertEqual("debug", Configuration(log_level="debug").log_level)

    def test_as_dict(self):
        values = Configuration(metrics_backend="logstash").as_dict()
        self.assertEqual("logstash", values["metrics_backend"])
        self.assertEqual(1000, values["app_name_cache_size"])
