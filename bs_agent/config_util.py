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
import re

# Prefix added to a config param name to build the name of the environment variable holding it.
ENV_PREFIX = "BS_"


def parse_array_of_strings(strlist, separators=(",",)):
    """Convert comma-separated string list into a list of strings

    Accepts the following string representations.
    ['a', 'b', 'c']
    ["a", "b", "c"]
    'a', 'b', 'c'
    "a", "b", "c"
    a, b, c

    @param strlist: list to be converted
    @param separators: list of allowed separators.  None means "split by any whitespace".
    @return: None if strlist is None, else a list of strings
    """
    if strlist is None:
        return None
    strlist = strlist.strip()
    if not strlist:
        return []

    # Remove surrounding square brackets
    if strlist[0] == "[" and strlist[-1] == "]":
        strlist = strlist[1:-1]
    if not strlist:
        return []

    split_regex = "["
    for delim in separators:
        if delim is None:
            split_regex += r"\s"
        else:
            split_regex += re.escape(delim)
    split_regex += "]+"

    elems = []
    for elem in re.split(split_regex, strlist):
        elem = elem.strip()
        if len(elem) == 0:
            continue
        if elem[0] in ("'", '"') and elem[-1] == elem[0]:
            elem = elem[1:-1]
        if len(elem) == 0:
            continue
        elems.append(elem)

    return elems


def convert_config_param(field_name, value, convert_to, is_environment_variable=False):
    """Convert a config value read as a string to `convert_to`.

    Supported target types are str, int, float, bool and list (a comma separated list of strings).

    @raise BadConfiguration: If the value cannot be converted.
    """
    kind = "environment variable" if is_environment_variable else "config param"

    if value is None:
        raise BadConfiguration(
            'Missing value for %s "%s"' % (kind, field_name), field_name, "missingValue"
        )

    if convert_to is str:
        return str(value)

    if not isinstance(value, str):
        if isinstance(value, convert_to) and not (
            convert_to is int and isinstance(value, bool)
        ):
            return value
        raise BadConfiguration(
            'Prohibited conversion of %s "%s" from %s to %s'
            % (kind, field_name, type(value), convert_to),
            field_name,
            "illegalConversion",
        )

    if convert_to is bool:
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no", ""):
            return False
        raise BadConfiguration(
            'Could not parse value %s for field "%s" as boolean' % (value, field_name),
            field_name,
            "notBoolean",
        )

    if convert_to is list:
        return parse_array_of_strings(value)

    if convert_to in (int, float):
        try:
            return convert_to(value)
        except ValueError:
            raise BadConfiguration(
                'Could not parse value %s for field "%s" as numeric type %s'
                % (value, field_name, convert_to.__name__),
                field_name,
                "notNumber",
            )

    raise BadConfiguration(
        'Type conversion for field "%s" to %s not implemented.'
        % (field_name, convert_to),
        field_name,
        "unsupportedConversion",
    )


def get_config_from_env(param_name, custom_env_name=None, convert_to=None, environ=None):
    """Returns the environment variable value for a config param.

    If a custom environment variable name is defined, use it instead of prepending 'BS_'.

    @param param_name: Config param name
    @param custom_env_name: Custom environment variable name
    @param convert_to: If not None, will convert and validate to this type.  Otherwise, will leave as string.
    @param environ: The mapping to read from.  Defaults to os.environ.
    @return: The converted environment value, or None if the variable is not set.
    @raise BadConfiguration: if the value cannot be converted to `convert_to`
    """
    if environ is None:
        environ = os.environ

    env_name = custom_env_name
    if not env_name:
        env_name = "%s%s" % (ENV_PREFIX, param_name)

    env_name = env_name.upper()
    strval = environ.get(env_name)

    if strval is None:
        strval = environ.get(env_name.lower())

    if strval is None or convert_to is None:
        return strval

    return convert_config_param(
        param_name, strval, convert_to, is_environment_variable=True
    )


class BadConfiguration(Exception):
    """Raised when bad values are supplied in the configuration."""

    def __init__(self, message, field, error_code):
        """
        @param message:  The main error message
        @param field:  If not None, the field that the error pertains to in the configuration.
        @param error_code:  The error code to include in the error message.
        """
        self.message = message
        self.field = field
        self.error_code = error_code
        if field is not None:
            Exception.__init__(
                self,
                '%s [[badField="%s" errorCode="%s"]]' % (message, field, error_code),
            )
        else:
            Exception.__init__(self, '%s [[errorCode="%s"]]' % (message, error_code))
