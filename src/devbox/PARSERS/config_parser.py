# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Parser for devbox.yml configuration files.
"""
import os
from typing import Any, Dict, Mapping, Optional

import yaml

from ..errors import ParameterError
from ..MODELS.provision_config import ProvisionConfig
from ..UTILS.string_interpolation import EnvironmentInterpolator

# Keys whose value may be written as a single string instead of a list
_LIST_KEYS = ("system_packages", "tools", "toolchain_installer", "default_command")


class ConfigParser:
    """
    Parser for devbox.yml files.
    """
    def __init__(self, context: Optional[Mapping[str, str]] = None):
        """
        Initializes the parser with an optional environment context for interpolation.

        :param context: Variables for ${VAR} interpolation; defaults to the process environment.
        """
        self.context = context if context is not None else dict(os.environ)

    def parse(self, config_path: str) -> ProvisionConfig:
        """
        Parses a config file from a path.

        :param config_path: Path to the config file.
        :return: Parsed configuration.
        """
        with open(config_path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> ProvisionConfig:
        """
        Parses a config file from a string.

        Placeholders are interpolated in string values after loading, so
        comments and keys are left alone.

        :param content: YAML content of the config file.
        :return: Parsed configuration; keys that are absent keep their defaults.
        :raises ParameterError: If the YAML is invalid or a value is rejected.
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ParameterError(f"Invalid YAML in configuration: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict) or not all(isinstance(k, str) for k in data):
            raise ParameterError("Configuration must be a mapping of keys to values")

        return ProvisionConfig.create(**self._normalize(self._interpolate(data)))

    def _interpolate(self, value: Any) -> Any:
        if isinstance(value, str):
            return EnvironmentInterpolator.interpolate(value, self.context)
        if isinstance(value, dict):
            return {k: self._interpolate(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._interpolate(v) for v in value]
        return value

    def _normalize(self, data: Dict[str, Any]) -> Dict[str, Any]:
        values = dict(data)
        for key in _LIST_KEYS:
            value = values.get(key)
            if isinstance(value, str):
                values[key] = value.split()
        if "base_image" in values and values["base_image"] is not None:
            values["base_image"] = str(values["base_image"])
        return values
