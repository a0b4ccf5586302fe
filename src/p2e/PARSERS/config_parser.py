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
Parsers for p2e build files (p2e.yml) and environment configuration.
"""
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import ValidationError

from ..errors import ConfigError
from ..MODELS.build_config import BuildConfig

# Build file keys and the BuildConfig fields they set.
OPTION_KEYS = {
    "files": "files",
    "dlls": "extra_dlls",
    "lzma": "lzma_mode",
    "lazy": "load_lazy",
    "manifests": "include_manifests",
    "resolver": "resolver",
    "windows": "force_windows",
    "console": "force_console",
    "quiet": "quiet",
    "stub": "stub_path",
    "compressor": "compressor_path",
    "output": "output",
}

# Environment variables for the installation artifacts.
ENVIRONMENT_KEYS = {
    "P2E_STUB": "stub_path",
    "P2E_LZMA": "compressor_path",
}


class ConfigParser:
    """
    Builds a BuildConfig from a build file, the environment and explicit options.

    Precedence, lowest first: defaults, build file, environment (a ``.env``
    file in the working directory counts, below real variables), explicit
    options.
    """
    def __init__(self, environ: Optional[Dict[str, str]] = None, dotenv_path: Optional[str] = None):
        """
        :param environ: Environment to read; os.environ by default.
        :param dotenv_path: .env file to read; searched from the working directory by default.
        """
        path = dotenv_path or find_dotenv(usecwd=True)
        file_env = dotenv_values(path) if path and os.path.exists(path) else {}
        self.environ = {k: v for k, v in file_env.items() if v is not None}
        self.environ.update(os.environ if environ is None else environ)

    def parse(self, config_path: str) -> Dict[str, Any]:
        """
        Reads build options from a YAML build file.

        :param config_path: Path to the build file.
        :return: BuildConfig field values.
        """
        with open(config_path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> Dict[str, Any]:
        """
        Reads build options from YAML text.

        :param content: YAML content of the build file.
        :return: BuildConfig field values.
        :raises ConfigError: If the YAML is invalid or not a mapping.
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid build file: {e}") from e
        if not data:
            return {}
        if not isinstance(data, dict):
            raise ConfigError("Build file must contain a mapping of options")

        options = {}
        for key, value in data.items():
            if key == "script":
                continue
            field = OPTION_KEYS.get(key)
            if field is None:
                print(f"Warning: ignoring unknown build option '{key}'")
                continue
            options[field] = value

        # "script" names the entry point; any listed files follow it.
        if "script" in data:
            options["files"] = [data["script"]] + list(options.get("files") or [])
        return options

    def environment_options(self) -> Dict[str, Any]:
        return {
            field: self.environ[name]
            for name, field in ENVIRONMENT_KEYS.items()
            if self.environ.get(name)
        }

    def load(self,
             config_path: Optional[str] = None,
             overrides: Optional[Dict[str, Any]] = None) -> BuildConfig:
        """
        Merges all configuration sources.

        :param config_path: Optional build file.
        :param overrides: Explicit options; None values are ignored.
        :return: The build configuration.
        :raises ConfigError: If the merged options are invalid.
        """
        options: Dict[str, Any] = {}
        if config_path:
            options.update(self.parse(config_path))
        options.update(self.environment_options())
        for key, value in (overrides or {}).items():
            if value is not None:
                options[key] = value

        try:
            return BuildConfig(**options)
        except ValidationError as e:
            raise ConfigError(f"Invalid build options: {e}") from e
