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
Exceptions raised while building or reading executable containers.

Recoverable problems (a module that cannot be found or placed) are reported
as warnings by the code that meets them and never raised.
"""


class P2EError(Exception):
    """Base class for all fatal p2e errors."""


class MissingArtifactError(P2EError, FileNotFoundError):
    """A required installation artifact (stub image, compressor) is missing."""


class BuildError(P2EError, RuntimeError):
    """The container could not be built."""


class ManifestLocationError(BuildError):
    """A package manifest lies outside the interpreter installation root."""


class CompressionError(BuildError):
    """The external compressor failed."""


class DependencyResolutionError(BuildError):
    """The entry script could not be run to discover its dependencies."""


class OpcodeEncodingError(P2EError, ValueError):
    """An opcode field cannot be represented in the wire format."""


class ContainerFormatError(P2EError, ValueError):
    """A container or opcode stream is malformed."""


class ConfigError(P2EError, ValueError):
    """A build configuration file or option is invalid."""
