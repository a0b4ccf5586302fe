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
Models for build options and build results.
"""
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel


class ResolverKind(str, Enum):
    """
    Strategies for discovering the modules a script needs.
    """
    TRACE = "trace"
    STATIC = "static"


class BuildConfig(BaseModel):
    """
    Everything needed to package one script.

    The first entry of ``files`` is the entry script; the rest are copied
    alongside it.
    """
    files: List[str] = []
    extra_dlls: List[str] = []

    lzma_mode: bool = True
    load_lazy: bool = True
    include_manifests: bool = True
    resolver: ResolverKind = ResolverKind.TRACE

    force_windows: bool = False
    force_console: bool = False
    quiet: bool = False

    stub_path: Optional[str] = None
    compressor_path: Optional[str] = None
    output: Optional[str] = None

    @property
    def entry_script(self) -> str:
        return self.files[0]


class ContainerFile(BaseModel):
    """
    A finished container on disk.
    """
    path: str
    size: int
    payload_offset: int
    compressed: bool
