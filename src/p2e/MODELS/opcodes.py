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
Models for the entries of a container's opcode stream.
"""
from enum import IntEnum
from typing import ClassVar, Union
from dataclasses import dataclass


class OpCode(IntEnum):
    """
    Tags identifying each opcode on the wire.
    """
    END = 0
    CREATE_DIRECTORY = 1
    CREATE_FILE = 2
    CREATE_PROCESS = 3
    DECOMPRESS_LZMA = 4
    SET_ENV = 5


@dataclass(frozen=True)
class End:
    """
    Terminates an opcode stream.
    """
    opcode: ClassVar[OpCode] = OpCode.END


@dataclass(frozen=True)
class CreateDirectory:
    """
    Creates a directory below the extraction root.
    """
    opcode: ClassVar[OpCode] = OpCode.CREATE_DIRECTORY

    path: str


@dataclass(frozen=True)
class CreateFile:
    """
    Writes a file below the extraction root.
    """
    opcode: ClassVar[OpCode] = OpCode.CREATE_FILE

    path: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class CreateProcess:
    """
    Launches the packaged program once extraction is complete.
    """
    opcode: ClassVar[OpCode] = OpCode.CREATE_PROCESS

    image: str
    command_line: str


@dataclass(frozen=True)
class SetEnv:
    """
    Sets an environment variable for the launched process.
    """
    opcode: ClassVar[OpCode] = OpCode.SET_ENV

    name: str
    value: str


@dataclass(frozen=True)
class DecompressLzma:
    """
    Wraps the LZMA-compressed remainder of an opcode stream.
    """
    opcode: ClassVar[OpCode] = OpCode.DECOMPRESS_LZMA

    data: bytes


OpcodeEntry = Union[End, CreateDirectory, CreateFile, CreateProcess, SetEnv, DecompressLzma]
