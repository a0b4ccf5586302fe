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
Binary encoding of the opcode stream shared with the extraction stub.

Every opcode starts with a little-endian uint32 tag. String fields are
NUL-terminated, file contents and compressed payloads are prefixed with a
uint32 length. A container ends with a trailer that points back at the start
of the stream:

    [stub][opcodes...][End][uint32 payload offset][41 B6 BA 4E]
"""
import struct
from typing import Iterable, Iterator, List, Tuple

from ..errors import ContainerFormatError, OpcodeEncodingError
from ..MODELS.opcodes import (
    OpCode,
    OpcodeEntry,
    End,
    CreateDirectory,
    CreateFile,
    CreateProcess,
    SetEnv,
    DecompressLzma,
)

SIGNATURE = bytes([0x41, 0xB6, 0xBA, 0x4E])

# Destination paths inside the container always use this separator.
PATH_SEPARATOR = "/"

# The stub splits the launch command line on the raw byte 0xFF. Strings carry
# it as the surrogate escape of that byte so it survives UTF-8 encoding.
LAUNCH_SEPARATOR = "\udcff"

_UINT32 = struct.Struct("<I")
_UINT32_MAX = 0xFFFFFFFF

TRAILER_SIZE = _UINT32.size + len(SIGNATURE)


def encode_uint32(value: int) -> bytes:
    """
    Packs a little-endian uint32.

    :raises OpcodeEncodingError: If the value does not fit.
    """
    if value < 0 or value > _UINT32_MAX:
        raise OpcodeEncodingError(f"Value {value} does not fit in an unsigned 32-bit field")
    return _UINT32.pack(value)


def encode_string(value: str) -> bytes:
    """
    Encodes a NUL-terminated string field.

    :param value: The string to encode.
    :return: UTF-8 bytes followed by a NUL byte.
    :raises OpcodeEncodingError: If the string contains a NUL character or a
                                 surrogate that stands for no raw byte.
    """
    if "\0" in value:
        raise OpcodeEncodingError(f"String field {value!r} contains a NUL character")
    try:
        return value.encode("utf-8", "surrogateescape") + b"\0"
    except UnicodeEncodeError as e:
        raise OpcodeEncodingError(f"String field {value!r} cannot be encoded: {e.reason}") from e


def encode_opcode(entry: OpcodeEntry) -> bytes:
    """
    Encodes a single opcode, tag included.

    :param entry: The opcode to encode.
    :return: The wire representation.
    """
    tag = encode_uint32(entry.opcode)

    if isinstance(entry, End):
        return tag
    if isinstance(entry, CreateDirectory):
        return tag + encode_string(entry.path)
    if isinstance(entry, CreateFile):
        return tag + encode_string(entry.path) + encode_uint32(entry.size) + entry.data
    if isinstance(entry, CreateProcess):
        return tag + encode_string(entry.image) + encode_string(entry.command_line)
    if isinstance(entry, SetEnv):
        return tag + encode_string(entry.name) + encode_string(entry.value)
    if isinstance(entry, DecompressLzma):
        return tag + encode_uint32(len(entry.data)) + entry.data

    raise OpcodeEncodingError(f"Unsupported opcode entry: {type(entry).__name__}")


def encode_opcodes(entries: Iterable[OpcodeEntry]) -> bytes:
    """Encodes a sequence of opcodes back to back."""
    return b"".join(encode_opcode(entry) for entry in entries)


def encode_trailer(payload_offset: int) -> bytes:
    """
    Encodes the closing End opcode plus the fixed-size trailer.

    :param payload_offset: Byte offset of the first opcode in the container.
    """
    return encode_opcode(End()) + encode_uint32(payload_offset) + SIGNATURE


class OpcodeDecoder:
    """
    Sequential reader over an encoded opcode stream.

    The extraction stub is the production decoder; this one exists so that
    containers can be inspected and checked.
    """

    def __init__(self, data: bytes, offset: int = 0):
        """
        :param data: Buffer holding the encoded opcodes.
        :param offset: Position of the first opcode in the buffer.
        """
        self.data = data
        self.offset = offset

    @property
    def at_end(self) -> bool:
        return self.offset >= len(self.data)

    def _take(self, count: int) -> bytes:
        end = self.offset + count
        if end > len(self.data):
            raise ContainerFormatError(
                f"Truncated opcode stream: needed {count} bytes at offset {self.offset}"
            )
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def _uint32(self) -> int:
        return _UINT32.unpack(self._take(_UINT32.size))[0]

    def _string(self) -> str:
        end = self.data.find(b"\0", self.offset)
        if end < 0:
            raise ContainerFormatError(f"Unterminated string at offset {self.offset}")
        raw = self.data[self.offset:end]
        self.offset = end + 1
        return raw.decode("utf-8", "surrogateescape")

    def read_entry(self) -> OpcodeEntry:
        """
        Decodes the opcode at the current position.

        :raises ContainerFormatError: On truncated data or an unknown tag.
        """
        start = self.offset
        tag = self._uint32()

        if tag == OpCode.END:
            return End()
        if tag == OpCode.CREATE_DIRECTORY:
            return CreateDirectory(path=self._string())
        if tag == OpCode.CREATE_FILE:
            path = self._string()
            size = self._uint32()
            return CreateFile(path=path, data=self._take(size))
        if tag == OpCode.CREATE_PROCESS:
            image = self._string()
            return CreateProcess(image=image, command_line=self._string())
        if tag == OpCode.SET_ENV:
            name = self._string()
            return SetEnv(name=name, value=self._string())
        if tag == OpCode.DECOMPRESS_LZMA:
            size = self._uint32()
            return DecompressLzma(data=self._take(size))

        raise ContainerFormatError(f"Unknown opcode {tag} at offset {start}")

    def read_stream(self) -> List[OpcodeEntry]:
        """
        Reads opcodes up to and including the next End.

        :return: The opcodes read, without the closing End.
        :raises ContainerFormatError: If the data runs out before an End.
        """
        entries = []
        while True:
            if self.at_end:
                raise ContainerFormatError("Opcode stream is not terminated by End")
            entry = self.read_entry()
            if isinstance(entry, End):
                return entries
            entries.append(entry)

    def __iter__(self) -> Iterator[OpcodeEntry]:
        while not self.at_end:
            yield self.read_entry()


def decode_opcodes(data: bytes) -> List[OpcodeEntry]:
    """Decodes every opcode in the buffer, End markers included."""
    return list(OpcodeDecoder(data))


def decode_trailer(data: bytes) -> Tuple[int, bytes]:
    """
    Splits the fixed-size trailer off the end of a container.

    :param data: Complete container contents.
    :return: The payload offset and the signature bytes.
    :raises ContainerFormatError: If the container is too short.
    """
    if len(data) < TRAILER_SIZE:
        raise ContainerFormatError("Container is too small to hold a trailer")
    trailer = data[-TRAILER_SIZE:]
    offset = _UINT32.unpack(trailer[:_UINT32.size])[0]
    return offset, trailer[_UINT32.size:]
