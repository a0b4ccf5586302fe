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
Reading back built containers, the way the extraction stub locates its payload.
"""
import lzma
from dataclasses import dataclass, field
from typing import List

from ..errors import ContainerFormatError
from ..MODELS.opcodes import OpcodeEntry, End, DecompressLzma
from .opcode_codec import OpcodeDecoder, SIGNATURE, TRAILER_SIZE, decode_trailer

# Upper bound for the dictionary a payload header may ask for.
LZMA_MEMLIMIT = 1 << 30


@dataclass
class ContainerContents:
    """The decoded parts of a container file."""
    stub: bytes
    payload_offset: int
    compressed: bool
    entries: List[OpcodeEntry] = field(default_factory=list)


def parse_container(data: bytes) -> ContainerContents:
    """
    Locates and decodes the opcode stream of a container.

    The trailer gives the payload offset. If the payload is a compression
    wrapper, its contents are decompressed and decoded in place of it.

    :param data: Complete container contents.
    :return: The stub bytes and the logical opcode sequence, End excluded.
    :raises ContainerFormatError: If the container is malformed.
    """
    offset, signature = decode_trailer(data)
    if signature != SIGNATURE:
        raise ContainerFormatError(f"Bad container signature {signature.hex()}")

    body = bytes(data[:-TRAILER_SIZE])
    if offset > len(body):
        raise ContainerFormatError(f"Payload offset {offset} lies beyond the end of the container")

    decoder = OpcodeDecoder(body, offset)
    entries = decoder.read_stream()

    # The trailer's End closes the container.
    if decoder.at_end or not isinstance(decoder.read_entry(), End) or not decoder.at_end:
        raise ContainerFormatError("Container payload is not followed by the trailer End")

    compressed = any(isinstance(entry, DecompressLzma) for entry in entries)
    if compressed:
        if len(entries) != 1:
            raise ContainerFormatError("A compressed payload must hold exactly one DecompressLzma entry")
        try:
            inner = lzma.decompress(entries[0].data, format=lzma.FORMAT_ALONE, memlimit=LZMA_MEMLIMIT)
        except lzma.LZMAError as e:
            raise ContainerFormatError(f"Cannot decompress payload: {e}") from e
        entries = OpcodeDecoder(inner).read_stream()

    return ContainerContents(
        stub=body[:offset],
        payload_offset=offset,
        compressed=compressed,
        entries=entries,
    )


def read_container(path: str) -> ContainerContents:
    """
    Reads and decodes a container file from disk.

    :param path: Path to the container.
    """
    with open(path, 'rb') as f:
        return parse_container(f.read())
