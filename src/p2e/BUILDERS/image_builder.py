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
Writer for container images: stub, opcode payload and trailer.
"""
import io
import os
import posixpath
from typing import Optional

from ..errors import BuildError
from ..FORMAT.opcode_codec import LAUNCH_SEPARATOR, encode_opcode, encode_trailer
from ..MODELS.build_config import ContainerFile
from ..MODELS.opcodes import (
    OpcodeEntry,
    End,
    CreateDirectory,
    CreateFile,
    CreateProcess,
    SetEnv,
    DecompressLzma,
)
from .compressor import ExternalCompressor
from .directory_materializer import DirectoryMaterializer


class ContainerImageBuilder:
    """
    Writes one container file. Use as a context manager::

        with ContainerImageBuilder("app.exe", stub) as image:
            image.create_file("app.py", "src/app.py")
            image.create_process("bin/python.exe", "python.exe ...")

    Opcodes go straight to the output file, or into a memory buffer when a
    compressor is given. Leaving the block normally terminates the stream,
    compresses it if needed and appends the trailer. Leaving it with an
    exception removes the partially written file.
    """
    def __init__(self,
                 path: str,
                 stub_image: bytes,
                 compressor: Optional[ExternalCompressor] = None,
                 quiet: bool = False):
        """
        Initializes the builder.

        :param path: Output container path.
        :param stub_image: Extraction stub written ahead of the payload.
        :param compressor: LZMA compressor; None writes the stream uncompressed.
        :param quiet: Suppress the per-opcode progress lines.
        """
        self.path = path
        self.stub_image = stub_image
        self.compressor = compressor
        self.quiet = quiet
        self.directories = DirectoryMaterializer(self.create_directory)
        self.container: Optional[ContainerFile] = None
        self._file = None
        self._sink = None

    def __enter__(self) -> "ContainerImageBuilder":
        self._file = open(self.path, 'wb')
        self._file.write(self.stub_image)
        self._sink = io.BytesIO() if self.compressor else self._file
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self._discard()
            return False
        try:
            self._finish()
        except BaseException:
            self._discard()
            raise
        self._file.close()
        self.container = ContainerFile(
            path=self.path,
            size=os.path.getsize(self.path),
            payload_offset=len(self.stub_image),
            compressed=self.compressor is not None,
        )
        return False

    def _say(self, message: str):
        if not self.quiet:
            print(message)

    def _write(self, entry: OpcodeEntry):
        self._sink.write(encode_opcode(entry))

    def _finish(self):
        self._write(End())
        if self.compressor:
            self._say("=== Compressing")
            compressed = self.compressor.compress(self._sink.getvalue())
            self._file.write(encode_opcode(DecompressLzma(data=compressed)))
            self._file.write(encode_opcode(End()))
        self._file.write(encode_trailer(len(self.stub_image)))

    def _discard(self):
        self._file.close()
        if os.path.exists(self.path):
            os.unlink(self.path)

    def create_directory(self, path: str):
        """Emits a CreateDirectory opcode. Prefer ensure_directory()."""
        self._say(f"m {path}")
        self._write(CreateDirectory(path=path))

    def ensure_directory(self, path: str):
        """Emits CreateDirectory opcodes for path and any missing ancestors."""
        self.directories.ensure_directory(path)

    def create_file(self, source: str, destination: str):
        """
        Copies a file from the build machine into the container.

        :param source: Path of the file to read.
        :param destination: Path inside the container.
        :raises BuildError: If the source cannot be read.
        """
        self.ensure_directory(posixpath.dirname(destination))
        try:
            with open(source, 'rb') as f:
                data = f.read()
        except OSError as e:
            raise BuildError(f"Cannot read {source}: {e}") from e
        self._say(f"a {destination}")
        self._write(CreateFile(path=destination, data=data))

    def create_process(self, image: str, command_line: str):
        """
        Emits the launch directive.

        :param image: Executable path inside the container.
        :param command_line: Command line, with LAUNCH_SEPARATOR before the
                             extraction-relative script path.
        """
        shown = command_line.replace(LAUNCH_SEPARATOR, "\\xff")
        self._say(f"l {image} {shown}")
        self._write(CreateProcess(image=image, command_line=command_line))

    def set_env(self, name: str, value: str):
        """Emits an environment assignment for the launched process."""
        self._say(f"e {name} {value}")
        self._write(SetEnv(name=name, value=value))
