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
Compression of the opcode stream with an external LZMA encoder.
"""
import os
import subprocess
import uuid
from typing import List, Optional

from ..errors import CompressionError, MissingArtifactError


class ExternalCompressor:
    """
    Runs an LZMA encoder executable as ``<command> e <input> <output>``.

    The encoder must produce the LZMA-alone format the extraction stub reads.
    """
    def __init__(self, command: List[str], work_dir: Optional[str] = None):
        """
        Initializes the compressor.

        Args:
            command: The encoder executable, optionally preceded by an
                interpreter (e.g. ``[sys.executable, "lzma.py"]``).
            work_dir: Directory for the temporary input/output files.
                Defaults to the current directory.
        """
        self.command = list(command)
        self.work_dir = work_dir or "."

    @classmethod
    def from_path(cls, path: str, work_dir: Optional[str] = None) -> "ExternalCompressor":
        """
        Creates a compressor for an encoder executable, checking it exists.

        Raises:
            MissingArtifactError: If the executable is not there.
        """
        if not os.path.isfile(path):
            raise MissingArtifactError(f"LZMA compressor not found: {path}")
        return cls([path], work_dir=work_dir)

    def compress(self, data: bytes) -> bytes:
        """
        Compresses a buffer through the external encoder.

        The two temporary files are named per call and removed whether or
        not the encoder succeeds.

        Args:
            data: The uncompressed bytes.

        Returns:
            The compressed bytes.

        Raises:
            CompressionError: If the encoder cannot be run or exits non-zero.
        """
        token = uuid.uuid4().hex
        input_path = os.path.join(self.work_dir, f"p2e-{token}.in")
        output_path = os.path.join(self.work_dir, f"p2e-{token}.out")

        try:
            with open(input_path, 'wb') as f:
                f.write(data)

            try:
                result = subprocess.run(
                    self.command + ["e", input_path, output_path],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    shell=False,
                )
            except OSError as e:
                raise CompressionError(f"Could not run compressor {self.command[0]}: {e}") from e

            if result.returncode != 0:
                detail = result.stderr.decode(errors="replace").strip()
                message = f"Compressor exited with status {result.returncode}"
                if detail:
                    message += f": {detail}"
                raise CompressionError(message)

            if not os.path.exists(output_path):
                raise CompressionError(f"Compressor did not produce {output_path}")

            with open(output_path, 'rb') as f:
                return f.read()
        finally:
            for path in (input_path, output_path):
                if os.path.exists(path):
                    os.unlink(path)
