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
Description of the Python installation whose interpreter gets packaged.
"""
import os
import sys
import sysconfig
from typing import Optional
from pydantic import BaseModel


class InstallationLayout(BaseModel):
    """
    Where the interpreter installation keeps the pieces a container needs.

    ``site_lib`` is relative to ``root`` and uses ``/`` separators, since it
    only ever forms destination paths.
    """
    root: str
    site_lib: str
    bin_dir: str
    executable: str
    windowed_executable: str
    shared_library_path: Optional[str] = None

    @property
    def shared_library(self) -> Optional[str]:
        """File name of the shared runtime library, if the interpreter has one."""
        if self.shared_library_path is None:
            return None
        return os.path.basename(self.shared_library_path)

    def executable_path(self, name: str) -> str:
        return os.path.join(self.bin_dir, name)

    def select_executable(self,
                          script: str,
                          force_windows: bool = False,
                          force_console: bool = False) -> str:
        """
        Chooses between the console and the windowed interpreter.

        A ``.pyw`` script gets the windowed interpreter unless a console is
        forced; ``force_windows`` selects it for any script.

        :param script: Path of the entry script.
        :param force_windows: Always use the windowed interpreter.
        :param force_console: Never use the windowed interpreter for .pyw scripts.
        :return: Executable file name.
        """
        windowed = (script.endswith(".pyw") and not force_console) or force_windows
        if windowed:
            return self.windowed_executable
        return self.executable

    @classmethod
    def detect(cls) -> "InstallationLayout":
        """
        Describes the installation of the running interpreter.

        Inside a virtual environment this is the base installation, since
        that is where the interpreter and standard library live.
        """
        root = sys.base_exec_prefix
        exe_path = os.path.realpath(getattr(sys, "_base_executable", None) or sys.executable)
        bin_dir = os.path.dirname(exe_path)
        executable = os.path.basename(exe_path)

        windowed = executable
        if os.name == "nt" and os.path.exists(os.path.join(bin_dir, "pythonw.exe")):
            windowed = "pythonw.exe"

        purelib = sysconfig.get_path("purelib", vars={
            "base": root,
            "platbase": root,
            "installed_base": root,
            "installed_platbase": root,
        })
        site_lib = os.path.relpath(purelib, root).replace(os.sep, "/")

        return cls(
            root=root,
            site_lib=site_lib,
            bin_dir=bin_dir,
            executable=executable,
            windowed_executable=windowed,
            shared_library_path=_find_shared_library(bin_dir),
        )


def _find_shared_library(bin_dir: str) -> Optional[str]:
    """
    Locates the shared runtime library (pythonXY.dll, libpythonX.Y.so...).

    Looks next to the executable first, then in the configured LIBDIR.
    Returns None for statically linked interpreters.
    """
    if os.name == "nt":
        name = f"python{sys.version_info.major}{sys.version_info.minor}.dll"
    elif sysconfig.get_config_var("Py_ENABLE_SHARED"):
        name = sysconfig.get_config_var("INSTSONAME") or sysconfig.get_config_var("LDLIBRARY")
    else:
        return None

    if not name:
        return None

    for directory in (bin_dir, sysconfig.get_config_var("LIBDIR")):
        if directory:
            candidate = os.path.join(directory, name)
            if os.path.isfile(candidate):
                return candidate
    return None
