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
Placement of discovered files inside the container.
"""
import os
import posixpath
from dataclasses import dataclass
from typing import List, Optional

from ..errors import ManifestLocationError
from ..FORMAT.opcode_codec import PATH_SEPARATOR
from .installation import InstallationLayout

SOURCE_PREFIX = "src/"


@dataclass(frozen=True)
class DestinationRoot:
    """A directory on the build machine and the container prefix for files below it."""
    root: str
    prefix: str


def relative_to_root(path: str, root: str) -> Optional[str]:
    """
    Returns path relative to root with ``/`` separators, or None if path
    does not lie strictly below root.

    The check works on whole path components, so ``/opt/py`` is not a root
    of ``/opt/python/lib.py``.
    """
    path = os.path.abspath(path)
    root = os.path.abspath(root)
    base = root if root.endswith(os.sep) else root + os.sep
    if not os.path.normcase(path).startswith(os.path.normcase(base)):
        return None
    return path[len(base):].replace(os.sep, PATH_SEPARATOR)


class PathClassifier:
    """
    Maps source files to container destinations.

    Rules, in priority order:

    1. below the installation root: the root-relative path, mirroring the
       installation's own layout;
    2. below the entry script's directory: ``src/`` plus the relative path;
    3. otherwise: the site library joined with the name the file was
       referenced by, so packages from any site directory land in the
       packaged interpreter's site-packages.
    """
    def __init__(self, install_root: str, script_dir: str, site_lib: str):
        """
        :param install_root: Interpreter installation root.
        :param script_dir: Directory of the entry script.
        :param site_lib: Site library, relative to the installation root.
        """
        self.roots: List[DestinationRoot] = [
            DestinationRoot(os.path.abspath(install_root), ""),
            DestinationRoot(os.path.abspath(script_dir), SOURCE_PREFIX),
        ]
        self.site_lib = site_lib.strip(PATH_SEPARATOR)

    @classmethod
    def for_script(cls, layout: InstallationLayout, entry_script: str) -> "PathClassifier":
        script_dir = os.path.dirname(os.path.abspath(entry_script))
        return cls(layout.root, script_dir, layout.site_lib)

    def classify(self, source: str, referenced_name: Optional[str] = None) -> Optional[str]:
        """
        Computes the destination for a loaded file.

        :param source: Absolute path of the file on the build machine.
        :param referenced_name: Name the file was loaded by, relative to its
                                search path entry.
        :return: Destination path, or None when no rule applies.
        """
        for root in self.roots:
            relative = relative_to_root(source, root.root)
            if relative is not None:
                return root.prefix + relative

        if not referenced_name or os.path.isabs(referenced_name):
            return None
        referenced = posixpath.normpath(referenced_name.replace(os.sep, PATH_SEPARATOR))
        if referenced == ".." or referenced.startswith("../"):
            return None
        return posixpath.join(self.site_lib, referenced)

    def classify_manifest(self, path: str) -> str:
        """
        Computes the destination for a package manifest.

        Manifests only follow the installation-root rule.

        :raises ManifestLocationError: If the manifest is outside the installation.
        """
        relative = relative_to_root(path, self.roots[0].root)
        if relative is None:
            raise ManifestLocationError(
                f"{path} does not exist in the Python installation "
                f"({self.roots[0].root}). Don't know where to put it."
            )
        return relative
