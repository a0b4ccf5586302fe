"""
Bookkeeping for the directories a container must create before its files.
"""
import posixpath
from typing import Callable, Set

# dirname() of a top-level destination; the stub's extraction root needs no opcode.
VIRTUAL_ROOT = ""


class DirectoryMaterializer:
    """
    Emits each destination directory once, parents before children.
    """
    def __init__(self, emit: Callable[[str], None]):
        """
        :param emit: Called with a directory path whenever a CreateDirectory
                     opcode must be written.
        """
        self.emit = emit
        self.created: Set[str] = set()

    def ensure_directory(self, path: str):
        """
        Guarantees a CreateDirectory for path and for each of its ancestors.

        :param path: Destination directory, relative to the virtual root.
        """
        if path in (VIRTUAL_ROOT, ".") or path in self.created:
            return
        self.ensure_directory(posixpath.dirname(path))
        self.created.add(path)
        self.emit(path)
