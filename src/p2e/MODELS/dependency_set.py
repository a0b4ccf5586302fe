"""
Models describing the files a script loads and where they go in a container.
"""
from typing import List
from pydantic import BaseModel


class LoadedFeature(BaseModel):
    """
    A file the script loaded, as it was referenced and where it was found.

    ``referenced_name`` is relative to the search path entry the module was
    imported from (``json/decoder.py``), or absolute when the module was not
    loaded through the search path.
    """
    referenced_name: str
    path: str


class DependencySet(BaseModel):
    """
    The located dependency closure of one script, in load order.
    """
    features: List[LoadedFeature] = []
    manifests: List[str] = []


class PathMapping(BaseModel):
    """
    Maps a source file on the build machine to its destination in the container.
    """
    source: str
    destination: str
