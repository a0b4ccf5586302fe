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
Discovery of the modules a script loads at run time.
"""
import json
import modulefinder
import os
import subprocess
import sys
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..errors import DependencyResolutionError
from ..MODELS.dependency_set import DependencySet, LoadedFeature
from . import load_probe


def warn(message: str):
    print(f"=== WARNING: {message}", file=sys.stderr)


@dataclass
class DiscoveryReport:
    """Raw discovery output: referenced names plus the path they were found on."""
    features: List[str] = field(default_factory=list)
    search_paths: List[str] = field(default_factory=list)
    manifests: List[str] = field(default_factory=list)


def locate_features(features: List[str],
                    search_paths: List[str],
                    report: Callable[[str], None] = warn) -> List[LoadedFeature]:
    """
    Finds the file behind each referenced name.

    A relative name is looked up in each search path in turn and the first
    existing file wins. Absolute names stand for themselves. Names that
    cannot be found are reported and left out.

    :param features: Referenced file names, in load order.
    :param search_paths: Directories the names are relative to.
    :param report: Called with a message for each name that cannot be found.
    :return: Located features, without duplicates.
    """
    located = []
    seen = set()
    for name in features:
        path = None
        if os.path.isabs(name):
            if os.path.isfile(name):
                path = name
        else:
            for search_path in search_paths:
                candidate = os.path.abspath(os.path.join(search_path or ".", name))
                if os.path.isfile(candidate):
                    path = candidate
                    break

        if path is None:
            report(f"Couldn't find {name}")
            continue
        if path in seen:
            continue
        seen.add(path)
        located.append(LoadedFeature(referenced_name=name, path=path))
    return located


class DependencyResolver(ABC):
    """
    Determines the full set of files a script loads when it runs.
    """
    @abstractmethod
    def discover(self, script: str) -> DiscoveryReport:
        """
        Collects the referenced names of everything the script loads.

        :param script: Path to the entry script.
        """

    def resolve(self, script: str) -> DependencySet:
        """
        Discovers and locates the dependencies of a script.

        :param script: Path to the entry script.
        :return: The located dependency set.
        """
        report = self.discover(script)
        return DependencySet(
            features=locate_features(report.features, report.search_paths),
            manifests=report.manifests,
        )


class TraceDependencyResolver(DependencyResolver):
    """
    Runs the script in a child interpreter and records what it loaded.

    Deferred imports are forced after the script returns, so modules that
    are only set up to load on first use are included too.
    """
    def __init__(self,
                 python: Optional[str] = None,
                 load_lazy: bool = True,
                 include_manifests: bool = True,
                 quiet: bool = False):
        """
        :param python: Interpreter to run the script with; the current one by default.
        :param load_lazy: Force deferred bindings before capturing.
        :param include_manifests: Report the dist-info files of loaded distributions.
        :param quiet: Suppress progress output.
        """
        self.python = python or sys.executable
        self.load_lazy = load_lazy
        self.include_manifests = include_manifests
        self.quiet = quiet

    def command(self, script: str, report_path: str) -> List[str]:
        cmd = [self.python, load_probe.__file__]
        if not self.load_lazy:
            cmd.append("--no-lazy")
        if not self.include_manifests:
            cmd.append("--no-manifests")
        return cmd + [report_path, script]

    def discover(self, script: str) -> DiscoveryReport:
        if not self.quiet:
            print("=== Loading script to check dependencies")

        fd, report_path = tempfile.mkstemp(prefix="p2e-", suffix=".json")
        os.close(fd)
        try:
            try:
                result = subprocess.run(self.command(script, report_path), shell=False)
            except OSError as e:
                raise DependencyResolutionError(f"Could not start {self.python}: {e}") from e
            if result.returncode != 0:
                raise DependencyResolutionError(
                    f"{script} failed while checking dependencies (exit status {result.returncode})"
                )
            with open(report_path, 'r', encoding="utf-8") as f:
                data = json.load(f)
        finally:
            os.unlink(report_path)

        return DiscoveryReport(
            features=data.get("features", []),
            search_paths=data.get("search_paths", []),
            manifests=data.get("manifests", []),
        )


# Imported by the interpreter before any script runs; a static walk of the
# script alone never sees them.
STARTUP_MODULES = ("site", "io", "codecs")


class StaticDependencyResolver(DependencyResolver):
    """
    Follows import statements from the script without running it.

    Imports made dynamically (importlib, __import__ with computed names) are
    not seen.
    """
    def __init__(self, search_paths: Optional[List[str]] = None, include_manifests: bool = True):
        """
        :param search_paths: Module search path after the script directory;
                             this interpreter's sys.path by default.
        :param include_manifests: Report the dist-info files of found distributions.
        """
        self.search_paths = search_paths
        self.include_manifests = include_manifests

    def discover(self, script: str) -> DiscoveryReport:
        script = os.path.abspath(script)
        search_paths = [os.path.dirname(script)]
        search_paths += self.search_paths if self.search_paths is not None else sys.path[1:]

        finder = modulefinder.ModuleFinder(path=search_paths)
        for name in STARTUP_MODULES:
            finder.import_hook(name)
        finder.import_hook("encodings", None, ["*"])
        finder.run_script(script)

        missing, _maybe = finder.any_missing_maybe()
        for name in missing:
            warn(f"{name} could not be found")

        features = []
        seen = set()
        for name, module in finder.modules.items():
            if name == "__main__" or not module.__file__:
                continue
            feature = load_probe.referenced_name(name, module.__file__, module.__path__ is not None)
            if feature not in seen:
                seen.add(feature)
                features.append(feature)

        manifests = []
        if self.include_manifests:
            manifests = load_probe.manifest_files(sorted({name.split(".")[0] for name in finder.modules}))

        return DiscoveryReport(features=features, search_paths=search_paths, manifests=manifests)


def make_resolver(kind: str,
                  load_lazy: bool = True,
                  include_manifests: bool = True,
                  quiet: bool = False) -> DependencyResolver:
    """
    Creates the resolver for a ResolverKind value.

    :raises ValueError: For an unknown kind.
    """
    if kind == "trace":
        return TraceDependencyResolver(load_lazy=load_lazy, include_manifests=include_manifests, quiet=quiet)
    if kind == "static":
        return StaticDependencyResolver(include_manifests=include_manifests)
    raise ValueError(f"Unknown dependency resolver: {kind}")
