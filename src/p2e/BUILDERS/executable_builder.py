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
Assembly of a packaged script: interpreter, sources, dependencies and launch.
"""
import os
import re
import sys
from typing import List, Optional

from ..errors import BuildError, MissingArtifactError
from ..FORMAT.opcode_codec import LAUNCH_SEPARATOR
from ..LAYOUT.installation import InstallationLayout
from ..LAYOUT.path_classifier import PathClassifier, SOURCE_PREFIX, relative_to_root
from ..MODELS.build_config import BuildConfig, ContainerFile
from ..MODELS.dependency_set import DependencySet, PathMapping
from ..RUNNERS.dependency_resolver import DependencyResolver, make_resolver
from .compressor import ExternalCompressor
from .image_builder import ContainerImageBuilder

BIN_PREFIX = "bin/"

# Cleared so the packaged interpreter never picks up the build machine's paths.
CLEARED_ENVIRONMENT = ("PYTHONPATH", "PYTHONHOME")

SHARE_DIR = os.path.join(sys.prefix, "share", "p2e")
DEFAULT_STUB_PATH = os.path.join(SHARE_DIR, "stub.exe")
DEFAULT_COMPRESSOR_PATH = os.path.join(SHARE_DIR, "lzma.exe")


def warn(message: str):
    print(f"=== WARNING: {message}", file=sys.stderr)


def default_output_path(script: str) -> str:
    """Names the executable after the script: app.py and app.pyw give app.exe."""
    return re.sub(r"(\.pyw?)?$", ".exe", script, count=1)


def load_stub_image(path: str) -> bytes:
    """
    Reads the extraction stub.

    :raises MissingArtifactError: If the stub does not exist.
    """
    if not os.path.isfile(path):
        raise MissingArtifactError(f"Stub image not found: {path}")
    with open(path, 'rb') as f:
        return f.read()


class ExecutableBuilder:
    """
    Builds the container for one script.

    Construction performs the start-up checks (stub image, compressor), so a
    missing artifact is reported before any work is done.
    """
    def __init__(self, config: BuildConfig, layout: Optional[InstallationLayout] = None):
        """
        Initializes the builder.

        :param config: Build options; ``config.files`` must name the entry script first.
        :param layout: Interpreter installation to package; the running one by default.
        :raises BuildError: If no entry script is given.
        :raises MissingArtifactError: If the stub or the compressor is missing.
        """
        if not config.files:
            raise BuildError("No script to package")

        self.config = config
        self.layout = layout or InstallationLayout.detect()
        self.classifier = PathClassifier.for_script(self.layout, config.entry_script)
        self.output = config.output or default_output_path(config.entry_script)

        self.stub_image = load_stub_image(config.stub_path or DEFAULT_STUB_PATH)
        self.compressor = None
        if config.lzma_mode:
            work_dir = os.path.dirname(os.path.abspath(self.output))
            self.compressor = ExternalCompressor.from_path(
                config.compressor_path or DEFAULT_COMPRESSOR_PATH, work_dir=work_dir
            )

    def _say(self, message: str):
        if not self.config.quiet:
            print(message)

    @property
    def executable(self) -> str:
        return self.layout.select_executable(
            self.config.entry_script,
            force_windows=self.config.force_windows,
            force_console=self.config.force_console,
        )

    def source_mappings(self) -> List[PathMapping]:
        """
        Places the explicitly named files under ``src/``, relative to the
        entry script's directory.

        :raises BuildError: If a file lies outside that directory.
        """
        base = os.path.dirname(os.path.abspath(self.config.entry_script))
        mappings = []
        for path in self.config.files:
            relative = relative_to_root(path, base)
            if relative is None:
                raise BuildError(f"{path} is not inside the script directory {base}")
            mappings.append(PathMapping(source=path, destination=SOURCE_PREFIX + relative))
        return mappings

    def runtime_mappings(self) -> List[PathMapping]:
        """The interpreter, its shared library and any extra DLLs, under ``bin/``."""
        exe = self.executable
        mappings = [PathMapping(source=self.layout.executable_path(exe), destination=BIN_PREFIX + exe)]
        if self.layout.shared_library_path:
            mappings.append(PathMapping(
                source=self.layout.shared_library_path,
                destination=BIN_PREFIX + self.layout.shared_library,
            ))
        for dll in self.config.extra_dlls:
            mappings.append(PathMapping(source=self.layout.executable_path(dll), destination=BIN_PREFIX + dll))
        return mappings

    def manifest_mappings(self, dependencies: DependencySet) -> List[PathMapping]:
        """
        :raises ManifestLocationError: If a manifest is outside the installation.
        """
        return [
            PathMapping(source=path, destination=self.classifier.classify_manifest(path))
            for path in dependencies.manifests
        ]

    def dependency_mappings(self, dependencies: DependencySet) -> List[PathMapping]:
        """Classifies loaded files; those without a destination are reported and skipped."""
        mappings = []
        for feature in dependencies.features:
            destination = self.classifier.classify(feature.path, feature.referenced_name)
            if destination is None:
                warn(f"No destination for {feature.path}")
                continue
            mappings.append(PathMapping(source=feature.path, destination=destination))
        return mappings

    def launch_command(self) -> str:
        script = os.path.basename(self.config.entry_script)
        return f"{self.executable} {LAUNCH_SEPARATOR}/{SOURCE_PREFIX}{script}"

    def build(self, dependencies: DependencySet) -> ContainerFile:
        """
        Writes the container.

        :param dependencies: Files the script loads, from a DependencyResolver.
        :return: The finished container.
        :raises BuildError: On any fatal problem; no output file is left behind.
        """
        mappings = (
            self.source_mappings()
            + self.runtime_mappings()
            + self.manifest_mappings(dependencies)
            + self.dependency_mappings(dependencies)
        )

        self._say(f"=== Building {self.output}")
        with ContainerImageBuilder(self.output, self.stub_image, self.compressor, self.config.quiet) as image:
            for mapping in mappings:
                image.create_file(mapping.source, mapping.destination)
            for name in CLEARED_ENVIRONMENT:
                image.set_env(name, "")
            image.create_process(BIN_PREFIX + self.executable, self.launch_command())

        container = image.container
        self._say(f"=== Finished (Final size was {container.size})")
        return container


def build_executable(config: BuildConfig,
                     layout: Optional[InstallationLayout] = None,
                     resolver: Optional[DependencyResolver] = None) -> ContainerFile:
    """
    Discovers the dependencies of the entry script and packages it.

    :param config: Build options.
    :param layout: Interpreter installation; the running one by default.
    :param resolver: Dependency discovery strategy; chosen from the config by default.
    :return: The finished container.
    """
    builder = ExecutableBuilder(config, layout)
    if resolver is None:
        resolver = make_resolver(
            config.resolver,
            load_lazy=config.load_lazy,
            include_manifests=config.include_manifests,
            quiet=config.quiet,
        )
    dependencies = resolver.resolve(config.entry_script)
    return builder.build(dependencies)
