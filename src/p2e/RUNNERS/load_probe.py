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
Runs a script and reports every file it loaded.

This file is executed as a standalone program in a fresh interpreter:

    python load_probe.py [--no-lazy] [--no-manifests] REPORT SCRIPT

It imports nothing beyond what the interpreter loads at start-up until the
loaded modules are captured, so its own needs never reach the report. The
report is a JSON object with ``features`` (referenced file names in load
order), ``search_paths`` and ``manifests``.
"""
import os
import sys

ModuleType = type(sys)


def _lazy_module_type():
    # Modules created by importlib.util.LazyLoader carry this class until first
    # use. None can exist before something imports importlib.util.
    util = sys.modules.get("importlib.util")
    return getattr(util, "_LazyModule", ()) if util is not None else ()


USAGE = "usage: load_probe.py [--no-lazy] [--no-manifests] REPORT SCRIPT"


def warn(message):
    print(f"=== WARNING: {message}", file=sys.stderr)


def _namespace(module):
    # object.__getattribute__ reads the dict without triggering a lazy load.
    return object.__getattribute__(module, "__dict__")


def _force_module(name, module, lazy_type, report):
    """Resolves the deferred bindings of one module."""
    if isinstance(module, lazy_type):
        try:
            getattr(module, "__dict__")
        except ImportError as e:
            report(f"{name} was not loadable ({e})")
            return

    namespace = _namespace(module)
    exports = namespace.get("__all__")
    if not callable(namespace.get("__getattr__")) or not exports:
        return

    # PEP 562: names in __all__ that only the module __getattr__ can produce.
    for export in list(exports):
        if not isinstance(export, str) or export in namespace:
            continue
        try:
            getattr(module, export)
        except (ImportError, AttributeError):
            report(f"{name}.{export} was not loadable")


def force_lazy_bindings(modules=None, report=warn):
    """
    Loads everything that was set up to load on first use.

    Resolving one binding can import further modules, which may carry
    deferred bindings of their own, so passes repeat until one finds no
    module it has not checked yet.

    :param modules: Module table to walk, sys.modules by default.
    :param report: Called with a message for each binding that fails to load.
    :return: Number of modules checked.
    """
    if modules is None:
        modules = sys.modules

    checked = set()
    while True:
        pending = [(name, module) for name, module in list(modules.items()) if name not in checked]
        lazy_type = _lazy_module_type()
        if not pending:
            return len(checked)
        for name, module in pending:
            checked.add(name)
            if isinstance(module, ModuleType):
                _force_module(name, module, lazy_type, report)


def referenced_name(name, filename, is_package):
    """
    Reconstructs the search-path-relative name a module file was loaded by.

    ``json.decoder`` from ``/usr/lib/python3.12/json/decoder.py`` gives
    ``json/decoder.py``. Files that were not loaded through the search path
    (their location does not match the module name) keep their absolute path.
    """
    parts = name.split(".")
    basename = os.path.basename(filename)
    if is_package:
        parts.append(basename)
    else:
        parts[-1] = basename
    relative = "/".join(parts)

    if filename.replace(os.sep, "/").endswith("/" + relative):
        return relative
    return os.path.abspath(filename)


def loaded_features(modules=None):
    """
    Lists the files behind the loaded modules, in load order, without duplicates.

    :param modules: Module table, sys.modules by default.
    :return: Referenced file names.
    """
    if modules is None:
        modules = sys.modules

    features = []
    seen = set()
    for name, module in list(modules.items()):
        if name == "__main__" or not isinstance(module, ModuleType):
            continue
        namespace = _namespace(module)
        filename = namespace.get("__file__")
        if not filename:
            continue
        feature = referenced_name(name, filename, "__path__" in namespace)
        if feature not in seen:
            seen.add(feature)
            features.append(feature)
    return features


def manifest_files(top_level_names):
    """
    Lists the dist-info files of the distributions providing the given
    top-level modules.
    """
    import importlib.metadata

    providers = importlib.metadata.packages_distributions()
    distributions = []
    for top_level in top_level_names:
        for dist_name in providers.get(top_level, []):
            if dist_name not in distributions:
                distributions.append(dist_name)

    files = []
    for dist_name in distributions:
        try:
            dist = importlib.metadata.distribution(dist_name)
        except importlib.metadata.PackageNotFoundError:
            continue
        metadata_dir = _metadata_dir(dist)
        if metadata_dir is None:
            continue
        for dirpath, dirnames, filenames in os.walk(metadata_dir):
            dirnames.sort()
            for filename in sorted(filenames):
                path = os.path.join(dirpath, filename)
                if path not in files:
                    files.append(path)
    return files


def _metadata_dir(dist):
    for entry in dist.files or []:
        if entry.name == "METADATA" and entry.parent.name.endswith(".dist-info"):
            return os.path.dirname(os.path.abspath(str(dist.locate_file(entry))))
    return None


def run_script(path):
    """
    Runs a script as ``__main__``, the way ``python SCRIPT`` does.

    SystemExit ends the script normally; any other exception propagates.
    """
    with open(path, "rb") as f:
        code = compile(f.read(), path, "exec")

    module = ModuleType("__main__")
    module.__file__ = path
    module.__builtins__ = sys.modules["builtins"]

    previous = sys.modules.get("__main__")
    sys.modules["__main__"] = module
    try:
        exec(code, module.__dict__)
    except SystemExit:
        pass
    finally:
        if previous is None:
            sys.modules.pop("__main__", None)
        else:
            sys.modules["__main__"] = previous


def script_top_levels(modules, preloaded):
    """Top-level names of the modules loaded after the ``preloaded`` snapshot."""
    return sorted({name.split(".")[0] for name in modules if name not in preloaded})


def main(argv=None):
    args = list(sys.argv[1:] if argv is None else argv)
    flags = set()
    while args and args[0] in ("--no-lazy", "--no-manifests"):
        flags.add(args.pop(0))
    if len(args) != 2:
        print(USAGE, file=sys.stderr)
        return 2

    report_path, script = args
    script = os.path.abspath(script)

    # Same view of the world as "python SCRIPT": the script directory
    # replaces this file's directory at the front of sys.path.
    sys.argv = [script]
    sys.path[0] = os.path.dirname(script)

    # Start-up modules (site, .pth imports) are packed but their
    # distributions' metadata is not.
    preloaded = set(sys.modules)
    run_script(script)

    if "--no-lazy" not in flags:
        force_lazy_bindings()

    modules = dict(sys.modules)
    features = loaded_features(modules)
    search_paths = list(sys.path)

    manifests = []
    if "--no-manifests" not in flags:
        manifests = manifest_files(script_top_levels(modules, preloaded))

    import json

    with open(report_path, "w", encoding="utf-8") as f:
        json.dump({
            "features": features,
            "search_paths": search_paths,
            "manifests": manifests,
        }, f)
    return 0


if __name__ == "__main__":
    sys.exit(main())
