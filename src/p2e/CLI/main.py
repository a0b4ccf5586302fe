"""
Command Line Interface for P2E.
"""
import os
import click
from click.core import ParameterSource

from .. import __version__
from ..errors import P2EError
from ..BUILDERS.executable_builder import build_executable
from ..FORMAT.container_reader import read_container
from ..FORMAT.opcode_codec import LAUNCH_SEPARATOR
from ..MODELS.opcodes import CreateDirectory, CreateFile, CreateProcess, SetEnv
from ..PARSERS.config_parser import ConfigParser

DEFAULT_CONFIG = 'p2e.yml'


@click.group()
@click.version_option(__version__, prog_name='p2e')
def cli():
    """
    P2E - Python to Executable.

    Packages a script and every module it loads into a single
    self-extracting executable.
    """


def _explicit_options(ctx, fields):
    """Collects the options given on the command line, keyed by BuildConfig field."""
    options = {}
    for param, field in fields.items():
        if ctx.get_parameter_source(param) == ParameterSource.COMMANDLINE:
            options[field] = ctx.params[param]
    return options


@cli.command()
@click.argument('script', required=False)
@click.argument('files', nargs=-1)
@click.option('--dll', 'dlls', multiple=True, help='Include an additional DLL from the interpreter directory')
@click.option('--lzma/--no-lzma', default=True, help='Compress the executable with LZMA (default on)')
@click.option('--quiet', is_flag=True, help='Suppress output')
@click.option('--windows', is_flag=True, help='Force a windowed application (pythonw.exe)')
@click.option('--console', is_flag=True, help='Force a console application (python.exe)')
@click.option('--no-lazy', is_flag=True, help="Don't load or include the script's deferred imports")
@click.option('--no-manifests', is_flag=True, help="Don't include dist-info metadata of loaded packages")
@click.option('--resolver', type=click.Choice(['trace', 'static']), default='trace',
              help='Run the script to find dependencies, or scan its imports')
@click.option('--stub', type=click.Path(dir_okay=False), help='Extraction stub image')
@click.option('--compressor', type=click.Path(dir_okay=False), help='LZMA compressor executable')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Output executable path')
@click.option('--config', '-c', default=DEFAULT_CONFIG, help='Build file path')
@click.pass_context
def build(ctx, script, files, dlls, lzma, quiet, windows, console, no_lazy, no_manifests,
          resolver, stub, compressor, output, config):
    """Package SCRIPT and FILES into an executable."""
    overrides = _explicit_options(ctx, {
        'lzma': 'lzma_mode',
        'quiet': 'quiet',
        'windows': 'force_windows',
        'console': 'force_console',
        'resolver': 'resolver',
        'stub': 'stub_path',
        'compressor': 'compressor_path',
        'output': 'output',
    })
    if script:
        overrides['files'] = [script] + list(files)
    if dlls:
        overrides['extra_dlls'] = list(dlls)
    if no_lazy:
        overrides['load_lazy'] = False
    if no_manifests:
        overrides['include_manifests'] = False

    config_path = config if os.path.exists(config) else None
    if config_path is None and ctx.get_parameter_source('config') == ParameterSource.COMMANDLINE:
        raise click.ClickException(f"{config} not found.")

    try:
        build_config = ConfigParser().load(config_path, overrides)
        build_executable(build_config)
    except P2EError as e:
        raise click.ClickException(str(e)) from e


def _describe(entry) -> str:
    if isinstance(entry, CreateDirectory):
        return f"m {entry.path}"
    if isinstance(entry, CreateFile):
        return f"a {entry.path} ({entry.size} bytes)"
    if isinstance(entry, SetEnv):
        return f"e {entry.name} {entry.value}"
    if isinstance(entry, CreateProcess):
        return f"l {entry.image} {entry.command_line.replace(LAUNCH_SEPARATOR, chr(92) + 'xff')}"
    return type(entry).__name__


@cli.command()
@click.argument('container', type=click.Path(exists=True, dir_okay=False))
def inspect(container):
    """List the contents of a built executable."""
    try:
        contents = read_container(container)
    except P2EError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Stub: {contents.payload_offset} bytes")
    click.echo(f"Payload: {'LZMA compressed' if contents.compressed else 'uncompressed'}")
    for entry in contents.entries:
        click.echo(_describe(entry))


def main():
    """
    Main entry point for the CLI.
    """
    cli()


if __name__ == '__main__':
    main()
