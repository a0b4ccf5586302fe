import os
import struct
import sys
import lzma
import pytest
from p2e.errors import BuildError, CompressionError
from p2e.BUILDERS.compressor import ExternalCompressor
from p2e.BUILDERS.image_builder import ContainerImageBuilder
from p2e.FORMAT.container_reader import read_container
from p2e.FORMAT.opcode_codec import LAUNCH_SEPARATOR, SIGNATURE, OpcodeDecoder, encode_opcodes
from p2e.MODELS.opcodes import End, CreateDirectory, CreateFile, CreateProcess, SetEnv, DecompressLzma

STUB = b"0123456789"
LAUNCH = f"python.exe {LAUNCH_SEPARATOR}/src/app.py"


def _expected_entries(contents):
    return [
        CreateDirectory(path="lib"),
        CreateDirectory(path="lib/foo"),
        CreateFile(path="lib/foo/bar.py", data=contents),
        SetEnv(name="PYTHONPATH", value=""),
        SetEnv(name="PYTHONHOME", value=""),
        CreateProcess(image="bin/python.exe", command_line=LAUNCH),
    ]


def _build(path, source, compressor=None, quiet=True):
    with ContainerImageBuilder(str(path), STUB, compressor, quiet=quiet) as image:
        image.create_file(str(source), "lib/foo/bar.py")
        image.set_env("PYTHONPATH", "")
        image.set_env("PYTHONHOME", "")
        image.create_process("bin/python.exe", LAUNCH)
    return image


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "bar.py"
    path.write_bytes(b"x = 1\n")
    return path


def test_uncompressed_layout(tmp_path, source):
    out = tmp_path / "app.exe"
    image = _build(out, source)

    expected = (
        STUB
        + encode_opcodes(_expected_entries(b"x = 1\n") + [End(), End()])
        + struct.pack("<I", 10)
        + SIGNATURE
    )
    assert out.read_bytes() == expected
    assert image.container.payload_offset == 10
    assert image.container.size == len(expected)
    assert not image.container.compressed


def test_directories_before_files_without_duplicates(tmp_path, source):
    out = tmp_path / "app.exe"
    with ContainerImageBuilder(str(out), STUB, quiet=True) as image:
        image.create_file(str(source), "lib/foo/a.py")
        image.create_file(str(source), "lib/foo/b.py")
        image.create_file(str(source), "lib/c.py")
        image.create_file(str(source), "top.py")

    entries = read_container(str(out)).entries
    created = []
    for entry in entries:
        if isinstance(entry, CreateDirectory):
            created.append(entry.path)
        elif isinstance(entry, CreateFile) and "/" in entry.path:
            assert os.path.dirname(entry.path) in created
    assert created == ["lib", "lib/foo"]


def test_progress_output(tmp_path, source, capsys):
    _build(tmp_path / "app.exe", source, quiet=False)
    out = capsys.readouterr().out.splitlines()
    assert out == [
        "m lib",
        "m lib/foo",
        "a lib/foo/bar.py",
        "e PYTHONPATH ",
        "e PYTHONHOME ",
        "l bin/python.exe python.exe \\xff/src/app.py",
    ]


def test_compressed_wrapper(tmp_path, source, fake_lzma):
    out = tmp_path / "app.exe"
    compressor = ExternalCompressor([sys.executable, fake_lzma], work_dir=str(tmp_path))
    image = _build(out, source, compressor)
    data = out.read_bytes()

    assert data.startswith(STUB)
    assert data.endswith(struct.pack("<I", 10) + SIGNATURE)
    outer = OpcodeDecoder(data, 10).read_stream()
    assert len(outer) == 1
    assert isinstance(outer[0], DecompressLzma)

    inner = lzma.decompress(outer[0].data, format=lzma.FORMAT_ALONE)
    assert inner == encode_opcodes(_expected_entries(b"x = 1\n") + [End()])

    contents = read_container(str(out))
    assert contents.compressed
    assert contents.stub == STUB
    assert contents.entries == _expected_entries(b"x = 1\n")
    assert image.container.compressed
    assert sorted(os.listdir(tmp_path)) == ["app.exe", "bar.py"]


def test_failing_compressor_aborts(tmp_path, source, failing_lzma):
    out = tmp_path / "app.exe"
    compressor = ExternalCompressor([sys.executable, failing_lzma], work_dir=str(tmp_path))
    with pytest.raises(CompressionError) as excinfo:
        _build(out, source, compressor)
    assert "out of memory" in str(excinfo.value)
    assert sorted(os.listdir(tmp_path)) == ["bar.py"]


def test_error_in_block_removes_output(tmp_path, source):
    out = tmp_path / "app.exe"
    with pytest.raises(RuntimeError):
        with ContainerImageBuilder(str(out), STUB, quiet=True) as image:
            image.create_file(str(source), "lib/bar.py")
            raise RuntimeError("boom")
    assert not out.exists()


def test_unreadable_source(tmp_path):
    out = tmp_path / "app.exe"
    with pytest.raises(BuildError):
        with ContainerImageBuilder(str(out), STUB, quiet=True) as image:
            image.create_file(str(tmp_path / "missing.py"), "lib/missing.py")
    assert not out.exists()
