import sys
import textwrap
import pytest

FAKE_LZMA = textwrap.dedent("""
    import lzma
    import sys

    mode, source, target = sys.argv[1:]
    assert mode == "e"
    with open(source, "rb") as f:
        data = f.read()
    with open(target, "wb") as f:
        f.write(lzma.compress(data, format=lzma.FORMAT_ALONE))
""")

FAILING_LZMA = textwrap.dedent("""
    import sys

    with open(sys.argv[3], "wb") as f:
        f.write(b"partial")
    sys.stderr.write("out of memory\\n")
    sys.exit(1)
""")


# Never named after a module the script imports: its own directory comes
# first on sys.path.
def _write_tool(directory, name, body):
    path = directory / name
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(0o755)
    return str(path)


@pytest.fixture
def fake_lzma(tmp_path_factory):
    """An LZMA encoder script writing the LZMA-alone format; run it with sys.executable."""
    return _write_tool(tmp_path_factory.mktemp("tools"), "fake_lzma_encoder.py", FAKE_LZMA)


@pytest.fixture
def failing_lzma(tmp_path_factory):
    return _write_tool(tmp_path_factory.mktemp("tools"), "failing_lzma_encoder.py", FAILING_LZMA)
