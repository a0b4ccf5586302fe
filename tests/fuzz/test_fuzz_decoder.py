import random
import pytest
from p2e.errors import ContainerFormatError
from p2e.FORMAT.container_reader import parse_container
from p2e.FORMAT.opcode_codec import SIGNATURE, OpcodeDecoder, encode_opcodes, encode_trailer
from p2e.MODELS.opcodes import End, CreateDirectory, CreateFile, DecompressLzma


def random_bytes(length):
    return bytes(random.randrange(256) for _ in range(length))


def random_stream(length):
    # Small tags make valid opcodes likely, so decoding gets past the first field.
    chunks = []
    while sum(len(c) for c in chunks) < length:
        chunks.append(bytes([random.randrange(7), 0, 0, 0]))
        chunks.append(random_bytes(random.randint(0, 12)))
    return b"".join(chunks)


def test_fuzz_opcode_decoder():
    for _ in range(300):
        data = random_stream(random.randint(0, 200))
        try:
            OpcodeDecoder(data).read_stream()
        except ContainerFormatError:
            pass


def test_fuzz_container_with_valid_trailer():
    for _ in range(300):
        stub = random_bytes(random.randint(0, 16))
        payload = random_stream(random.randint(0, 200))
        try:
            parse_container(stub + payload + encode_trailer(len(stub)))
        except ContainerFormatError:
            pass


def test_fuzz_container_random_bytes():
    for _ in range(300):
        data = random_bytes(random.randint(0, 64))
        with pytest.raises(ContainerFormatError):
            parse_container(data + bytes([0xFF, 0xFF, 0xFF, 0x7F]) + SIGNATURE)


def test_fuzz_compressed_payload():
    # LZMA-alone header with a 64 KiB dictionary and unknown size, then noise.
    header = bytes([0x5D]) + (1 << 16).to_bytes(4, "little") + b"\xff" * 8
    for _ in range(100):
        wrapper = encode_opcodes([DecompressLzma(data=header + random_bytes(random.randint(0, 64))), End()])
        with pytest.raises(ContainerFormatError):
            parse_container(b"STUB" + wrapper + encode_trailer(4))


def test_mutated_container():
    valid = b"STUB" + encode_opcodes([
        CreateDirectory(path="lib"),
        CreateFile(path="lib/a.py", data=b"x = 1\n"),
        End(),
    ]) + encode_trailer(4)
    assert len(parse_container(valid).entries) == 2

    for _ in range(300):
        mutated = bytearray(valid)
        for _ in range(random.randint(1, 4)):
            mutated[random.randrange(len(mutated))] = random.randrange(256)
        try:
            parse_container(bytes(mutated))
        except ContainerFormatError:
            pass
