import struct
from collections.abc import Iterator

CHUNK_SIZE = 16
DATA_FIELD_WIDTH = 36

# Everything outside of printable ASCII (0x20-0x7e) is shown as ".".
_text_trans = bytes(c if 0x20 <= c < 0x7F else ord(".") for c in range(256))


def always_str(str_or_bytes: None | str | bytes, *decode_args) -> None | str:
    if str_or_bytes is None or isinstance(str_or_bytes, str):
        return str_or_bytes
    elif isinstance(str_or_bytes, bytes):
        return str_or_bytes.decode(*decode_args)
    else:
        raise TypeError(
            f"Expected str or bytes, but got {type(str_or_bytes).__name__}."
        )


def _data_field(chunk: bytes) -> str:
    words = len(chunk) // 4
    field = "".join(f"{w:08x} " for w in struct.unpack(f">{words}I", chunk[: words * 4]))
    return field + chunk[words * 4 :].hex()


def _text_field(chunk: bytes) -> str:
    return chunk.translate(_text_trans).decode("ascii")


def _line(offset: int, chunk: bytes) -> str:
    data = _data_field(chunk)[:DATA_FIELD_WIDTH]
    return f"{offset:08x}  {data:<{DATA_FIELD_WIDTH}}  {_text_field(chunk)}"


def hexdump(s: bytes) -> Iterator[str]:
    """
    Render bytes as hexdump lines: offset, big-endian 32 bit words and
    the printable text of every 16 byte chunk.

    A run of chunks identical to the one just printed is collapsed into a
    single "<offset>  ..." line. If the run extends to the end of the
    input, the last chunk is printed once more so the dump always shows
    where the data ends.

    Returns:
        A generator of lines, without trailing newlines.
    """
    offset = 0
    end = len(s)
    while offset < end:
        chunk = s[offset : offset + CHUNK_SIZE]
        line = _line(offset, chunk)
        yield line
        offset += CHUNK_SIZE

        if len(chunk) < CHUNK_SIZE:
            continue
        repeated = 0
        while s.startswith(chunk, offset + repeated * CHUNK_SIZE):
            repeated += 1
        if repeated:
            yield f"{offset:08x}  ..."
            offset += repeated * CHUNK_SIZE
            if offset == end:
                yield _line(offset - CHUNK_SIZE, chunk)
