from __future__ import annotations

import pytest

from txmsg.constants import MAX_CHUNK_SIZE
from txmsg.packet import Frame, chunk_message, decode, encode


@pytest.mark.parametrize(
    "total,seq,payload",
    [
        (1, 0, b"hello world"),
        (15, 14, b"x" * MAX_CHUNK_SIZE),
        (10, 9, b""),
        (3, 1, "café ✓".encode("utf-8")),
    ],
)
def test_roundtrip(total, seq, payload):
    raw = encode(total, seq, payload)
    f = decode(raw)
    assert f == Frame(total, seq, payload)


def test_wire_layout():
    assert encode(12, 10, b"hi") == b"TMcahi"
    assert Frame.from_bytes(b"TMCAhi") == Frame(12, 10, b"hi")


def test_rejects_foreign_data():
    assert decode(b"XX10hello") is None
    assert decode(b"TM1") is None
    assert decode(b"TMz0abc") is None


def test_rejects_inconsistent_header():
    assert decode(b"TM00") is None
    assert decode(b"TM22oops") is None
    with pytest.raises(ValueError):
        Frame.from_bytes(b"TM22oops")


def test_encode_limits():
    with pytest.raises(ValueError):
        encode(16, 0, b"x")
    with pytest.raises(ValueError):
        encode(2, 2, b"x")
    with pytest.raises(ValueError):
        encode(1, 0, b"x" * (MAX_CHUNK_SIZE + 1))


def test_chunk_message_sizes():
    chunks = chunk_message("a" * 150)
    assert [len(c) for c in chunks] == [72, 72, 6]
    assert chunk_message("hello world") == [b"hello world"]
    assert chunk_message("") == []


def test_chunk_message_keeps_characters_whole():
    text = "é" * 50  # 100 bytes, 2 bytes per char
    chunks = chunk_message(text)
    assert all(len(c) <= MAX_CHUNK_SIZE for c in chunks)
    assert [c.decode("utf-8") for c in chunks]
    assert b"".join(chunks).decode("utf-8") == text
