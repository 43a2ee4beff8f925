from __future__ import annotations

from dataclasses import dataclass

from .constants import HEADER_SIZE, MAX_CHUNK_SIZE, MAX_CHUNKS, MAX_DATA_SIZE, TX_PREFIX

_HEX_DIGITS = b"0123456789abcdefABCDEF"


@dataclass(frozen=True, slots=True)
class Frame:
    total_chunks: int
    sequence: int
    payload: bytes = b""

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")

    def to_bytes(self) -> bytes:
        if not 1 <= self.total_chunks <= MAX_CHUNKS:
            raise ValueError(f"total_chunks out of range: {self.total_chunks}")
        if not 0 <= self.sequence < self.total_chunks:
            raise ValueError(f"sequence out of range: {self.sequence}/{self.total_chunks}")
        header = TX_PREFIX + b"%x%x" % (self.total_chunks, self.sequence)
        raw = header + self.payload
        if len(raw) > MAX_DATA_SIZE:
            raise ValueError(f"frame too large: {len(raw)} > {MAX_DATA_SIZE}")
        return raw

    @staticmethod
    def from_bytes(raw: bytes) -> "Frame":
        if len(raw) < HEADER_SIZE:
            raise ValueError("data too small to be a valid frame")
        if raw[: len(TX_PREFIX)] != TX_PREFIX:
            raise ValueError("missing frame prefix")

        digits = raw[len(TX_PREFIX) : HEADER_SIZE]
        if any(d not in _HEX_DIGITS for d in digits):
            raise ValueError(f"bad header digits: {digits!r}")
        total_chunks, sequence = int(digits[:1], 16), int(digits[1:], 16)
        if total_chunks == 0 or sequence >= total_chunks:
            raise ValueError(f"inconsistent header: sequence={sequence} total={total_chunks}")

        return Frame(total_chunks=total_chunks, sequence=sequence, payload=bytes(raw[HEADER_SIZE:]))


def encode(total_chunks: int, sequence: int, payload: bytes) -> bytes:
    return Frame(total_chunks, sequence, payload).to_bytes()


def decode(raw: bytes) -> Frame | None:
    """Parse a null-data payload; anything that is not a frame gives ``None``."""
    try:
        return Frame.from_bytes(raw)
    except ValueError:
        return None


def chunk_message(text: str, size: int = MAX_CHUNK_SIZE) -> list[bytes]:
    """Split ``text`` into UTF-8 pieces of at most ``size`` bytes.

    Cuts never fall inside a multi-byte character, so every chunk decodes on
    its own.
    """
    if size < 4:
        raise ValueError(f"chunk size too small: {size}")
    data = text.encode("utf-8")
    chunks = []
    start = 0
    while start < len(data):
        end = min(start + size, len(data))
        # back off continuation bytes (10xxxxxx)
        while end < len(data) and data[end] & 0xC0 == 0x80:
            end -= 1
        chunks.append(data[start:end])
        start = end
    return chunks
