from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .address import Network, network_of
from .classifier import classify, extract_endpoints
from .ledger import Ledger, Transaction
from .packet import Frame

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AssembledMessage:
    src: str
    dst: str
    data: str
    txs: tuple[str, ...]

    def to_dict(self) -> dict:
        return {"src": self.src, "dst": self.dst, "data": self.data, "txs": list(self.txs)}


@dataclass(slots=True)
class _Slot:
    payload: bytes
    txid: str


@dataclass(slots=True)
class ChunkBuffer:
    """Per-conversation chunk slots, filled by sequence number."""

    _slots: dict[str, list[_Slot | None]] = field(default_factory=dict)
    _endpoints: dict[str, tuple[str, str]] = field(default_factory=dict)

    def ingest(self, key: str, frame: Frame, txid: str, src: str = "", dst: str = "") -> None:
        slots = self._slots.get(key)
        if slots is not None and len(slots) != frame.total_chunks:
            log.debug("chunk count changed for %s (%d -> %d); restarting", key, len(slots), frame.total_chunks)
            slots = None
        if slots is None:
            slots = [None] * frame.total_chunks
            self._slots[key] = slots
            self._endpoints[key] = (src, dst)
        slots[frame.sequence] = _Slot(frame.payload, txid)

    def is_complete(self, key: str) -> bool:
        slots = self._slots.get(key)
        return slots is not None and all(s is not None for s in slots)

    def drain(self, key: str) -> AssembledMessage:
        if not self.is_complete(key):
            raise ValueError(f"conversation {key!r} is not complete")
        slots = self._slots.pop(key)
        src, dst = self._endpoints.pop(key)
        payload = b"".join(s.payload for s in slots)  # type: ignore[union-attr]
        return AssembledMessage(
            src=src,
            dst=dst,
            data=payload.decode("utf-8", errors="replace"),
            txs=tuple(s.txid for s in slots),  # type: ignore[union-attr]
        )

    def pending(self) -> list[str]:
        return list(self._slots)


def collect_messages(transactions: Iterable[Transaction], network: Network) -> list[AssembledMessage]:
    buf = ChunkBuffer()
    messages = []

    for tx in transactions:
        frame = classify(tx)
        if frame is None:
            continue
        ends = extract_endpoints(tx, network)
        if ends is None:
            log.debug("frame in %s without resolvable endpoints; skipped", tx.txid)
            continue

        key = ends.conversation_key
        buf.ingest(key, frame, tx.txid, ends.src, ends.dst)
        if buf.is_complete(key):
            messages.append(buf.drain(key))

    for key in buf.pending():
        log.debug("incomplete conversation %s left in buffer", key)
    return messages


@dataclass(slots=True)
class Receiver:
    ledger: Ledger
    address: str

    def run(self) -> list[AssembledMessage]:
        network = network_of(self.address)
        if network is None:
            log.debug("%s: unknown network; nothing to scan", self.address)
            return []
        history = self.ledger.get_history(self.address, include_unconfirmed=True)
        messages = collect_messages(history, network)
        log.info("%s: %d message(s) in %d transaction(s)", self.address, len(messages), len(history))
        return messages


def receive(address: str, ledger: Ledger) -> list[AssembledMessage]:
    return Receiver(ledger, address).run()
