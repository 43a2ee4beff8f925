from __future__ import annotations

import itertools

import pytest

from txmsg.address import Network
from txmsg.errors import TransportError
from txmsg.ledger import MemoryLedger, Script, Transaction, TxInput, TxOutput
from txmsg.packet import encode
from txmsg.sender import SendSettings

ALICE = "mipcBbFg9gMiCh81Kj8tqqdgoZub1ZJRfn"
BOB = "n3GNqMveyvaPvUbH469vDRadqpJMPc84JA"
CAROL = "mzBc4XEFSdzCDcTxAgf6EZXgsZWpztRhef"
MAIN_ADDR = "1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2"

ALICE_KEY = "alice-key"
BOB_KEY = "bob-key"

_prev = itertools.count(1)


def frame_tx(src: str, dst: str, data: bytes) -> Transaction:
    """A signed transaction from ``src`` to ``dst`` carrying ``data`` in its null-data output."""
    prev = f"{next(_prev):064x}"
    return Transaction(
        inputs=(TxInput(prev, 0, address=src, script=Script.pay_to(src)),),
        outputs=(
            TxOutput(546, Script.pay_to(dst)),
            TxOutput(0, Script.null_data(data)),
            TxOutput(1000, Script.pay_to(src)),
        ),
    )


def chunk_tx(src: str, dst: str, total: int, seq: int, payload: bytes) -> Transaction:
    return frame_tx(src, dst, encode(total, seq, payload))


class RecordingLedger(MemoryLedger):
    """MemoryLedger that counts calls and can fail chosen operations.

    ``crash_on`` names operations that raise a plain ``RuntimeError``, the way
    a misbehaving adapter would, instead of a ``TransportError``.
    """

    def __init__(
        self,
        *args,
        fail_broadcasts: set[int] | None = None,
        fail_build: bool = False,
        fail_unspent: bool = False,
        crash_on: set[str] | None = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.calls: dict[str, int] = {}
        self.fail_broadcasts = fail_broadcasts or set()
        self.fail_build = fail_build
        self.fail_unspent = fail_unspent
        self.crash_on = crash_on or set()

    def _count(self, name: str) -> int:
        self.calls[name] = self.calls.get(name, 0) + 1
        if name in self.crash_on:
            raise RuntimeError(f"{name}: connection reset")
        return self.calls[name]

    def get_unspent(self, address):
        self._count("get_unspent")
        if self.fail_unspent:
            raise TransportError("utxo index unavailable")
        return super().get_unspent(address)

    def get_balance(self, address):
        self._count("get_balance")
        # not through self.get_unspent: balance checks are counted on their own
        return sum(u.value for u in MemoryLedger.get_unspent(self, address))

    def build_transaction(self, *args, **kwargs):
        self._count("build_transaction")
        if self.fail_build:
            raise TransportError("cannot serialize transaction")
        return super().build_transaction(*args, **kwargs)

    def sign(self, tx, credential):
        self._count("sign")
        return super().sign(tx, credential)

    def broadcast(self, tx):
        n = self._count("broadcast")
        if n in self.fail_broadcasts:
            raise TransportError(f"node refused broadcast #{n}")
        return super().broadcast(tx)

    def ledger_calls(self) -> int:
        return sum(self.calls.values())


@pytest.fixture
def ledger() -> RecordingLedger:
    lg = RecordingLedger(network=Network.TEST)
    lg.register_key(ALICE, ALICE_KEY)
    lg.register_key(BOB, BOB_KEY)
    return lg


@pytest.fixture
def fast() -> SendSettings:
    return SendSettings(retry_delay_ms=0, chunk_delay_ms=0)
