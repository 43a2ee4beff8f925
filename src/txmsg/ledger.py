from __future__ import annotations

import hashlib
import json
import logging
import random
import threading
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

from .address import Network, network_of
from .constants import NULLDATA, PUBKEYHASH
from .errors import TransportError

log = logging.getLogger(__name__)

COINBASE_TXID = "0" * 64


@dataclass(frozen=True, slots=True)
class Script:
    kind: str
    address: str | None = None
    data: bytes = b""

    @property
    def is_data_out(self) -> bool:
        return self.kind == NULLDATA

    def to_address(self, network: Network) -> str | None:
        if self.kind != PUBKEYHASH or not self.address:
            return None
        if network_of(self.address) is not network:
            return None
        return self.address

    @staticmethod
    def pay_to(address: str) -> "Script":
        return Script(kind=PUBKEYHASH, address=address)

    @staticmethod
    def null_data(data: bytes) -> "Script":
        return Script(kind=NULLDATA, data=data)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "address": self.address, "data": self.data.hex()}

    @staticmethod
    def from_dict(d: dict) -> "Script":
        return Script(kind=d["kind"], address=d.get("address"), data=bytes.fromhex(d.get("data", "")))


@dataclass(frozen=True, slots=True)
class TxInput:
    prev_txid: str
    prev_index: int
    address: str | None = None
    script: Script | None = None


@dataclass(frozen=True, slots=True)
class TxOutput:
    value: int
    script: Script | None


@dataclass(frozen=True, slots=True)
class Utxo:
    txid: str
    index: int
    address: str
    value: int


@dataclass(frozen=True, slots=True)
class Transaction:
    inputs: tuple[TxInput, ...]
    outputs: tuple[TxOutput, ...]
    confirmed: bool = False

    @property
    def txid(self) -> str:
        body = json.dumps(
            {
                "in": [[i.prev_txid, i.prev_index, i.address] for i in self.inputs],
                "out": [[o.value, o.script.to_dict() if o.script else None] for o in self.outputs],
            },
            separators=(",", ":"),
            sort_keys=True,
        ).encode("utf-8")
        return hashlib.sha256(hashlib.sha256(body).digest()).hexdigest()

    @property
    def signed(self) -> bool:
        return all(i.script is not None for i in self.inputs)

    def to_dict(self) -> dict:
        return {
            "inputs": [
                {
                    "prev_txid": i.prev_txid,
                    "prev_index": i.prev_index,
                    "address": i.address,
                    "script": i.script.to_dict() if i.script else None,
                }
                for i in self.inputs
            ],
            "outputs": [
                {"value": o.value, "script": o.script.to_dict() if o.script else None} for o in self.outputs
            ],
            "confirmed": self.confirmed,
        }

    @staticmethod
    def from_dict(d: dict) -> "Transaction":
        inputs = tuple(
            TxInput(
                prev_txid=i["prev_txid"],
                prev_index=i["prev_index"],
                address=i.get("address"),
                script=Script.from_dict(i["script"]) if i.get("script") else None,
            )
            for i in d["inputs"]
        )
        outputs = tuple(
            TxOutput(value=o["value"], script=Script.from_dict(o["script"]) if o.get("script") else None)
            for o in d["outputs"]
        )
        return Transaction(inputs=inputs, outputs=outputs, confirmed=d.get("confirmed", False))


class Ledger(Protocol):
    network: Network

    def get_unspent(self, address: str) -> list[Utxo]: ...

    def get_balance(self, address: str) -> int: ...

    def build_transaction(
        self,
        utxos: list[Utxo],
        destination: str,
        amount: int,
        change_address: str,
        data: bytes,
        fee: int,
    ) -> Transaction: ...

    def sign(self, tx: Transaction, credential: str) -> Transaction: ...

    def broadcast(self, tx: Transaction) -> str: ...

    def get_history(self, address: str, include_unconfirmed: bool = True) -> list[Transaction]: ...


@dataclass(slots=True)
class Impairment:
    """Broadcast failure and latency injection for the simulated ledger.

    ``failures`` rejects that many broadcasts outright before ``failure_rate``
    is consulted.
    """

    failure_rate: float = 0.0
    delay_ms: int = 0
    failures: int = 0

    def should_fail(self) -> bool:
        if self.failures > 0:
            self.failures -= 1
            return True
        return self.failure_rate > 0 and random.random() < self.failure_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


@dataclass
class MemoryLedger:
    """In-process ledger: UTXO set, mempool and history for one network."""

    network: Network = Network.TEST
    impairment: Impairment = field(default_factory=Impairment)
    keys: dict[str, str] = field(default_factory=dict)
    _txs: dict[str, Transaction] = field(default_factory=dict)
    _utxos: dict[tuple[str, int], Utxo] = field(default_factory=dict)
    _height: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def register_key(self, address: str, credential: str) -> None:
        self.keys[address] = credential

    def fund(self, address: str, amount: int) -> str:
        """Credit ``address`` with a confirmed, input-less transaction."""
        if amount <= 0:
            raise ValueError(f"amount must be positive: {amount}")
        with self._lock:
            self._height += 1
            tx = Transaction(
                inputs=(TxInput(COINBASE_TXID, self._height),),
                outputs=(TxOutput(amount, Script.pay_to(address)),),
                confirmed=True,
            )
            self._accept(tx)
        log.debug("funded %s with %d", address, amount)
        return tx.txid

    def get_unspent(self, address: str) -> list[Utxo]:
        with self._lock:
            return [u for u in self._utxos.values() if u.address == address]

    def get_balance(self, address: str) -> int:
        return sum(u.value for u in self.get_unspent(address))

    def build_transaction(
        self,
        utxos: list[Utxo],
        destination: str,
        amount: int,
        change_address: str,
        data: bytes,
        fee: int,
    ) -> Transaction:
        if not utxos:
            raise TransportError("no spendable outputs to fund the transaction")
        total = sum(u.value for u in utxos)
        change = total - amount - fee
        if change < 0:
            raise TransportError(f"inputs too small: have {total}, need {amount + fee}")

        outputs = [TxOutput(amount, Script.pay_to(destination)), TxOutput(0, Script.null_data(data))]
        if change > 0:
            outputs.append(TxOutput(change, Script.pay_to(change_address)))
        inputs = tuple(TxInput(u.txid, u.index, address=u.address) for u in utxos)
        return Transaction(inputs=inputs, outputs=tuple(outputs))

    def sign(self, tx: Transaction, credential: str) -> Transaction:
        if not credential:
            raise TransportError("missing signing credential")
        signed = []
        for txin in tx.inputs:
            owner = self.keys.get(txin.address or "")
            if owner is not None and owner != credential:
                raise TransportError(f"credential does not unlock input {txin.prev_txid}:{txin.prev_index}")
            signed.append(replace(txin, script=Script.pay_to(txin.address) if txin.address else None))
        return replace(tx, inputs=tuple(signed))

    def broadcast(self, tx: Transaction) -> str:
        self.impairment.sleep_if_needed()
        if self.impairment.should_fail():
            raise TransportError("broadcast rejected by node")
        if not tx.signed:
            raise TransportError("transaction is not signed")
        with self._lock:
            for txin in tx.inputs:
                if (txin.prev_txid, txin.prev_index) not in self._utxos:
                    raise TransportError(f"input {txin.prev_txid}:{txin.prev_index} is not spendable")
            for txin in tx.inputs:
                del self._utxos[(txin.prev_txid, txin.prev_index)]
            self._accept(tx)
        return tx.txid

    def get_history(self, address: str, include_unconfirmed: bool = True) -> list[Transaction]:
        with self._lock:
            txs = list(self._txs.values())
        return [
            tx
            for tx in txs
            if (include_unconfirmed or tx.confirmed) and _touches(tx, address)
        ]

    def get_transaction(self, txid: str) -> Transaction | None:
        with self._lock:
            return self._txs.get(txid)

    def confirm_all(self) -> int:
        with self._lock:
            pending = [txid for txid, tx in self._txs.items() if not tx.confirmed]
            for txid in pending:
                self._txs[txid] = replace(self._txs[txid], confirmed=True)
        return len(pending)

    def _accept(self, tx: Transaction) -> None:
        txid = tx.txid
        self._txs[txid] = tx
        for index, out in enumerate(tx.outputs):
            if out.script is not None and out.script.kind == PUBKEYHASH and out.value > 0:
                self._utxos[(txid, index)] = Utxo(txid, index, out.script.address or "", out.value)

    def save(self, path: str | Path) -> None:
        with self._lock:
            state = {
                "network": self.network.value,
                "height": self._height,
                "keys": self.keys,
                "transactions": [tx.to_dict() for tx in self._txs.values()],
                "spent": sorted(
                    [txin.prev_txid, txin.prev_index]
                    for tx in self._txs.values()
                    for txin in tx.inputs
                    if txin.prev_txid != COINBASE_TXID
                ),
            }
        Path(path).write_text(json.dumps(state, indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: str | Path, impairment: Impairment | None = None) -> "MemoryLedger":
        state = json.loads(Path(path).read_text(encoding="utf-8"))
        ledger = cls(network=Network(state["network"]), impairment=impairment or Impairment())
        ledger.keys = dict(state.get("keys", {}))
        ledger._height = state.get("height", 0)
        for d in state["transactions"]:
            ledger._accept(Transaction.from_dict(d))
        for txid, index in state.get("spent", []):
            ledger._utxos.pop((txid, index), None)
        return ledger


def _touches(tx: Transaction, address: str) -> bool:
    if any(txin.address == address for txin in tx.inputs):
        return True
    return any(out.script is not None and out.script.address == address for out in tx.outputs)
