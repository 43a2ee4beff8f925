from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field

from .address import is_valid_address, network_of
from .constants import (
    CHUNK_DELAY_MS,
    DEFAULT_FEE,
    DUST_AMOUNT,
    MAX_CHUNK_SIZE,
    MAX_CHUNKS,
    MAX_SEND_RETRY,
    RETRY_DELAY_MS,
)
from .errors import (
    CapacityError,
    InsufficientFundsError,
    SendCancelled,
    TransportError,
    TxMsgError,
    ValidationError,
)
from .ledger import Ledger, Transaction, Utxo
from .packet import chunk_message, encode

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SendSettings:
    amount: int = DUST_AMOUNT
    fee: int = DEFAULT_FEE
    max_retries: int = MAX_SEND_RETRY
    retry_delay_ms: int = RETRY_DELAY_MS
    chunk_delay_ms: int = CHUNK_DELAY_MS
    chunk_size: int = MAX_CHUNK_SIZE

    @property
    def cost_per_chunk(self) -> int:
        return self.amount + self.fee


class SendState(enum.Enum):
    PENDING = "pending"
    FUNDING = "funding"
    BUILDING = "building"
    SIGNING = "signing"
    BROADCASTING = "broadcasting"
    ADVANCE = "advance"
    RETRY = "retry"
    FAILED = "failed"
    DONE = "done"
    CANCELLED = "cancelled"


FINAL_STATES = frozenset({SendState.DONE, SendState.FAILED, SendState.CANCELLED})


@dataclass(slots=True)
class Metrics:
    broadcasts: int = 0
    retries: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)


@dataclass(slots=True)
class SendJob:
    """State of one message transmission; also the handle callers cancel."""

    chunks: list[bytes]
    sequence: int = 0
    sent_txids: list[str] = field(default_factory=list)
    retries: int = 0
    state: SendState = SendState.PENDING
    metrics: Metrics = field(default_factory=Metrics)
    error: TxMsgError | None = None
    utxos: list[Utxo] = field(default_factory=list)
    tx: Transaction | None = None
    _cancel: threading.Event = field(default_factory=threading.Event)
    _done: threading.Event = field(default_factory=threading.Event)

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        self._cancel.set()

    def wait(self, delay_ms: int) -> None:
        """Block for ``delay_ms``; wakes early and raises if cancelled."""
        if self._cancel.wait(max(0, delay_ms) / 1000.0):
            raise SendCancelled(self.sent_txids)

    def result(self, timeout: float | None = None) -> list[str]:
        if not self._done.wait(timeout):
            raise TimeoutError("send job still running")
        if self.error is not None:
            raise self.error
        return list(self.sent_txids)


@dataclass(slots=True)
class MessageSender:
    ledger: Ledger
    source: str
    destination: str
    message: str
    credential: str
    settings: SendSettings = field(default_factory=SendSettings)

    def prepare(self) -> SendJob:
        """Validate, chunk and check funds; no transaction is built here."""
        network = network_of(self.source)
        if (
            network is None
            or network is not self.ledger.network
            or not is_valid_address(self.source, network)
            or not is_valid_address(self.destination, network)
        ):
            raise ValidationError(f"invalid address: {self.source} -> {self.destination}")
        if not self.message:
            raise ValidationError("empty message")
        if not 4 <= self.settings.chunk_size <= MAX_CHUNK_SIZE:
            raise ValidationError(f"chunk size must be 4..{MAX_CHUNK_SIZE} bytes, got {self.settings.chunk_size}")

        chunks = chunk_message(self.message, self.settings.chunk_size)
        if len(chunks) > MAX_CHUNKS:
            raise CapacityError(f"message needs {len(chunks)} chunks, at most {MAX_CHUNKS} allowed")

        try:
            balance = self.ledger.get_balance(self.source)
        except Exception as exc:
            raise TransportError(f"[balance] {exc}") from exc
        required = self.settings.cost_per_chunk * len(chunks)
        if balance < required:
            raise InsufficientFundsError(balance, required)

        return SendJob(chunks=chunks)

    def start(self) -> SendJob:
        """Run the job on a background thread and hand back its handle."""
        job = self.prepare()
        threading.Thread(target=self._run_captured, args=(job,), daemon=True).start()
        return job

    def _run_captured(self, job: SendJob) -> None:
        try:
            self.run(job)
        except TxMsgError:
            # kept on job.error, re-raised by job.result()
            pass

    def run(self, job: SendJob | None = None) -> list[str]:
        job = job or self.prepare()
        log.info(
            "send start; %s -> %s chunks=%d bytes=%d",
            self.source,
            self.destination,
            job.total_chunks,
            sum(len(c) for c in job.chunks),
        )
        try:
            while job.state not in FINAL_STATES:
                if job.cancelled:
                    raise SendCancelled(job.sent_txids)
                job.state = self._step(job)
        except SendCancelled as exc:
            job.state = SendState.CANCELLED
            job.error = exc
            log.info("send cancelled; sent=%d/%d", len(job.sent_txids), job.total_chunks)
            raise
        except TxMsgError as exc:
            job.state = SendState.FAILED
            job.error = exc
            log.info("send failed at seq=%d: %s", job.sequence, exc)
            raise
        except Exception as exc:
            err = TransportError(f"[{job.state.value}] {exc!r}", job.sent_txids)
            job.state = SendState.FAILED
            job.error = err
            log.info("send failed at seq=%d: %s", job.sequence, err)
            raise err from exc
        finally:
            job.metrics.end_ts = time.monotonic()
            job._done.set()

        log.info("send done; txs=%d duration=%.2fs", len(job.sent_txids), job.metrics.duration_s)
        return list(job.sent_txids)

    def _step(self, job: SendJob) -> SendState:
        state = job.state
        if state is SendState.PENDING:
            return SendState.FUNDING

        if state is SendState.FUNDING:
            job.utxos = self._ledger_call(job, "get_unspent", self.ledger.get_unspent, self.source)
            return SendState.BUILDING

        if state is SendState.BUILDING:
            data = encode(job.total_chunks, job.sequence, job.chunks[job.sequence])
            job.tx = self._ledger_call(
                job,
                "build",
                self.ledger.build_transaction,
                job.utxos,
                self.destination,
                self.settings.amount,
                self.source,
                data,
                self.settings.fee,
            )
            return SendState.SIGNING

        if state is SendState.SIGNING:
            job.tx = self._ledger_call(job, "sign", self.ledger.sign, job.tx, self.credential)
            return SendState.BROADCASTING

        if state is SendState.BROADCASTING:
            return self._broadcast(job)

        if state is SendState.RETRY:
            job.wait(self.settings.retry_delay_ms)
            return SendState.FUNDING

        if state is SendState.ADVANCE:
            if job.sequence == job.total_chunks - 1:
                return SendState.DONE
            job.wait(self.settings.chunk_delay_ms)
            job.sequence += 1
            return SendState.FUNDING

        raise RuntimeError(f"no transition from {state}")

    def _broadcast(self, job: SendJob) -> SendState:
        if job.tx is None:
            raise TransportError("[broadcast] no signed transaction", job.sent_txids)
        job.metrics.broadcasts += 1
        try:
            txid = self.ledger.broadcast(job.tx)
        except TransportError as exc:
            # one budget for the whole job
            if job.retries < self.settings.max_retries:
                job.retries += 1
                job.metrics.retries += 1
                log.debug("broadcast failed; seq=%d retry=%d: %s", job.sequence, job.retries, exc)
                return SendState.RETRY
            raise TransportError(f"[broadcast] {exc}", job.sent_txids) from exc
        except Exception as exc:
            raise TransportError(f"[broadcast] {exc!r}", job.sent_txids) from exc

        job.sent_txids.append(txid)
        log.info("chunk %d/%d sent; txid=%s", job.sequence + 1, job.total_chunks, txid)
        return SendState.ADVANCE

    @staticmethod
    def _ledger_call(job: SendJob, stage: str, fn, *args):
        try:
            return fn(*args)
        except TransportError as exc:
            raise TransportError(f"[{stage}] {exc}", job.sent_txids) from exc
        except Exception as exc:
            raise TransportError(f"[{stage}] {exc!r}", job.sent_txids) from exc


def send(
    ledger: Ledger,
    source: str,
    destination: str,
    message: str,
    credential: str,
    settings: SendSettings | None = None,
) -> list[str]:
    sender = MessageSender(ledger, source, destination, message, credential, settings or SendSettings())
    return sender.run()
