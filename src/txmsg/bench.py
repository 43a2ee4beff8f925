from __future__ import annotations

from dataclasses import dataclass

from .address import Network
from .constants import MAX_CHUNK_SIZE
from .ledger import Impairment, MemoryLedger
from .receiver import receive
from .sender import MessageSender, SendSettings

BENCH_SOURCE = "mipcBbFg9gMiCh81Kj8tqqdgoZub1ZJRfn"
BENCH_DEST = "n3GNqMveyvaPvUbH469vDRadqpJMPc84JA"
BENCH_KEY = "bench-key"


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    chunks: int
    duration_s: float
    broadcasts: int
    retries: int


def run_benchmark(
    *,
    size_bytes: int,
    failure_rate: float = 0.0,
    delay_ms: int = 0,
    retry_delay_ms: int = 0,
    chunk_delay_ms: int = 0,
    max_retries: int = 3,
) -> BenchmarkResult:
    message = "A" * size_bytes
    ledger = MemoryLedger(
        network=Network.TEST,
        impairment=Impairment(failure_rate=failure_rate, delay_ms=delay_ms),
    )
    ledger.register_key(BENCH_SOURCE, BENCH_KEY)
    settings = SendSettings(
        max_retries=max_retries,
        retry_delay_ms=retry_delay_ms,
        chunk_delay_ms=chunk_delay_ms,
    )
    chunks = -(-size_bytes // MAX_CHUNK_SIZE)
    ledger.fund(BENCH_SOURCE, settings.cost_per_chunk * chunks)

    sender = MessageSender(ledger, BENCH_SOURCE, BENCH_DEST, message, BENCH_KEY, settings)
    job = sender.prepare()
    sender.run(job)

    received = receive(BENCH_DEST, ledger)
    assert len(received) == 1 and received[0].data == message

    return BenchmarkResult(
        bytes_transferred=size_bytes,
        chunks=job.total_chunks,
        duration_s=max(0.001, job.metrics.duration_s),
        broadcasts=job.metrics.broadcasts,
        retries=job.metrics.retries,
    )
