from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from .address import Network
from .bench import run_benchmark
from .classifier import decode_frame, extract_endpoints
from .constants import CHUNK_DELAY_MS, DEFAULT_FEE, DUST_AMOUNT, MAX_SEND_RETRY, RETRY_DELAY_MS
from .errors import TxMsgError, ValidationError
from .ledger import Impairment, MemoryLedger
from .receiver import receive
from .registry import NodeRegistry
from .sender import MessageSender, SendSettings
from .status import status

log = logging.getLogger(__name__)


def _emit(args: argparse.Namespace, payload: object) -> None:
    print(json.dumps(payload, indent=2) if args.json else payload)


def _open_ledger(args: argparse.Namespace) -> MemoryLedger:
    path = Path(args.ledger_file)
    impair = Impairment(failure_rate=getattr(args, "failure_rate", 0.0))
    if path.exists():
        return MemoryLedger.load(path, impairment=impair)
    return MemoryLedger(network=Network(args.network), impairment=impair)


def _resolve(registry: NodeRegistry, id_or_address: str) -> str:
    address = registry.address_of(id_or_address)
    if address is None:
        raise ValidationError(f"unknown node or invalid address: {id_or_address}")
    return address


def _settings(args: argparse.Namespace) -> SendSettings:
    return SendSettings(
        amount=args.amount,
        fee=args.fee,
        max_retries=args.max_retries,
        retry_delay_ms=args.retry_delay_ms,
        chunk_delay_ms=args.chunk_delay_ms,
    )


def cmd_send(args: argparse.Namespace) -> int:
    registry = NodeRegistry(args.nodes_dir)
    ledger = _open_ledger(args)
    src = _resolve(registry, args.src)
    dst = _resolve(registry, args.dst)

    credential = args.key
    if credential is None:
        node = registry.get(registry.node_id_for(src) or "")
        credential = node.credential if node else None
    if not credential:
        raise ValidationError(f"no signing credential for {src}")

    sender = MessageSender(ledger, src, dst, args.message, credential, _settings(args))
    try:
        txids = sender.run()
    finally:
        ledger.save(args.ledger_file)

    _emit(args, {"src": src, "dst": dst, "txs": txids})
    return 0


def cmd_inbox(args: argparse.Namespace) -> int:
    registry = NodeRegistry(args.nodes_dir)
    address = _resolve(registry, args.node)
    messages = receive(address, _open_ledger(args))
    _emit(args, [m.to_dict() for m in messages])
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    registry = NodeRegistry(args.nodes_dir)
    address = _resolve(registry, args.node)
    view = status(address, _open_ledger(args), _settings(args))
    _emit(args, view.as_dict())
    return 0


def cmd_decode(args: argparse.Namespace) -> int:
    ledger = _open_ledger(args)
    tx = ledger.get_transaction(args.txid)
    if tx is None:
        raise ValidationError(f"unknown transaction: {args.txid}")
    ends = extract_endpoints(tx, ledger.network)
    payload = {
        "txid": tx.txid,
        "confirmed": tx.confirmed,
        "src": ends.src if ends else None,
        "dst": ends.dst if ends else None,
        "frame": decode_frame(tx),
    }
    _emit(args, payload)
    return 0


def cmd_fund(args: argparse.Namespace) -> int:
    registry = NodeRegistry(args.nodes_dir)
    ledger = _open_ledger(args)
    address = _resolve(registry, args.node)
    if args.amount_sat <= 0:
        raise ValidationError(f"amount must be positive: {args.amount_sat}")
    if args.key:
        ledger.register_key(address, args.key)
    txid = ledger.fund(address, args.amount_sat)
    ledger.save(args.ledger_file)
    _emit(args, {"address": address, "txid": txid, "balance": ledger.get_balance(address)})
    return 0


def cmd_confirm(args: argparse.Namespace) -> int:
    ledger = _open_ledger(args)
    n = ledger.confirm_all()
    ledger.save(args.ledger_file)
    _emit(args, {"confirmed": n})
    return 0


def cmd_nodes(args: argparse.Namespace) -> int:
    registry = NodeRegistry(args.nodes_dir)
    if args.action == "add":
        if not args.address:
            raise ValidationError("nodes add needs an address")
        ref = registry.add(args.address, node_id=args.id, credential=args.key, temporary=args.temporary)
        _emit(args, {"id": ref.node_id, "address": args.address})
    elif args.action == "remove":
        if not args.id:
            raise ValidationError("nodes remove needs --id")
        try:
            registry.remove(args.id)
        except KeyError as exc:
            raise ValidationError(str(exc)) from exc
        _emit(args, {"removed": args.id})
    else:
        _emit(args, registry.status())
    return 0


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(
        size_bytes=args.size_bytes,
        failure_rate=args.failure_rate,
        delay_ms=args.delay_ms,
        retry_delay_ms=args.retry_delay_ms,
        chunk_delay_ms=args.chunk_delay_ms,
        max_retries=args.max_retries,
    )
    payload = {"role": "bench", **{k: getattr(r, k) for k in r.__dataclass_fields__}}
    _emit(args, payload)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="txmsg", description="Messages embedded in ledger null-data outputs.")
    p.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--ledger-file", default="txmsg-ledger.json")
        x.add_argument("--nodes-dir", default=".txmsg/nodes")
        x.add_argument("--network", choices=[n.value for n in Network], default=Network.TEST.value)
        x.add_argument("--json", action="store_true")

    def add_send_settings(x: argparse.ArgumentParser) -> None:
        x.add_argument("--amount", type=int, default=DUST_AMOUNT)
        x.add_argument("--fee", type=int, default=DEFAULT_FEE)
        x.add_argument("--max-retries", type=int, default=MAX_SEND_RETRY)
        x.add_argument("--retry-delay-ms", type=int, default=RETRY_DELAY_MS)
        x.add_argument("--chunk-delay-ms", type=int, default=CHUNK_DELAY_MS)

    send = sub.add_parser("send", help="send a message from one node to another")
    add_common(send)
    add_send_settings(send)
    send.add_argument("--from", dest="src", required=True)
    send.add_argument("--to", dest="dst", required=True)
    send.add_argument("--key", default=None, help="signing credential (defaults to the node's)")
    send.add_argument("--failure-rate", type=float, default=0.0, help="simulate broadcast rejections")
    send.add_argument("message")
    send.set_defaults(func=cmd_send)

    inbox = sub.add_parser("inbox", help="list complete messages in a node's history")
    add_common(inbox)
    inbox.add_argument("node")
    inbox.set_defaults(func=cmd_inbox)

    st = sub.add_parser("status", help="balance, inbox and outbox of a node")
    add_common(st)
    add_send_settings(st)
    st.add_argument("node")
    st.set_defaults(func=cmd_status)

    dec = sub.add_parser("decode", help="inspect one transaction")
    add_common(dec)
    dec.add_argument("txid")
    dec.set_defaults(func=cmd_decode)

    fund = sub.add_parser("fund", help="credit an address on the simulated ledger")
    add_common(fund)
    fund.add_argument("node")
    fund.add_argument("amount_sat", type=int)
    fund.add_argument("--key", default=None, help="credential that must sign spends of this address")
    fund.set_defaults(func=cmd_fund)

    confirm = sub.add_parser("confirm", help="confirm every pending transaction")
    add_common(confirm)
    confirm.set_defaults(func=cmd_confirm)

    nodes = sub.add_parser("nodes", help="manage named nodes")
    add_common(nodes)
    nodes.add_argument("action", choices=["list", "add", "remove"])
    nodes.add_argument("address", nargs="?")
    nodes.add_argument("--id", default=None)
    nodes.add_argument("--key", default=None)
    nodes.add_argument("--temporary", action="store_true")
    nodes.set_defaults(func=cmd_nodes)

    bench = sub.add_parser("bench", help="send and reassemble a message on a simulated ledger")
    bench.add_argument("--json", action="store_true")
    bench.add_argument("--size-bytes", type=int, default=500)
    bench.add_argument("--failure-rate", type=float, default=0.0)
    bench.add_argument("--delay-ms", type=int, default=0)
    bench.add_argument("--retry-delay-ms", type=int, default=0)
    bench.add_argument("--chunk-delay-ms", type=int, default=0)
    bench.add_argument("--max-retries", type=int, default=MAX_SEND_RETRY)
    bench.set_defaults(func=cmd_bench)

    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        return int(args.func(args))
    except TxMsgError as exc:
        log.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
