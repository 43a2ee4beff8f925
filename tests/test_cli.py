from __future__ import annotations

import json

import pytest
from conftest import ALICE, BOB

from txmsg.cli import main


@pytest.fixture
def common(tmp_path):
    return ["--ledger-file", str(tmp_path / "ledger.json"), "--nodes-dir", str(tmp_path / "nodes"), "--json"]


def out_json(capsys):
    return json.loads(capsys.readouterr().out)


def test_send_and_read_back(common, capsys):
    assert main(["nodes", "add", ALICE, "--key", "ka", *common]) == 0
    assert out_json(capsys) == {"id": "N1", "address": ALICE}
    assert main(["nodes", "add", BOB, *common]) == 0
    capsys.readouterr()

    assert main(["fund", "N1", "20000", "--key", "ka", *common]) == 0
    assert out_json(capsys)["balance"] == 20000

    fast = ["--chunk-delay-ms", "0", "--retry-delay-ms", "0"]
    assert main(["send", "--from", "N1", "--to", "N2", *fast, *common, "hello world"]) == 0
    (txid,) = out_json(capsys)["txs"]

    assert main(["inbox", "N2", *common]) == 0
    assert out_json(capsys) == [{"src": ALICE, "dst": BOB, "data": "hello world", "txs": [txid]}]

    assert main(["decode", txid, *common]) == 0
    decoded = out_json(capsys)
    assert decoded["frame"] == {"sequence": 0, "total_chunks": 1, "payload": "hello world"}
    assert (decoded["src"], decoded["dst"]) == (ALICE, BOB)

    assert main(["status", "N1", *common]) == 0
    assert out_json(capsys)["messages"]["outbox"] == [{"msg": "hello world", "dst": BOB}]


def test_errors_exit_nonzero(common, capsys):
    main(["nodes", "add", ALICE, *common])
    main(["fund", ALICE, "20000", "--key", "ka", *common])
    capsys.readouterr()
    assert main(["send", "--from", ALICE, "--to", "nobody", "--key", "ka", *common, "hi"]) == 1
    assert main(["send", "--from", ALICE, "--to", BOB, "--key", "wrong", *common, "hi"]) == 1
    assert main(["send", "--from", ALICE, "--to", BOB, *common, "hi"]) == 1
    assert main(["decode", "ff" * 32, *common]) == 1
    assert main(["nodes", "remove", "--id", "N5", *common]) == 1


def test_bench(capsys):
    assert main(["bench", "--size-bytes", "200", "--json"]) == 0
    r = out_json(capsys)
    assert r["role"] == "bench"
    assert r["chunks"] == 3 and r["broadcasts"] == 3 and r["retries"] == 0


@pytest.mark.parametrize("amount", ["0", "-5"])
def test_fund_rejects_non_positive_amount(common, capsys, amount):
    assert main(["fund", ALICE, amount, *common]) == 1
    assert capsys.readouterr().out == ""
