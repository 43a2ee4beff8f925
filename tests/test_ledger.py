from __future__ import annotations

import pytest
from conftest import ALICE, ALICE_KEY, BOB

from txmsg.address import Network, is_valid_address, network_of
from txmsg.errors import TransportError
from txmsg.ledger import Impairment, MemoryLedger
from txmsg.packet import encode


def test_address_networks():
    assert network_of(ALICE) is Network.TEST
    assert network_of("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2") is Network.MAIN
    assert network_of("bc1qar0srrr7xfkvy5l643lydnw9re59gtzzwf5mdq") is Network.MAIN
    assert is_valid_address("tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx", Network.TEST)
    assert not is_valid_address(ALICE, Network.MAIN)
    assert not is_valid_address("m0OIl")
    assert not is_valid_address("")


def test_spend_and_double_spend():
    ledger = MemoryLedger()
    ledger.fund(ALICE, 10_000)
    utxos = ledger.get_unspent(ALICE)
    tx = ledger.build_transaction(utxos, BOB, 546, ALICE, encode(1, 0, b"hi"), 3000)
    assert [o.value for o in tx.outputs] == [546, 0, 6454]

    signed = ledger.sign(tx, ALICE_KEY)
    txid = ledger.broadcast(signed)
    assert ledger.get_transaction(txid) == signed
    assert ledger.get_balance(ALICE) == 6454
    with pytest.raises(TransportError):
        ledger.broadcast(signed)


def test_unsigned_and_underfunded():
    ledger = MemoryLedger()
    ledger.fund(ALICE, 1000)
    utxos = ledger.get_unspent(ALICE)
    with pytest.raises(TransportError):
        ledger.build_transaction(utxos, BOB, 546, ALICE, b"TM10", 3000)
    with pytest.raises(TransportError):
        ledger.build_transaction([], BOB, 546, ALICE, b"TM10", 0)
    tx = ledger.build_transaction(utxos, BOB, 546, ALICE, b"TM10", 0)
    with pytest.raises(TransportError):
        ledger.broadcast(tx)


def test_impairment_forced_failures():
    ledger = MemoryLedger(impairment=Impairment(failures=1))
    ledger.fund(ALICE, 5000)
    tx = ledger.sign(ledger.build_transaction(ledger.get_unspent(ALICE), BOB, 546, ALICE, b"", 0), "k")
    with pytest.raises(TransportError):
        ledger.broadcast(tx)
    assert ledger.broadcast(tx) == tx.txid


def test_save_and_load(tmp_path):
    ledger = MemoryLedger()
    ledger.register_key(ALICE, ALICE_KEY)
    ledger.fund(ALICE, 10_000)
    tx = ledger.build_transaction(ledger.get_unspent(ALICE), BOB, 546, ALICE, encode(1, 0, b"saved"), 3000)
    ledger.broadcast(ledger.sign(tx, ALICE_KEY))

    path = tmp_path / "ledger.json"
    ledger.save(path)
    restored = MemoryLedger.load(path)
    assert restored.network is Network.TEST
    assert restored.get_balance(ALICE) == ledger.get_balance(ALICE)
    assert restored.get_balance(BOB) == 546
    assert [t.txid for t in restored.get_history(BOB)] == [t.txid for t in ledger.get_history(BOB)]
    assert restored.fund(BOB, 1) not in {t.txid for t in ledger.get_history(BOB)}
