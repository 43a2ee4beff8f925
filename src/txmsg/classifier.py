from __future__ import annotations

from dataclasses import dataclass

from .address import Network
from .ledger import Transaction
from .packet import Frame, decode


@dataclass(frozen=True, slots=True)
class Endpoints:
    src: str
    dst: str

    @property
    def conversation_key(self) -> str:
        return self.src + self.dst


def _data_output(tx: Transaction) -> bytes | None:
    if len(tx.outputs) < 2:
        return None
    script = tx.outputs[1].script
    if script is None or not script.is_data_out:
        return None
    return script.data


def classify(tx: Transaction) -> Frame | None:
    """Return the frame carried by ``tx``, or ``None`` if it carries none."""
    if not tx.inputs or tx.inputs[0].script is None:
        return None
    if not tx.outputs or tx.outputs[0].script is None:
        return None
    data = _data_output(tx)
    if data is None:
        return None
    return decode(data)


def is_protocol_transaction(tx: Transaction) -> bool:
    return classify(tx) is not None


def decode_frame(tx: Transaction) -> dict | None:
    frame = classify(tx)
    if frame is None:
        return None
    return {"sequence": frame.sequence, "total_chunks": frame.total_chunks, "payload": frame.text}


def extract_endpoints(tx: Transaction, network: Network) -> Endpoints | None:
    if not tx.inputs or not tx.outputs:
        return None
    in_script, out_script = tx.inputs[0].script, tx.outputs[0].script
    if in_script is None or out_script is None:
        return None
    src = in_script.to_address(network)
    dst = out_script.to_address(network)
    if src is None or dst is None:
        return None
    return Endpoints(src, dst)
