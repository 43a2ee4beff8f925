"""Text messages carried in ledger null-data outputs.

A message is cut into chunks of at most 72 bytes; each chunk travels as one
``TM<total><seq><payload>`` frame in the data output of its own transaction.
Receivers rebuild messages by scanning an address's history:
- packet framing is kept apart from the send state machine
- chunks are sent strictly one after another, each funded by the change of
  the previous one
- reassembly is keyed by sequence number, so ledger ordering does not matter
"""

from .classifier import classify, decode_frame, extract_endpoints, is_protocol_transaction
from .errors import (
    CapacityError,
    InsufficientFundsError,
    SendCancelled,
    TransportError,
    TxMsgError,
    ValidationError,
)
from .receiver import AssembledMessage, receive
from .sender import MessageSender, SendSettings, send
from .status import StatusView, status

__version__ = "0.1.0"

__all__ = [
    "AssembledMessage",
    "CapacityError",
    "InsufficientFundsError",
    "MessageSender",
    "SendCancelled",
    "SendSettings",
    "StatusView",
    "TransportError",
    "TxMsgError",
    "ValidationError",
    "classify",
    "decode_frame",
    "extract_endpoints",
    "is_protocol_transaction",
    "receive",
    "send",
    "status",
]
