from __future__ import annotations


class TxMsgError(Exception):
    pass


class ValidationError(TxMsgError):
    """Malformed address, unknown node or unusable message."""


class CapacityError(ValidationError):
    """Message needs more chunks than the frame header can address."""


class InsufficientFundsError(TxMsgError):
    def __init__(self, balance: int, required: int):
        super().__init__(f"not enough funds to send the message: balance={balance} required={required}")
        self.balance = balance
        self.required = required


class TransportError(TxMsgError):
    """A ledger call (funding, build, sign or broadcast) failed.

    ``sent_txids`` holds the chunks that made it onto the ledger before the
    failure; they are never rolled back.
    """

    def __init__(self, message: str, sent_txids: list[str] | None = None):
        super().__init__(message)
        self.sent_txids = list(sent_txids or [])


class SendCancelled(TxMsgError):
    def __init__(self, sent_txids: list[str]):
        super().__init__(f"send cancelled after {len(sent_txids)} chunk(s)")
        self.sent_txids = list(sent_txids)
