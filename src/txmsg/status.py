from __future__ import annotations

from dataclasses import dataclass, field

from .ledger import Ledger
from .receiver import receive
from .sender import SendSettings


@dataclass(frozen=True, slots=True)
class StatusView:
    address: str
    balance: int
    sendable: int
    inbox: list[dict] = field(default_factory=list)
    outbox: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "address": self.address,
            "balance": self.balance,
            "sendable": self.sendable,
            "messages": {"inbox": self.inbox, "outbox": self.outbox},
        }


def status(address: str, ledger: Ledger, settings: SendSettings | None = None) -> StatusView:
    """Balance plus inbox/outbox for ``address``, rebuilt from its full history."""
    settings = settings or SendSettings()
    balance = ledger.get_balance(address)

    inbox, outbox = [], []
    for msg in receive(address, ledger):
        if msg.src == address:
            outbox.append({"msg": msg.data, "dst": msg.dst})
        else:
            inbox.append({"msg": msg.data, "src": msg.src})

    return StatusView(
        address=address,
        balance=balance,
        sendable=balance // settings.cost_per_chunk,
        inbox=inbox,
        outbox=outbox,
    )
