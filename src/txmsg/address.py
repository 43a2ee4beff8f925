from __future__ import annotations

import enum
import re

_BASE58 = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{26,35}$")
_BECH32 = re.compile(r"^(bc|tb)1[02-9ac-hj-np-z]{11,71}$")


class Network(enum.Enum):
    MAIN = "main"
    TEST = "test"

    @property
    def legacy_prefixes(self) -> str:
        return "13" if self is Network.MAIN else "mn2"

    @property
    def hrp(self) -> str:
        return "bc" if self is Network.MAIN else "tb"


def network_of(address: str) -> Network | None:
    """Guess the network an address belongs to from its leading characters."""
    if not address:
        return None
    lowered = address.lower()
    for net in Network:
        if lowered.startswith(net.hrp + "1") or address[0] in net.legacy_prefixes:
            return net
    return None


def is_valid_address(address: str, network: Network | None = None) -> bool:
    if not isinstance(address, str):
        return False
    net = network_of(address)
    if net is None or (network is not None and net is not network):
        return False
    if address.lower().startswith(net.hrp + "1"):
        # bech32 is single-case
        if address != address.lower() and address != address.upper():
            return False
        return bool(_BECH32.match(address.lower()))
    return bool(_BASE58.match(address))
