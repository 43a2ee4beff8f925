"""Named nodes (endpoints) kept as JSON files in a directory.

Each node gets an id (``N1``, ``N2``, ... or ``TMP1``, ... for temporary
nodes that never touch disk). References handed out carry a generation
number, so a reference to a node that was removed and re-added under the
same id is rejected instead of silently resolving to the new node.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from .address import Network, is_valid_address, network_of
from .errors import ValidationError

log = logging.getLogger(__name__)

DEFAULT_PREFIX = "N"
TEMP_PREFIX = "TMP"


@dataclass(frozen=True, slots=True)
class Node:
    node_id: str
    address: str
    credential: str | None = None
    temporary: bool = False

    @property
    def network(self) -> Network | None:
        return network_of(self.address)


@dataclass(frozen=True, slots=True)
class NodeRef:
    node_id: str
    generation: int


class NodeRegistry:
    def __init__(self, directory: str | Path | None = None):
        self.directory = Path(directory) if directory is not None else None
        self._nodes: dict[str, Node] = {}
        self._generations: dict[str, int] = {}
        if self.directory is not None:
            self._load(self.directory)

    def _load(self, directory: Path) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        for path in sorted(directory.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                self.add(data["address"], node_id=data["id"], credential=data.get("credential"), persist=False)
            except (OSError, ValueError, KeyError, TypeError, ValidationError) as exc:
                log.warning("failed to load %s: %s", path.name, exc)
        log.info("registry %s loaded; nodes=%d", directory, len(self._nodes))
        if not self._nodes:
            log.warning("registry is empty")

    def _next_id(self, prefix: str) -> str:
        n = 1
        for node_id in self._nodes:
            suffix = node_id[len(prefix) :]
            if node_id.startswith(prefix) and suffix.isdigit() and int(suffix) >= n:
                n = int(suffix) + 1
        return f"{prefix}{n}"

    def add(
        self,
        address: str,
        *,
        node_id: str | None = None,
        credential: str | None = None,
        temporary: bool = False,
        persist: bool = True,
    ) -> NodeRef:
        if not is_valid_address(address):
            raise ValidationError(f"invalid address: {address}")
        if node_id is None:
            node_id = self._next_id(TEMP_PREFIX if temporary else DEFAULT_PREFIX)
        elif node_id in self._nodes:
            raise ValidationError(f"node id already in use: {node_id}")

        node = Node(node_id, address, credential, temporary)
        self._nodes[node_id] = node
        generation = self._generations.setdefault(node_id, 0)
        if persist and not temporary and self.directory is not None:
            (self.directory / f"{node_id}.json").write_text(
                json.dumps({"id": node_id, "address": address, "credential": credential}, indent=2),
                encoding="utf-8",
            )
        return NodeRef(node_id, generation)

    def remove(self, node_id: str) -> None:
        if node_id not in self._nodes:
            raise KeyError(f"invalid node id: {node_id}")
        node = self._nodes.pop(node_id)
        self._generations[node_id] += 1
        if not node.temporary and self.directory is not None:
            (self.directory / f"{node_id}.json").unlink(missing_ok=True)

    def ref(self, node_id: str) -> NodeRef:
        if node_id not in self._nodes:
            raise KeyError(f"invalid node id: {node_id}")
        return NodeRef(node_id, self._generations[node_id])

    def lookup(self, ref: NodeRef) -> Node:
        node = self._nodes.get(ref.node_id)
        if node is None or self._generations[ref.node_id] != ref.generation:
            raise KeyError(f"stale node reference: {ref.node_id}@{ref.generation}")
        return node

    def get(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def node_id_for(self, address: str) -> str | None:
        for node in self._nodes.values():
            if node.address == address:
                return node.node_id
        return None

    def address_of(self, id_or_address: str) -> str | None:
        """Resolve a node id or a known/valid address to an address."""
        node = self._nodes.get(id_or_address)
        if node is not None:
            return node.address
        if is_valid_address(id_or_address):
            return id_or_address
        return None

    def is_node(self, id_or_address: str) -> bool:
        return id_or_address in self._nodes or self.node_id_for(id_or_address) is not None

    def status(self) -> dict:
        return {"nodes": [{"id": n.node_id, "address": n.address} for n in self._nodes.values()]}

    def __len__(self) -> int:
        return len(self._nodes)
