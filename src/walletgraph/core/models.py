from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Set


# Graph models

@dataclass(frozen=True)
class AddressNode:

    id: str
    balance: Decimal = Decimal("0")
    transaction_count: int = 0


@dataclass(frozen=True)
class TransactionEdge:

    source: str
    target: str

    hash: str
    value: Decimal
    timestamp: int

    gas_price: str = "0"
    gas_used: str = "0"
    block_number: int = 0
    function_name: str = ""
    direction: Optional[str] = None     # "in" / "out" relative to the synced wallet


@dataclass
class GraphSnapshot:
    """
    Nodes keyed by address, edges unique by hash.

    Every edge endpoint must be present in ``nodes``; ``add_edge`` refuses
    edges that would break that.
    """

    nodes: Dict[str, AddressNode] = field(default_factory=dict)
    edges: List[TransactionEdge] = field(default_factory=list)

    @classmethod
    def single(cls, address: str, balance: Decimal = Decimal("0"), transaction_count: int = 0) -> "GraphSnapshot":
        return cls(nodes={address: AddressNode(address, balance, transaction_count)}, edges=[])

    def edge_hashes(self) -> Set[str]:
        return {e.hash for e in self.edges}

    def has_node(self, node_id: str) -> bool:
        return node_id in self.nodes

    def add_node(self, node: AddressNode) -> bool:
        if node.id in self.nodes:
            return False
        self.nodes[node.id] = node
        return True

    def add_edge(self, edge: TransactionEdge) -> bool:
        if edge.source not in self.nodes or edge.target not in self.nodes:
            return False
        if any(e.hash == edge.hash for e in self.edges):
            return False
        self.edges.append(edge)
        return True

    def neighbors(self, node_id: str) -> Set[str]:
        out: Set[str] = set()
        for e in self.edges:
            if e.source == node_id:
                out.add(e.target)
            elif e.target == node_id:
                out.add(e.source)
        return out

    def sort_edges(self) -> None:
        # newest first
        self.edges.sort(key=lambda e: e.timestamp, reverse=True)

    def copy(self) -> "GraphSnapshot":
        return GraphSnapshot(nodes=dict(self.nodes), edges=list(self.edges))

    def is_consistent(self) -> bool:
        hashes = [e.hash for e in self.edges]
        if len(hashes) != len(set(hashes)):
            return False
        return all(e.source in self.nodes and e.target in self.nodes for e in self.edges)


class NodeState(str, Enum):
    UNSEEN = "unseen"
    LOADED = "loaded"
    EXPANDING = "expanding"
    EXPANDED = "expanded"
