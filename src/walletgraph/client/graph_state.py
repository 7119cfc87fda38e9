from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from walletgraph.core.models import AddressNode, GraphSnapshot, NodeState, TransactionEdge


@dataclass
class MergeResult:
    new_nodes: List[AddressNode] = field(default_factory=list)
    new_edges: List[TransactionEdge] = field(default_factory=list)
    stale: bool = False

    @property
    def empty(self) -> bool:
        return not self.new_nodes and not self.new_edges


class ClientGraphState:
    """
    The session's view of the graph, built from successive snapshots.

    Merges only ever add: a node id or edge hash already present is skipped,
    and edges whose endpoints are unknown are dropped. Each ``reset`` starts a
    new generation; merges tagged with an older generation are discarded.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._snapshot = GraphSnapshot()
        self._states: Dict[str, NodeState] = {}
        self._generation = 0
        self.root: Optional[str] = None

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def reset(self, root: Optional[str] = None) -> int:
        with self._lock:
            self._generation += 1
            self._snapshot = GraphSnapshot()
            self._states = {}
            self.root = root
            return self._generation

    def install(self, snapshot: GraphSnapshot, generation: int) -> bool:
        """Replace the base snapshot, unless a newer reset happened meanwhile."""
        with self._lock:
            if generation != self._generation:
                return False
            base = GraphSnapshot()
            for node in snapshot.nodes.values():
                base.add_node(node)
            for edge in snapshot.edges:
                base.add_edge(edge)
            self._snapshot = base
            self._states = {nid: NodeState.LOADED for nid in base.nodes}
            return True

    def merge(self, batch: GraphSnapshot, generation: int) -> MergeResult:
        with self._lock:
            if generation != self._generation:
                return MergeResult(stale=True)

            result = MergeResult()
            for node in batch.nodes.values():
                if self._snapshot.add_node(node):
                    self._states.setdefault(node.id, NodeState.LOADED)
                    result.new_nodes.append(node)
            for edge in batch.edges:
                if self._snapshot.add_edge(edge):
                    result.new_edges.append(edge)
            return result

    def snapshot(self) -> GraphSnapshot:
        with self._lock:
            return self._snapshot.copy()

    def node_state(self, node_id: str) -> NodeState:
        with self._lock:
            return self._states.get(node_id, NodeState.UNSEEN)

    def begin_expansion(self, node_id: str) -> Tuple[Optional[NodeState], int]:
        """
        Move ``node_id`` to EXPANDING. Returns (None, generation) on success,
        otherwise the state that blocked it (EXPANDED or EXPANDING).
        """
        with self._lock:
            current = self._states.get(node_id, NodeState.UNSEEN)
            if current in (NodeState.EXPANDED, NodeState.EXPANDING):
                return current, self._generation
            self._states[node_id] = NodeState.EXPANDING
            return None, self._generation

    def end_expansion(self, node_id: str, expanded: bool, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if expanded:
                self._states[node_id] = NodeState.EXPANDED
            elif node_id in self._snapshot.nodes:
                self._states[node_id] = NodeState.LOADED
            else:
                self._states.pop(node_id, None)

    def in_flight(self) -> List[str]:
        with self._lock:
            return [nid for nid, s in self._states.items() if s == NodeState.EXPANDING]

    def expanded(self) -> List[str]:
        with self._lock:
            return [nid for nid, s in self._states.items() if s == NodeState.EXPANDED]
