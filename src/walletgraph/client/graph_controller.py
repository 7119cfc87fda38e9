from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Mapping, Optional

from walletgraph.client.expansion_controller import ExpansionController, ExpansionOutcome, ExpansionResult, Point
from walletgraph.client.graph_state import ClientGraphState
from walletgraph.config import settings
from walletgraph.config.logging import get_logger
from walletgraph.core.models import GraphSnapshot
from walletgraph.layout.layout_engine import LayoutEngine
from walletgraph.ports.graph_source_port import GraphSourcePort

logger = get_logger(__name__)


class GraphController(ABC):
    """What the expansion side may ask of whoever draws the graph."""

    @abstractmethod
    def render(
        self,
        snapshot: GraphSnapshot,
        placements: Optional[Mapping[str, Point]] = None,
        full_load: bool = False,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def request_expansion(self, node_id: str) -> ExpansionResult:
        raise NotImplementedError


class ExplorerSession(GraphController):
    """
    One exploration session: the client graph state, the expansion
    controller feeding it, and the layout drawing it.

    ``render`` only queues work for the layout, so expansions may run on any
    thread; positions change when the caller ticks the layout.
    """

    def __init__(
        self,
        source: GraphSourcePort,
        layout: Optional[LayoutEngine] = None,
        state: Optional[ClientGraphState] = None,
        batch_size: int = settings.BATCH_PAGE_SIZE,
    ) -> None:
        self.source = source
        self.layout = layout or LayoutEngine()
        self.state = state or ClientGraphState()
        self.expansions = ExpansionController(
            source=source,
            state=self.state,
            render=self.render,
            position_of=self.layout.position,
            batch_size=batch_size,
        )

    @property
    def root(self) -> Optional[str]:
        return self.state.root

    def open(self, address: str) -> GraphSnapshot:
        """Drop whatever was loaded and start over from ``address``."""
        return self.expansions.initial_load(address)

    def render(
        self,
        snapshot: GraphSnapshot,
        placements: Optional[Mapping[str, Point]] = None,
        full_load: bool = False,
    ) -> None:
        focal = self.state.root if full_load else None
        self.layout.submit_graph(snapshot, placements, focal=focal, full_load=full_load)

    def request_expansion(self, node_id: str) -> ExpansionResult:
        return self.expansions.expand_node(node_id)

    def expand_many(self, node_ids: Iterable[str], workers: int = settings.FETCH_WORKERS) -> List[ExpansionResult]:
        """Expand several nodes concurrently; results come back in input order."""
        ids = list(node_ids)
        if not ids:
            return []
        with ThreadPoolExecutor(max_workers=max(1, min(workers, len(ids)))) as pool:
            return list(pool.map(self.request_expansion, ids))

    def expand_breadth_first(self, max_expansions: int) -> List[ExpansionResult]:
        """
        Expand outward from the root, nearest nodes first, until
        ``max_expansions`` nodes have been expanded or nothing is left.
        """
        results: List[ExpansionResult] = []
        if self.root is None or max_expansions <= 0:
            return results

        queue = deque([self.root])
        visited = {self.root}
        while queue and len(results) < max_expansions:
            nid = queue.popleft()
            result = self.request_expansion(nid)
            results.append(result)
            if result.outcome == ExpansionOutcome.STALE:
                break

            for neighbor in sorted(self.state.snapshot().neighbors(nid)):
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)

        logger.info(
            "Breadth-first expansion: %d attempt(s), %d failed",
            len(results),
            sum(1 for r in results if r.outcome == ExpansionOutcome.FAILED),
        )
        return results

    def settle(self, max_ticks: int = 1000) -> Dict[str, Point]:
        return self.layout.run(max_ticks)

    def snapshot(self) -> GraphSnapshot:
        return self.state.snapshot()
