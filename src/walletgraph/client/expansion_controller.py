from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from walletgraph.client.graph_state import ClientGraphState
from walletgraph.config import settings
from walletgraph.config.logging import get_logger
from walletgraph.core.errors import WalletGraphError
from walletgraph.core.models import GraphSnapshot, NodeState
from walletgraph.ports.graph_source_port import GraphSourcePort

logger = get_logger(__name__)

Point = Tuple[float, float]


class ExpansionOutcome(str, Enum):
    EXPANDED = "expanded"
    ALREADY_EXPANDED = "already_expanded"
    IN_FLIGHT = "in_flight"
    FAILED = "failed"
    STALE = "stale"


@dataclass
class ExpansionResult:
    node_id: str
    outcome: ExpansionOutcome
    new_node_ids: List[str] = field(default_factory=list)
    new_edge_hashes: List[str] = field(default_factory=list)
    placements: Dict[str, Point] = field(default_factory=dict)
    error: Optional[str] = None


def radial_placement(
    center: Point,
    node_ids: Sequence[str],
    base_radius: float = settings.EXPANSION_BASE_RADIUS,
    radius_step: float = settings.EXPANSION_RADIUS_STEP,
    rng: Optional[random.Random] = None,
) -> Dict[str, Point]:
    """
    Spread ``node_ids`` around ``center`` at angles 2*pi/k apart.

    Radius grows with the index, plus a random share of one step, so later
    nodes always sit further out than earlier ones.
    """
    k = len(node_ids)
    if k == 0:
        return {}
    rng = rng or random.Random()
    step = 2 * math.pi / k
    cx, cy = center
    out: Dict[str, Point] = {}
    for i, nid in enumerate(node_ids):
        angle = i * step
        radius = base_radius + i * radius_step + rng.random() * radius_step
        out[nid] = (cx + radius * math.cos(angle), cy + radius * math.sin(angle))
    return out


class ExpansionController:
    """
    Runs the per-node expansion lifecycle against a graph source.

    At most one expansion per node id is in flight; different nodes may
    expand concurrently.
    """

    def __init__(
        self,
        source: GraphSourcePort,
        state: ClientGraphState,
        render: Callable[[GraphSnapshot, Dict[str, Point], bool], None],
        position_of: Optional[Callable[[str], Optional[Point]]] = None,
        batch_size: int = settings.BATCH_PAGE_SIZE,
        base_radius: float = settings.EXPANSION_BASE_RADIUS,
        radius_step: float = settings.EXPANSION_RADIUS_STEP,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.source = source
        self.state = state
        self._render = render
        self._position_of = position_of or (lambda _nid: None)
        self.batch_size = batch_size
        self.base_radius = base_radius
        self.radius_step = radius_step
        self._rng = rng or random.Random()

    def initial_load(self, address: str) -> GraphSnapshot:
        addr = address.lower()
        generation = self.state.reset(root=addr)
        snapshot = self.source.get_neighborhood(addr)
        if not self.state.install(snapshot, generation):
            logger.info("Dropping stale initial load for %s", addr)
            return self.state.snapshot()
        current = self.state.snapshot()
        self._render(current, {}, True)
        logger.info("Loaded %s: %d node(s), %d edge(s)", addr, len(current.nodes), len(current.edges))
        return current

    def expand_node(self, node_id: str) -> ExpansionResult:
        nid = node_id.lower()
        blocked, generation = self.state.begin_expansion(nid)
        if blocked == NodeState.EXPANDED:
            return ExpansionResult(nid, ExpansionOutcome.ALREADY_EXPANDED)
        if blocked == NodeState.EXPANDING:
            logger.debug("Expansion of %s already in flight", nid)
            return ExpansionResult(nid, ExpansionOutcome.IN_FLIGHT)

        expanded = False
        try:
            try:
                batch = self.source.get_next_batch(nid, self.batch_size)
            except WalletGraphError as e:
                logger.warning("Expansion of %s failed: %s", nid, e)
                return ExpansionResult(nid, ExpansionOutcome.FAILED, error=str(e))

            merged = self.state.merge(batch, generation)
            if merged.stale:
                logger.info("Dropping stale expansion result for %s", nid)
                return ExpansionResult(nid, ExpansionOutcome.STALE)

            # marked even when nothing new came back, so empty nodes are not refetched
            expanded = True
            parent = self._position_of(nid) or (settings.CANVAS_WIDTH / 2, settings.CANVAS_HEIGHT / 2)
            new_ids = [n.id for n in merged.new_nodes]
            placements = radial_placement(parent, new_ids, self.base_radius, self.radius_step, self._rng)
        finally:
            self.state.end_expansion(nid, expanded, generation)

        self._render(self.state.snapshot(), placements, False)
        logger.info("Expanded %s: %d new node(s), %d new edge(s)", nid, len(new_ids), len(merged.new_edges))
        return ExpansionResult(
            nid,
            ExpansionOutcome.EXPANDED,
            new_node_ids=new_ids,
            new_edge_hashes=[e.hash for e in merged.new_edges],
            placements=placements,
        )
