"""Force-directed layout for the explored graph.

A velocity-Verlet style simulation in the manner of d3-force: each tick the
forces add to node velocities, velocities decay, positions integrate, and
``alpha`` (the simulation's energy) cools toward ``alpha_target``.

All position state changes inside ``tick()``. Other threads hand new graph
snapshots over with ``submit_graph``; the next tick applies them.
"""

from __future__ import annotations

import math
import queue
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

import numpy as np

from walletgraph.config import settings
from walletgraph.config.logging import get_logger
from walletgraph.core.models import GraphSnapshot

logger = get_logger(__name__)

Point = Tuple[float, float]
TickListener = Callable[[Dict[str, Point]], None]

_PHYLLOTAXIS_ANGLE = math.pi * (3 - math.sqrt(5))


@dataclass(frozen=True)
class LayoutConfig:
    width: float = settings.CANVAS_WIDTH
    height: float = settings.CANVAS_HEIGHT
    padding: float = settings.CANVAS_PADDING
    link_distance: float = settings.LINK_DISTANCE
    charge_strength: float = settings.CHARGE_STRENGTH
    charge_distance_max: float = settings.CHARGE_DISTANCE_MAX
    center_strength: float = settings.CENTER_STRENGTH
    collide_radius: float = settings.COLLIDE_RADIUS
    collide_strength: float = 0.7
    velocity_decay: float = 0.4
    alpha_min: float = 0.001
    alpha_decay: float = 1 - 0.001 ** (1 / 300)
    # first full load: cools over twice as many ticks, then freezes
    full_load_alpha_decay: float = 1 - 0.001 ** (1 / 600)
    freeze_alpha: float = 0.02
    reheat_alpha: float = 0.5
    drag_alpha_target: float = 0.3
    anchor_release_ticks: int = settings.ANCHOR_RELEASE_TICKS

    @property
    def center(self) -> Point:
        return self.width / 2, self.height / 2


class LayoutEngine:

    def __init__(self, config: Optional[LayoutConfig] = None, seed: Optional[int] = None) -> None:
        self.config = config or LayoutConfig()
        self._rng = random.Random(seed)

        self._ids: List[str] = []
        self._index: Dict[str, int] = {}
        self._pos = np.zeros((0, 2))
        self._vel = np.zeros((0, 2))
        self._fixed = np.full((0, 2), np.nan)
        # (ids, index, pos) swapped in one assignment for readers on other threads
        self._view: Tuple[List[str], Dict[str, int], np.ndarray] = (self._ids, self._index, self._pos)
        self._links = np.zeros((0, 2), dtype=int)
        self._link_strength = np.zeros(0)
        self._link_bias = np.zeros(0)

        self.alpha = 1.0
        self.alpha_target = 0.0
        self._alpha_decay = self.config.alpha_decay
        self.tick_count = 0

        self.focal: Optional[str] = None
        self._anchor_release_at: Optional[int] = None
        self._manual_pins: Set[str] = set()
        self._freeze_when_stable = False
        self.frozen = False

        self._pending: "queue.SimpleQueue[tuple]" = queue.SimpleQueue()
        self._listeners: List[TickListener] = []

    # -------------------------
    # Graph updates
    # -------------------------

    def submit_graph(
        self,
        snapshot: GraphSnapshot,
        placements: Optional[Mapping[str, Point]] = None,
        focal: Optional[str] = None,
        full_load: bool = False,
    ) -> None:
        """Queue a snapshot; applied at the start of the next tick. Safe from any thread."""
        self._pending.put((snapshot.copy(), dict(placements or {}), focal, full_load))

    def set_graph(
        self,
        snapshot: GraphSnapshot,
        placements: Optional[Mapping[str, Point]] = None,
        focal: Optional[str] = None,
        full_load: bool = False,
    ) -> None:
        """
        Replace the simulated graph. Known nodes keep position, velocity and
        pins; new nodes start at their placement hint, else near a positioned
        neighbor, else near the canvas center.
        """
        placements = placements or {}
        old_index = self._index
        old_pos, old_vel, old_fixed = self._pos, self._vel, self._fixed

        ids = list(snapshot.nodes)
        n = len(ids)
        pos = np.zeros((n, 2))
        vel = np.zeros((n, 2))
        fixed = np.full((n, 2), np.nan)
        index = {nid: i for i, nid in enumerate(ids)}

        fresh: List[int] = []
        for i, nid in enumerate(ids):
            j = old_index.get(nid)
            if j is not None:
                pos[i], vel[i], fixed[i] = old_pos[j], old_vel[j], old_fixed[j]
            elif nid in placements:
                pos[i] = placements[nid]
            else:
                fresh.append(i)

        cx, cy = self.config.center
        unplaced = set(fresh)
        for k, i in enumerate(fresh):
            anchor = self._positioned_neighbor(snapshot, ids[i], index, pos, unplaced)
            radius = 10 * math.sqrt(0.5 + k)
            angle = k * _PHYLLOTAXIS_ANGLE
            base = anchor if anchor is not None else (cx, cy)
            pos[i] = (base[0] + radius * math.cos(angle), base[1] + radius * math.sin(angle))
            unplaced.discard(i)

        self._pos, self._vel, self._fixed = pos, vel, fixed
        self._ids, self._index = ids, index
        self._view = (ids, index, pos)
        self._manual_pins &= set(ids)
        self._build_links(snapshot)

        if full_load:
            self._start_full_load()
        if focal is not None and focal in index:
            self.focal = focal
            self._anchor(focal)

        self._clamp()
        self.restart(1.0 if full_load or not old_index else self.config.reheat_alpha)
        logger.debug("Layout graph set: %d node(s), %d link(s)", n, len(self._links))

    @staticmethod
    def _positioned_neighbor(snapshot, nid, index, pos, fresh) -> Optional[Point]:
        for other in sorted(snapshot.neighbors(nid)):
            j = index.get(other)
            if j is not None and j not in fresh:
                return float(pos[j][0]), float(pos[j][1])
        return None

    def _build_links(self, snapshot: GraphSnapshot) -> None:
        pairs = []
        for e in snapshot.edges:
            s, t = self._index.get(e.source), self._index.get(e.target)
            if s is None or t is None or s == t:
                continue
            pairs.append((s, t))
        if not pairs:
            self._links = np.zeros((0, 2), dtype=int)
            self._link_strength = np.zeros(0)
            self._link_bias = np.zeros(0)
            return
        links = np.array(pairs, dtype=int)
        count = np.bincount(links.ravel(), minlength=len(self._ids)).astype(float)
        cs, ct = count[links[:, 0]], count[links[:, 1]]
        self._links = links
        self._link_strength = 1.0 / np.minimum(cs, ct)
        self._link_bias = cs / (cs + ct)

    def _anchor(self, nid: str) -> None:
        cx, cy = self.config.center
        i = self._index[nid]
        self._pos[i] = (cx, cy)
        self._fixed[i] = (cx, cy)
        self._anchor_release_at = self.tick_count + self.config.anchor_release_ticks

    def _start_full_load(self) -> None:
        self._fixed[:] = np.nan
        self._manual_pins.clear()
        self._anchor_release_at = None
        self._alpha_decay = self.config.full_load_alpha_decay
        self._freeze_when_stable = True
        self.frozen = False

    # -------------------------
    # Simulation
    # -------------------------

    def restart(self, alpha: float = 1.0) -> None:
        self.alpha = max(self.alpha, alpha) if self.running else alpha

    @property
    def running(self) -> bool:
        return self.alpha >= self.config.alpha_min or self.alpha_target >= self.config.alpha_min

    def on_tick(self, listener: TickListener) -> None:
        self._listeners.append(listener)

    def tick(self) -> Dict[str, Point]:
        self._drain_pending()
        if self._ids and self.running:
            self.tick_count += 1
            self.alpha += (self.alpha_target - self.alpha) * self._alpha_decay
            alpha = self.alpha

            self._jiggle_coincident()
            self._force_link(alpha)
            self._force_many_body(alpha)
            self._force_center(alpha)
            self._force_collide()

            pinned = self._pinned_mask()
            free = ~pinned
            self._vel[free] *= 1 - self.config.velocity_decay
            self._pos[free] += self._vel[free]
            self._pos[pinned] = self._fixed[pinned]
            self._vel[pinned] = 0.0
            self._clamp()
            self._apply_anchor_policy()

        positions = self.positions()
        for listener in self._listeners:
            listener(positions)
        return positions

    def run(self, max_ticks: int = 1000) -> Dict[str, Point]:
        """Tick until the simulation cools down (or ``max_ticks``)."""
        positions = self.positions()
        for _ in range(max_ticks):
            positions = self.tick()
            if not self.running and self._pending.empty():
                break
        return positions

    def _drain_pending(self) -> None:
        while True:
            try:
                snapshot, placements, focal, full_load = self._pending.get_nowait()
            except queue.Empty:
                return
            self.set_graph(snapshot, placements, focal=focal, full_load=full_load)

    def _apply_anchor_policy(self) -> None:
        if self._anchor_release_at is not None and self.tick_count >= self._anchor_release_at:
            if self.focal is not None and self.focal not in self._manual_pins and self.focal in self._index:
                self._fixed[self._index[self.focal]] = np.nan
                logger.debug("Released anchor on %s after %d ticks", self.focal, self.tick_count)
            self._anchor_release_at = None

        if self._freeze_when_stable and self.alpha < self.config.freeze_alpha:
            self._fixed[:] = self._pos
            self._vel[:] = 0.0
            self._freeze_when_stable = False
            self._alpha_decay = self.config.alpha_decay
            self.frozen = True
            self.alpha = 0.0
            logger.debug("Layout frozen after %d ticks", self.tick_count)

    # -------------------------
    # Forces
    # -------------------------

    def _force_link(self, alpha: float) -> None:
        if not len(self._links):
            return
        s, t = self._links[:, 0], self._links[:, 1]
        d = (self._pos[t] + self._vel[t]) - (self._pos[s] + self._vel[s])
        length = np.hypot(d[:, 0], d[:, 1])
        length = np.where(length == 0, 1e-6, length)
        k = (length - self.config.link_distance) / length * alpha * self._link_strength
        d = d * k[:, None]
        np.add.at(self._vel, t, -d * self._link_bias[:, None])
        np.add.at(self._vel, s, d * (1 - self._link_bias)[:, None])

    def _force_many_body(self, alpha: float) -> None:
        if len(self._ids) < 2:
            return
        diff = self._pos[None, :, :] - self._pos[:, None, :]   # diff[i, j] = pos[j] - pos[i]
        d2 = (diff ** 2).sum(axis=-1)
        within = d2 < self.config.charge_distance_max ** 2
        np.fill_diagonal(within, False)
        d2 = np.maximum(d2, 1.0)
        w = np.where(within, self.config.charge_strength * alpha / d2, 0.0)
        self._vel += (diff * w[:, :, None]).sum(axis=1)

    def _force_center(self, alpha: float) -> None:
        center = np.array(self.config.center)
        self._vel += (center - self._pos) * self.config.center_strength * alpha

    def _force_collide(self) -> None:
        if len(self._ids) < 2:
            return
        p = self._pos + self._vel
        diff = p[:, None, :] - p[None, :, :]                    # diff[i, j] = p[i] - p[j]
        dist = np.hypot(diff[..., 0], diff[..., 1])
        min_sep = 2 * self.config.collide_radius
        overlap = dist < min_sep
        np.fill_diagonal(overlap, False)
        dist = np.where(dist == 0, 1e-6, dist)
        k = np.where(overlap, (min_sep - dist) / dist * self.config.collide_strength, 0.0)
        self._vel += (diff * k[:, :, None] * 0.5).sum(axis=1)

    def _jiggle_coincident(self) -> None:
        if len(self._ids) < 2:
            return
        d2 = ((self._pos[None, :, :] - self._pos[:, None, :]) ** 2).sum(axis=-1)
        np.fill_diagonal(d2, np.inf)
        for i in np.unique(np.argwhere(d2 == 0)[:, 0]):
            self._pos[i] += (self._rng.uniform(-1e-3, 1e-3), self._rng.uniform(-1e-3, 1e-3))

    def _clamp(self) -> None:
        if not len(self._ids):
            return
        pad = self.config.padding
        lo = np.array([pad, pad])
        hi = np.array([self.config.width - pad, self.config.height - pad])
        np.clip(self._pos, lo, hi, out=self._pos)
        pinned = self._pinned_mask()
        self._fixed[pinned] = np.clip(self._fixed[pinned], lo, hi)

    def _pinned_mask(self) -> np.ndarray:
        return ~np.isnan(self._fixed[:, 0])

    # -------------------------
    # Pins and dragging
    # -------------------------

    def pin(self, nid: str, x: float, y: float) -> None:
        i = self._index[nid]
        self._fixed[i] = (x, y)
        self._pos[i] = (x, y)
        self._manual_pins.add(nid)
        self._clamp()

    def release(self, nid: str) -> None:
        """Drop a manual pin so the node moves freely again."""
        i = self._index[nid]
        self._fixed[i] = np.nan
        self._manual_pins.discard(nid)
        self.restart(self.config.reheat_alpha)

    def is_pinned(self, nid: str) -> bool:
        return not math.isnan(self._fixed[self._index[nid], 0])

    def drag_start(self, nid: str) -> None:
        x, y = self._pos[self._index[nid]]
        self.alpha_target = self.config.drag_alpha_target
        self.restart(self.config.drag_alpha_target)
        self.pin(nid, float(x), float(y))

    def drag_to(self, nid: str, x: float, y: float) -> None:
        self.pin(nid, x, y)

    def drag_end(self, nid: str) -> None:
        # the node stays where it was dropped until released
        self.alpha_target = 0.0

    # -------------------------
    # Reads
    # -------------------------

    def position(self, nid: str) -> Optional[Point]:
        _, index, pos = self._view
        i = index.get(nid)
        if i is None:
            return None
        return float(pos[i][0]), float(pos[i][1])

    def positions(self) -> Dict[str, Point]:
        ids, _, pos = self._view
        return {nid: (float(pos[i][0]), float(pos[i][1])) for i, nid in enumerate(ids)}

    def node_ids(self) -> List[str]:
        return list(self._ids)
