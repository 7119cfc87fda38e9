import math
import threading
import unittest
from decimal import Decimal

from walletgraph.core.models import AddressNode, GraphSnapshot, TransactionEdge
from walletgraph.layout.layout_engine import LayoutConfig, LayoutEngine


def _graph(nodes, edges) -> GraphSnapshot:
    g = GraphSnapshot()
    for n in nodes:
        g.add_node(AddressNode(n, Decimal("1"), 1))
    for i, (src, dst) in enumerate(edges):
        g.add_edge(TransactionEdge(source=src, target=dst, hash=f"h{i}", value=Decimal("1"), timestamp=i))
    return g


STAR = _graph(["root", "a", "b", "c", "d"], [("root", "a"), ("root", "b"), ("c", "root"), ("d", "root")])


class LayoutEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = LayoutConfig(anchor_release_ticks=5)
        self.engine = LayoutEngine(self.config, seed=7)

    def _assert_inside_canvas(self, positions) -> None:
        pad = self.config.padding
        for nid, (x, y) in positions.items():
            self.assertFalse(math.isnan(x) or math.isnan(y), nid)
            self.assertGreaterEqual(x, pad)
            self.assertLessEqual(x, self.config.width - pad)
            self.assertGreaterEqual(y, pad)
            self.assertLessEqual(y, self.config.height - pad)

    def test_positions_stay_inside_padded_canvas(self) -> None:
        self.engine.set_graph(STAR, placements={"a": (-500.0, 5000.0)})
        self._assert_inside_canvas(self.engine.positions())

        positions = self.engine.run(300)

        self.assertEqual(sorted(positions), sorted(STAR.nodes))
        self._assert_inside_canvas(positions)

    def test_focal_node_anchored_then_released(self) -> None:
        self.engine.set_graph(STAR, focal="root")

        self.engine.tick()
        self.assertEqual(self.engine.position("root"), self.config.center)
        self.assertTrue(self.engine.is_pinned("root"))

        for _ in range(5):
            self.engine.tick()
        self.assertFalse(self.engine.is_pinned("root"))

    def test_full_load_freezes_when_stable(self) -> None:
        self.engine.set_graph(STAR, focal="root", full_load=True)

        self.engine.run(2000)

        self.assertTrue(self.engine.frozen)
        self.assertFalse(self.engine.running)
        self.assertEqual(self.engine.alpha, 0.0)
        self.assertTrue(all(self.engine.is_pinned(n) for n in STAR.nodes))

    def test_known_positions_survive_graph_update(self) -> None:
        self.engine.set_graph(STAR)
        self.engine.run(50)
        before = self.engine.positions()

        bigger = _graph(list(STAR.nodes) + ["e"], [("root", "a"), ("root", "b"), ("c", "root"), ("d", "root"), ("a", "e")])
        self.engine.set_graph(bigger, placements={"e": (123.0, 456.0)})

        for nid, pos in before.items():
            self.assertEqual(self.engine.position(nid), pos)
        self.assertEqual(self.engine.position("e"), (123.0, 456.0))
        self.assertTrue(self.engine.running)

    def test_new_nodes_without_hints_start_near_a_neighbor(self) -> None:
        self.engine.set_graph(_graph(["root"], []))
        self.engine.pin("root", 200.0, 200.0)

        self.engine.set_graph(_graph(["root", "a"], [("root", "a")]))

        x, y = self.engine.position("a")
        self.assertLess(math.hypot(x - 200.0, y - 200.0), 50.0)

    def test_submitted_graph_applies_on_next_tick(self) -> None:
        seen = []
        self.engine.on_tick(seen.append)

        self.engine.submit_graph(STAR)
        self.assertEqual(self.engine.positions(), {})

        self.engine.tick()
        self.assertEqual(sorted(self.engine.positions()), sorted(STAR.nodes))
        self.assertEqual(sorted(seen[-1]), sorted(STAR.nodes))

    def test_drag_pins_node_until_released(self) -> None:
        self.engine.set_graph(STAR)
        self.engine.drag_start("a")
        self.assertEqual(self.engine.alpha_target, 0.3)

        self.engine.drag_to("a", 100.0, 120.0)
        self.engine.tick()
        self.assertEqual(self.engine.position("a"), (100.0, 120.0))

        self.engine.drag_end("a")
        self.assertEqual(self.engine.alpha_target, 0.0)
        self.engine.tick()
        self.assertEqual(self.engine.position("a"), (100.0, 120.0))
        self.assertTrue(self.engine.is_pinned("a"))

        self.engine.release("a")
        self.assertFalse(self.engine.is_pinned("a"))

    def test_manual_pin_outlives_anchor_release(self) -> None:
        self.engine.set_graph(STAR, focal="root")
        self.engine.pin("root", 300.0, 300.0)

        for _ in range(10):
            self.engine.tick()

        self.assertTrue(self.engine.is_pinned("root"))
        self.assertEqual(self.engine.position("root"), (300.0, 300.0))

    def test_coincident_nodes_are_separated(self) -> None:
        self.engine.set_graph(_graph(["a", "b"], []), placements={"a": (400.0, 300.0), "b": (400.0, 300.0)})

        self.engine.run(100)

        ax, ay = self.engine.position("a")
        bx, by = self.engine.position("b")
        self.assertGreater(math.hypot(ax - bx, ay - by), 1.0)

    def test_position_reads_while_graph_is_replaced(self) -> None:
        small = _graph(["root"], [])
        errors = []
        stop = threading.Event()

        def read() -> None:
            try:
                while not stop.is_set():
                    self.engine.position("d")
                    self.engine.positions()
            except Exception as e:
                errors.append(e)

        reader = threading.Thread(target=read)
        reader.start()
        try:
            for k in range(200):
                self.engine.set_graph(STAR if k % 2 == 0 else small)
        finally:
            stop.set()
            reader.join()

        self.assertEqual(errors, [])
        self.assertIsNone(self.engine.position("d"))
        self.assertEqual(set(self.engine.positions()), {"root"})

    def test_empty_graph_ticks(self) -> None:
        self.assertEqual(self.engine.tick(), {})
        self.assertIsNone(self.engine.position("nope"))


if __name__ == "__main__":
    unittest.main()
