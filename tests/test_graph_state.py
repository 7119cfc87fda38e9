import unittest
from decimal import Decimal

from walletgraph.client.graph_state import ClientGraphState
from walletgraph.core.models import AddressNode, GraphSnapshot, NodeState, TransactionEdge


def _node(nid: str) -> AddressNode:
    return AddressNode(nid, Decimal("1"), 1)


def _edge(src: str, dst: str, tx_hash: str, ts: int = 1) -> TransactionEdge:
    return TransactionEdge(source=src, target=dst, hash=tx_hash, value=Decimal("1"), timestamp=ts)


def _graph(nodes, edges) -> GraphSnapshot:
    g = GraphSnapshot()
    for n in nodes:
        g.add_node(_node(n))
    for e in edges:
        g.add_edge(e)
    return g


class ClientGraphStateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.state = ClientGraphState()
        self.gen = self.state.reset(root="a")
        self.state.install(_graph(["a", "b"], [_edge("a", "b", "h1")]), self.gen)

    def test_install_marks_nodes_loaded(self) -> None:
        self.assertEqual(self.state.node_state("a"), NodeState.LOADED)
        self.assertEqual(self.state.node_state("b"), NodeState.LOADED)
        self.assertEqual(self.state.node_state("zzz"), NodeState.UNSEEN)

    def test_merge_adds_only_new_ids_and_hashes(self) -> None:
        batch = _graph(["a", "b", "c"], [_edge("a", "b", "h1"), _edge("a", "c", "h2")])

        res = self.state.merge(batch, self.gen)
        again = self.state.merge(batch, self.gen)

        self.assertEqual([n.id for n in res.new_nodes], ["c"])
        self.assertEqual([e.hash for e in res.new_edges], ["h2"])
        self.assertTrue(again.empty)
        snap = self.state.snapshot()
        self.assertEqual(sorted(snap.nodes), ["a", "b", "c"])
        self.assertEqual(sorted(snap.edge_hashes()), ["h1", "h2"])
        self.assertTrue(snap.is_consistent())

    def test_merge_keeps_existing_node_attributes(self) -> None:
        batch = GraphSnapshot(nodes={"a": AddressNode("a", Decimal("999"), 999)}, edges=[])

        self.state.merge(batch, self.gen)

        self.assertEqual(self.state.snapshot().nodes["a"].balance, Decimal("1"))

    def test_edges_with_unknown_endpoints_are_dropped(self) -> None:
        batch = GraphSnapshot(nodes={"a": _node("a")}, edges=[_edge("a", "ghost", "h9")])

        res = self.state.merge(batch, self.gen)

        self.assertTrue(res.empty)
        self.assertNotIn("h9", self.state.snapshot().edge_hashes())

    def test_stale_generation_is_discarded(self) -> None:
        old = self.gen
        self.state.reset(root="x")

        res = self.state.merge(_graph(["a", "q"], [_edge("a", "q", "h5")]), old)

        self.assertTrue(res.stale)
        self.assertEqual(self.state.snapshot().nodes, {})
        self.assertFalse(self.state.install(_graph(["a"], []), old))

    def test_expansion_lifecycle(self) -> None:
        blocked, gen = self.state.begin_expansion("a")
        self.assertIsNone(blocked)
        self.assertEqual(gen, self.gen)
        self.assertEqual(self.state.in_flight(), ["a"])

        blocked, _ = self.state.begin_expansion("a")
        self.assertEqual(blocked, NodeState.EXPANDING)

        self.state.end_expansion("a", True, gen)
        self.assertEqual(self.state.node_state("a"), NodeState.EXPANDED)
        self.assertEqual(self.state.expanded(), ["a"])
        blocked, _ = self.state.begin_expansion("a")
        self.assertEqual(blocked, NodeState.EXPANDED)

    def test_failed_expansion_returns_to_loaded(self) -> None:
        _, gen = self.state.begin_expansion("b")
        self.state.end_expansion("b", False, gen)

        self.assertEqual(self.state.node_state("b"), NodeState.LOADED)
        self.assertEqual(self.state.in_flight(), [])


if __name__ == "__main__":
    unittest.main()
