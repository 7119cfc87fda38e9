import unittest
from decimal import Decimal

from walletgraph.adapters.store.sql_graph_store import SqlGraphStore
from walletgraph.core.errors import StoreUnavailable
from walletgraph.core.models import TransactionEdge

A = "0x" + "a" * 40
B = "0x" + "b" * 40
C = "0x" + "c" * 40
D = "0x" + "d" * 40


def _edge(source, target, tx_hash, value="1", ts=100) -> TransactionEdge:
    return TransactionEdge(
        source=source,
        target=target,
        hash=tx_hash,
        value=Decimal(value),
        timestamp=ts,
        gas_price="21",
        gas_used="21000",
        block_number=ts,
        direction="out",
    )


class SqlGraphStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = SqlGraphStore("sqlite://")
        self.store.connect()

    def tearDown(self) -> None:
        self.store.dispose()

    def test_upsert_address_is_idempotent(self) -> None:
        self.assertTrue(self.store.upsert_address(A, Decimal("1.5"), 3))
        self.assertFalse(self.store.upsert_address(A, Decimal("9"), 9))

        self.assertEqual(self.store.count_nodes(), 1)
        node = self.store.get_address(A)
        self.assertEqual(node.balance, Decimal("1.5"))
        self.assertEqual(node.transaction_count, 3)

    def test_set_address_overwrites_placeholder(self) -> None:
        self.store.upsert_address(A, Decimal("100"), 100)

        self.store.set_address(A, Decimal("7"), 2)
        self.store.set_address(B, Decimal("0.5"), 1)

        self.assertEqual(self.store.count_nodes(), 2)
        node = self.store.get_address(A)
        self.assertEqual(node.balance, Decimal("7"))
        self.assertEqual(node.transaction_count, 2)
        self.assertEqual(self.store.get_address(B).balance, Decimal("0.5"))

    def test_addresses_are_stored_lowercase(self) -> None:
        self.store.upsert_address(A.upper().replace("0X", "0x"), Decimal("0"), 0)
        self.assertIsNotNone(self.store.get_address(A))

    def test_edge_requires_both_endpoints(self) -> None:
        self.store.upsert_address(A, Decimal("0"), 0)

        self.assertFalse(self.store.upsert_transaction_edge(_edge(A, B, "0x1")))
        self.assertEqual(self.store.count_edges(), 0)

    def test_later_transfer_overwrites_edge_for_same_pair(self) -> None:
        self.store.upsert_address(A, Decimal("0"), 0)
        self.store.upsert_address(B, Decimal("0"), 0)

        self.store.upsert_transaction_edge(_edge(A, B, "0xold", value="1", ts=100))
        self.store.upsert_transaction_edge(_edge(A, B, "0xnew", value="2", ts=200))

        g = self.store.query_neighborhood(A)
        self.assertEqual(len(g.edges), 1)
        self.assertEqual(g.edges[0].hash, "0xnew")
        self.assertEqual(g.edges[0].value, Decimal("2"))
        self.assertEqual(g.edges[0].timestamp, 200)

    def test_reverse_direction_is_a_separate_edge(self) -> None:
        self.store.upsert_address(A, Decimal("0"), 0)
        self.store.upsert_address(B, Decimal("0"), 0)

        self.store.upsert_transaction_edge(_edge(A, B, "0x1"))
        self.store.upsert_transaction_edge(_edge(B, A, "0x2"))

        self.assertEqual(self.store.count_edges(), 2)

    def test_prune_removes_only_unlinked_nodes(self) -> None:
        for addr in (A, B, C, D):
            self.store.upsert_address(addr, Decimal("0"), 0)
        self.store.upsert_transaction_edge(_edge(A, B, "0x1"))

        deleted = self.store.prune_orphans(protected_id=C)

        self.assertEqual(deleted, 1)
        self.assertIsNotNone(self.store.get_address(A))
        self.assertIsNotNone(self.store.get_address(B))
        self.assertIsNotNone(self.store.get_address(C))
        self.assertIsNone(self.store.get_address(D))

    def test_unknown_address_neighborhood_is_single_zero_node(self) -> None:
        g = self.store.query_neighborhood("0xUNKNOWN")

        self.assertEqual(list(g.nodes), ["0xunknown"])
        self.assertEqual(g.nodes["0xunknown"].balance, Decimal("0"))
        self.assertEqual(g.edges, [])

    def test_neighborhood_edges_newest_first(self) -> None:
        for addr in (A, B, C):
            self.store.upsert_address(addr, Decimal("0"), 0)
        self.store.upsert_transaction_edge(_edge(A, B, "0x1", ts=100))
        self.store.upsert_transaction_edge(_edge(C, A, "0x2", ts=300))
        self.store.upsert_transaction_edge(_edge(B, C, "0x3", ts=500))

        g = self.store.query_neighborhood(A)

        self.assertEqual([e.hash for e in g.edges], ["0x2", "0x1"])
        self.assertEqual(set(g.nodes), {A, B, C})
        self.assertTrue(g.is_consistent())

    def test_debug_summary_lists_connections(self) -> None:
        for addr in (A, B, C):
            self.store.upsert_address(addr, Decimal("1"), 1)
        self.store.upsert_transaction_edge(_edge(A, B, "0x1"))
        self.store.upsert_transaction_edge(_edge(C, A, "0x2"))

        summary = self.store.debug_summary(A)

        self.assertEqual(summary["nodeCount"], 3)
        self.assertEqual(summary["transactionCount"], 2)
        self.assertEqual({t["connectedWith"] for t in summary["transactions"]}, {B, C})
        self.assertEqual({c["address"] for c in summary["connectedAddresses"]}, {B, C})

    def test_connect_failure_raises_store_unavailable(self) -> None:
        store = SqlGraphStore("sqlite:////nonexistent-dir/sub/graph.db")
        with self.assertRaises(StoreUnavailable):
            store.connect()


if __name__ == "__main__":
    unittest.main()
