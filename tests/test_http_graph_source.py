import unittest
from decimal import Decimal
from unittest import mock

import requests

from walletgraph.adapters.source.http_graph_source import HttpGraphSource
from walletgraph.client.expansion_controller import ExpansionController, ExpansionOutcome
from walletgraph.client.graph_state import ClientGraphState
from walletgraph.core.errors import DataSourceError, NetworkError, ValidationError
from walletgraph.core.models import NodeState
from walletgraph.io.schemas import snapshot_from_dict

A = "0x" + "a" * 40
B = "0x" + "b" * 40

PAYLOAD = {
    "nodes": [
        {"id": A, "balance": "1.5", "transactionCount": 2},
        {"id": B.upper().replace("0X", "0x"), "balance": "100", "transactionCount": 100},
    ],
    "edges": [
        {
            "source": A,
            "target": B,
            "hash": "0x1",
            "value": "0.25",
            "timeStamp": 1700000000,
            "gasPrice": "1",
            "gasUsed": "21000",
            "blockNumber": 5,
            "functionName": "",
            "type": "out",
        },
        {"source": A, "target": "0xghost", "hash": "0x2", "value": "1"},
    ],
}


def _response(payload=None, status=200, json_error=False):
    resp = mock.Mock()
    resp.status_code = status
    resp.text = "error body"
    if json_error:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = payload
    return resp


class SnapshotFromDictTests(unittest.TestCase):
    def test_parses_and_drops_dangling_edges(self) -> None:
        g = snapshot_from_dict(PAYLOAD)

        self.assertEqual(set(g.nodes), {A, B})
        self.assertEqual(g.nodes[A].balance, Decimal("1.5"))
        self.assertEqual([e.hash for e in g.edges], ["0x1"])
        self.assertEqual(g.edges[0].value, Decimal("0.25"))
        self.assertEqual(g.edges[0].direction, "out")

    def test_malformed_payload(self) -> None:
        with self.assertRaises(ValidationError):
            snapshot_from_dict({"nodes": "nope"})
        with self.assertRaises(ValidationError):
            snapshot_from_dict({"nodes": [{"balance": "1"}], "edges": []})
        with self.assertRaises(ValidationError):
            snapshot_from_dict({"nodes": [{"id": A, "balance": "lots"}], "edges": []})
        with self.assertRaises(ValidationError):
            snapshot_from_dict({"nodes": [{"id": A, "transactionCount": "n/a"}], "edges": []})
        with self.assertRaises(ValidationError):
            snapshot_from_dict({"nodes": [{"id": A}, {"id": B}], "edges": [{"source": A, "target": B, "hash": "0x1", "blockNumber": "latest"}]})


class HttpGraphSourceTests(unittest.TestCase):
    def _source(self, *responses):
        session = mock.Mock()
        session.get.side_effect = list(responses)
        return HttpGraphSource(base_url="http://api.test/api/", session=session, timeout=5, batch_timeout=15), session

    def test_neighborhood_request(self) -> None:
        src, session = self._source(_response(PAYLOAD))

        g = src.get_neighborhood(A)

        self.assertIn(B, g.nodes)
        args, kwargs = session.get.call_args
        self.assertEqual(args[0], f"http://api.test/api/graph/wallet-graph/{A}")
        self.assertEqual(kwargs["timeout"], 5)

    def test_next_batch_uses_batch_timeout_and_limit(self) -> None:
        src, session = self._source(_response(PAYLOAD))

        src.get_next_batch(A, 7)

        args, kwargs = session.get.call_args
        self.assertEqual(args[0], f"http://api.test/api/graph/node-transactions/{A}")
        self.assertEqual(kwargs["params"], {"limit": 7})
        self.assertEqual(kwargs["timeout"], 15)

    def test_error_mapping(self) -> None:
        src, _ = self._source(
            requests.ConnectionError("refused"),
            _response(status=400),
            _response(status=502),
            _response(json_error=True),
        )

        with self.assertRaises(NetworkError):
            src.get_initial(A)
        with self.assertRaises(ValidationError):
            src.get_initial("bad")
        with self.assertRaises(DataSourceError):
            src.get_neighborhood(A)
        with self.assertRaises(ValidationError):
            src.get_neighborhood(A)

    def test_other_request_errors_are_network_errors(self) -> None:
        src, _ = self._source(requests.exceptions.ChunkedEncodingError("truncated"))

        with self.assertRaises(NetworkError):
            src.get_neighborhood(A)

    def test_malformed_batch_fails_expansion(self) -> None:
        src, _ = self._source(
            _response({"nodes": [{"id": A, "balance": "1", "transactionCount": 1}], "edges": []}),
            _response({"nodes": [{"id": A, "transactionCount": "n/a"}], "edges": []}),
        )
        state = ClientGraphState()
        ctl = ExpansionController(source=src, state=state, render=lambda *_a: None)
        ctl.initial_load(A)

        res = ctl.expand_node(A)

        self.assertEqual(res.outcome, ExpansionOutcome.FAILED)
        self.assertEqual(state.node_state(A), NodeState.LOADED)
        self.assertEqual(state.in_flight(), [])


if __name__ == "__main__":
    unittest.main()
