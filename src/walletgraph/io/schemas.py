from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from walletgraph.core.dto import RawTransaction, WalletSummary
from walletgraph.core.errors import ValidationError
from walletgraph.core.models import AddressNode, GraphSnapshot, TransactionEdge


def _dec_to_str(x: Decimal) -> str:
    # keep as string for JSON precision safety
    return format(x, "f")


def _dec(raw: Any) -> Decimal:
    try:
        return Decimal(str(raw if raw is not None else "0"))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Not a decimal amount: {raw!r}") from e


def _int(raw: Any) -> int:
    try:
        return int(raw or 0)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Not an integer: {raw!r}") from e


def node_to_dict(n: AddressNode) -> Dict[str, Any]:
    return {
        "id": n.id,
        "balance": _dec_to_str(n.balance),
        "transactionCount": n.transaction_count,
    }


def edge_to_dict(e: TransactionEdge) -> Dict[str, Any]:
    return {
        "source": e.source,
        "target": e.target,
        "hash": e.hash,
        "value": _dec_to_str(e.value),
        "timeStamp": e.timestamp,
        "gasPrice": e.gas_price,
        "gasUsed": e.gas_used,
        "blockNumber": e.block_number,
        "functionName": e.function_name,
        "type": e.direction,
    }


def snapshot_to_dict(g: GraphSnapshot, positions: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    nodes = []
    for n in g.nodes.values():
        d = node_to_dict(n)
        if positions and n.id in positions:
            x, y = positions[n.id]
            d["x"] = round(float(x), 2)
            d["y"] = round(float(y), 2)
        nodes.append(d)
    return {"nodes": nodes, "edges": [edge_to_dict(e) for e in g.edges]}


def snapshot_from_dict(data: Mapping[str, Any]) -> GraphSnapshot:
    """Parse a ``{nodes, edges}`` payload. Edges with unknown endpoints or repeated hashes are dropped."""
    if not isinstance(data, Mapping) or not isinstance(data.get("nodes"), list) or not isinstance(data.get("edges"), list):
        raise ValidationError("Graph payload must have 'nodes' and 'edges' lists")

    g = GraphSnapshot()
    for n in data["nodes"]:
        if not isinstance(n, Mapping) or not n.get("id"):
            raise ValidationError(f"Malformed node: {n!r}")
        g.add_node(AddressNode(
            id=str(n["id"]).lower(),
            balance=_dec(n.get("balance")),
            transaction_count=_int(n.get("transactionCount")),
        ))
    for e in data["edges"]:
        if not isinstance(e, Mapping) or not e.get("source") or not e.get("target") or not e.get("hash"):
            raise ValidationError(f"Malformed edge: {e!r}")
        g.add_edge(TransactionEdge(
            source=str(e["source"]).lower(),
            target=str(e["target"]).lower(),
            hash=str(e["hash"]),
            value=_dec(e.get("value")),
            timestamp=_int(e.get("timeStamp")),
            gas_price=str(e.get("gasPrice") or "0"),
            gas_used=str(e.get("gasUsed") or "0"),
            block_number=_int(e.get("blockNumber")),
            function_name=e.get("functionName") or "",
            direction=e.get("type"),
        ))
    return g


def transaction_to_dict(tx: RawTransaction) -> Dict[str, Any]:
    return {
        "hash": tx.tx_hash,
        "from": tx.from_address,
        "to": tx.to_address,
        "value": _dec_to_str(tx.value),
        "timeStamp": tx.timestamp,
        "gasPrice": tx.gas_price,
        "gasUsed": tx.gas_used,
        "isError": tx.is_error,
        "blockNumber": tx.block_number,
    }


def wallet_summary_to_dict(s: WalletSummary) -> Dict[str, Any]:
    return {
        "address": s.address,
        "balance": _dec_to_str(s.balance),
        "transactionCount": s.transaction_count,
        "recentTransactions": [transaction_to_dict(t) for t in s.recent_transactions],
    }
