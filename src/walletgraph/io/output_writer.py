from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from walletgraph.core.models import GraphSnapshot
from walletgraph.io.schemas import snapshot_to_dict


def write_graph_json(
    graph: GraphSnapshot,
    out_dir: str,
    positions: Optional[Mapping[str, Tuple[float, float]]] = None,
    filename: str = "graph.json",
) -> str:
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)

    out_path = p / filename
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(snapshot_to_dict(graph, positions), f, indent=2)

    return str(out_path)


def write_summary_md(
    graph: GraphSnapshot,
    out_dir: str,
    filename: str = "summary.md",
    seed_address: Optional[str] = None,
) -> str:
    """
    Short overview of an explored neighborhood: sizes, top counterparties of
    the seed by ETH moved, and the largest transfers.
    """
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)

    out_path = p / filename
    seed = (seed_address or "").lower()

    def sum_by(edges, key) -> Dict[str, Decimal]:
        totals: Dict[str, Decimal] = {}
        for e in edges:
            addr = key(e)
            totals[addr] = totals.get(addr, Decimal("0")) + e.value
        return totals

    inflow = sum_by([e for e in graph.edges if seed and e.target == seed], lambda e: e.source)
    outflow = sum_by([e for e in graph.edges if seed and e.source == seed], lambda e: e.target)

    def top_n(totals, n=10):
        return sorted(totals.items(), key=lambda x: x[1], reverse=True)[:n]

    def short(addr: str) -> str:
        return addr if len(addr) <= 14 else f"{addr[:10]}..."

    lines = []
    lines.append("# Wallet Graph Summary\n")
    lines.append(f"- Nodes: **{len(graph.nodes)}**\n")
    lines.append(f"- Edges: **{len(graph.edges)}**\n")
    if seed:
        lines.append(f"- Seed: **{seed}**\n")
        node = graph.nodes.get(seed)
        if node is not None:
            lines.append(f"- Seed balance: **{node.balance:f} ETH**\n")
    lines.append("\n")

    lines.append("## Top Inflow Sources (by ETH)\n\n")
    if not inflow:
        lines.append("_No inbound transfers in the explored graph._\n\n")
    else:
        for addr, total in top_n(inflow):
            lines.append(f"- **{total:f} ETH** | {addr}\n")
        lines.append("\n")

    lines.append("## Top Outflow Destinations (by ETH)\n\n")
    if not outflow:
        lines.append("_No outbound transfers in the explored graph._\n\n")
    else:
        for addr, total in top_n(outflow):
            lines.append(f"- **{total:f} ETH** | {addr}\n")
        lines.append("\n")

    lines.append("## Largest Transfers\n\n")
    top = sorted(graph.edges, key=lambda e: e.value, reverse=True)[:15]
    if not top:
        lines.append("_No transfers in the explored graph._\n")
    else:
        for e in top:
            lines.append(f"- **{e.value:f} ETH** | {short(e.source)} -> {short(e.target)} | tx: {e.hash}\n")

    with out_path.open("w", encoding="utf-8") as f:
        f.writelines(lines)

    return str(out_path)
