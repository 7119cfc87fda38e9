from __future__ import annotations

import argparse
import datetime as dt
import sys
import time

from walletgraph.adapters.source.local_graph_source import LocalGraphSource
from walletgraph.client.expansion_controller import ExpansionOutcome
from walletgraph.client.graph_controller import ExplorerSession
from walletgraph.config import settings
from walletgraph.config.logging import configure_logging, get_logger
from walletgraph.core.errors import StoreUnavailable, WalletGraphError
from walletgraph.io.output_writer import write_graph_json, write_summary_md
from walletgraph.layout.layout_engine import LayoutEngine
from walletgraph.services.bootstrap import build_sync_service

logger = get_logger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="walletgraph", description="Incremental wallet transaction graph explorer (ETH)")
    p.add_argument("--use-static", action="store_true", help="Use static ledger adapter (dev/testing)")
    p.add_argument("--db-url", default=None, help=f"Graph store URL (default {settings.GRAPH_DB_URL})")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    p.add_argument("--log-file", default=None, help="Also write logs to this file")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("sync", help="Fetch a wallet page from the ledger into the graph store")
    s.add_argument("--address", required=True, help="Wallet address")
    s.add_argument("--offset", type=int, default=settings.WALLET_PAGE_SIZE, help="Transactions per page")

    e = sub.add_parser("explore", help="Load a neighborhood, expand it and write a laid-out graph")
    e.add_argument("--address", required=True, help="Seed address")
    e.add_argument("--expand", type=int, default=0, help="Expand up to N nodes breadth-first")
    e.add_argument("--ticks", type=int, default=600, help="Maximum layout ticks")
    e.add_argument("--seed", type=int, default=None, help="Layout random seed")
    e.add_argument("--no-sync", action="store_true", help="Skip the initial wallet sync, use stored data only")
    e.add_argument("--out", default="out", help="Output folder")

    v = sub.add_parser("serve", help="Run the HTTP API")
    v.add_argument("--host", default="127.0.0.1")
    v.add_argument("--port", type=int, default=5000)
    return p


def _ts() -> str:
    return dt.datetime.now().strftime("%H:%M:%S")


def _cmd_sync(args, svc) -> int:
    summary = svc.sync_wallet(args.address, offset=args.offset)
    print(
        f"[{_ts()}] Synced {summary.address} • balance {summary.balance:f} ETH • "
        f"{summary.transaction_count} transaction(s)"
    )
    return 0


def _cmd_explore(args, svc) -> int:
    start_time = time.time()
    if not args.no_sync:
        svc.sync_wallet(args.address)

    session = ExplorerSession(LocalGraphSource(svc), layout=LayoutEngine(seed=args.seed))
    graph = session.open(args.address)
    print(f"[{_ts()}] Loaded {session.root} • {len(graph.nodes)} nodes • {len(graph.edges)} edges")

    if args.expand > 0:
        results = session.expand_breadth_first(args.expand)
        failed = [r for r in results if r.outcome == ExpansionOutcome.FAILED]
        added = sum(len(r.new_node_ids) for r in results)
        print(f"[{_ts()}] Expanded {len(results)} node(s) • {added} new node(s) • {len(failed)} failed")
        for r in failed:
            print(f"  {r.node_id}: {r.error}", file=sys.stderr)

    positions = session.settle(args.ticks)
    graph = session.snapshot()

    print("Writing outputs...")
    graph_path = write_graph_json(graph, args.out, positions=positions)
    summary_path = write_summary_md(graph, args.out, seed_address=session.root)
    print(f"Wrote: {graph_path}")
    print(f"Wrote: {summary_path}")
    print(
        f"[{_ts()}] Done in {time.time() - start_time:.1f}s • "
        f"{len(graph.nodes)} nodes • {len(graph.edges)} edges"
    )
    return 0


def _cmd_serve(args) -> int:
    import uvicorn

    from walletgraph.api.server import create_app

    svc = build_sync_service(use_static=args.use_static, db_url=args.db_url)
    uvicorn.run(create_app(svc), host=args.host, port=args.port)
    return 0


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)
    configure_logging(verbose=args.verbose, log_file=args.log_file, level=settings.LOG_LEVEL)

    if not args.use_static and not settings.ETHERSCAN_API_KEY:
        print(f"[{_ts()}] Error: Missing ETHERSCAN_API_KEY environment variable", file=sys.stderr)
        return 2

    print(f"Adapter: {'StaticLedgerAdapter (dev/testing)' if args.use_static else 'EtherscanLedgerAdapter'}")
    if args.command == "serve":
        return _cmd_serve(args)

    svc = build_sync_service(use_static=args.use_static, db_url=args.db_url)
    try:
        svc.store.connect()
    except StoreUnavailable as exc:
        print(f"[{_ts()}] Error: {exc}", file=sys.stderr)
        return 1

    try:
        if args.command == "sync":
            return _cmd_sync(args, svc)
        return _cmd_explore(args, svc)
    except WalletGraphError as exc:
        print(f"[{_ts()}] Error: {exc.__class__.__name__}: {exc}", file=sys.stderr)
        return 1
    finally:
        svc.fetcher.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
