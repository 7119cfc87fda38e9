from __future__ import annotations

from typing import Optional

from walletgraph.adapters.ledger.etherscan_ledger_adapter import EtherscanLedgerAdapter
from walletgraph.adapters.ledger.static_ledger_adapter import StaticLedgerAdapter
from walletgraph.adapters.store.sql_graph_store import SqlGraphStore
from walletgraph.config import settings
from walletgraph.ports.ledger_port import LedgerPort
from walletgraph.services.graph_sync_service import GraphSyncService
from walletgraph.workers.transaction_fetcher import TransactionFetcher


def build_sync_service(
    use_static: bool = False,
    db_url: Optional[str] = None,
    ledger: Optional[LedgerPort] = None,
) -> GraphSyncService:
    """Wire ledger, store and fetcher. The store is not connected yet; call ``store.connect()``."""
    store = SqlGraphStore(db_url or settings.GRAPH_DB_URL)
    if ledger is None and not use_static:
        # live Etherscan fetches build one adapter per task and pace pages;
        # balance lookups draw on the same rate limiter
        fetcher = TransactionFetcher(max_jitter=settings.FETCH_MAX_JITTER_SEC)
        ledger = EtherscanLedgerAdapter(rate_limiter=fetcher.limiter_for())
        return GraphSyncService(ledger=ledger, store=store, fetcher=fetcher)

    ledger = ledger or StaticLedgerAdapter()
    fetcher = TransactionFetcher(ledger=ledger, max_jitter=0.0)
    return GraphSyncService(ledger=ledger, store=store, fetcher=fetcher)
