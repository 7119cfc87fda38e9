from __future__ import annotations

import threading
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set

from walletgraph.config import settings
from walletgraph.config.logging import get_logger
from walletgraph.core.address import normalize_address, validate_address
from walletgraph.core.dto import FetchTask, RawTransaction, WalletSummary
from walletgraph.core.errors import DataSourceError
from walletgraph.core.models import AddressNode, GraphSnapshot, TransactionEdge
from walletgraph.ports.graph_store_port import GraphStorePort
from walletgraph.ports.ledger_port import LedgerPort
from walletgraph.workers.transaction_fetcher import TransactionFetcher

logger = get_logger(__name__)


class GraphSyncService:
    """
    Turns ledger transaction pages into graph store mutations and reads
    neighborhoods back out.

    - Wallet sync: wallet node + counterparties + one edge per transaction, then prune
    - Neighborhood: what the store knows around one address
    - Next batch: the following page of a node's transactions, for expansion
    """

    def __init__(
        self,
        ledger: LedgerPort,
        store: GraphStorePort,
        fetcher: TransactionFetcher,
        placeholder_balance: Decimal = settings.PLACEHOLDER_BALANCE,
        placeholder_tx_count: int = settings.PLACEHOLDER_TX_COUNT,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
    ) -> None:
        self.ledger = ledger
        self.store = store
        self.fetcher = fetcher
        self.placeholder_balance = placeholder_balance
        self.placeholder_tx_count = placeholder_tx_count
        self._api_url = api_url or settings.ETHERSCAN_BASE_URL
        self._api_key = api_key or settings.ETHERSCAN_API_KEY

        # next page to request per node, advanced only after a successful fetch
        self._cursors: Dict[str, int] = {}
        self._exhausted: Set[str] = set()
        self._cursor_lock = threading.Lock()

    # -------------------------
    # Operations
    # -------------------------

    def sync_wallet(
        self,
        address: str,
        page: int = 1,
        offset: int = settings.WALLET_PAGE_SIZE,
        counterparty_balance: Optional[Decimal] = None,
        counterparty_tx_count: Optional[int] = None,
    ) -> WalletSummary:
        wallet = validate_address(address)

        balance = self.ledger.get_balance(wallet)
        result = self.fetcher.fetch(self._task(wallet, page, offset))
        if not result.ok:
            raise DataSourceError(f"Failed to fetch wallet data: {result.error}")

        txs = list(result.transactions)
        self.store.set_address(wallet, balance, len(txs))
        edges = self._write_transactions(
            wallet,
            txs,
            counterparty_balance if counterparty_balance is not None else self.placeholder_balance,
            counterparty_tx_count if counterparty_tx_count is not None else self.placeholder_tx_count,
        )
        self.store.prune_orphans(wallet)

        logger.info("Synced %s: balance %s, %d transaction(s), %d edge(s)", wallet, balance, len(txs), len(edges))
        return WalletSummary(address=wallet, balance=balance, transaction_count=len(txs), recent_transactions=txs)

    def get_initial(self, address: str) -> GraphSnapshot:
        addr = normalize_address(address)
        node = self.store.get_address(addr)
        if node is None:
            return GraphSnapshot.single(addr)
        return GraphSnapshot(nodes={addr: node}, edges=[])

    def get_neighborhood(self, address: str) -> GraphSnapshot:
        addr = normalize_address(address)
        self.store.prune_orphans(addr)
        snapshot = self.store.query_neighborhood(addr)
        snapshot.sort_edges()
        logger.info("Neighborhood of %s: %d node(s), %d edge(s)", addr, len(snapshot.nodes), len(snapshot.edges))
        return snapshot

    def get_next_batch(self, node_id: str, limit: int = settings.BATCH_PAGE_SIZE) -> GraphSnapshot:
        node = validate_address(node_id)
        if limit <= 0:
            raise ValueError("limit must be > 0")

        with self._cursor_lock:
            if node in self._exhausted:
                logger.info("No more transactions for %s", node)
                return self._batch_base(node)
            page = self._cursors.get(node, 1)

        result = self.fetcher.fetch(self._task(node, page, limit))
        if not result.ok:
            raise DataSourceError(f"Failed to fetch transactions for {node}: {result.error}")

        with self._cursor_lock:
            self._cursors[node] = result.next_page or page + 1
            if not result.has_more_transactions:
                self._exhausted.add(node)

        # the node itself may be a counterparty that was never stored
        self.store.upsert_address(node, self.placeholder_balance, self.placeholder_tx_count)
        edges = self._write_transactions(node, result.transactions, self.placeholder_balance, self.placeholder_tx_count)

        batch = self._batch_base(node)
        for e in edges:
            for endpoint in (e.source, e.target):
                if endpoint not in batch.nodes:
                    stored = self.store.get_address(endpoint)
                    batch.add_node(stored or AddressNode(endpoint, self.placeholder_balance, self.placeholder_tx_count))
            batch.add_edge(e)
        batch.sort_edges()
        logger.info("Batch for %s (page %d): %d node(s), %d edge(s)", node, page, len(batch.nodes), len(batch.edges))
        return batch

    def reset_cursor(self, node_id: str) -> None:
        node = normalize_address(node_id)
        with self._cursor_lock:
            self._cursors.pop(node, None)
            self._exhausted.discard(node)

    # -------------------------
    # Helpers
    # -------------------------

    def _task(self, address: str, page: int, offset: int) -> FetchTask:
        return FetchTask(address=address, page=page, offset=offset, api_url=self._api_url, api_key=self._api_key)

    def _batch_base(self, node: str) -> GraphSnapshot:
        stored = self.store.get_address(node)
        if stored is None:
            return GraphSnapshot.single(node)
        return GraphSnapshot(nodes={node: stored}, edges=[])

    def _write_transactions(
        self,
        wallet: str,
        txs: Iterable[RawTransaction],
        counterparty_balance: Decimal,
        counterparty_tx_count: int,
    ) -> List[TransactionEdge]:
        written: List[TransactionEdge] = []
        for tx in txs:
            edge = self._edge_for(wallet, tx)
            if edge is None:
                continue
            self.store.upsert_address(edge.source, counterparty_balance, counterparty_tx_count)
            self.store.upsert_address(edge.target, counterparty_balance, counterparty_tx_count)
            if self.store.upsert_transaction_edge(edge):
                written.append(edge)
        return written

    @staticmethod
    def _edge_for(wallet: str, tx: RawTransaction) -> Optional[TransactionEdge]:
        src = tx.from_address.lower()
        dst = tx.to_address.lower()
        if not src or not dst:
            # contract creation has no payee
            logger.debug("Skipping %s: missing counterparty", tx.tx_hash)
            return None
        if src == wallet:
            direction = "out"
        elif dst == wallet:
            direction = "in"
        else:
            logger.debug("Skipping %s: does not touch %s", tx.tx_hash, wallet)
            return None
        return TransactionEdge(
            source=src,
            target=dst,
            hash=tx.tx_hash,
            value=tx.value,
            timestamp=tx.timestamp,
            gas_price=tx.gas_price,
            gas_used=tx.gas_used,
            block_number=tx.block_number,
            function_name=tx.function_name,
            direction=direction,
        )
