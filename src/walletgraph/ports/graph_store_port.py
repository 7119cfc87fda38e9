from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional

from walletgraph.core.models import AddressNode, GraphSnapshot, TransactionEdge


class GraphStorePort(ABC):
    """
    Persistent graph of Address nodes and directed transaction edges.

    Edges are keyed by their (source, target) pair, so a newer transfer
    between the same two addresses replaces the stored one.
    """

    @abstractmethod
    def connect(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def upsert_address(self, address: str, balance: Decimal, transaction_count: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    def set_address(self, address: str, balance: Decimal, transaction_count: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def upsert_transaction_edge(self, edge: TransactionEdge) -> bool:
        raise NotImplementedError

    @abstractmethod
    def prune_orphans(self, protected_id: Optional[str] = None) -> int:
        raise NotImplementedError

    @abstractmethod
    def query_neighborhood(self, address: str) -> GraphSnapshot:
        raise NotImplementedError

    @abstractmethod
    def get_address(self, address: str) -> Optional[AddressNode]:
        raise NotImplementedError

    @abstractmethod
    def debug_summary(self, address: str) -> Dict[str, Any]:
        raise NotImplementedError
