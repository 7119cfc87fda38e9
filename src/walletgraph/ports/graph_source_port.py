from __future__ import annotations

from abc import ABC, abstractmethod

from walletgraph.core.models import GraphSnapshot


class GraphSourcePort(ABC):
    """
    Where the client side gets graph snapshots from (HTTP API or in-process service).
    """

    @abstractmethod
    def get_initial(self, address: str) -> GraphSnapshot:
        raise NotImplementedError

    @abstractmethod
    def get_neighborhood(self, address: str) -> GraphSnapshot:
        raise NotImplementedError

    @abstractmethod
    def get_next_batch(self, node_id: str, limit: int) -> GraphSnapshot:
        raise NotImplementedError
