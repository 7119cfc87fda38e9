from walletgraph.core.models import GraphSnapshot
from walletgraph.ports.graph_source_port import GraphSourcePort
from walletgraph.services.graph_sync_service import GraphSyncService


class LocalGraphSource(GraphSourcePort):
    """In-process source: calls the sync service directly (CLI exploration, tests)."""

    def __init__(self, service: GraphSyncService) -> None:
        self._service = service

    def get_initial(self, address: str) -> GraphSnapshot:
        return self._service.get_initial(address)

    def get_neighborhood(self, address: str) -> GraphSnapshot:
        return self._service.get_neighborhood(address)

    def get_next_batch(self, node_id: str, limit: int) -> GraphSnapshot:
        return self._service.get_next_batch(node_id, limit)
