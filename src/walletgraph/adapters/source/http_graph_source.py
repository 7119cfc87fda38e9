from typing import Any, Dict, Optional

import requests

from walletgraph.config.settings import FETCH_TIMEOUT_SEC, WALLET_TIMEOUT_SEC
from walletgraph.core.errors import DataSourceError, NetworkError, ValidationError
from walletgraph.core.models import GraphSnapshot
from walletgraph.io.schemas import snapshot_from_dict
from walletgraph.ports.graph_source_port import GraphSourcePort


class HttpGraphSource(GraphSourcePort):
    """Reads graph snapshots from a running walletgraph API."""

    def __init__(
        self,
        base_url: str = "http://localhost:5000/api",
        session: Optional[requests.Session] = None,
        timeout: float = WALLET_TIMEOUT_SEC,
        batch_timeout: float = FETCH_TIMEOUT_SEC,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout
        self._batch_timeout = batch_timeout

    def _get(self, path: str, timeout: float, params: Optional[Dict[str, Any]] = None) -> GraphSnapshot:
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            resp = self._session.get(url, params=params, timeout=timeout)
        except requests.RequestException as e:
            raise NetworkError(f"GET {url} failed: {e}") from e
        if resp.status_code == 400:
            raise ValidationError(f"GET {url} rejected: {resp.text}")
        if resp.status_code >= 400:
            raise DataSourceError(f"GET {url} returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise ValidationError(f"GET {url} returned a non-JSON body") from e
        return snapshot_from_dict(data)

    def get_initial(self, address: str) -> GraphSnapshot:
        return self._get(f"graph/initial/{address}", self._timeout)

    def get_neighborhood(self, address: str) -> GraphSnapshot:
        return self._get(f"graph/wallet-graph/{address}", self._timeout)

    def get_next_batch(self, node_id: str, limit: int) -> GraphSnapshot:
        return self._get(f"graph/node-transactions/{node_id}", self._batch_timeout, params={"limit": limit})
