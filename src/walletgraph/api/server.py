"""
walletgraph HTTP API
====================

JSON endpoints over the graph sync service.

Endpoints:
- GET /api/graph/initial/{address}            -> single-node bootstrap
- GET /api/graph/wallet-graph/{address}       -> stored neighborhood
- GET /api/graph/node-transactions/{node_id}  -> next batch for one node
- GET /api/wallet/{address}                   -> sync a wallet from the ledger
- GET /api/debug/graph/{address}              -> store contents around an address

Usage:
    uvicorn walletgraph.api.server:app
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from walletgraph.config import settings
from walletgraph.config.logging import get_logger
from walletgraph.core.errors import DataSourceError, StoreError, ValidationError
from walletgraph.io.schemas import snapshot_to_dict, wallet_summary_to_dict
from walletgraph.services.bootstrap import build_sync_service
from walletgraph.services.graph_sync_service import GraphSyncService

logger = get_logger(__name__)


def create_app(service: Optional[GraphSyncService] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = service or build_sync_service()
        # StoreUnavailable propagates and aborts startup
        svc.store.connect()
        app.state.service = svc
        logger.info("walletgraph API ready")
        try:
            yield
        finally:
            if service is None:
                svc.fetcher.shutdown(wait=False)
            logger.info("walletgraph API stopped")

    app = FastAPI(title="walletgraph API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(DataSourceError)
    async def _data_source_error(request: Request, exc: DataSourceError):
        logger.error("Ledger failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"error": "Error fetching ledger data", "details": str(exc)})

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError):
        logger.error("Store failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "Error fetching graph data", "details": str(exc)})

    def _svc(request: Request) -> GraphSyncService:
        return request.app.state.service

    @app.get("/api/graph/initial/{address}")
    def initial_graph(address: str, request: Request) -> Dict[str, Any]:
        return snapshot_to_dict(_svc(request).get_initial(address))

    @app.get("/api/graph/wallet-graph/{address}")
    def wallet_graph(address: str, request: Request) -> Dict[str, Any]:
        return snapshot_to_dict(_svc(request).get_neighborhood(address))

    @app.get("/api/graph/node-transactions/{node_id}")
    def node_transactions(
        node_id: str,
        request: Request,
        limit: int = Query(settings.BATCH_PAGE_SIZE, ge=1, le=1000),
    ) -> Dict[str, Any]:
        return snapshot_to_dict(_svc(request).get_next_batch(node_id, limit))

    @app.get("/api/wallet/{address}")
    def wallet(address: str, request: Request) -> Dict[str, Any]:
        return wallet_summary_to_dict(_svc(request).sync_wallet(address))

    @app.get("/api/debug/graph/{address}")
    def debug_graph(address: str, request: Request) -> Dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug": _svc(request).store.debug_summary(address.lower()),
        }

    return app


app = create_app()
