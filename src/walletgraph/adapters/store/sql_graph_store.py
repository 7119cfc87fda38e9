"""SQL-backed graph store.

SQLAlchemy Core over SQLite by default. Each public operation opens its own
connection inside ``_session()`` and closes it on every exit path; no
connection outlives the call that acquired it.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager, nullcontext
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import create_engine, event, func, insert, or_, select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from walletgraph.adapters.store.schema import addresses, metadata, transactions
from walletgraph.config.logging import get_logger
from walletgraph.config.settings import GRAPH_DB_URL
from walletgraph.core.errors import StoreError, StoreUnavailable
from walletgraph.core.models import AddressNode, GraphSnapshot, TransactionEdge
from walletgraph.ports.graph_store_port import GraphStorePort

logger = get_logger(__name__)

_EDGE_FIELDS = ("hash", "value", "timestamp", "gas_price", "gas_used", "block_number", "function_name", "type")


def create_store_engine(url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=False, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    return create_engine(url, echo=False, pool_pre_ping=True)


def _to_decimal(raw: Any) -> Decimal:
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return Decimal("0")


class SqlGraphStore(GraphStorePort):

    def __init__(self, url: str = GRAPH_DB_URL, engine: Optional[Engine] = None) -> None:
        self._engine = engine or create_store_engine(url)
        # SQLite has a single writer; in-memory databases also share one connection
        self._lock = threading.RLock() if self._engine.dialect.name == "sqlite" else nullcontext()

    # ---------- internal ----------

    @contextmanager
    def _session(self) -> Iterator[Connection]:
        with self._lock:
            conn = self._engine.connect()
            try:
                with conn.begin():
                    yield conn
            except SQLAlchemyError as e:
                raise StoreError(f"Graph store operation failed: {e}") from e
            finally:
                conn.close()

    def _insert_ignore(self, conn: Connection, values: Dict[str, Any]) -> bool:
        dialect = conn.dialect.name
        if dialect == "sqlite":
            stmt = sqlite.insert(addresses).values(**values).on_conflict_do_nothing(index_elements=["address"])
        elif dialect == "postgresql":
            stmt = postgresql.insert(addresses).values(**values).on_conflict_do_nothing(index_elements=["address"])
        else:
            exists = conn.execute(
                select(addresses.c.address).where(addresses.c.address == values["address"])
            ).first()
            if exists is not None:
                return False
            stmt = insert(addresses).values(**values)
        return conn.execute(stmt).rowcount > 0

    def _upsert_address_row(self, conn: Connection, values: Dict[str, Any]) -> None:
        data = {k: values[k] for k in ("balance", "transaction_count")}
        dialect = conn.dialect.name
        if dialect in ("sqlite", "postgresql"):
            mod = sqlite if dialect == "sqlite" else postgresql
            stmt = mod.insert(addresses).values(**values).on_conflict_do_update(
                index_elements=["address"], set_=data,
            )
            conn.execute(stmt)
            return
        res = conn.execute(update(addresses).where(addresses.c.address == values["address"]).values(**data))
        if res.rowcount == 0:
            conn.execute(insert(addresses).values(**values))

    def _upsert_edge_row(self, conn: Connection, row: Dict[str, Any]) -> None:
        data = {k: row[k] for k in _EDGE_FIELDS}
        dialect = conn.dialect.name
        if dialect in ("sqlite", "postgresql"):
            mod = sqlite if dialect == "sqlite" else postgresql
            stmt = mod.insert(transactions).values(**row).on_conflict_do_update(
                index_elements=["source", "target"], set_=data,
            )
            conn.execute(stmt)
            return
        res = conn.execute(
            update(transactions)
            .where(transactions.c.source == row["source"], transactions.c.target == row["target"])
            .values(**data)
        )
        if res.rowcount == 0:
            conn.execute(insert(transactions).values(**row))

    @staticmethod
    def _node_from_row(row: Any) -> AddressNode:
        return AddressNode(
            id=row["address"],
            balance=_to_decimal(row["balance"]),
            transaction_count=int(row["transaction_count"] or 0),
        )

    @staticmethod
    def _edge_from_row(row: Any) -> TransactionEdge:
        return TransactionEdge(
            source=row["source"],
            target=row["target"],
            hash=row["hash"],
            value=_to_decimal(row["value"]),
            timestamp=int(row["timestamp"] or 0),
            gas_price=row["gas_price"] or "0",
            gas_used=row["gas_used"] or "0",
            block_number=int(row["block_number"] or 0),
            function_name=row["function_name"] or "",
            direction=row["type"],
        )

    def _incident_edges(self, conn: Connection, address: str) -> List[Any]:
        stmt = (
            select(transactions)
            .where(or_(transactions.c.source == address, transactions.c.target == address))
            .order_by(transactions.c.timestamp.desc())
        )
        return list(conn.execute(stmt).mappings().all())

    # ---------- port methods ----------

    def connect(self) -> None:
        """Check connectivity and create tables. Raises StoreUnavailable."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Graph store unreachable at {self._engine.url.render_as_string(hide_password=True)}: {e}") from e
        logger.info("Graph store ready (%s)", self._engine.url.render_as_string(hide_password=True))

    def upsert_address(self, address: str, balance: Decimal, transaction_count: int) -> bool:
        """Create the node if missing. Existing nodes keep their first-written attributes."""
        with self._session() as conn:
            created = self._insert_ignore(conn, {
                "address": address.lower(),
                "balance": format(Decimal(str(balance)), "f"),
                "transaction_count": int(transaction_count),
            })
        if created:
            logger.debug("Created address node %s", address)
        return created

    def set_address(self, address: str, balance: Decimal, transaction_count: int) -> None:
        """Create or overwrite the node with freshly fetched attributes."""
        with self._session() as conn:
            self._upsert_address_row(conn, {
                "address": address.lower(),
                "balance": format(Decimal(str(balance)), "f"),
                "transaction_count": int(transaction_count),
            })
        logger.debug("Refreshed address node %s", address)

    def upsert_transaction_edge(self, edge: TransactionEdge) -> bool:
        """Write the (source, target) relationship, replacing any previous data for that pair."""
        source = edge.source.lower()
        target = edge.target.lower()
        with self._session() as conn:
            found = conn.execute(
                select(func.count()).select_from(addresses).where(addresses.c.address.in_(sorted({source, target})))
            ).scalar_one()
            if found < len({source, target}):
                logger.warning("Skipping edge %s: endpoint missing (%s -> %s)", edge.hash, source, target)
                return False
            self._upsert_edge_row(conn, {
                "source": source,
                "target": target,
                "hash": edge.hash,
                "value": format(edge.value, "f"),
                "timestamp": int(edge.timestamp),
                "gas_price": edge.gas_price,
                "gas_used": edge.gas_used,
                "block_number": int(edge.block_number),
                "function_name": edge.function_name or "",
                "type": edge.direction,
            })
        return True

    def prune_orphans(self, protected_id: Optional[str] = None) -> int:
        linked = select(transactions.c.source).union(select(transactions.c.target))
        stmt = addresses.delete().where(addresses.c.address.not_in(linked))
        if protected_id:
            stmt = stmt.where(addresses.c.address != protected_id.lower())
        with self._session() as conn:
            deleted = conn.execute(stmt).rowcount or 0
        logger.info("Pruned %d orphan node(s)", deleted)
        return deleted

    def query_neighborhood(self, address: str) -> GraphSnapshot:
        addr = address.lower()
        with self._session() as conn:
            root = conn.execute(select(addresses).where(addresses.c.address == addr)).mappings().first()
            if root is None:
                return GraphSnapshot.single(addr)

            edge_rows = self._incident_edges(conn, addr)
            others = {r["source"] for r in edge_rows} | {r["target"] for r in edge_rows}
            others.discard(addr)
            node_rows = []
            if others:
                node_rows = conn.execute(
                    select(addresses).where(addresses.c.address.in_(sorted(others)))
                ).mappings().all()

        snapshot = GraphSnapshot.single(addr)
        snapshot.nodes[addr] = self._node_from_row(root)
        for r in node_rows:
            snapshot.add_node(self._node_from_row(r))
        for r in edge_rows:
            snapshot.add_edge(self._edge_from_row(r))
        snapshot.sort_edges()
        return snapshot

    def get_address(self, address: str) -> Optional[AddressNode]:
        with self._session() as conn:
            row = conn.execute(
                select(addresses).where(addresses.c.address == address.lower())
            ).mappings().first()
        return self._node_from_row(row) if row is not None else None

    def count_nodes(self) -> int:
        with self._session() as conn:
            return int(conn.execute(select(func.count()).select_from(addresses)).scalar_one())

    def count_edges(self) -> int:
        with self._session() as conn:
            return int(conn.execute(select(func.count()).select_from(transactions)).scalar_one())

    def debug_summary(self, address: str) -> Dict[str, Any]:
        addr = address.lower()
        with self._session() as conn:
            root = conn.execute(select(addresses).where(addresses.c.address == addr)).mappings().first()
            node_count = conn.execute(select(func.count()).select_from(addresses)).scalar_one()
            edge_rows = self._incident_edges(conn, addr)

            per_neighbor: Dict[str, int] = {}
            for r in edge_rows:
                other = r["target"] if r["source"] == addr else r["source"]
                per_neighbor[other] = per_neighbor.get(other, 0) + 1
            neighbor_rows = {}
            if per_neighbor:
                neighbor_rows = {
                    r["address"]: r
                    for r in conn.execute(
                        select(addresses).where(addresses.c.address.in_(sorted(per_neighbor)))
                    ).mappings().all()
                }

        connected = sorted(per_neighbor.items(), key=lambda kv: kv[1], reverse=True)
        return {
            "addressInfo": dict(root) if root is not None else None,
            "nodeCount": int(node_count),
            "transactionCount": len(edge_rows),
            "transactions": [
                {**dict(r), "connectedWith": r["target"] if r["source"] == addr else r["source"]}
                for r in edge_rows
            ],
            "connectedAddresses": [
                {
                    "address": other,
                    "balance": neighbor_rows[other]["balance"] if other in neighbor_rows else None,
                    "transactionCount": count,
                }
                for other, count in connected
            ],
        }

    def dispose(self) -> None:
        self._engine.dispose()
