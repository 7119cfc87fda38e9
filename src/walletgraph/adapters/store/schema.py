"""SQLAlchemy Core table definitions for the graph store.

``addresses`` holds the Address nodes. ``transactions`` holds the directed
edges; its primary key is the (source, target) pair, so the store keeps one
edge per ordered pair and a later transfer overwrites the earlier one.
"""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Index, Integer, MetaData, Table, Text

metadata = MetaData()

addresses = Table(
    "addresses",
    metadata,
    Column("address", Text, primary_key=True),
    Column("balance", Text, nullable=False, server_default="0"),  # decimal string, ETH
    Column("transaction_count", Integer, nullable=False, server_default="0"),
)

transactions = Table(
    "transactions",
    metadata,
    Column("source", Text, ForeignKey("addresses.address"), primary_key=True),
    Column("target", Text, ForeignKey("addresses.address"), primary_key=True),
    Column("hash", Text, nullable=False),
    Column("value", Text, nullable=False, server_default="0"),
    Column("timestamp", Integer, nullable=False, server_default="0"),
    Column("gas_price", Text),
    Column("gas_used", Text),
    Column("block_number", Integer),
    Column("function_name", Text),
    Column("type", Text),  # in | out
)

Index("ix_transactions_target", transactions.c.target)
Index("ix_transactions_timestamp", transactions.c.timestamp)
