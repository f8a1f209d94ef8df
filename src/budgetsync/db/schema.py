"""SQLAlchemy table metadata for the backing store.

Column names follow the hosted database the mobile client talks to, which is
why ``bank_accounts`` mixes camelCase and snake_case.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

_logger = logging.getLogger(__name__)

metadata = MetaData()

bank_accounts_table = Table(
    "bank_accounts",
    metadata,
    Column("user", String(64), nullable=False, index=True),
    Column("accountId", Text, primary_key=True),
    Column("availableBalance", Float),
    Column("currentBalance", Float),
    Column("isoCurrencyCode", Text),
    Column("unofficialCurrencyCode", Text),
    Column("mask", Text),
    Column("account_name", Text),
    Column("officialName", Text),
    Column("type", String(16)),
    Column("subtype", Text),
)

transactions_table = Table(
    "transactions",
    metadata,
    Column("id", Text, primary_key=True),
    Column(
        "account_id",
        Text,
        ForeignKey("bank_accounts.accountId", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("amount", Float, nullable=False),
    Column("iso_currency_code", Text),
    Column("unofficial_currency_code", Text),
    Column("category_id", Text),
    Column("date", Date),
    Column("merchant_name", Text),
    Column("pending", Boolean, nullable=False, default=False),
    Column("logo_url", Text),
)

# Per-item credential and durable delta-feed cursor.
plaid_items_table = Table(
    "plaid_items",
    metadata,
    Column("item_id", Text, primary_key=True),
    Column("user", String(64), nullable=False, index=True),
    Column("access_token", Text, nullable=False),
    Column("cursor", Text),
    Column("updated_at", DateTime(timezone=True)),
)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_backing_engine(database_url: str, **kwargs: Any) -> Engine:
    """Create an engine; SQLite connections enforce foreign keys (cascades)."""
    engine = create_engine(database_url, future=True, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    _logger.debug("Backing engine created for dialect %s", engine.dialect.name)
    return engine


def create_all(engine: Engine) -> None:
    metadata.create_all(engine)
