"""Backing tables mirrored by the record stores and written by reconciliation."""

from budgetsync.db.schema import (
    bank_accounts_table,
    create_all,
    create_backing_engine,
    metadata,
    plaid_items_table,
    transactions_table,
)
from budgetsync.db.tables import BackingTables

__all__ = [
    "BackingTables",
    "bank_accounts_table",
    "create_all",
    "create_backing_engine",
    "metadata",
    "plaid_items_table",
    "transactions_table",
]
