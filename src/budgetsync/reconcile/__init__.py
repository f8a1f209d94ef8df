"""Delta-feed reconciliation."""

from budgetsync.reconcile.engine import (
    DeltaSource,
    PlaidDeltaSource,
    ReconciliationEngine,
    SyncReport,
    SyncState,
)
from budgetsync.reconcile.normalize import account_from_plaid, delta_from_page, transaction_from_plaid

__all__ = [
    "DeltaSource",
    "PlaidDeltaSource",
    "ReconciliationEngine",
    "SyncReport",
    "SyncState",
    "account_from_plaid",
    "delta_from_page",
    "transaction_from_plaid",
]
