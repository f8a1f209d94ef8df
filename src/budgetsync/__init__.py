"""budgetsync - Async sync core for a personal finance client."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("budgetsync")
except PackageNotFoundError:
    __version__ = "0+local"
from budgetsync.client import BudgetClient
from budgetsync.config import SyncConfig
from budgetsync.exceptions import (
    BudgetSyncError,
    ConfigError,
    InvalidIdError,
    NotFoundError,
    PlaidApiError,
    ReadOnlyStoreError,
    RemoteFailure,
    TransportError,
    UnknownAccountError,
    UnknownWebhookCodeError,
    WebhookError,
)
from budgetsync.models import (
    AccountType,
    BankAccount,
    Category,
    PlaidItem,
    ReconciliationDelta,
    SyncPage,
    Transaction,
    WebhookCode,
    WebhookPayload,
)
from budgetsync.reconcile import ReconciliationEngine, SyncReport, SyncState
from budgetsync.store import IdStrategy, RecordStore, RemotePort, RemoteRequest, StoreRegistry, StoreResult
from budgetsync.webhook import WebhookHandler, create_app

__all__ = [
    "__version__",
    "AccountType",
    "BankAccount",
    "BudgetClient",
    "BudgetSyncError",
    "Category",
    "ConfigError",
    "IdStrategy",
    "InvalidIdError",
    "NotFoundError",
    "PlaidApiError",
    "PlaidItem",
    "ReadOnlyStoreError",
    "ReconciliationDelta",
    "ReconciliationEngine",
    "RecordStore",
    "RemoteFailure",
    "RemotePort",
    "RemoteRequest",
    "StoreRegistry",
    "StoreResult",
    "SyncConfig",
    "SyncPage",
    "SyncReport",
    "SyncState",
    "Transaction",
    "TransportError",
    "UnknownAccountError",
    "UnknownWebhookCodeError",
    "WebhookCode",
    "WebhookError",
    "WebhookHandler",
    "WebhookPayload",
    "create_app",
]
