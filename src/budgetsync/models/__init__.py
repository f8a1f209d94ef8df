"""Records and wire models for budgetsync."""

from budgetsync.models._base import PlaidBaseModel, PlaidEnum
from budgetsync.models.bank_account import AccountType, BankAccount
from budgetsync.models.category import Category, category_name
from budgetsync.models.delta import ReconciliationDelta, SyncPage
from budgetsync.models.item import PlaidItem
from budgetsync.models.transaction import Transaction
from budgetsync.models.webhook import IGNORED_WEBHOOK_CODES, WebhookCode, WebhookPayload

__all__ = [
    "AccountType",
    "BankAccount",
    "Category",
    "IGNORED_WEBHOOK_CODES",
    "PlaidBaseModel",
    "PlaidEnum",
    "PlaidItem",
    "ReconciliationDelta",
    "SyncPage",
    "Transaction",
    "WebhookCode",
    "WebhookPayload",
    "category_name",
]
