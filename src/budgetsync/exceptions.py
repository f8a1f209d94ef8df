"""Custom exception hierarchy for budgetsync."""

from __future__ import annotations


class BudgetSyncError(Exception):
    """Base exception for all budgetsync errors."""


class ConfigError(BudgetSyncError):
    """Invalid or missing configuration."""


class TransportError(BudgetSyncError):
    """HTTP-level failure (network, timeout, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class PlaidApiError(BudgetSyncError):
    """The aggregator answered with a structured error body."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        error_type: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.error_type = error_type
        self.endpoint = endpoint
        super().__init__(message)


class RemoteFailure(BudgetSyncError):
    """A pull, push, pop or delta fetch failed.

    The local cache (or the durable cursor, for reconciliation) is left
    untouched. ``cause`` holds the underlying exception.
    """

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class NotFoundError(BudgetSyncError):
    """Lookup of something that does not exist."""


class InvalidIdError(BudgetSyncError):
    """A record id is empty or collides with an existing one."""

    def __init__(self, message: str, *, record_id: str = "") -> None:
        self.record_id = record_id
        super().__init__(message)


class ReadOnlyStoreError(BudgetSyncError):
    """Mutation requested on a store whose port lacks push/pop."""


class UnknownAccountError(BudgetSyncError):
    """Reconciliation was signalled for an item we do not know."""

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Unknown item: {item_id}")


class WebhookError(BudgetSyncError):
    """Webhook payload could not be handled."""


class UnknownWebhookCodeError(WebhookError):
    """Webhook code is not one we recognise."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Unknown webhook code: {code}")
