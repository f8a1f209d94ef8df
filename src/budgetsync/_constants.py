"""Internal constants shared across the library."""

PLAID_ENVIRONMENTS: dict[str, str] = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}
USER_AGENT = "budgetsync/1"

#: Default cache time-to-live for a store request, in seconds.
DEFAULT_CACHE_TTL: float = 5 * 60

#: Sentinel id used when a transaction has no category.
UNCATEGORIZED = "uncategorized"
UNCATEGORIZED_NAME = "Uncategorized"

#: Provider error code returned when the feed changed while paging.
MUTATION_DURING_PAGINATION = "TRANSACTIONS_SYNC_MUTATION_DURING_PAGINATION"

#: Maximum ``count`` accepted by ``/transactions/sync``.
MAX_SYNC_PAGE_SIZE = 500
