"""Bank account port over the backing tables."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from budgetsync.db.tables import BackingTables
from budgetsync.models.bank_account import BankAccount
from budgetsync.store.request import RemoteRequest

_logger = logging.getLogger(__name__)


class BankAccountsPort:
    """Accounts of one user. Pull and pop only.

    Accounts are created and updated by reconciliation, so there is no
    ``push``; the store built from this port rejects ``add``.
    """

    def __init__(self, tables: BackingTables, user: str) -> None:
        self._tables = tables
        self._user = user

    async def pull(self, request: RemoteRequest) -> list[BankAccount]:
        ids = None if request.is_all else request.ids
        return self._tables.select_accounts(self._user, ids)

    async def pop(self, ids: Sequence[str]) -> None:
        """Unlink accounts, removing their transactions first."""
        owned = [account.id for account in self._tables.select_accounts(self._user, ids)]
        if len(owned) != len(set(ids)):
            _logger.debug("Ignoring %d account ids not owned by user", len(set(ids)) - len(owned))
        self._tables.delete_accounts(owned)
