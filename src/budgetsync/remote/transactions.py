"""Transaction port over the backing tables."""

from __future__ import annotations

from collections.abc import Sequence

from budgetsync.db.tables import BackingTables
from budgetsync.exceptions import NotFoundError
from budgetsync.models.transaction import Transaction
from budgetsync.store.request import RemoteRequest


class TransactionsPort:
    """Transactions across all accounts of one user."""

    def __init__(self, tables: BackingTables, user: str) -> None:
        self._tables = tables
        self._user = user

    async def pull(self, request: RemoteRequest) -> list[Transaction]:
        ids = None if request.is_all else request.ids
        return self._tables.select_transactions(self._user, ids)

    async def push(self, records: Sequence[Transaction]) -> None:
        """Upsert ``records`` by id.

        Raises
        ------
        NotFoundError
            A record references an account the user does not own, or its id
            already belongs to another user's transaction.
        """
        account_ids = {record.account_id for record in records}
        owned = {account.id for account in self._tables.select_accounts(self._user, account_ids)}
        missing = account_ids - owned
        if missing:
            raise NotFoundError(f"Unknown account(s) for user: {sorted(missing)}")
        owners = self._tables.transaction_owners(record.id for record in records)
        foreign = sorted(tx_id for tx_id, user in owners.items() if user != self._user)
        if foreign:
            raise NotFoundError(f"Unknown transaction(s) for user: {foreign}")
        self._tables.upsert_transactions(records)

    async def pop(self, ids: Sequence[str]) -> None:
        owned = [tx.id for tx in self._tables.select_transactions(self._user, ids)]
        self._tables.delete_transactions(owned)
