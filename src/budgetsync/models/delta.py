"""Delta feed models.

:class:`SyncPage` mirrors one ``/transactions/sync`` response page as
received. :class:`ReconciliationDelta` is the normalized, foldable form the
reconciliation engine commits to the backing tables.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from budgetsync.models.bank_account import BankAccount
from budgetsync.models.transaction import Transaction


class SyncPage(BaseModel):
    """One page of the aggregator delta feed."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    accounts: list[dict[str, Any]] = Field(default_factory=list)
    added: list[dict[str, Any]] = Field(default_factory=list)
    modified: list[dict[str, Any]] = Field(default_factory=list)
    removed: list[dict[str, Any]] = Field(default_factory=list)
    next_cursor: str
    has_more: bool = False

    @property
    def removed_ids(self) -> list[str]:
        return [str(item["transaction_id"]) for item in self.removed if item.get("transaction_id")]


class ReconciliationDelta(BaseModel):
    """Accounts, upserted transactions and removed ids since a cursor.

    Upserts are keyed replacements and removals a set difference, so
    committing the same delta twice leaves the tables as committing it once.
    """

    model_config = ConfigDict(frozen=True)

    cursor: str | None = None
    accounts: tuple[BankAccount, ...] = ()
    upserts: tuple[Transaction, ...] = ()
    removed_ids: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.accounts or self.upserts or self.removed_ids)

    def merge(self, later: ReconciliationDelta) -> ReconciliationDelta:
        """Fold a later delta into this one; the later delta wins per id."""
        accounts = {account.id: account for account in self.accounts}
        upserts = {tx.id: tx for tx in self.upserts}
        removed = dict.fromkeys(self.removed_ids)

        for account in later.accounts:
            accounts[account.id] = account
        for tx in later.upserts:
            upserts[tx.id] = tx
            removed.pop(tx.id, None)
        for tx_id in later.removed_ids:
            upserts.pop(tx_id, None)
            removed[tx_id] = None

        return ReconciliationDelta(
            cursor=later.cursor or self.cursor,
            accounts=tuple(accounts.values()),
            upserts=tuple(upserts.values()),
            removed_ids=tuple(removed),
        )
