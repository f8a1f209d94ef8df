"""Row-level access to the backing tables.

Every public method runs in its own transaction. Upserts use the dialect's
``INSERT .. ON CONFLICT DO UPDATE`` keyed on the table's primary key, so
writing the same rows twice leaves the tables as writing them once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Table, delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine

from budgetsync.db.schema import bank_accounts_table, plaid_items_table, transactions_table
from budgetsync.exceptions import BudgetSyncError, UnknownAccountError
from budgetsync.models.bank_account import BankAccount
from budgetsync.models.delta import ReconciliationDelta
from budgetsync.models.item import PlaidItem
from budgetsync.models.transaction import Transaction

_logger = logging.getLogger(__name__)

_CHUNK_SIZE = 500


def _chunks(rows: Sequence[dict[str, Any]]) -> Iterable[Sequence[dict[str, Any]]]:
    for start in range(0, len(rows), _CHUNK_SIZE):
        yield rows[start : start + _CHUNK_SIZE]


class BackingTables:
    """Gateway over ``bank_accounts``, ``transactions`` and ``plaid_items``."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        dialect = engine.dialect.name
        if dialect == "sqlite":
            self._insert = sqlite.insert
        elif dialect == "postgresql":
            self._insert = postgresql.insert
        else:
            raise BudgetSyncError(f"Unsupported backing database dialect: {dialect}")

    @property
    def engine(self) -> Engine:
        return self._engine

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select_accounts(self, user: str, ids: Iterable[str] | None = None) -> list[BankAccount]:
        table = bank_accounts_table
        stmt = select(table).where(table.c.user == user)
        if ids is not None:
            stmt = stmt.where(table.c.accountId.in_(list(ids)))
        with self._engine.connect() as conn:
            rows = conn.execute(stmt.order_by(table.c.accountId)).mappings().all()
        return [BankAccount.model_validate(dict(row)) for row in rows]

    def select_transactions(self, user: str, ids: Iterable[str] | None = None) -> list[Transaction]:
        tx = transactions_table
        accounts = bank_accounts_table
        stmt = (
            select(tx)
            .join(accounts, tx.c.account_id == accounts.c.accountId)
            .where(accounts.c.user == user)
        )
        if ids is not None:
            stmt = stmt.where(tx.c.id.in_(list(ids)))
        with self._engine.connect() as conn:
            rows = conn.execute(stmt.order_by(tx.c.date.desc(), tx.c.id)).mappings().all()
        return [Transaction.model_validate(dict(row)) for row in rows]

    def transaction_owners(self, ids: Iterable[str]) -> dict[str, str]:
        """Map each stored transaction id in ``ids`` to the user owning its account."""
        tx = transactions_table
        accounts = bank_accounts_table
        stmt = (
            select(tx.c.id, accounts.c.user)
            .join(accounts, tx.c.account_id == accounts.c.accountId)
            .where(tx.c.id.in_(list(ids)))
        )
        with self._engine.connect() as conn:
            return {row.id: row.user for row in conn.execute(stmt)}

    def get_item(self, item_id: str) -> PlaidItem | None:
        items = plaid_items_table
        with self._engine.connect() as conn:
            row = conn.execute(select(items).where(items.c.item_id == item_id)).mappings().first()
        return PlaidItem.model_validate(dict(row)) if row is not None else None

    def items_for_user(self, user: str) -> list[PlaidItem]:
        items = plaid_items_table
        with self._engine.connect() as conn:
            rows = conn.execute(select(items).where(items.c.user == user).order_by(items.c.item_id)).mappings().all()
        return [PlaidItem.model_validate(dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_accounts(self, accounts: Sequence[BankAccount]) -> int:
        with self._engine.begin() as conn:
            return self._upsert(conn, bank_accounts_table, [a.to_row() for a in accounts], "accountId")

    def upsert_transactions(self, transactions: Sequence[Transaction]) -> int:
        with self._engine.begin() as conn:
            return self._upsert(conn, transactions_table, [t.to_row() for t in transactions], "id")

    def delete_transactions(self, ids: Iterable[str]) -> int:
        id_list = list(ids)
        if not id_list:
            return 0
        with self._engine.begin() as conn:
            return self._delete_transactions(conn, id_list)

    def delete_accounts(self, ids: Iterable[str]) -> int:
        """Delete accounts and their transactions."""
        id_list = list(ids)
        if not id_list:
            return 0
        with self._engine.begin() as conn:
            conn.execute(delete(transactions_table).where(transactions_table.c.account_id.in_(id_list)))
            result = conn.execute(delete(bank_accounts_table).where(bank_accounts_table.c.accountId.in_(id_list)))
        return int(result.rowcount or 0)

    def register_item(self, item: PlaidItem) -> None:
        """Insert or update an item's owner and credential.

        An existing cursor is kept unless ``item.cursor`` is set.
        """
        items = plaid_items_table
        row = {**item.model_dump(), "updated_at": datetime.now(UTC)}
        stmt = self._insert(items).values(row)
        update_cols: dict[str, Any] = {
            "user": stmt.excluded.user,
            "access_token": stmt.excluded.access_token,
            "updated_at": stmt.excluded.updated_at,
        }
        if item.cursor is not None:
            update_cols["cursor"] = stmt.excluded.cursor
        with self._engine.begin() as conn:
            conn.execute(stmt.on_conflict_do_update(index_elements=[items.c.item_id], set_=update_cols))

    def commit_delta(self, item_id: str, user: str, delta: ReconciliationDelta) -> None:
        """Apply a delta and advance the item's cursor in one transaction.

        The cursor is written last; if any statement fails the whole
        transaction rolls back and the stored cursor is unchanged.
        """
        accounts = [a if a.user == user else a.model_copy(update={"user": user}) for a in delta.accounts]
        with self._engine.begin() as conn:
            self._upsert(conn, bank_accounts_table, [a.to_row() for a in accounts], "accountId")
            self._upsert(conn, transactions_table, [t.to_row() for t in delta.upserts], "id")
            if delta.removed_ids:
                self._delete_transactions(conn, list(delta.removed_ids))
            if delta.cursor is not None:
                result = conn.execute(
                    update(plaid_items_table)
                    .where(plaid_items_table.c.item_id == item_id)
                    .values(cursor=delta.cursor, updated_at=datetime.now(UTC))
                )
                if not result.rowcount:
                    raise UnknownAccountError(item_id)
        _logger.debug(
            "Committed delta for item: accounts=%d upserts=%d removed=%d",
            len(accounts),
            len(delta.upserts),
            len(delta.removed_ids),
        )

    def _upsert(self, conn: Connection, table: Table, rows: Sequence[dict[str, Any]], key: str) -> int:
        for chunk in _chunks(rows):
            stmt = self._insert(table).values(list(chunk))
            update_cols = {column.name: stmt.excluded[column.name] for column in table.columns if column.name != key}
            conn.execute(stmt.on_conflict_do_update(index_elements=[table.c[key]], set_=update_cols))
        return len(rows)

    @staticmethod
    def _delete_transactions(conn: Connection, ids: list[str]) -> int:
        result = conn.execute(delete(transactions_table).where(transactions_table.c.id.in_(ids)))
        return int(result.rowcount or 0)
