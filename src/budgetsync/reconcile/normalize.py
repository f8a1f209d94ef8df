"""Conversion of delta feed payloads into records.

Centralizes defensive parsing of the aggregator's account and transaction
objects.
"""

from __future__ import annotations

import math
from typing import Any

from budgetsync.models.bank_account import BankAccount
from budgetsync.models.delta import ReconciliationDelta, SyncPage
from budgetsync.models.transaction import Transaction


def safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def account_from_plaid(user: str, raw: dict[str, Any]) -> BankAccount:
    """Map a feed account object to a ``bank_accounts`` row."""
    balances = raw.get("balances") or {}
    return BankAccount(
        user=user,
        id=raw.get("account_id"),
        available_balance=safe_float(balances.get("available")),
        current_balance=safe_float(balances.get("current")),
        iso_currency_code=balances.get("iso_currency_code"),
        unofficial_currency_code=balances.get("unofficial_currency_code"),
        mask=raw.get("mask"),
        account_name=raw.get("name"),
        official_name=raw.get("official_name"),
        type=raw.get("type"),
        subtype=raw.get("subtype"),
    )


def transaction_from_plaid(raw: dict[str, Any]) -> Transaction:
    """Map a feed transaction object to a ``transactions`` row."""
    return Transaction(
        id=raw.get("transaction_id"),
        account_id=raw.get("account_id"),
        amount=safe_float(raw.get("amount")),
        iso_currency_code=raw.get("iso_currency_code"),
        unofficial_currency_code=raw.get("unofficial_currency_code"),
        category_id=raw.get("category_id"),
        date=raw.get("date"),
        merchant_name=raw.get("merchant_name") or raw.get("name"),
        pending=bool(raw.get("pending", False)),
        logo_url=raw.get("logo_url"),
    )


def delta_from_page(user: str, page: SyncPage) -> ReconciliationDelta:
    """Normalize one feed page.

    ``modified`` entries override ``added`` ones with the same id, and ids
    listed in ``removed`` end up removed even when the page also upserts them.
    """
    upserts: dict[str, Transaction] = {}
    for raw in [*page.added, *page.modified]:
        tx = transaction_from_plaid(raw)
        upserts[tx.id] = tx
    removed = page.removed_ids
    for tx_id in removed:
        upserts.pop(tx_id, None)
    return ReconciliationDelta(
        cursor=page.next_cursor,
        accounts=tuple(account_from_plaid(user, raw) for raw in page.accounts),
        upserts=tuple(upserts.values()),
        removed_ids=tuple(dict.fromkeys(removed)),
    )
