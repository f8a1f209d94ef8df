from __future__ import annotations

import asyncio
from typing import Any

import pytest
from sqlalchemy.exc import SQLAlchemyError

from budgetsync._constants import MUTATION_DURING_PAGINATION
from budgetsync.db import BackingTables, create_all, create_backing_engine, plaid_items_table
from budgetsync.exceptions import PlaidApiError, RemoteFailure, TransportError, UnknownAccountError
from budgetsync.models import AccountType, PlaidItem, SyncPage
from budgetsync.reconcile import ReconciliationEngine, SyncState, delta_from_page

ACCOUNT: dict[str, Any] = {
    "account_id": "acc-1",
    "balances": {"available": 100, "current": 110.5, "iso_currency_code": "USD", "unofficial_currency_code": None},
    "mask": "0000",
    "name": "Plaid Checking",
    "official_name": "Plaid Gold Standard 0% Interest Checking",
    "type": "depository",
    "subtype": "checking",
}


def _raw_tx(tx_id: str, amount: float, **extra: Any) -> dict[str, Any]:
    return {
        "transaction_id": tx_id,
        "account_id": "acc-1",
        "amount": amount,
        "iso_currency_code": "USD",
        "category_id": "13005000",
        "date": "2026-01-02",
        "merchant_name": "Cafe",
        "pending": False,
        "logo_url": None,
        **extra,
    }


def _page(
    next_cursor: str,
    *,
    added: list[dict[str, Any]] | None = None,
    modified: list[dict[str, Any]] | None = None,
    removed: list[str] | None = None,
    has_more: bool = False,
) -> SyncPage:
    return SyncPage(
        accounts=[ACCOUNT],
        added=added or [],
        modified=modified or [],
        removed=[{"transaction_id": tx_id} for tx_id in removed or []],
        next_cursor=next_cursor,
        has_more=has_more,
    )


class _ScriptedFeed:
    """Returns queued pages (or raises queued errors) in order."""

    def __init__(self, *outcomes: SyncPage | Exception) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, str | None]] = []

    async def fetch_delta(self, access_token: str, cursor: str | None) -> SyncPage:
        self.calls.append((access_token, cursor))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _CursorFeed:
    """Serves pages keyed by the requested cursor."""

    def __init__(self, pages: dict[str | None, SyncPage]) -> None:
        self.pages = pages
        self.cursors: list[str | None] = []

    async def fetch_delta(self, access_token: str, cursor: str | None) -> SyncPage:
        self.cursors.append(cursor)
        await asyncio.sleep(0)
        return self.pages[cursor]


@pytest.fixture
def tables() -> BackingTables:
    engine = create_backing_engine("sqlite+pysqlite:///:memory:")
    create_all(engine)
    tables = BackingTables(engine)
    tables.register_item(PlaidItem(item_id="item-1", user="user-1", access_token="access-sandbox-1"))
    return tables


def _cursor(tables: BackingTables) -> str | None:
    item = tables.get_item("item-1")
    assert item is not None
    return item.cursor


@pytest.mark.asyncio
async def test_first_sync_applies_page_and_stores_cursor(tables: BackingTables) -> None:
    feed = _ScriptedFeed(_page("c1", added=[_raw_tx("tx-1", 4.5), _raw_tx("tx-2", 12.0)]))
    engine = ReconciliationEngine(tables, feed)
    assert engine.state("item-1") is SyncState.UNINITIALIZED

    report = await engine.sync("item-1")

    assert engine.state("item-1") is SyncState.IDLE
    assert feed.calls == [("access-sandbox-1", None)]
    assert report.pages == 1
    assert report.upserts == 2
    assert report.cursor == "c1"
    assert _cursor(tables) == "c1"

    [account] = tables.select_accounts("user-1")
    assert account.user == "user-1"
    assert account.available_balance == 100.0
    assert account.account_name == "Plaid Checking"
    assert account.type is AccountType.DEPOSITORY
    assert sorted(tx.id for tx in tables.select_transactions("user-1")) == ["tx-1", "tx-2"]


@pytest.mark.asyncio
async def test_modified_amount_replaces_existing_row(tables: BackingTables) -> None:
    feed = _ScriptedFeed(
        _page("c1", added=[_raw_tx("tx_a", 10.0)]),
        _page("c2", modified=[_raw_tx("tx_a", 15.0)]),
    )
    engine = ReconciliationEngine(tables, feed)

    await engine.sync("item-1")
    await engine.sync("item-1")

    assert feed.calls[1] == ("access-sandbox-1", "c1")
    assert [(tx.id, tx.amount) for tx in tables.select_transactions("user-1")] == [("tx_a", 15.0)]


@pytest.mark.asyncio
async def test_redelivered_delta_is_idempotent(tables: BackingTables) -> None:
    page = _page("c1", added=[_raw_tx("tx-1", 4.5)], removed=["tx-9"])
    engine = ReconciliationEngine(tables, _ScriptedFeed(page))
    await engine.sync("item-1")
    once = tables.select_transactions("user-1"), tables.select_accounts("user-1")

    tables.commit_delta("item-1", "user-1", delta_from_page("user-1", page))

    assert (tables.select_transactions("user-1"), tables.select_accounts("user-1")) == once


@pytest.mark.asyncio
async def test_removing_absent_transaction_is_noop(tables: BackingTables) -> None:
    engine = ReconciliationEngine(tables, _ScriptedFeed(_page("c1", removed=["tx_b"])))

    report = await engine.sync("item-1")

    assert report.removed == 1
    assert tables.select_transactions("user-1") == []
    assert _cursor(tables) == "c1"


@pytest.mark.asyncio
async def test_pages_are_folded_and_committed_together(tables: BackingTables) -> None:
    feed = _ScriptedFeed(
        _page("c1", added=[_raw_tx("tx-1", 1.0), _raw_tx("tx-2", 2.0)], has_more=True),
        _page("c2", modified=[_raw_tx("tx-1", 3.0)], removed=["tx-2"]),
    )
    engine = ReconciliationEngine(tables, feed)

    report = await engine.sync("item-1")

    assert [cursor for _, cursor in feed.calls] == [None, "c1"]
    assert report.pages == 2
    assert [(tx.id, tx.amount) for tx in tables.select_transactions("user-1")] == [("tx-1", 3.0)]
    assert _cursor(tables) == "c2"


@pytest.mark.asyncio
async def test_fetch_failure_keeps_cursor(tables: BackingTables) -> None:
    feed = _ScriptedFeed(
        _page("c1", added=[_raw_tx("tx-1", 1.0)]),
        TransportError("Request to /transactions/sync timed out", endpoint="/transactions/sync"),
    )
    engine = ReconciliationEngine(tables, feed)
    await engine.sync("item-1")

    with pytest.raises(RemoteFailure) as exc_info:
        await engine.sync("item-1")

    assert isinstance(exc_info.value.cause, TransportError)
    assert engine.state("item-1") is SyncState.IDLE
    assert engine.last_error("item-1") is exc_info.value
    assert _cursor(tables) == "c1"


@pytest.mark.asyncio
async def test_failure_on_later_page_commits_nothing(tables: BackingTables) -> None:
    feed = _ScriptedFeed(
        _page("c1", added=[_raw_tx("tx-1", 1.0)], has_more=True),
        PlaidApiError("boom", code="INTERNAL_SERVER_ERROR", error_type="API_ERROR"),
    )
    engine = ReconciliationEngine(tables, feed)

    with pytest.raises(RemoteFailure):
        await engine.sync("item-1")

    assert tables.select_transactions("user-1") == []
    assert tables.select_accounts("user-1") == []
    assert _cursor(tables) is None


@pytest.mark.asyncio
async def test_malformed_transaction_is_a_remote_failure(tables: BackingTables) -> None:
    bad = _raw_tx("tx-1", 1.0)
    del bad["amount"]
    engine = ReconciliationEngine(tables, _ScriptedFeed(_page("c1", added=[bad])))

    with pytest.raises(RemoteFailure):
        await engine.sync("item-1")

    assert _cursor(tables) is None


@pytest.mark.asyncio
async def test_mutation_during_pagination_restarts_from_durable_cursor(tables: BackingTables) -> None:
    feed = _ScriptedFeed(
        _page("c1", added=[_raw_tx("tx-1", 1.0)], has_more=True),
        PlaidApiError("changed", code=MUTATION_DURING_PAGINATION, error_type="TRANSACTIONS_ERROR"),
        _page("c1", added=[_raw_tx("tx-1", 1.0)], has_more=True),
        _page("c2", added=[_raw_tx("tx-2", 2.0)]),
    )
    engine = ReconciliationEngine(tables, feed)

    report = await engine.sync("item-1")

    assert [cursor for _, cursor in feed.calls] == [None, "c1", None, "c1"]
    assert report.restarts == 1
    assert sorted(tx.id for tx in tables.select_transactions("user-1")) == ["tx-1", "tx-2"]
    assert _cursor(tables) == "c2"


@pytest.mark.asyncio
async def test_restarts_are_bounded(tables: BackingTables) -> None:
    mutation = PlaidApiError("changed", code=MUTATION_DURING_PAGINATION)
    feed = _ScriptedFeed(mutation, mutation, mutation)
    engine = ReconciliationEngine(tables, feed, max_restarts=2)

    with pytest.raises(RemoteFailure):
        await engine.sync("item-1")

    assert len(feed.calls) == 3
    assert _cursor(tables) is None


@pytest.mark.asyncio
async def test_runaway_paging_is_stopped(tables: BackingTables) -> None:
    feed = _ScriptedFeed(*(_page(f"c{i}", has_more=True) for i in range(1, 4)))
    engine = ReconciliationEngine(tables, feed, max_pages=3)

    with pytest.raises(RemoteFailure):
        await engine.sync("item-1")

    assert _cursor(tables) is None


@pytest.mark.asyncio
async def test_unknown_item_raises(tables: BackingTables) -> None:
    engine = ReconciliationEngine(tables, _ScriptedFeed())

    with pytest.raises(UnknownAccountError) as exc_info:
        await engine.sync("item-unknown")

    assert exc_info.value.item_id == "item-unknown"
    assert engine.state("item-unknown") is SyncState.UNINITIALIZED


@pytest.mark.asyncio
async def test_concurrent_triggers_run_one_after_another(tables: BackingTables) -> None:
    feed = _CursorFeed(
        {
            None: _page("c1", added=[_raw_tx("tx-1", 1.0)]),
            "c1": _page("c2"),
        }
    )
    engine = ReconciliationEngine(tables, feed)

    await asyncio.gather(engine.sync("item-1"), engine.sync("item-1"))

    assert feed.cursors == [None, "c1"]
    assert _cursor(tables) == "c2"


def test_page_removal_wins_over_same_page_upsert() -> None:
    page = _page("c1", added=[_raw_tx("tx-1", 1.0)], removed=["tx-1"])

    delta = delta_from_page("user-1", page)

    assert delta.upserts == ()
    assert delta.removed_ids == ("tx-1",)
    assert delta.cursor == "c1"


def test_merchant_name_falls_back_to_name() -> None:
    page = _page("c1", added=[_raw_tx("tx-1", 1.0, merchant_name=None, name="ACME Payroll")])

    [tx] = delta_from_page("user-1", page).upserts

    assert tx.merchant_name == "ACME Payroll"


@pytest.mark.asyncio
async def test_database_error_loading_item_is_a_remote_failure(tables: BackingTables) -> None:
    engine = ReconciliationEngine(tables, _ScriptedFeed())
    plaid_items_table.drop(tables.engine)

    with pytest.raises(RemoteFailure) as exc_info:
        await engine.sync("item-1")

    assert isinstance(exc_info.value.cause, SQLAlchemyError)
    assert engine.last_error("item-1") is exc_info.value
