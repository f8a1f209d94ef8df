from __future__ import annotations

import pytest

from budgetsync.db import BackingTables, create_all, create_backing_engine
from budgetsync.exceptions import NotFoundError, RemoteFailure
from budgetsync.models import BankAccount, Category, Transaction
from budgetsync.remote import BankAccountsPort, CategoriesPort, TransactionsPort
from budgetsync.store import RecordStore, RemotePort, RemoteRequest


@pytest.fixture
def tables() -> BackingTables:
    engine = create_backing_engine("sqlite+pysqlite:///:memory:")
    create_all(engine)
    tables = BackingTables(engine)
    tables.upsert_accounts(
        [
            BankAccount(user="user-1", id="acc-1", account_name="Checking"),
            BankAccount(user="user-1", id="acc-2", account_name="Savings"),
            BankAccount(user="user-2", id="acc-3", account_name="Other"),
        ]
    )
    tables.upsert_transactions(
        [
            Transaction(id="tx-1", account_id="acc-1", amount=1.0),
            Transaction(id="tx-2", account_id="acc-2", amount=2.0),
            Transaction(id="tx-3", account_id="acc-3", amount=3.0),
        ]
    )
    return tables


@pytest.mark.asyncio
async def test_bank_accounts_port_capabilities(tables: BackingTables) -> None:
    port = RemotePort.from_adapter(BankAccountsPort(tables, "user-1"))

    assert not port.can_push
    assert port.can_pop


@pytest.mark.asyncio
async def test_bank_accounts_pull_by_ids(tables: BackingTables) -> None:
    port = BankAccountsPort(tables, "user-1")

    assert [a.id for a in await port.pull(RemoteRequest.all())] == ["acc-1", "acc-2"]
    assert [a.id for a in await port.pull(RemoteRequest.by_ids({"acc-2", "acc-3"}))] == ["acc-2"]


@pytest.mark.asyncio
async def test_bank_accounts_pop_removes_transactions_first(tables: BackingTables) -> None:
    port = BankAccountsPort(tables, "user-1")

    await port.pop(["acc-1", "acc-3"])

    assert [a.id for a in tables.select_accounts("user-1")] == ["acc-2"]
    assert [tx.id for tx in tables.select_transactions("user-1")] == ["tx-2"]
    # acc-3 belongs to someone else and is untouched.
    assert [tx.id for tx in tables.select_transactions("user-2")] == ["tx-3"]


@pytest.mark.asyncio
async def test_transactions_push_and_pop(tables: BackingTables) -> None:
    port = TransactionsPort(tables, "user-1")

    await port.push([Transaction(id="tx-1", account_id="acc-1", amount=9.0)])
    await port.pop(["tx-2", "tx-3"])

    assert [(tx.id, tx.amount) for tx in await port.pull(RemoteRequest.all())] == [("tx-1", 9.0)]
    assert [tx.id for tx in tables.select_transactions("user-2")] == ["tx-3"]


@pytest.mark.asyncio
async def test_transactions_push_to_foreign_account_is_rejected(tables: BackingTables) -> None:
    port = TransactionsPort(tables, "user-1")

    with pytest.raises(NotFoundError):
        await port.push([Transaction(id="tx-9", account_id="acc-3", amount=1.0)])


@pytest.mark.asyncio
async def test_transactions_push_cannot_take_over_foreign_transaction(tables: BackingTables) -> None:
    port = TransactionsPort(tables, "user-1")

    with pytest.raises(NotFoundError):
        await port.push([Transaction(id="tx-3", account_id="acc-1", amount=999.0)])

    assert [(tx.id, tx.amount) for tx in tables.select_transactions("user-2")] == [("tx-3", 3.0)]
    assert sorted(tx.id for tx in tables.select_transactions("user-1")) == ["tx-1", "tx-2"]


@pytest.mark.asyncio
async def test_store_push_failure_surfaces_as_remote_failure(tables: BackingTables) -> None:
    store: RecordStore[Transaction] = RecordStore(
        RemotePort.from_adapter(TransactionsPort(tables, "user-1")), name="transactions"
    )

    store.add(Transaction(id="tx-9", account_id="acc-missing", amount=1.0), push_interval=0)
    result = await store.flush()

    assert isinstance(result.error, RemoteFailure)
    assert isinstance(result.error.cause, NotFoundError)
    assert store.pending_writes == {"tx-9"}


@pytest.mark.asyncio
async def test_transactions_store_round_trip(tables: BackingTables) -> None:
    store: RecordStore[Transaction] = RecordStore(
        RemotePort.from_adapter(TransactionsPort(tables, "user-1")), name="transactions"
    )
    await store.revalidate()

    store.add(Transaction(id="tx-new", account_id="acc-2", amount=7.25), push_interval=0)
    store.delete("tx-1", pop_interval=0)
    result = await store.flush()

    assert result.ok
    assert sorted(tx.id for tx in tables.select_transactions("user-1")) == ["tx-2", "tx-new"]


@pytest.mark.asyncio
async def test_categories_port_is_read_only_and_filters() -> None:
    calls: list[int] = []

    async def _source() -> list[Category]:
        calls.append(1)
        return [
            Category(id="10000000", group="special", hierarchy=("Bank Fees",)),
            Category(id="13005000", group="place", hierarchy=("Food and Drink", "Restaurants")),
        ]

    port = RemotePort.from_adapter(CategoriesPort(_source))

    assert not port.can_push
    assert not port.can_pop
    by_id = await port.pull(RemoteRequest.by_ids({"13005000"}))
    assert [c.name for c in by_id] == ["Restaurants"]
    assert len(await port.pull(RemoteRequest.all())) == 2
    assert len(calls) == 2
