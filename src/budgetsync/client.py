"""High-level async client tying stores, reconciliation and webhooks together."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any

import aiohttp
from aiohttp import web
from sqlalchemy.engine import Engine

from budgetsync._api import categories as _categories_api
from budgetsync._api import link_token as _link_token_api
from budgetsync._redact import mask_secret
from budgetsync._transport import PlaidTransport, Transport
from budgetsync.config import SyncConfig
from budgetsync.db.schema import create_all, create_backing_engine
from budgetsync.db.tables import BackingTables
from budgetsync.exceptions import BudgetSyncError, NotFoundError
from budgetsync.models.bank_account import BankAccount
from budgetsync.models.category import Category
from budgetsync.models.item import PlaidItem
from budgetsync.models.transaction import Transaction
from budgetsync.reconcile.engine import DeltaSource, PlaidDeltaSource, ReconciliationEngine, SyncReport
from budgetsync.remote import BankAccountsPort, CategoriesPort, TransactionsPort
from budgetsync.store import RecordStore, RemotePort, StoreRegistry, StoreResult
from budgetsync.store.request import ALL
from budgetsync.webhook import WebhookHandler, create_app

_logger = logging.getLogger(__name__)

BANK_ACCOUNTS = "bank_accounts"
TRANSACTIONS = "transactions"
CATEGORIES = "categories"


class BudgetClient:
    """Async client for the budget sync core.

    Usage::

        async with BudgetClient(config) as client:
            client.sign_in("user-1")
            await client.refresh()
            txs = client.transactions.objects()

    Parameters
    ----------
    config : SyncConfig
        Library configuration.
    session : aiohttp.ClientSession or None
        Shared HTTP session. Created (and closed) by the client when omitted.
    db_engine : sqlalchemy.engine.Engine or None
        Engine of the backing tables. Built from ``config.database_url`` when
        omitted; tables are created if missing.
    transport : Transport or None
        Aggregator transport override, mainly for tests.
    delta_source : DeltaSource or None
        Delta feed override; defaults to ``/transactions/sync`` over the
        transport.
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        db_engine: Engine | None = None,
        transport: Transport | None = None,
        delta_source: DeltaSource | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._db_engine = db_engine
        self._transport = transport
        self._delta_source = delta_source
        self._tables: BackingTables | None = None
        self._engine: ReconciliationEngine | None = None
        self._webhooks: WebhookHandler | None = None
        self._registry = StoreRegistry()
        self._user: str | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BudgetClient:
        if self._db_engine is None:
            self._db_engine = create_backing_engine(self._config.database_url)
        create_all(self._db_engine)
        self._tables = BackingTables(self._db_engine)

        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = PlaidTransport(self._config, self._http_session)

        source = self._delta_source or PlaidDeltaSource(self._transport, page_size=self._config.sync_page_size)
        self._engine = ReconciliationEngine(self._tables, source, max_pages=self._config.sync_max_pages)
        self._webhooks = WebhookHandler(self._engine, on_synced=self._after_sync)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._user is not None:
            await self._registry.flush_all()
        self.sign_out()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._engine = None
        self._webhooks = None
        self._tables = None

    def _require_open(self) -> tuple[BackingTables, ReconciliationEngine, WebhookHandler, Transport]:
        if self._tables is None or self._engine is None or self._webhooks is None or self._transport is None:
            raise BudgetSyncError("Client is not open; use 'async with BudgetClient(...)'")
        return self._tables, self._engine, self._webhooks, self._transport

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def user(self) -> str | None:
        return self._user

    @property
    def registry(self) -> StoreRegistry:
        return self._registry

    def sign_in(self, user: str) -> None:
        """Build and register the stores of ``user``."""
        tables, _, _, transport = self._require_open()
        if self._user is not None:
            self.sign_out()

        ttl = timedelta(seconds=self._config.cache_ttl)
        intervals = {"push_interval": self._config.push_interval, "pop_interval": self._config.pop_interval}

        async def _categories() -> list[Category]:
            return await _categories_api.fetch_categories(transport)

        self._registry.register(
            RecordStore[BankAccount](
                RemotePort.from_adapter(BankAccountsPort(tables, user)), name=BANK_ACCOUNTS, ttl=ttl, **intervals
            )
        )
        self._registry.register(
            RecordStore[Transaction](
                RemotePort.from_adapter(TransactionsPort(tables, user)), name=TRANSACTIONS, ttl=ttl, **intervals
            )
        )
        self._registry.register(
            RecordStore[Category](RemotePort.from_adapter(CategoriesPort(_categories)), name=CATEGORIES, ttl=ttl)
        )
        self._user = user
        _logger.debug("Signed in user=%s", mask_secret(user))

    def sign_out(self) -> None:
        """Drop every store, including writes that were not sent yet."""
        self._registry.clear_all()
        self._user = None

    def _store(self, name: str) -> RecordStore[Any]:
        try:
            return self._registry.get(name)
        except NotFoundError:
            raise BudgetSyncError("Not signed in") from None

    @property
    def bank_accounts(self) -> RecordStore[BankAccount]:
        return self._store(BANK_ACCOUNTS)

    @property
    def transactions(self) -> RecordStore[Transaction]:
        return self._store(TRANSACTIONS)

    @property
    def categories(self) -> RecordStore[Category]:
        return self._store(CATEGORIES)

    async def refresh(self) -> dict[str, StoreResult[Any]]:
        """Pull every store whose data is older than the TTL (screen mount)."""
        names = self._registry.names()
        results = await asyncio.gather(*(self._registry.get(name).ensure_fresh(ALL) for name in names))
        return dict(zip(names, results, strict=True))

    async def reload(self) -> dict[str, StoreResult[Any]]:
        """Pull every store unconditionally (pull-to-refresh)."""
        names = self._registry.names()
        results = await asyncio.gather(*(self._registry.get(name).revalidate(ALL) for name in names))
        return dict(zip(names, results, strict=True))

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def register_item(self, item_id: str, user: str, access_token: str) -> PlaidItem:
        tables, _, _, _ = self._require_open()
        item = PlaidItem(item_id=item_id, user=user, access_token=access_token)
        tables.register_item(item)
        return item

    async def sync_item(self, item_id: str) -> SyncReport:
        """Reconcile ``item_id`` now, then refresh affected stores."""
        _, engine, _, _ = self._require_open()
        report = await engine.sync(item_id)
        await self._after_sync(report)
        return report

    async def _after_sync(self, report: SyncReport) -> None:
        if self._user is None or self._tables is None:
            return
        item = self._tables.get_item(report.item_id)
        if item is None or item.user != self._user:
            return
        await asyncio.gather(self.bank_accounts.revalidate(ALL), self.transactions.revalidate(ALL))

    async def handle_webhook(self, body: Any) -> tuple[int, dict[str, Any]]:
        _, _, webhooks, _ = self._require_open()
        return await webhooks.handle(body)

    async def create_link_token(self, client_user_id: str) -> str:
        _, _, _, transport = self._require_open()
        return await _link_token_api.create_link_token(transport, self._config, client_user_id)

    def webhook_app(self) -> web.Application:
        _, _, webhooks, _ = self._require_open()
        return create_app(webhooks, link_tokens=self.create_link_token)
