"""Reconciliation of the aggregator delta feed into the backing tables.

Each upstream item moves through ``UNINITIALIZED -> SYNCING -> IDLE ->
SYNCING -> ...``. A run pages through the feed from the item's durable
cursor, folds every page into one :class:`ReconciliationDelta` and commits it
with :meth:`BackingTables.commit_delta`, which writes the new cursor last in
the same transaction. Nothing is persisted when fetching or applying fails,
so a redelivered trigger replays the same changes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from budgetsync._api.transactions_sync import fetch_sync_page
from budgetsync._constants import MUTATION_DURING_PAGINATION
from budgetsync._redact import mask_secret
from budgetsync._transport import Transport
from budgetsync.db.tables import BackingTables
from budgetsync.exceptions import (
    BudgetSyncError,
    PlaidApiError,
    RemoteFailure,
    UnknownAccountError,
)
from budgetsync.models.delta import ReconciliationDelta, SyncPage
from budgetsync.models.item import PlaidItem
from budgetsync.reconcile.normalize import delta_from_page

_logger = logging.getLogger(__name__)


class SyncState(StrEnum):
    UNINITIALIZED = "uninitialized"
    SYNCING = "syncing"
    IDLE = "idle"


@dataclass(frozen=True)
class SyncReport:
    """Outcome of one committed reconciliation run."""

    item_id: str
    cursor: str | None
    pages: int
    accounts: int
    upserts: int
    removed: int
    restarts: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "item_id": self.item_id,
            "pages": self.pages,
            "accounts": self.accounts,
            "upserts": self.upserts,
            "removed": self.removed,
            "restarts": self.restarts,
        }


class DeltaSource(Protocol):
    """Fetches one feed page after ``cursor``."""

    async def fetch_delta(self, access_token: str, cursor: str | None) -> SyncPage:
        ...


class PlaidDeltaSource:
    """:class:`DeltaSource` backed by ``/transactions/sync``."""

    def __init__(self, transport: Transport, *, page_size: int = 100) -> None:
        self._transport = transport
        self._page_size = page_size

    async def fetch_delta(self, access_token: str, cursor: str | None) -> SyncPage:
        return await fetch_sync_page(self._transport, access_token, cursor, count=self._page_size)


class _PaginationRestart(Exception):
    """The feed changed mid-pagination; start over from the durable cursor."""


class ReconciliationEngine:
    """Drives delta-feed reconciliation per upstream item.

    Parameters
    ----------
    tables : BackingTables
        Destination tables; also holds each item's credential and cursor.
    source : DeltaSource
        Feed client.
    max_pages : int
        Pages fetched per run before giving up.
    max_restarts : int
        Times a run restarts after the provider reports the feed changed
        during pagination.
    """

    def __init__(
        self,
        tables: BackingTables,
        source: DeltaSource,
        *,
        max_pages: int = 100,
        max_restarts: int = 3,
    ) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        self._tables = tables
        self._source = source
        self._max_pages = max_pages
        self._max_restarts = max_restarts
        self._states: dict[str, SyncState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_errors: dict[str, RemoteFailure] = {}

    def state(self, item_id: str) -> SyncState:
        return self._states.get(item_id, SyncState.UNINITIALIZED)

    def last_error(self, item_id: str) -> RemoteFailure | None:
        return self._last_errors.get(item_id)

    async def sync(self, item_id: str) -> SyncReport:
        """Fetch and commit everything after the item's durable cursor.

        Raises
        ------
        UnknownAccountError
            No item with ``item_id`` is registered.
        RemoteFailure
            Fetching or applying failed; the durable cursor is unchanged.
        """
        self._load_item(item_id)

        lock = self._locks.setdefault(item_id, asyncio.Lock())
        async with lock:
            # Reload: a run that held the lock may have advanced the cursor.
            item = self._load_item(item_id)

            self._states[item_id] = SyncState.SYNCING
            _logger.debug("Sync started item=%s cursor=%s", mask_secret(item_id), mask_secret(item.cursor))
            try:
                report = await self._run(item)
            except RemoteFailure as failure:
                self._fail(item_id, failure)
                raise
            except (BudgetSyncError, SQLAlchemyError, ValidationError) as exc:
                failure = RemoteFailure(f"Reconciliation of item {mask_secret(item_id)} failed: {exc}", cause=exc)
                self._fail(item_id, failure)
                raise failure from exc

            self._states[item_id] = SyncState.IDLE
            self._last_errors.pop(item_id, None)
            _logger.info(
                "Synced item=%s pages=%d accounts=%d upserts=%d removed=%d",
                mask_secret(item_id),
                report.pages,
                report.accounts,
                report.upserts,
                report.removed,
            )
            return report

    def _load_item(self, item_id: str) -> PlaidItem:
        try:
            item = self._tables.get_item(item_id)
        except (SQLAlchemyError, ValidationError) as exc:
            failure = RemoteFailure(f"Loading item {mask_secret(item_id)} failed: {exc}", cause=exc)
            self._fail(item_id, failure)
            raise failure from exc
        if item is None:
            raise UnknownAccountError(item_id)
        return item

    def _fail(self, item_id: str, failure: RemoteFailure) -> None:
        self._states[item_id] = SyncState.IDLE
        self._last_errors[item_id] = failure
        _logger.warning("Sync failed item=%s: %s", mask_secret(item_id), failure)

    async def _run(self, item: PlaidItem) -> SyncReport:
        restarts = 0
        while True:
            try:
                delta, pages = await self._collect(item)
                break
            except _PaginationRestart as exc:
                restarts += 1
                if restarts > self._max_restarts:
                    raise RemoteFailure(
                        f"Feed kept changing during pagination after {self._max_restarts} restarts",
                        cause=exc.__cause__,
                    ) from exc
                _logger.debug("Feed mutated during pagination; restarting (attempt %d)", restarts)

        self._tables.commit_delta(item.item_id, item.user, delta)
        return SyncReport(
            item_id=item.item_id,
            cursor=delta.cursor,
            pages=pages,
            accounts=len(delta.accounts),
            upserts=len(delta.upserts),
            removed=len(delta.removed_ids),
            restarts=restarts,
        )

    async def _collect(self, item: PlaidItem) -> tuple[ReconciliationDelta, int]:
        delta = ReconciliationDelta(cursor=item.cursor)
        cursor = item.cursor
        for pages in range(1, self._max_pages + 1):
            try:
                page = await self._source.fetch_delta(item.access_token, cursor)
            except PlaidApiError as exc:
                if exc.code == MUTATION_DURING_PAGINATION:
                    raise _PaginationRestart() from exc
                raise RemoteFailure(f"Delta fetch failed: {exc}", cause=exc) from exc
            except BudgetSyncError as exc:
                raise RemoteFailure(f"Delta fetch failed: {exc}", cause=exc) from exc

            delta = delta.merge(delta_from_page(item.user, page))
            cursor = page.next_cursor
            if not page.has_more:
                return delta, pages
        raise RemoteFailure(f"Delta feed still had more pages after {self._max_pages}")
