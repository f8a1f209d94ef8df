"""Identity-indexed record cache with optimistic local writes.

This is the only component allowed to mutate a store's index. Reads are
synchronous and served from memory; network work (pull, push, pop) runs in
background tasks on the same event loop. Mutations made on the loop thread
are visible to the next :meth:`RecordStore.objects` call before any network
round-trip completes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from functools import partial
from typing import Any, Generic, TypeVar

from budgetsync._constants import DEFAULT_CACHE_TTL
from budgetsync.exceptions import InvalidIdError, ReadOnlyStoreError, RemoteFailure
from budgetsync.store.pending import DebounceScheduler, OperationKind, PendingOperation
from budgetsync.store.policy import is_fresh
from budgetsync.store.ports import Record, RemotePort
from budgetsync.store.request import ALL, RemoteRequest

_logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Record)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


def _assign_id(record: Any, record_id: str) -> Any:
    """Copy a pydantic record with a new id."""
    return record.model_copy(update={"id": record_id})


class IdStrategy(StrEnum):
    """How :meth:`RecordStore.add` obtains the record id."""

    EXPLICIT = "explicit"
    GENERATED = "generated"


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Outcome of an async store call.

    Remote errors never escape the store as exceptions; they are returned in
    ``error`` alongside whatever the cache currently holds.
    """

    records: tuple[T, ...] = ()
    error: RemoteFailure | None = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> tuple[T, ...]:
        """Return ``records`` or raise the carried :class:`RemoteFailure`."""
        if self.error is not None:
            raise self.error
        return self.records


class RecordStore(Generic[T]):
    """Client-side cache of one entity type.

    Parameters
    ----------
    port : RemotePort
        Remote pull/push/pop implementation. Stores whose port lacks
        ``push``/``pop`` reject :meth:`add`/:meth:`delete`.
    name : str
        Used in logs and as the registry key.
    ttl : timedelta
        How long a pulled request stays fresh for :meth:`ensure_fresh`.
    push_interval, pop_interval : float
        Default debounce (seconds) for :meth:`add` and :meth:`delete`.
    clock : callable
        Returns the current UTC time; injectable for tests.
    id_factory : callable
        Produces ids for :attr:`IdStrategy.GENERATED`.
    assign_id : callable
        Returns a copy of a record carrying a given id.
    """

    def __init__(
        self,
        port: RemotePort[T],
        *,
        name: str,
        ttl: timedelta = timedelta(seconds=DEFAULT_CACHE_TTL),
        push_interval: float = 0.0,
        pop_interval: float = 0.0,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
        assign_id: Callable[[T, str], T] = _assign_id,
    ) -> None:
        self._port = port
        self._name = name
        self._ttl = ttl
        self._push_interval = push_interval
        self._pop_interval = pop_interval
        self._clock = clock
        self._id_factory = id_factory
        self._assign_id = assign_id

        self._index: dict[str, T] = {}
        self._pending_writes: set[str] = set()
        self._pending_deletes: set[str] = set()
        self._last_fetch: dict[Hashable, datetime] = {}
        self._inflight: dict[Hashable, asyncio.Task[StoreResult[T]]] = {}
        self._generation = 0

        self._listeners: list[Callable[[RecordStore[T]], None]] = []
        self._error_listeners: list[Callable[[RemoteFailure], None]] = []
        self._last_error: RemoteFailure | None = None
        self._drain_failures: list[RemoteFailure] = []

        self._scheduler = DebounceScheduler(self._flush, clock=clock, name=name)

    def __repr__(self) -> str:
        return (
            f"RecordStore(name={self._name!r}, records={len(self._index)}, "
            f"pending_writes={len(self._pending_writes)}, pending_deletes={len(self._pending_deletes)})"
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def is_read_only(self) -> bool:
        return not (self._port.can_push or self._port.can_pop)

    @property
    def pending_writes(self) -> frozenset[str]:
        return frozenset(self._pending_writes)

    @property
    def pending_deletes(self) -> frozenset[str]:
        return frozenset(self._pending_deletes)

    @property
    def last_error(self) -> RemoteFailure | None:
        """Most recent remote failure (pull, push or pop), if any."""
        return self._last_error

    def last_fetched(self, request: RemoteRequest = ALL) -> datetime | None:
        return self._last_fetch.get(request.signature)

    def is_fresh(self, request: RemoteRequest = ALL) -> bool:
        """Whether ``request`` (or a covering ``all`` fetch) is within the TTL."""
        now = self._clock()
        if is_fresh(self._last_fetch.get(request.signature), now, self._ttl):
            return True
        if not request.is_all:
            return is_fresh(self._last_fetch.get(ALL.signature), now, self._ttl)
        return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def objects(self, request: RemoteRequest = ALL) -> list[T]:
        """Return cached records matching ``request``.

        Never blocks and never hits the network. Records awaiting a remote
        delete are excluded.
        """
        return [
            record
            for record_id, record in self._index.items()
            if record_id not in self._pending_deletes and request.matches(record_id)
        ]

    def get(self, record_id: str) -> T | None:
        if record_id in self._pending_deletes:
            return None
        return self._index.get(record_id)

    async def revalidate(self, request: RemoteRequest = ALL) -> StoreResult[T]:
        """Pull ``request`` now, regardless of freshness.

        Concurrent calls with the same request share one pull and receive the
        same result. Abandoning the await does not cancel the pull.
        """
        if not request.is_all and not request.ids:
            return StoreResult()

        signature = request.signature
        task = self._inflight.get(signature)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._pull(request, self._generation))
            self._inflight[signature] = task
            task.add_done_callback(partial(self._forget_inflight, signature))
        else:
            _logger.debug("%s: joining in-flight pull %r", self._name, request)
        return await asyncio.shield(task)

    async def ensure_fresh(self, request: RemoteRequest = ALL) -> StoreResult[T]:
        """Pull ``request`` only when its cached copy is older than the TTL."""
        if request.signature not in self._inflight and self.is_fresh(request):
            return StoreResult(records=tuple(self.objects(request)), from_cache=True)
        return await self.revalidate(request)

    def _forget_inflight(self, signature: Hashable, task: asyncio.Task[StoreResult[T]]) -> None:
        if self._inflight.get(signature) is task:
            del self._inflight[signature]

    async def _pull(self, request: RemoteRequest, generation: int) -> StoreResult[T]:
        _logger.debug("%s: pull %r", self._name, request)
        try:
            fetched = await self._port.pull(request)
        except Exception as exc:  # adapters raise transport, API or database errors
            failure = RemoteFailure(f"{self._name}: pull {request!r} failed: {exc}", cause=exc)
            _logger.warning("%s", failure)
            self._record_failure(failure)
            return StoreResult(records=tuple(self.objects(request)), error=failure, from_cache=True)

        if generation != self._generation:
            _logger.debug("%s: discarding pull %r started before clear()", self._name, request)
            return StoreResult()

        self._merge(request, fetched)
        self._last_fetch[request.signature] = self._clock()
        self._notify()
        return StoreResult(records=tuple(self.objects(request)))

    def _merge(self, request: RemoteRequest, fetched: Sequence[T]) -> None:
        incoming = {record.id: record for record in fetched}
        stale = [
            record_id
            for record_id in self._index
            if request.matches(record_id) and record_id not in incoming and record_id not in self._pending_writes
        ]
        for record_id in stale:
            del self._index[record_id]
        for record_id, record in incoming.items():
            # Local state wins until the remote confirms it.
            if record_id in self._pending_writes or record_id in self._pending_deletes:
                continue
            self._index[record_id] = record
        _logger.debug(
            "%s: merged %d record(s), dropped %d for %r",
            self._name,
            len(incoming),
            len(stale),
            request,
        )

    # ------------------------------------------------------------------
    # Local mutations
    # ------------------------------------------------------------------

    def add(
        self,
        record: T,
        id_strategy: IdStrategy = IdStrategy.EXPLICIT,
        push_interval: float | None = None,
    ) -> T:
        """Insert or replace ``record`` locally and schedule a push.

        Returns the stored record (with its generated id for
        :attr:`IdStrategy.GENERATED`).

        Raises
        ------
        ReadOnlyStoreError
            The store's port cannot push.
        InvalidIdError
            The id is empty, or a generated id collides with a known record.
        """
        if not self._port.can_push:
            raise ReadOnlyStoreError(f"{self._name} store cannot push records")

        if id_strategy is IdStrategy.GENERATED:
            record_id = self._id_factory()
            if not record_id or self._is_known(record_id):
                raise InvalidIdError(
                    f"{self._name}: generated id {record_id!r} collides with an existing record",
                    record_id=record_id,
                )
            record = self._assign_id(record, record_id)
        elif not record.id or not str(record.id).strip():
            raise InvalidIdError(f"{self._name}: record id must be non-empty", record_id=str(record.id))

        interval = self._push_interval if push_interval is None else push_interval
        record_id = record.id
        self._scheduler.schedule(OperationKind.PUSH, record_id, interval)
        self._index[record_id] = record
        self._pending_deletes.discard(record_id)
        self._pending_writes.add(record_id)
        self._notify()
        return record

    def delete(self, record: T | str, pop_interval: float | None = None) -> bool:
        """Remove a record locally and schedule a pop.

        Deleting an unknown id is a no-op and returns ``False``.

        Raises
        ------
        ReadOnlyStoreError
            The store's port cannot pop.
        """
        if not self._port.can_pop:
            raise ReadOnlyStoreError(f"{self._name} store cannot pop records")

        record_id = record if isinstance(record, str) else record.id
        if record_id not in self._index or record_id in self._pending_deletes:
            _logger.debug("%s: delete of unknown id %s ignored", self._name, record_id)
            return False

        interval = self._pop_interval if pop_interval is None else pop_interval
        self._scheduler.schedule(OperationKind.POP, record_id, interval)
        del self._index[record_id]
        self._pending_writes.discard(record_id)
        self._pending_deletes.add(record_id)
        self._notify()
        return True

    def _is_known(self, record_id: str) -> bool:
        return record_id in self._index or record_id in self._pending_writes or record_id in self._pending_deletes

    # ------------------------------------------------------------------
    # Remote propagation
    # ------------------------------------------------------------------

    async def flush(self) -> StoreResult[T]:
        """Send every pending write now and wait for the queue to drain.

        Writes left over from earlier failures are retried as well. The
        result carries the first failure of this drain, if any.
        """
        self._drain_failures = []
        self.retry_pending()
        await self._scheduler.flush_now()
        failures = self._drain_failures
        self._drain_failures = []
        return StoreResult(records=tuple(self.objects()), error=failures[0] if failures else None)

    def retry_pending(self) -> int:
        """Re-arm pushes and pops that failed earlier. Returns how many."""
        stranded = self._stranded()
        for kind, ids in stranded.items():
            for record_id in ids:
                self._scheduler.schedule(kind, record_id, 0.0)
        count = sum(len(ids) for ids in stranded.values())
        if count:
            _logger.debug("%s: re-armed %d pending operation(s)", self._name, count)
        return count

    def _stranded(self, exclude: set[str] | None = None) -> dict[OperationKind, set[str]]:
        """Pending ids with no timer, queue slot or in-flight call."""
        busy = self._scheduler.pending_ids | self._scheduler.in_flight | (exclude or set())
        return {
            OperationKind.PUSH: {record_id for record_id in self._pending_writes if record_id not in busy},
            OperationKind.POP: {record_id for record_id in self._pending_deletes if record_id not in busy},
        }

    async def _flush(self, operations: list[PendingOperation]) -> None:
        generation = self._generation
        listed: set[str] = set()
        for operation in operations:
            listed.update(operation.ids)

        retries = [
            PendingOperation(kind=kind, ids=ids, scheduled_at=self._clock(), interval=0.0)
            for kind, ids in self._stranded(exclude=listed).items()
            if ids
        ]
        if retries:
            _logger.debug("%s: retrying %d stranded id(s)", self._name, sum(len(op.ids) for op in retries))

        for operation in [*retries, *operations]:
            if generation != self._generation:
                _logger.debug("%s: dropping flush after clear()", self._name)
                return
            try:
                sent = await self._send(operation)
            except Exception as exc:  # adapters raise transport, API or database errors
                failure = RemoteFailure(
                    f"{self._name}: {operation.kind} of {len(operation.ids)} record(s) failed: {exc}",
                    cause=exc,
                )
                _logger.warning("%s", failure)
                self._drain_failures.append(failure)
                self._record_failure(failure)
                continue
            if generation == self._generation:
                self._confirm(operation.kind, sent)

    async def _send(self, operation: PendingOperation) -> list[str]:
        if operation.kind is OperationKind.PUSH:
            assert self._port.push is not None  # noqa: S101
            ids = [rid for rid in operation.ids if rid in self._pending_writes and rid in self._index]
            if ids:
                await self._port.push([self._index[rid] for rid in ids])
        else:
            assert self._port.pop is not None  # noqa: S101
            ids = [rid for rid in operation.ids if rid in self._pending_deletes]
            if ids:
                await self._port.pop(ids)
        if ids:
            _logger.debug("%s: %s confirmed for %d record(s)", self._name, operation.kind, len(ids))
        return ids

    def _confirm(self, kind: OperationKind, ids: list[str]) -> None:
        pending = self._pending_writes if kind is OperationKind.PUSH else self._pending_deletes
        for record_id in ids:
            # A newer operation for the id keeps it pending.
            if self._scheduler.is_scheduled(record_id):
                continue
            pending.discard(record_id)

    # ------------------------------------------------------------------
    # Observers and teardown
    # ------------------------------------------------------------------

    def subscribe(
        self,
        on_change: Callable[[RecordStore[T]], None],
        *,
        on_error: Callable[[RemoteFailure], None] | None = None,
    ) -> Callable[[], None]:
        """Register observers; returns a callable that unregisters them."""
        self._listeners.append(on_change)
        if on_error is not None:
            self._error_listeners.append(on_error)

        def _unsubscribe() -> None:
            if on_change in self._listeners:
                self._listeners.remove(on_change)
            if on_error is not None and on_error in self._error_listeners:
                self._error_listeners.remove(on_error)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                _logger.exception("%s: change listener failed", self._name)

    def _record_failure(self, failure: RemoteFailure) -> None:
        self._last_error = failure
        for listener in list(self._error_listeners):
            try:
                listener(failure)
            except Exception:
                _logger.exception("%s: error listener failed", self._name)

    def clear(self) -> None:
        """Drop all cached and pending state (sign-out).

        Pulls and flushes already running finish, but their results are
        discarded.
        """
        self._scheduler.cancel_all()
        self._index.clear()
        self._pending_writes.clear()
        self._pending_deletes.clear()
        self._last_fetch.clear()
        self._inflight.clear()
        self._last_error = None
        self._generation += 1
        _logger.debug("%s: cleared", self._name)
        self._notify()
