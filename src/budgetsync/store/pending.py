"""Debounced scheduling of pending remote writes.

Each record id owns at most one timer. Re-scheduling an id cancels and
replaces its timer, so repeated mutations inside one debounce window collapse
into a single operation carrying the latest state. Fired ids are drained by a
single flush task in scheduling order; consecutive ids of the same kind share
one :class:`PendingOperation` (and therefore one network call).
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

_logger = logging.getLogger(__name__)


class OperationKind(StrEnum):
    PUSH = "push"
    POP = "pop"


@dataclass(slots=True)
class PendingOperation:
    """A batch of ids due for one push or pop call."""

    kind: OperationKind
    ids: set[str]
    scheduled_at: datetime
    interval: float


@dataclass(slots=True)
class _Timer:
    kind: OperationKind
    scheduled_at: datetime
    interval: float
    seq: int
    handle: asyncio.TimerHandle | None = field(default=None, repr=False)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _coalesce(batch: list[tuple[str, _Timer]]) -> list[PendingOperation]:
    operations: list[PendingOperation] = []
    for record_id, timer in batch:
        if operations and operations[-1].kind is timer.kind:
            operations[-1].ids.add(record_id)
            continue
        operations.append(
            PendingOperation(
                kind=timer.kind,
                ids={record_id},
                scheduled_at=timer.scheduled_at,
                interval=timer.interval,
            )
        )
    return operations


class DebounceScheduler:
    """Per-id debounce timers feeding a sequential flush callback.

    Must be used from the event-loop thread; :meth:`schedule` needs a running
    loop.
    """

    def __init__(
        self,
        on_flush: Callable[[list[PendingOperation]], Awaitable[None]],
        *,
        clock: Callable[[], datetime] = _utcnow,
        name: str = "store",
    ) -> None:
        self._on_flush = on_flush
        self._clock = clock
        self._name = name
        self._timers: dict[str, _Timer] = {}
        self._due: dict[str, _Timer] = {}
        self._flush_task: asyncio.Task[None] | None = None
        self._in_flight: frozenset[str] = frozenset()
        self._seq = itertools.count()

    @property
    def pending_ids(self) -> frozenset[str]:
        return frozenset(self._timers) | frozenset(self._due)

    @property
    def in_flight(self) -> frozenset[str]:
        """Ids handed to the flush callback that has not returned yet."""
        return self._in_flight

    def is_scheduled(self, record_id: str) -> bool:
        return record_id in self._timers or record_id in self._due

    def schedule(self, kind: OperationKind, record_id: str, interval: float) -> PendingOperation:
        """Arm (or re-arm) the timer of ``record_id``."""
        if interval < 0:
            raise ValueError(f"interval must be >= 0, got {interval}")
        loop = asyncio.get_running_loop()
        replaced = self.cancel(record_id)
        timer = _Timer(kind=kind, scheduled_at=self._clock(), interval=interval, seq=next(self._seq))
        timer.handle = loop.call_later(interval, self._fire, record_id)
        self._timers[record_id] = timer
        if replaced:
            _logger.debug("%s: %s of %s replaces earlier pending operation", self._name, kind, record_id)
        return PendingOperation(kind=kind, ids={record_id}, scheduled_at=timer.scheduled_at, interval=interval)

    def cancel(self, record_id: str) -> bool:
        """Drop any pending operation for ``record_id``. Returns whether one existed."""
        timer = self._timers.pop(record_id, None)
        if timer is not None and timer.handle is not None:
            timer.handle.cancel()
        due = self._due.pop(record_id, None)
        return timer is not None or due is not None

    def cancel_all(self) -> None:
        for timer in self._timers.values():
            if timer.handle is not None:
                timer.handle.cancel()
        self._timers.clear()
        self._due.clear()

    async def flush_now(self) -> None:
        """Fire every armed timer immediately and wait until the queue drains."""
        for record_id, timer in list(self._timers.items()):
            if timer.handle is not None:
                timer.handle.cancel()
            self._fire(record_id)
        await self.drain()

    async def drain(self) -> None:
        """Wait for the running flush task (and any it chains into) to finish."""
        while self._flush_task is not None and not self._flush_task.done():
            await asyncio.shield(self._flush_task)

    def _fire(self, record_id: str) -> None:
        timer = self._timers.pop(record_id, None)
        if timer is None:
            return
        self._due[record_id] = timer
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        # Let timers that expire on the same tick join this batch.
        await asyncio.sleep(0)
        while self._due:
            batch = sorted(self._due.items(), key=lambda item: item[1].seq)
            self._due.clear()
            operations = _coalesce(batch)
            _logger.debug(
                "%s: flushing %s",
                self._name,
                ", ".join(f"{op.kind}x{len(op.ids)}" for op in operations),
            )
            self._in_flight = frozenset(record_id for record_id, _ in batch)
            try:
                await self._on_flush(operations)
            finally:
                self._in_flight = frozenset()
