"""Remote port contract consumed by :class:`~budgetsync.store.RecordStore`.

A store is constructed with a :class:`RemotePort`: a required ``pull`` and
optional ``push`` / ``pop`` coroutines. Read-only entities simply leave the
write capabilities unset.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from budgetsync.store.request import RemoteRequest


@runtime_checkable
class Record(Protocol):
    """Anything with a stable, serializable identifier."""

    @property
    def id(self) -> str: ...


T = TypeVar("T", bound=Record)

PullFn = Callable[[RemoteRequest], Awaitable[Sequence[T]]]
PushFn = Callable[[Sequence[T]], Awaitable[None]]
PopFn = Callable[[Sequence[str]], Awaitable[None]]


@dataclass(frozen=True)
class RemotePort(Generic[T]):
    """Capability-tagged remote interface for one entity type.

    ``pull`` returns the records matching a request. ``push`` upserts records
    and ``pop`` deletes ids. Any of them may raise; the store turns the error
    into a :class:`~budgetsync.exceptions.RemoteFailure`. No read-after-write
    ordering is assumed between a push and a later pull.
    """

    pull: PullFn[T]
    push: PushFn[T] | None = None
    pop: PopFn | None = None

    @property
    def can_push(self) -> bool:
        return self.push is not None

    @property
    def can_pop(self) -> bool:
        return self.pop is not None

    @classmethod
    def from_adapter(cls, adapter: Any) -> RemotePort[Any]:
        """Build a port from an object exposing ``pull`` and optionally ``push``/``pop``."""
        pull = getattr(adapter, "pull", None)
        if pull is None:
            raise TypeError(f"{type(adapter).__name__} has no pull() method")
        return cls(
            pull=pull,
            push=getattr(adapter, "push", None),
            pop=getattr(adapter, "pop", None),
        )
