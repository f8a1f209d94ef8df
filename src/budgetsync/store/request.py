"""Store read requests."""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from enum import StrEnum


class RequestKind(StrEnum):
    ALL = "all"
    BY_IDS = "ids"


@dataclass(frozen=True, slots=True)
class RemoteRequest:
    """Either every record of a store or a fixed set of ids.

    Build with :meth:`all` or :meth:`by_ids`. Two requests with the same
    ``signature`` are the same request for caching and coalescing.
    """

    kind: RequestKind
    ids: frozenset[str] = frozenset()

    @classmethod
    def all(cls) -> RemoteRequest:
        return cls(RequestKind.ALL)

    @classmethod
    def by_ids(cls, ids: Iterable[str]) -> RemoteRequest:
        return cls(RequestKind.BY_IDS, frozenset(str(record_id) for record_id in ids))

    @property
    def is_all(self) -> bool:
        return self.kind is RequestKind.ALL

    @property
    def signature(self) -> Hashable:
        if self.is_all:
            return (RequestKind.ALL.value,)
        return (RequestKind.BY_IDS.value, self.ids)

    def matches(self, record_id: str) -> bool:
        return self.is_all or record_id in self.ids

    def __repr__(self) -> str:
        if self.is_all:
            return "RemoteRequest.all()"
        return f"RemoteRequest.by_ids({sorted(self.ids)!r})"


ALL = RemoteRequest.all()
