"""Process-wide registry of record stores.

Replaces per-type global singletons: the application builds its stores
explicitly, registers them once, and tears them all down on sign-out.
"""

from __future__ import annotations

import logging
from typing import Any

from budgetsync.exceptions import NotFoundError
from budgetsync.store.record_store import RecordStore, StoreResult

_logger = logging.getLogger(__name__)


class StoreRegistry:
    """Named :class:`RecordStore` instances, one per entity type."""

    def __init__(self) -> None:
        self._stores: dict[str, RecordStore[Any]] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._stores

    def __len__(self) -> int:
        return len(self._stores)

    def names(self) -> list[str]:
        return list(self._stores)

    def register(self, store: RecordStore[Any], *, name: str | None = None) -> RecordStore[Any]:
        """Register ``store`` under ``name`` (defaults to ``store.name``)."""
        key = name or store.name
        if key in self._stores:
            raise ValueError(f"a store named {key!r} is already registered")
        self._stores[key] = store
        return store

    def get(self, name: str) -> RecordStore[Any]:
        try:
            return self._stores[name]
        except KeyError:
            raise NotFoundError(f"no store named {name!r}") from None

    def retry_pending(self) -> int:
        """Re-arm failed writes in every store (app returned to foreground)."""
        return sum(store.retry_pending() for store in self._stores.values())

    async def flush_all(self) -> dict[str, StoreResult[Any]]:
        return {name: await store.flush() for name, store in self._stores.items()}

    def clear_all(self) -> None:
        """Clear and forget every store (sign-out)."""
        for store in self._stores.values():
            store.clear()
        _logger.debug("cleared %d store(s)", len(self._stores))
        self._stores.clear()
