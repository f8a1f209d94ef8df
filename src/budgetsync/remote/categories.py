"""Read-only category port fed by the aggregator."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence

from budgetsync.models.category import Category
from budgetsync.store.request import RemoteRequest

CategorySource = Callable[[], Awaitable[Sequence[Category]]]


class CategoriesPort:
    """Pull-only port; the aggregator only serves the full category list."""

    def __init__(self, source: CategorySource) -> None:
        self._source = source

    async def pull(self, request: RemoteRequest) -> list[Category]:
        categories = await self._source()
        return [category for category in categories if request.matches(category.id)]
