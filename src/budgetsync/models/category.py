"""Spending category reference data."""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import Field

from budgetsync._constants import UNCATEGORIZED_NAME
from budgetsync.models._base import PlaidBaseModel


class Category(PlaidBaseModel):
    """A node of the aggregator's category tree.

    ``hierarchy`` lists labels from the most general to the most specific,
    e.g. ``["Food and Drink", "Restaurants", "Coffee Shop"]``.
    """

    id: str = Field(alias="category_id", min_length=1)
    group: str = ""
    hierarchy: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.hierarchy[-1] if self.hierarchy else UNCATEGORIZED_NAME

    @property
    def top_level(self) -> str:
        return self.hierarchy[0] if self.hierarchy else UNCATEGORIZED_NAME


def category_name(categories: Iterable[Category], category_id: str | None) -> str:
    """Resolve the display label of ``category_id``.

    Unknown or missing ids map to ``"Uncategorized"``.
    """
    if not category_id:
        return UNCATEGORIZED_NAME
    for category in categories:
        if category.id == category_id:
            return category.name
    return UNCATEGORIZED_NAME
