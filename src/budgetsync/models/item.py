"""Linked aggregator item."""

from __future__ import annotations

from pydantic import Field

from budgetsync.models._base import PlaidBaseModel


class PlaidItem(PlaidBaseModel):
    """Durable sync state of one upstream item.

    Parameters
    ----------
    item_id : str
        Aggregator item id carried by webhooks.
    user : str
        Owner of the item's accounts.
    access_token : str
        Credential used for the delta feed.
    cursor : str or None
        Last cursor whose changes were committed. ``None`` until the first
        successful reconciliation.
    """

    item_id: str = Field(min_length=1)
    user: str = Field(min_length=1)
    access_token: str = Field(min_length=1, repr=False)
    cursor: str | None = None
