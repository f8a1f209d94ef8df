"""Transaction record."""

from __future__ import annotations

import datetime as dt
import math

from pydantic import Field, field_validator

from budgetsync.models._base import PlaidBaseModel


class Transaction(PlaidBaseModel):
    """A single transaction of a linked account.

    Column names match field names (snake_case). ``amount`` follows the
    aggregator's sign convention: positive values are money leaving the
    account.
    """

    id: str = Field(min_length=1)
    account_id: str = Field(min_length=1)
    amount: float
    iso_currency_code: str | None = None
    unofficial_currency_code: str | None = None
    category_id: str | None = None
    date: dt.date | None = None
    merchant_name: str | None = None
    pending: bool = False
    logo_url: str | None = None

    @field_validator("amount")
    @classmethod
    def _finite_amount(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("amount must be finite")
        return value

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: object) -> object:
        # Rows written by other clients may carry a full timestamp.
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value

    @property
    def currency(self) -> str | None:
        return self.iso_currency_code or self.unofficial_currency_code
