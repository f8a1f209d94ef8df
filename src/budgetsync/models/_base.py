"""Base model and enum for records and aggregator payloads.

Every record inherits from :class:`PlaidBaseModel` which provides:

* frozen instances, so a cached record can be shared safely between the
  store index and its observers.
* ``populate_by_name`` so records can be built from table rows (column
  aliases) or from Python code (field names).
* A ``model_validator(mode="before")`` that drops ``None`` and blank
  strings so the field default is used.

String enums inherit from :class:`PlaidEnum` which resolves any value
without a mapped member to the enum's fallback member.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class PlaidEnum(enum.StrEnum):
    """Base for aggregator string enums.

    Subclasses may define ``OTHER``; unmapped values (including different
    casing) resolve to it instead of raising ``ValueError``.
    """

    @classmethod
    def _missing_(cls, value: object) -> PlaidEnum | None:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        if hasattr(cls, "OTHER"):
            other: PlaidEnum = cls.OTHER  # type: ignore[attr-defined]
            return other
        return None


class PlaidBaseModel(BaseModel):
    """Base for records and aggregator response models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_empty_values(cls, values: Any) -> Any:
        """Drop ``None`` and blank strings so field defaults apply."""
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            cleaned[key] = value
        return cleaned

    def to_row(self) -> dict[str, Any]:
        """Return the record keyed by backing-table column name."""
        return self.model_dump(by_alias=True)
