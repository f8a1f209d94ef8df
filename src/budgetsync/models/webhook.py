"""Inbound webhook payload."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator


class WebhookCode(StrEnum):
    SYNC_UPDATES_AVAILABLE = "SYNC_UPDATES_AVAILABLE"
    DEFAULT_UPDATE = "DEFAULT_UPDATE"
    INITIAL_UPDATE = "INITIAL_UPDATE"
    HISTORICAL_UPDATE = "HISTORICAL_UPDATE"


#: Codes acknowledged without doing anything; the sync feed covers them.
IGNORED_WEBHOOK_CODES: frozenset[WebhookCode] = frozenset(
    {
        WebhookCode.DEFAULT_UPDATE,
        WebhookCode.INITIAL_UPDATE,
        WebhookCode.HISTORICAL_UPDATE,
    }
)


class WebhookPayload(BaseModel):
    """Body posted by the aggregator. Only the routing fields are validated."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    webhook_code: str
    item_id: str

    @field_validator("webhook_code", "item_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("must be non-empty")
        return value
