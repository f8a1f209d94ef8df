"""Delta feed endpoint (``/transactions/sync``)."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from budgetsync._api._common import post_plaid_json
from budgetsync._redact import mask_secret
from budgetsync._transport import Transport
from budgetsync.exceptions import TransportError
from budgetsync.models.delta import SyncPage

_logger = logging.getLogger(__name__)

ENDPOINT = "/transactions/sync"


async def fetch_sync_page(
    transport: Transport,
    access_token: str,
    cursor: str | None,
    *,
    count: int = 100,
) -> SyncPage:
    """Fetch one page of changes after ``cursor``.

    A ``None`` cursor starts from the beginning of the item's history.
    """
    payload: dict[str, object] = {"access_token": access_token, "count": count}
    if cursor:
        payload["cursor"] = cursor
    _logger.debug("Fetching sync page token=%s cursor=%s", mask_secret(access_token), mask_secret(cursor))
    response = await post_plaid_json(transport, ENDPOINT, payload)
    try:
        return SyncPage.model_validate(response)
    except ValidationError as exc:
        raise TransportError(f"Malformed sync page from {ENDPOINT}: {exc}", endpoint=ENDPOINT) from exc
