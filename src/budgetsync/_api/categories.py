"""Category reference data (``/categories/get``)."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from budgetsync._api._common import post_plaid_json
from budgetsync._transport import Transport
from budgetsync.models.category import Category

_logger = logging.getLogger(__name__)

ENDPOINT = "/categories/get"


async def fetch_categories(transport: Transport) -> list[Category]:
    """Fetch the full category tree. Malformed entries are skipped."""
    response = await post_plaid_json(transport, ENDPOINT, {})
    raw: Any = response.get("categories") or []
    categories: list[Category] = []
    for item in raw:
        try:
            categories.append(Category.model_validate(item))
        except ValidationError:
            _logger.debug("Skipping malformed category entry: %s", item)
    _logger.debug("Fetched %d categories", len(categories))
    return categories
