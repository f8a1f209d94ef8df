"""Shared helpers for aggregator endpoint modules.

Internal to budgetsync and may change at any time.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from budgetsync._transport import Transport
from budgetsync.exceptions import PlaidApiError


async def post_plaid_json(
    transport: Transport,
    endpoint: str,
    payload: Mapping[str, Any],
) -> dict[str, Any]:
    """Post ``payload`` and reject bodies that still carry an error.

    Some aggregator proxies answer 200 with an error object; those are mapped
    the same way as non-200 error responses.
    """
    response = await transport.post_json(endpoint, payload)
    code = response.get("error_code")
    if code:
        raise PlaidApiError(
            f"{endpoint} failed: {response.get('error_type', '')}/{code} {response.get('error_message', '')}".rstrip(),
            code=str(code),
            error_type=str(response.get("error_type") or ""),
            endpoint=endpoint,
        )
    return response
