"""Link token issuance (``/link/token/create``)."""

from __future__ import annotations

from typing import Any

from budgetsync._api._common import post_plaid_json
from budgetsync._transport import Transport
from budgetsync.config import SyncConfig
from budgetsync.exceptions import TransportError

ENDPOINT = "/link/token/create"


def build_link_token_request(config: SyncConfig, client_user_id: str) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "client_name": config.client_name,
        "language": "en",
        "country_codes": list(config.country_codes),
        "products": list(config.products),
        "user": {"client_user_id": client_user_id},
    }
    if config.redirect_uri:
        payload["redirect_uri"] = config.redirect_uri
    if config.webhook_url:
        payload["webhook"] = config.webhook_url
    return payload


async def create_link_token(transport: Transport, config: SyncConfig, client_user_id: str) -> str:
    """Issue a link token for ``client_user_id`` and return it."""
    response = await post_plaid_json(transport, ENDPOINT, build_link_token_request(config, client_user_id))
    token = response.get("link_token")
    if not isinstance(token, str) or not token:
        raise TransportError(f"Missing link_token in response from {ENDPOINT}", endpoint=ENDPOINT)
    return token
