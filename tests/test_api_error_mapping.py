from __future__ import annotations

from typing import Any

import pytest
from aiohttp import ClientSession, test_utils, web

from budgetsync._api._common import post_plaid_json
from budgetsync._api.categories import fetch_categories
from budgetsync._api.link_token import build_link_token_request, create_link_token
from budgetsync._api.transactions_sync import fetch_sync_page
from budgetsync._transport import PlaidTransport
from budgetsync.config import SyncConfig
from budgetsync.exceptions import PlaidApiError, TransportError


class _StaticTransport:
    def __init__(self, response: dict[str, Any]) -> None:
        self._response = response
        self.requests: list[tuple[str, dict[str, Any]]] = []

    async def post_json(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.requests.append((endpoint, dict(payload)))
        return self._response


@pytest.mark.asyncio
async def test_error_body_with_200_raises_api_error() -> None:
    transport = _StaticTransport({"error_code": "ITEM_LOGIN_REQUIRED", "error_type": "ITEM_ERROR"})

    with pytest.raises(PlaidApiError) as exc_info:
        await post_plaid_json(transport, "/transactions/sync", {})

    assert exc_info.value.code == "ITEM_LOGIN_REQUIRED"
    assert exc_info.value.error_type == "ITEM_ERROR"
    assert exc_info.value.endpoint == "/transactions/sync"


@pytest.mark.asyncio
async def test_fetch_sync_page_sends_cursor_and_count() -> None:
    transport = _StaticTransport(
        {"accounts": [], "added": [], "modified": [], "removed": [], "next_cursor": "c2", "has_more": True}
    )

    page = await fetch_sync_page(transport, "access-1", "c1", count=250)

    assert transport.requests == [("/transactions/sync", {"access_token": "access-1", "count": 250, "cursor": "c1"})]
    assert page.next_cursor == "c2"
    assert page.has_more is True


@pytest.mark.asyncio
async def test_fetch_sync_page_omits_missing_cursor() -> None:
    transport = _StaticTransport({"next_cursor": "c1"})

    await fetch_sync_page(transport, "access-1", None)

    assert "cursor" not in transport.requests[0][1]


@pytest.mark.asyncio
async def test_malformed_sync_page_raises_transport_error() -> None:
    with pytest.raises(TransportError):
        await fetch_sync_page(_StaticTransport({"added": []}), "access-1", None)


@pytest.mark.asyncio
async def test_fetch_categories_skips_malformed_entries() -> None:
    transport = _StaticTransport(
        {
            "categories": [
                {"category_id": "10000000", "group": "special", "hierarchy": ["Bank Fees"]},
                {"group": "special"},
            ]
        }
    )

    categories = await fetch_categories(transport)

    assert [c.id for c in categories] == ["10000000"]


@pytest.mark.asyncio
async def test_create_link_token_returns_token() -> None:
    config = SyncConfig(webhook_url="https://example.com/sync", products=("transactions",))
    transport = _StaticTransport({"link_token": "link-sandbox-abc", "expiration": "2026-01-01T00:00:00Z"})

    token = await create_link_token(transport, config, "user-1")

    assert token == "link-sandbox-abc"
    endpoint, payload = transport.requests[0]
    assert endpoint == "/link/token/create"
    assert payload["user"] == {"client_user_id": "user-1"}
    assert payload["webhook"] == "https://example.com/sync"
    assert "redirect_uri" not in payload


def test_link_token_request_uses_configured_products_and_countries() -> None:
    config = SyncConfig(products=("transactions", "auth"), country_codes=("US", "CA"), redirect_uri="https://x/cb")

    payload = build_link_token_request(config, "user-1")

    assert payload["products"] == ["transactions", "auth"]
    assert payload["country_codes"] == ["US", "CA"]
    assert payload["redirect_uri"] == "https://x/cb"


_SEEN_CREDENTIALS = web.AppKey("seen_credentials", list)


async def _plaid_stub(request: web.Request) -> web.Response:
    request.app[_SEEN_CREDENTIALS].append((request.headers.get("PLAID-CLIENT-ID"), request.headers.get("PLAID-SECRET")))
    if request.path == "/api-error":
        return web.json_response(
            {"error_code": "INVALID_ACCESS_TOKEN", "error_type": "INVALID_INPUT", "error_message": "bad token"},
            status=400,
        )
    if request.path == "/server-error":
        return web.Response(text="upstream exploded", status=500)
    if request.path == "/not-json":
        return web.Response(text="<html>", status=200)
    return web.json_response({"ok": True, "echo": await request.json()})


@pytest.mark.asyncio
async def test_plaid_transport_maps_http_outcomes() -> None:
    app = web.Application()
    app[_SEEN_CREDENTIALS] = []
    app.router.add_post("/{tail:.*}", _plaid_stub)

    async with test_utils.TestServer(app) as server, ClientSession() as session:
        config = SyncConfig(
            plaid_client_id="client-1",
            plaid_secret="secret-1",
            base_url=str(server.make_url("")),
        )
        transport = PlaidTransport(config, session)

        body = await transport.post_json("/ok", {"count": 1})
        assert body == {"ok": True, "echo": {"count": 1}}
        assert app[_SEEN_CREDENTIALS] == [("client-1", "secret-1")]

        with pytest.raises(PlaidApiError) as api_error:
            await transport.post_json("/api-error", {})
        assert api_error.value.code == "INVALID_ACCESS_TOKEN"

        with pytest.raises(TransportError) as server_error:
            await transport.post_json("/server-error", {})
        assert server_error.value.status_code == 500

        with pytest.raises(TransportError):
            await transport.post_json("/not-json", {})
