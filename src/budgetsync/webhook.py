"""Aggregator webhook handling and the aiohttp application serving it."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from budgetsync._redact import mask_secret
from budgetsync.exceptions import BudgetSyncError, RemoteFailure, UnknownAccountError, UnknownWebhookCodeError
from budgetsync.models.webhook import IGNORED_WEBHOOK_CODES, WebhookCode, WebhookPayload
from budgetsync.reconcile.engine import ReconciliationEngine, SyncReport

_logger = logging.getLogger(__name__)

LinkTokenIssuer = Callable[[str], Awaitable[str]]
SyncHook = Callable[[SyncReport], Awaitable[None]]

HANDLER_KEY: web.AppKey[WebhookHandler] = web.AppKey("webhook_handler")
LINK_TOKENS_KEY: web.AppKey[LinkTokenIssuer] = web.AppKey("link_tokens")


class WebhookHandler:
    """Maps webhook bodies onto reconciliation runs.

    ``handle`` never raises for bad input: it returns an HTTP status and a
    JSON body. ``on_synced`` runs after a committed sync, e.g. to revalidate
    the stores of a signed-in user.
    """

    def __init__(self, engine: ReconciliationEngine, *, on_synced: SyncHook | None = None) -> None:
        self._engine = engine
        self._on_synced = on_synced

    def parse(self, body: Any) -> tuple[WebhookCode, str]:
        """Validate ``body`` and resolve its code.

        Raises
        ------
        ValidationError
            ``webhook_code`` or ``item_id`` is missing or empty.
        UnknownWebhookCodeError
            The code is not recognised.
        """
        payload = WebhookPayload.model_validate(body)
        try:
            code = WebhookCode(payload.webhook_code)
        except ValueError as exc:
            raise UnknownWebhookCodeError(payload.webhook_code) from exc
        return code, payload.item_id

    async def handle(self, body: Any) -> tuple[int, dict[str, Any]]:
        try:
            code, item_id = self.parse(body)
        except ValidationError as exc:
            _logger.debug("Rejected webhook body: %s", exc)
            return 400, {"error": "webhook_code and item_id are required"}
        except UnknownWebhookCodeError as exc:
            _logger.warning("Rejected webhook: %s", exc)
            return 400, {"error": str(exc)}

        if code in IGNORED_WEBHOOK_CODES:
            _logger.debug("Ignoring webhook %s for item=%s", code, mask_secret(item_id))
            return 200, {"status": "ignored", "webhook_code": code.value}

        try:
            report = await self._engine.sync(item_id)
        except UnknownAccountError:
            _logger.warning("Webhook %s for unknown item=%s", code, mask_secret(item_id))
            return 200, {"status": "ignored", "reason": "unknown item"}
        except RemoteFailure as exc:
            return 502, {"error": str(exc)}

        if self._on_synced is not None:
            try:
                await self._on_synced(report)
            except BudgetSyncError:
                _logger.exception("Post-sync hook failed for item=%s", mask_secret(item_id))
        return 200, {"status": "synced", **report.as_dict()}


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


async def _handle_sync(request: web.Request) -> web.Response:
    handler = request.app[HANDLER_KEY]
    status, body = await handler.handle(await _read_json(request))
    return web.json_response(body, status=status)


async def _handle_link_token(request: web.Request) -> web.Response:
    issue = request.app[LINK_TOKENS_KEY]
    body = await _read_json(request)
    user = body.get("user") if isinstance(body, dict) else None
    if not isinstance(user, str) or not user.strip():
        return web.json_response({"error": "user is required"}, status=400)
    try:
        token = await issue(user.strip())
    except BudgetSyncError as exc:
        _logger.warning("Link token issuance failed: %s", exc)
        return web.json_response({"error": str(exc)}, status=502)
    return web.json_response({"token": token})


def create_app(handler: WebhookHandler, link_tokens: LinkTokenIssuer | None = None) -> web.Application:
    """Build the application: ``POST /sync`` and, optionally, ``POST /plaid-token``."""
    app = web.Application()
    app[HANDLER_KEY] = handler
    app.router.add_post("/sync", _handle_sync)
    if link_tokens is not None:
        app[LINK_TOKENS_KEY] = link_tokens
        app.router.add_post("/plaid-token", _handle_link_token)
    return app
