"""HTTP transport for the aggregator's JSON API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from budgetsync._constants import USER_AGENT
from budgetsync._redact import redact_for_log
from budgetsync.config import SyncConfig
from budgetsync.exceptions import PlaidApiError, TransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Tests pass simple doubles implementing ``post_json``; production code
    uses :class:`PlaidTransport`.
    """

    async def post_json(self, endpoint: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        ...


def _api_error_from_body(endpoint: str, status: int, body: Any) -> PlaidApiError | None:
    """Build a :class:`PlaidApiError` from an aggregator error body, if it is one."""
    if not isinstance(body, dict) or "error_code" not in body:
        return None
    code = str(body.get("error_code") or "")
    error_type = str(body.get("error_type") or "")
    message = str(body.get("error_message") or body.get("display_message") or "")
    return PlaidApiError(
        f"{endpoint} failed (HTTP {status}): {error_type}/{code} {message}".rstrip(),
        code=code,
        error_type=error_type,
        endpoint=endpoint,
    )


class PlaidTransport:
    """POSTs JSON to the aggregator with client credentials attached."""

    def __init__(self, config: SyncConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    async def post_json(self, endpoint: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Send ``payload`` to ``endpoint`` and return the decoded JSON object.

        Raises
        ------
        PlaidApiError
            The response carried an aggregator error body.
        TransportError
            Network failure, timeout, non-200 status without an error body,
            or a response that is not a JSON object.
        """
        headers: dict[str, str] = {
            "content-type": "application/json",
            "user-agent": USER_AGENT,
            "PLAID-CLIENT-ID": self._config.plaid_client_id,
            "PLAID-SECRET": self._config.plaid_secret,
        }
        url = f"{self._config.api_base_url}{endpoint}"

        _logger.debug("POST %s", url)
        if self._config.api_trace_enabled:
            _logger.debug("POST %s payload=%s", endpoint, redact_for_log(dict(payload)))

        try:
            async with self._http.post(
                url,
                data=json.dumps(payload),
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except TimeoutError as exc:
            raise TransportError(f"Request to {endpoint} timed out", endpoint=endpoint) from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"Request to {endpoint} failed: {exc}", endpoint=endpoint) from exc

        try:
            body: Any = json.loads(text)
        except json.JSONDecodeError as exc:
            if status != 200:
                raise TransportError(
                    f"HTTP {status} from {endpoint}: {text[:200]}",
                    status_code=status,
                    endpoint=endpoint,
                ) from exc
            raise TransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

        if status != 200:
            api_error = _api_error_from_body(endpoint, status, body)
            if api_error is not None:
                raise api_error
            raise TransportError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )

        if not isinstance(body, dict):
            raise TransportError(
                f"Expected a JSON object from {endpoint}",
                status_code=status,
                endpoint=endpoint,
            )

        if self._config.api_trace_enabled:
            _logger.debug("Response %s body=%s", endpoint, redact_for_log(body))
        return body
