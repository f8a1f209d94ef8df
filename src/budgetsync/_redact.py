"""Helpers for safe debug logging.

budgetsync handles aggregator credentials (client secrets, access tokens,
link tokens). This module redacts those fields before emitting DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

# Client credentials, in JSON bodies and as request headers.
_CREDENTIAL_KEYS: frozenset[str] = frozenset({"client_id", "secret", "plaid-client-id", "plaid-secret"})
# Per-item tokens; the tail is kept so log lines can be correlated.
_TOKEN_KEYS: frozenset[str] = frozenset({"access_token", "public_token", "link_token"})

_MAX_DEPTH = 8


def mask_secret(value: str | None, *, keep: int = 4) -> str:
    """Return ``value`` with everything but the last ``keep`` characters hidden.

    Used for identifiers that are useful in logs but should not be copied
    verbatim (item ids, access tokens).
    """
    if not value:
        return "<none>"
    if len(value) <= keep:
        return "*" * len(value)
    return f"…{value[-keep:]}"


def redact_for_log(value: Any, *, max_string: int = 512, max_items: int = 20) -> Any:
    """Return a copy of a decoded JSON body that is safe to log.

    Parameters
    ----------
    value : Any
        Request payload, response body or header mapping.
    max_string : int
        Longer strings are cut to this many characters.
    max_items : int
        Longer lists (e.g. a page of transactions) keep only this many
        entries plus a marker with the number left out.
    """

    def _walk(node: Any, depth: int) -> Any:
        if depth > _MAX_DEPTH:
            return "<max-depth>"
        if isinstance(node, str):
            return node if len(node) <= max_string else f"{node[:max_string]}…<truncated>"
        if node is None or isinstance(node, (bool, int, float)):
            return node
        if isinstance(node, Mapping):
            return {str(key): _field(str(key), item, depth) for key, item in node.items()}
        if isinstance(node, (list, tuple)):
            shown = [_walk(item, depth + 1) for item in node[:max_items]]
            if len(node) > max_items:
                shown.append(f"<{len(node) - max_items} more>")
            return shown
        return repr(node)

    def _field(key: str, item: Any, depth: int) -> Any:
        lowered = key.lower()
        if lowered in _CREDENTIAL_KEYS:
            return "<redacted>"
        if lowered in _TOKEN_KEYS:
            return mask_secret(item) if isinstance(item, str) else "<redacted>"
        return _walk(item, depth + 1)

    return _walk(value, 0)
