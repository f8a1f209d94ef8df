"""Cache freshness policy."""

from __future__ import annotations

from datetime import datetime, timedelta


def is_expired(now: datetime, expires_at: datetime) -> bool:
    return now >= expires_at


def is_fresh(last_fetch: datetime | None, now: datetime, ttl: timedelta) -> bool:
    """Whether a fetch stamped at ``last_fetch`` is still within ``ttl``.

    A zero TTL disables caching: every ``ensure_fresh`` pulls.
    """
    if last_fetch is None or ttl <= timedelta(0):
        return False
    return not is_expired(now, last_fetch + ttl)
