"""Library configuration for budgetsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from budgetsync._constants import DEFAULT_CACHE_TTL, MAX_SYNC_PAGE_SIZE, PLAID_ENVIRONMENTS
from budgetsync.exceptions import ConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str | None) -> tuple[str, ...] | None:
    if value is None:
        return None
    items = tuple(part.strip() for part in value.split(",") if part.strip())
    return items or None


def _env_number(env_key: str, value: str, cast: type[float] | type[int]) -> float | int:
    try:
        return cast(value)
    except ValueError as exc:
        raise ConfigError(f"{env_key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Library configuration.

    Parameters
    ----------
    plaid_client_id : str
        Aggregator client id, sent as ``PLAID-CLIENT-ID``.
    plaid_secret : str
        Aggregator secret, sent as ``PLAID-SECRET``.
    plaid_env : str
        ``sandbox``, ``development`` or ``production``. Selects the API host.
    base_url : str or None
        Explicit API host; overrides ``plaid_env`` when set.
    database_url : str
        SQLAlchemy URL of the backing tables.
    cache_ttl : float
        Seconds a store request stays fresh for ``ensure_fresh``.
    push_interval : float
        Default debounce before a local ``add`` is pushed. ``0`` pushes on
        the next event-loop tick.
    pop_interval : float
        Default debounce before a local ``delete`` is popped.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.
    sync_page_size : int
        ``count`` passed to the delta feed (max 500).
    sync_max_pages : int
        Upper bound on pages fetched for a single reconciliation run.
    products : tuple[str, ...]
        Products requested when issuing a link token.
    country_codes : tuple[str, ...]
        Country codes requested when issuing a link token.
    client_name : str
        Display name sent with link token requests.
    redirect_uri : str or None
        OAuth redirect URI for the link flow.
    webhook_url : str or None
        Webhook registered with new link tokens.
    api_trace_enabled : bool
        Log redacted request and response bodies at DEBUG level.
    """

    plaid_client_id: str = ""
    plaid_secret: str = ""
    plaid_env: str = "sandbox"
    base_url: str | None = None
    database_url: str = "sqlite+pysqlite:///budgetsync.db"
    cache_ttl: float = DEFAULT_CACHE_TTL
    push_interval: float = 0.0
    pop_interval: float = 0.0
    request_timeout: float = 30.0
    sync_page_size: int = 100
    sync_max_pages: int = 100
    products: tuple[str, ...] = ("transactions",)
    country_codes: tuple[str, ...] = ("US",)
    client_name: str = "Budget"
    redirect_uri: str | None = None
    webhook_url: str | None = None
    api_trace_enabled: bool = False

    def __post_init__(self) -> None:
        if self.base_url is None and self.plaid_env not in PLAID_ENVIRONMENTS:
            raise ConfigError(f"Unknown plaid_env {self.plaid_env!r}; expected one of {sorted(PLAID_ENVIRONMENTS)}")
        for name in ("cache_ttl", "push_interval", "pop_interval"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be > 0")
        if not 1 <= self.sync_page_size <= MAX_SYNC_PAGE_SIZE:
            raise ConfigError(f"sync_page_size must be between 1 and {MAX_SYNC_PAGE_SIZE}")
        if self.sync_max_pages < 1:
            raise ConfigError("sync_max_pages must be >= 1")

    @property
    def api_base_url(self) -> str:
        """Host all aggregator endpoints are resolved against."""
        if self.base_url:
            return self.base_url.rstrip("/")
        return PLAID_ENVIRONMENTS[self.plaid_env]

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads the ``PLAID_*`` variables used by the serverless functions and
        the ``BUDGETSYNC_*`` tuning knobs. Explicit keyword arguments override
        environment values.

        Raises
        ------
        ConfigError
            When a numeric variable cannot be parsed or a value is out of range.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "PLAID_CLIENT_ID": "plaid_client_id",
            "PLAID_SECRET": "plaid_secret",
            "PLAID_ENV": "plaid_env",
            "PLAID_BASE_URL": "base_url",
            "DATABASE_URL": "database_url",
            "PLAID_CLIENT_NAME": "client_name",
            "PLAID_REDIRECT_URI": "redirect_uri",
            "PLAID_WEBHOOK_URL": "webhook_url",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val:
                config_kwargs[field_name] = val

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type[float] | type[int]]] = {
            "BUDGETSYNC_CACHE_TTL": ("cache_ttl", float),
            "BUDGETSYNC_PUSH_INTERVAL": ("push_interval", float),
            "BUDGETSYNC_POP_INTERVAL": ("pop_interval", float),
            "BUDGETSYNC_REQUEST_TIMEOUT": ("request_timeout", float),
            "BUDGETSYNC_SYNC_PAGE_SIZE": ("sync_page_size", int),
            "BUDGETSYNC_SYNC_MAX_PAGES": ("sync_max_pages", int),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, cast)

        products = _env_list(env.get("PLAID_PRODUCTS"))
        if products is not None:
            config_kwargs["products"] = products
        country_codes = _env_list(env.get("PLAID_COUNTRY_CODES"))
        if country_codes is not None:
            config_kwargs["country_codes"] = country_codes

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(
                env.get("BUDGETSYNC_API_TRACE_ENABLED"),
                False,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
