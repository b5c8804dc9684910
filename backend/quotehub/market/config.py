"""Settings for the quote distribution subsystem, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env(name: str) -> str | None:
    """Environment value with surrounding whitespace removed; blank means unset."""
    value = os.environ.get(name, "").strip()
    return value or None


def _env_float(name: str, default: float) -> float:
    value = _env(name)
    return float(value) if value is not None else default


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    return int(value) if value is not None else default


def _parse_tokens(raw: str | None) -> dict[str, str]:
    """Parse ``token:identity,token2:identity2``. A bare token is its own identity."""
    tokens: dict[str, str] = {}
    for item in (raw or "").split(","):
        item = item.strip()
        if not item:
            continue
        token, _, identity = item.partition(":")
        tokens[token.strip()] = identity.strip() or token.strip()
    return tokens


@dataclass
class MarketSettings:
    """Configuration for the quote distribution services.

    Attributes:
        finnhub_api_key: Primary provider key. Unset disables the provider.
        alpha_vantage_api_key: Secondary provider key. Unset disables it.
        redis_url: Shared bus/registry/cache. Unset uses in-memory backends.
        refresh_interval: Seconds between scheduler ticks.
        batch_size: Max symbols refreshed per tick (provider rate budget).
        provider_timeout: Per-request provider timeout in seconds.
        shutdown_grace: Seconds shutdown waits for in-flight work.
        instance_id: Identity of this process in the active-symbol registry.
        api_tokens: Static ``{token: identity}`` table for the token verifier.
        log_level: Root log level name.
    """

    finnhub_api_key: str | None = None
    alpha_vantage_api_key: str | None = None
    redis_url: str | None = None
    refresh_interval: float = 5.0
    batch_size: int = 5
    provider_timeout: float = 5.0
    shutdown_grace: float = 1.0
    instance_id: str | None = None
    api_tokens: dict[str, str] = field(default_factory=dict)
    log_level: str = "INFO"

    @property
    def cache_ttl(self) -> float:
        """Quote cache TTL: two refresh intervals."""
        return 2 * self.refresh_interval

    @property
    def registry_ttl(self) -> float:
        """Registry entry expiry: three refresh intervals, so one missed tick is tolerated."""
        return 3 * self.refresh_interval

    @classmethod
    def from_env(cls) -> MarketSettings:
        """Build settings from environment variables.

        Environment variables:
            FINNHUB_API_KEY, ALPHA_VANTAGE_API_KEY: provider keys.
            REDIS_URL: e.g. ``redis://localhost:6379/0``.
            QUOTEHUB_REFRESH_INTERVAL (5.0), QUOTEHUB_BATCH_SIZE (5),
            QUOTEHUB_PROVIDER_TIMEOUT (5.0), QUOTEHUB_SHUTDOWN_GRACE (1.0).
            QUOTEHUB_INSTANCE_ID: defaults to hostname-pid-random.
            QUOTEHUB_API_TOKENS: ``token:identity`` pairs, comma separated.
            QUOTEHUB_LOG_LEVEL (INFO).
        """
        return cls(
            finnhub_api_key=_env("FINNHUB_API_KEY"),
            alpha_vantage_api_key=_env("ALPHA_VANTAGE_API_KEY"),
            redis_url=_env("REDIS_URL"),
            refresh_interval=_env_float("QUOTEHUB_REFRESH_INTERVAL", 5.0),
            batch_size=_env_int("QUOTEHUB_BATCH_SIZE", 5),
            provider_timeout=_env_float("QUOTEHUB_PROVIDER_TIMEOUT", 5.0),
            shutdown_grace=_env_float("QUOTEHUB_SHUTDOWN_GRACE", 1.0),
            instance_id=_env("QUOTEHUB_INSTANCE_ID"),
            api_tokens=_parse_tokens(_env("QUOTEHUB_API_TOKENS")),
            log_level=(_env("QUOTEHUB_LOG_LEVEL") or "INFO").upper(),
        )
