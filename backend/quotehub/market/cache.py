"""Short-lived quote cache: in-memory and Redis backends."""

from __future__ import annotations

import logging
import time
from threading import Lock

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .errors import StoreError
from .interface import QuoteCache
from .models import Quote

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "quote:"


def cache_key(symbol: str) -> str:
    return f"{CACHE_KEY_PREFIX}{symbol.upper()}"


class InMemoryQuoteCache(QuoteCache):
    """Thread-safe in-memory cache of the latest quote for each symbol.

    Writers: RefreshScheduler, on-demand quote routes.
    Readers: on-demand quote routes.
    Entries expire ``ttl`` seconds after they were written.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[float, Quote]] = {}  # key -> (expires_at, quote)
        self._lock = Lock()

    async def set(self, quote: Quote, ttl: float) -> None:
        with self._lock:
            self._entries[cache_key(quote.symbol)] = (time.monotonic() + ttl, quote)

    async def get(self, symbol: str) -> Quote | None:
        key = cache_key(symbol)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, quote = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return quote

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisQuoteCache(QuoteCache):
    """Quote cache shared across instances, stored as ``quote:{SYMBOL}`` JSON strings."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    async def set(self, quote: Quote, ttl: float) -> None:
        try:
            await self._client.set(cache_key(quote.symbol), quote.to_json(), px=max(int(ttl * 1000), 1))
        except RedisError as e:
            raise StoreError(f"Cache write failed for {quote.symbol}: {e}") from e

    async def get(self, symbol: str) -> Quote | None:
        try:
            raw = await self._client.get(cache_key(symbol))
        except RedisError as e:
            raise StoreError(f"Cache read failed for {symbol}: {e}") from e
        if raw is None:
            return None
        try:
            return Quote.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding malformed cache entry for %s: %s", symbol, e)
            return None
