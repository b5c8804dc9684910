"""Active-symbol registry: per-instance membership entries with expiry.

Each process instance writes its own ``{instance_id}|{symbol}`` entry. An
instance removing its entry never removes another instance's interest, and
entries from a crashed instance lapse once their expiry passes.
"""

from __future__ import annotations

import time
from threading import Lock

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .errors import StoreError
from .interface import SymbolRegistry

REGISTRY_KEY = "active_symbols"
_SEPARATOR = "|"


def _member(instance_id: str, symbol: str) -> str:
    return f"{instance_id}{_SEPARATOR}{symbol}"


def _symbol_of(member: str) -> str:
    return member.rsplit(_SEPARATOR, 1)[-1]


class InMemorySymbolRegistry(SymbolRegistry):
    """SymbolRegistry for a single process; shareable between managers in tests."""

    def __init__(self, clock=time.time) -> None:
        self._entries: dict[str, float] = {}  # member -> expires_at
        self._lock = Lock()
        self._clock = clock

    async def add(self, instance_id: str, symbol: str, ttl: float) -> None:
        with self._lock:
            self._entries[_member(instance_id, symbol)] = self._clock() + ttl

    async def remove(self, instance_id: str, symbol: str) -> None:
        with self._lock:
            self._entries.pop(_member(instance_id, symbol), None)

    async def active_symbols(self) -> list[str]:
        now = self._clock()
        with self._lock:
            expired = [m for m, expires_at in self._entries.items() if expires_at <= now]
            for m in expired:
                del self._entries[m]
            return sorted({_symbol_of(m) for m in self._entries})


class RedisSymbolRegistry(SymbolRegistry):
    """SymbolRegistry stored in one Redis sorted set.

    Member = ``{instance_id}|{symbol}``, score = expiry as Unix seconds.
    Every operation touches a single key.
    """

    def __init__(self, client: Redis, key: str = REGISTRY_KEY, clock=time.time) -> None:
        self._client = client
        self._key = key
        self._clock = clock

    async def add(self, instance_id: str, symbol: str, ttl: float) -> None:
        try:
            await self._client.zadd(self._key, {_member(instance_id, symbol): self._clock() + ttl})
        except RedisError as e:
            raise StoreError(f"Registry add failed for {symbol}: {e}") from e

    async def remove(self, instance_id: str, symbol: str) -> None:
        try:
            await self._client.zrem(self._key, _member(instance_id, symbol))
        except RedisError as e:
            raise StoreError(f"Registry remove failed for {symbol}: {e}") from e

    async def active_symbols(self) -> list[str]:
        now = self._clock()
        try:
            await self._client.zremrangebyscore(self._key, "-inf", now)
            members = await self._client.zrangebyscore(self._key, f"({now}", "+inf")
        except RedisError as e:
            raise StoreError(f"Registry read failed: {e}") from e
        symbols = set()
        for m in members:
            if isinstance(m, bytes):
                m = m.decode()
            symbols.add(_symbol_of(m))
        return sorted(symbols)
