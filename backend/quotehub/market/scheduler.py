"""Periodic refresh of quotes for symbols that have listeners somewhere in the fleet."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .fanout import FanoutManager
from .interface import QuoteCache
from .resolver import QuoteResolver

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0
DEFAULT_BATCH_SIZE = 5  # provider rate-limit budget per tick
DEFAULT_GRACE_PERIOD = 1.0


@dataclass(frozen=True, slots=True)
class TickResult:
    """Outcome of one scheduler tick."""

    selected: tuple[str, ...] = ()
    succeeded: int = 0
    failed: int = 0


class RefreshScheduler:
    """Timer-driven batch refresh: fetch, publish and cache hot symbols.

    Each tick refreshes this instance's registry heartbeat, reads the active
    symbols, selects at most ``batch_size`` of them starting at a rotating
    offset, and refreshes the selection concurrently. Ticks never overlap.

    Lifecycle:
        scheduler = RefreshScheduler(resolver, fanout, cache)
        scheduler.start()
        # ... app runs ...
        await scheduler.shutdown()
    """

    def __init__(
        self,
        resolver: QuoteResolver,
        fanout: FanoutManager,
        cache: QuoteCache,
        interval: float = DEFAULT_INTERVAL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cache_ttl: float | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ) -> None:
        self._resolver = resolver
        self._fanout = fanout
        self._cache = cache
        self._interval = interval
        self._batch_size = batch_size
        self._cache_ttl = cache_ttl if cache_ttl is not None else 2 * interval
        self._grace_period = grace_period
        self._offset = 0  # start of next tick's selection window
        self._task: asyncio.Task | None = None
        self._current_tick: asyncio.Task | None = None
        self.ticks = 0
        self.last_result: TickResult | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cache_ttl(self) -> float:
        return self._cache_ttl

    def start(self) -> None:
        """Start ticking. A second call while running is a no-op."""
        if self.is_running:
            logger.info("Refresh scheduler already running")
            return
        self._task = asyncio.create_task(self._run_loop(), name="refresh-scheduler")
        logger.info(
            "Refresh scheduler started: every %.1fs, up to %d symbols per tick",
            self._interval,
            self._batch_size,
        )

    def stop(self) -> None:
        """Cancel the timer. A tick already in flight runs to completion."""
        if self._task and not self._task.done():
            self._task.cancel()
            logger.info("Refresh scheduler stopped")
        self._task = None

    async def shutdown(self) -> None:
        """Stop the timer, then give in-flight calls a grace period to land."""
        logger.info("Shutting down refresh scheduler...")
        self.stop()
        await asyncio.sleep(self._grace_period)
        logger.info("Refresh scheduler shutdown complete")

    async def tick(self) -> TickResult:
        """Run one refresh cycle."""
        self.ticks += 1
        await self._fanout.refresh_liveness()

        active = await self._fanout.get_active_symbols()
        if not active:
            self.last_result = TickResult()
            return self.last_result

        selected = self._select(active)
        results = await asyncio.gather(
            *(self._refresh_symbol(symbol) for symbol in selected),
            return_exceptions=True,
        )

        failed = 0
        for symbol, outcome in zip(selected, results):
            if isinstance(outcome, BaseException):
                failed += 1
                logger.error("Failed to fetch/publish %s: %s", symbol, outcome)
        result = TickResult(selected=tuple(selected), succeeded=len(selected) - failed, failed=failed)

        if failed:
            logger.warning("Price update: %d succeeded, %d failed", result.succeeded, result.failed)
        else:
            logger.debug("Price update for %d/%d active symbols: %s", len(selected), len(active), ", ".join(selected))
        self.last_result = result
        return result

    # --- Internal ---

    def _select(self, symbols: list[str]) -> list[str]:
        """Take ``batch_size`` symbols from a window that rotates across ticks."""
        n = len(symbols)
        if n <= self._batch_size:
            self._offset = 0
            return list(symbols)
        start = self._offset % n
        selected = [symbols[(start + i) % n] for i in range(self._batch_size)]
        self._offset = (start + self._batch_size) % n
        return selected

    async def _refresh_symbol(self, symbol: str) -> None:
        quote = await self._resolver.get_quote(symbol)
        await self._fanout.publish(symbol, quote)
        await self._cache.set(quote, self._cache_ttl)

    async def _run_loop(self) -> None:
        """Sleep, tick, repeat. The tick is shielded so stop() lets it finish."""
        while True:
            await asyncio.sleep(self._interval)
            self._current_tick = asyncio.create_task(self.tick(), name="refresh-tick")
            try:
                await asyncio.shield(self._current_tick)
            except Exception:
                logger.exception("Refresh tick failed")
