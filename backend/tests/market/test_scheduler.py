"""Tests for the periodic refresh scheduler."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from quotehub.market.bus import InMemoryMessageBus
from quotehub.market.cache import InMemoryQuoteCache
from quotehub.market.errors import BusError
from quotehub.market.fanout import FanoutManager
from quotehub.market.models import DataSource
from quotehub.market.resolver import QuoteResolver
from quotehub.market.scheduler import RefreshScheduler, TickResult


class BlockingProvider:
    """Wraps a provider and holds every fetch until ``release`` is set."""

    def __init__(self, inner) -> None:
        self.name = inner.name
        self.data_source = inner.data_source
        self._inner = inner
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_quote(self, symbol):
        self.started.set()
        await self.release.wait()
        return await self._inner.fetch_quote(symbol)

    def supports_search(self):
        return False


async def _activate(registry, *symbols, instance="elsewhere"):
    for symbol in symbols:
        await registry.add(instance, symbol, ttl=60)


@pytest.fixture
def provider(make_provider):
    return make_provider("finnhub", DataSource.FINNHUB, price=100.0)


@pytest.fixture
def fanout(broker, registry, provider):
    return FanoutManager(InMemoryMessageBus(broker), registry, QuoteResolver([provider]), instance_id="a")


@pytest.fixture
def cache():
    return InMemoryQuoteCache()


@pytest.fixture
def scheduler(fanout, cache):
    return RefreshScheduler(fanout.resolver, fanout, cache, interval=0.05, batch_size=5, grace_period=0.0)


@pytest.mark.asyncio
class TestTick:
    """Unit tests for a single refresh cycle."""

    async def test_empty_registry_does_nothing(self, scheduler, provider, broker):
        listener = InMemoryMessageBus(broker)
        received = []
        await listener.subscribe("stock:AAPL", AsyncMock(side_effect=lambda c, m: received.append(m)))

        result = await scheduler.tick()

        assert result == TickResult()
        assert provider.calls == []
        assert received == []

    async def test_refreshes_publishes_and_caches(self, scheduler, registry, provider, cache, broker):
        await _activate(registry, "AAPL")
        received = []
        listener = InMemoryMessageBus(broker)
        await listener.subscribe("stock:AAPL", AsyncMock(side_effect=lambda c, m: received.append(m)))

        result = await scheduler.tick()

        assert result == TickResult(selected=("AAPL",), succeeded=1, failed=0)
        assert provider.calls == ["AAPL"]
        assert len(received) == 1
        assert (await cache.get("AAPL")).price == 100.0

    async def test_batch_capped(self, scheduler, registry, provider):
        await _activate(registry, *[f"S{i:02d}" for i in range(12)])
        result = await scheduler.tick()
        assert len(result.selected) == 5
        assert len(provider.calls) == 5

    async def test_rotation_covers_every_symbol(self, scheduler, registry):
        """No symbol is starved when more symbols are active than fit in one tick."""
        symbols = [f"S{i:02d}" for i in range(12)]
        await _activate(registry, *symbols)
        seen = set()
        for _ in range(3):
            seen.update((await scheduler.tick()).selected)
        assert seen == set(symbols)

    async def test_rotation_window_advances(self, scheduler, registry):
        await _activate(registry, *[f"S{i:02d}" for i in range(7)])
        first = await scheduler.tick()
        second = await scheduler.tick()
        assert first.selected == ("S00", "S01", "S02", "S03", "S04")
        assert second.selected == ("S05", "S06", "S00", "S01", "S02")

    async def test_publish_failure_counted(self, registry, provider, cache):
        bus = AsyncMock()
        bus.publish.side_effect = BusError("down")
        fanout = FanoutManager(bus, registry, QuoteResolver([provider]), instance_id="a")
        scheduler = RefreshScheduler(fanout.resolver, fanout, cache, batch_size=5)
        await _activate(registry, "AAPL", "MSFT")

        result = await scheduler.tick()

        assert result.failed == 2
        assert result.succeeded == 0
        assert await cache.get("AAPL") is None

    async def test_cache_ttl_defaults_to_two_intervals(self, fanout, cache):
        scheduler = RefreshScheduler(fanout.resolver, fanout, cache, interval=5.0)
        assert scheduler.cache_ttl == 10.0

    async def test_tick_refreshes_own_registry_entries(self, scheduler, fanout, registry, make_connection):
        await fanout.subscribe(make_connection(), "AAPL")
        await registry.remove("a", "AAPL")
        await scheduler.tick()
        assert await registry.active_symbols() == ["AAPL"]

    async def test_records_last_result(self, scheduler, registry):
        await _activate(registry, "AAPL")
        result = await scheduler.tick()
        assert scheduler.last_result is result
        assert scheduler.ticks == 1


@pytest.mark.asyncio
class TestLifecycle:
    """Start/stop behaviour of the background loop."""

    async def test_start_and_stop(self, scheduler):
        scheduler.start()
        assert scheduler.is_running
        scheduler.stop()
        await asyncio.sleep(0)
        assert not scheduler.is_running

    async def test_start_is_idempotent(self, scheduler):
        scheduler.start()
        task = scheduler._task
        scheduler.start()
        assert scheduler._task is task
        scheduler.stop()

    async def test_stop_without_start(self, scheduler):
        scheduler.stop()  # Should not raise
        assert not scheduler.is_running

    async def test_loop_ticks_periodically(self, scheduler, registry, provider):
        await _activate(registry, "AAPL")
        scheduler.start()
        await asyncio.sleep(0.2)
        await scheduler.shutdown()
        assert scheduler.ticks >= 2
        assert provider.calls.count("AAPL") >= 2

    async def test_no_ticks_after_shutdown(self, scheduler, registry):
        await _activate(registry, "AAPL")
        scheduler.start()
        await asyncio.sleep(0.12)
        await scheduler.shutdown()
        ticks = scheduler.ticks
        await asyncio.sleep(0.15)
        assert scheduler.ticks == ticks

    async def test_stop_lets_in_flight_tick_finish(self, make_provider, broker, registry, cache):
        provider = BlockingProvider(make_provider(price=100.0))
        fanout = FanoutManager(InMemoryMessageBus(broker), registry, QuoteResolver([provider]), instance_id="a")
        received = []
        listener = InMemoryMessageBus(broker)
        await listener.subscribe("stock:AAPL", AsyncMock(side_effect=lambda c, m: received.append(m)))
        scheduler = RefreshScheduler(fanout.resolver, fanout, cache, interval=0.01, grace_period=0.0)
        await _activate(registry, "AAPL")

        scheduler.start()
        await asyncio.wait_for(provider.started.wait(), timeout=1.0)
        in_flight = scheduler._current_tick
        scheduler.stop()
        provider.release.set()
        result = await asyncio.wait_for(in_flight, timeout=1.0)

        assert result.succeeded == 1
        assert len(received) == 1
        assert (await cache.get("AAPL")).price == 100.0
        assert not scheduler.is_running

    async def test_shutdown_waits_grace_period(self, fanout, cache):
        scheduler = RefreshScheduler(fanout.resolver, fanout, cache, interval=60.0, grace_period=0.2)
        scheduler.start()
        loop = asyncio.get_running_loop()
        started = loop.time()
        await scheduler.shutdown()
        assert loop.time() - started >= 0.19
        assert not scheduler.is_running

    async def test_failing_tick_keeps_loop_alive(self, scheduler, fanout, caplog):
        fanout.refresh_liveness = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler.start()
        await asyncio.sleep(0.17)
        assert scheduler.is_running
        assert "Refresh tick failed" in caplog.text
        await scheduler.shutdown()
