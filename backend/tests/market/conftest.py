"""Fixtures and test doubles for market tests.

``FixedRandom`` pins every uniform draw so GBM steps are exactly
predictable. ``FakeConnection`` records emitted events in place of a
WebSocket. ``FakeProvider`` returns scripted ProviderResults.
"""

import asyncio
from typing import Any

import pytest

from quotehub.market.bus import InMemoryBroker, InMemoryMessageBus
from quotehub.market.errors import ProviderFailure
from quotehub.market.fanout import FanoutManager
from quotehub.market.interface import ProviderResult, QuoteProvider
from quotehub.market.models import DataSource, Quote
from quotehub.market.registry import InMemorySymbolRegistry
from quotehub.market.resolver import QuoteResolver
from quotehub.market.simulator import QuoteSimulator


class FixedRandom:
    """Random source whose ``random()`` always returns the same value."""

    def __init__(self, value: float = 0.5) -> None:
        self.value = value
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.value


class FakeConnection:
    """In-memory Connection that records every emitted event."""

    def __init__(self, conn_id: str = "conn-1", identity: str = "user-1", delay: float = 0.0) -> None:
        self.id = conn_id
        self.identity = identity
        self.events: list[tuple[str, Any]] = []
        self._topics: set[str] = set()
        self._delay = delay
        self.fail = False

    @property
    def topics(self) -> set[str]:
        return set(self._topics)

    def join(self, topic: str) -> None:
        self._topics.add(topic)

    def leave(self, topic: str) -> None:
        self._topics.discard(topic)

    async def emit(self, event: str, payload: Any) -> None:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self.fail:
            raise ConnectionError("socket closed")
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, event: str) -> list[Any]:
        return [payload for name, payload in self.events if name == event]


class FakeProvider(QuoteProvider):
    """Provider returning a fixed price, or failing with a fixed reason."""

    def __init__(
        self,
        name: str = "finnhub",
        data_source: DataSource = DataSource.FINNHUB,
        price: float | None = None,
        failure: ProviderFailure = ProviderFailure.TIMEOUT,
        search_results: list | None = None,
    ) -> None:
        self.name = name
        self.data_source = data_source
        self.price = price
        self.failure = failure
        self.search_results = search_results
        self.calls: list[str] = []

    async def fetch_quote(self, symbol: str) -> ProviderResult:
        self.calls.append(symbol)
        if self.price is None:
            return ProviderResult.fail(self.failure, "scripted failure")
        return ProviderResult.ok(
            Quote.build(
                symbol=symbol,
                price=self.price,
                previous_close=self.price - 1,
                high=self.price + 1,
                low=self.price - 2,
                open=self.price - 0.5,
                volume=1000,
                data_source=self.data_source,
            )
        )

    def supports_search(self) -> bool:
        return self.search_results is not None

    async def search(self, query: str) -> list:
        if isinstance(self.search_results, Exception):
            raise self.search_results
        return list(self.search_results)


@pytest.fixture
def fixed_random():
    return FixedRandom(0.5)


@pytest.fixture
def simulated_resolver(fixed_random):
    """Resolver with no providers: every quote is simulated deterministically."""
    return QuoteResolver([], simulator=QuoteSimulator(rng=fixed_random))


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def registry():
    return InMemorySymbolRegistry()


@pytest.fixture
def make_manager(broker, registry, simulated_resolver):
    """Build fan-out managers that share one broker and registry, like separate instances."""

    def _make(instance_id: str = "instance-a") -> FanoutManager:
        return FanoutManager(
            InMemoryMessageBus(broker),
            registry,
            simulated_resolver,
            instance_id=instance_id,
        )

    return _make


@pytest.fixture
def make_connection():
    return FakeConnection


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def make_random():
    return FixedRandom
