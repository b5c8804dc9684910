"""Tests for provider and service wiring."""

import pytest

from quotehub.market.alphavantage_client import AlphaVantageProvider
from quotehub.market.bus import InMemoryMessageBus, RedisMessageBus
from quotehub.market.cache import InMemoryQuoteCache, RedisQuoteCache
from quotehub.market.config import MarketSettings
from quotehub.market.factory import create_market_services, create_providers
from quotehub.market.finnhub_client import FinnhubProvider
from quotehub.market.instruments import InMemoryInstrumentRepository
from quotehub.market.registry import InMemorySymbolRegistry, RedisSymbolRegistry


class TestCreateProviders:
    """Tests for create_providers."""

    def test_no_keys_means_no_providers(self):
        """Test that only the simulated feed is used when no key is set."""
        assert create_providers(MarketSettings()) == []

    def test_both_keys_in_priority_order(self):
        providers = create_providers(MarketSettings(finnhub_api_key="f", alpha_vantage_api_key="a"))
        assert [type(p) for p in providers] == [FinnhubProvider, AlphaVantageProvider]

    def test_secondary_only(self):
        providers = create_providers(MarketSettings(alpha_vantage_api_key="a"))
        assert [p.name for p in providers] == ["alphavantage"]

    def test_provider_receives_key_and_timeout(self):
        (provider,) = create_providers(MarketSettings(finnhub_api_key="test-key-123", provider_timeout=2.5))
        assert provider._api_key == "test-key-123"
        assert provider._timeout == 2.5


class TestCreateMarketServices:
    """Tests for create_market_services."""

    def test_in_memory_without_redis(self):
        services = create_market_services(MarketSettings(instance_id="test-1"))
        assert isinstance(services.bus, InMemoryMessageBus)
        assert isinstance(services.registry, InMemorySymbolRegistry)
        assert isinstance(services.cache, InMemoryQuoteCache)
        assert services.redis is None
        assert services.fanout.instance_id == "test-1"
        assert services.resolver.providers == []

    def test_redis_backends_with_url(self):
        services = create_market_services(MarketSettings(redis_url="redis://localhost:6379/0"))
        assert isinstance(services.bus, RedisMessageBus)
        assert isinstance(services.registry, RedisSymbolRegistry)
        assert isinstance(services.cache, RedisQuoteCache)
        assert services.redis is not None

    def test_intervals_flow_into_services(self):
        settings = MarketSettings(refresh_interval=2.0, batch_size=3)
        services = create_market_services(settings)
        assert services.scheduler.cache_ttl == 4.0
        assert services.scheduler._batch_size == 3
        assert services.fanout.registry_ttl == 6.0

    def test_instrument_repository_injected(self):
        repo = InMemoryInstrumentRepository()
        services = create_market_services(MarketSettings(), instruments=repo)
        assert services.resolver.instruments is repo

    def test_scheduler_not_started(self):
        assert not create_market_services(MarketSettings()).scheduler.is_running


@pytest.mark.asyncio
class TestMarketServicesClose:
    """Tests for MarketServices.aclose."""

    async def test_aclose_releases_subscriptions(self, make_connection):
        services = create_market_services(MarketSettings(shutdown_grace=0.0))
        services.scheduler.start()
        await services.fanout.subscribe(make_connection(), "AAPL")

        await services.aclose()

        assert not services.scheduler.is_running
        assert services.fanout.local_symbols() == []
        assert services.bus.subscribed_channels() == set()
        assert await services.registry.active_symbols() == []
