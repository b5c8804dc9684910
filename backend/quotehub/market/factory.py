"""Factory wiring providers, shared infrastructure and the core services."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from redis.asyncio import Redis

from .alphavantage_client import AlphaVantageProvider
from .bus import InMemoryMessageBus, RedisMessageBus
from .cache import InMemoryQuoteCache, RedisQuoteCache
from .config import MarketSettings
from .fanout import FanoutManager
from .finnhub_client import FinnhubProvider
from .instruments import InMemoryInstrumentRepository
from .interface import InstrumentRepository, MessageBus, QuoteCache, QuoteProvider, SymbolRegistry
from .registry import InMemorySymbolRegistry, RedisSymbolRegistry
from .resolver import QuoteResolver
from .scheduler import RefreshScheduler

logger = logging.getLogger(__name__)


@dataclass
class MarketServices:
    """Everything one process instance needs to serve quotes."""

    bus: MessageBus
    registry: SymbolRegistry
    cache: QuoteCache
    resolver: QuoteResolver
    fanout: FanoutManager
    scheduler: RefreshScheduler
    redis: Redis | None = None

    async def aclose(self) -> None:
        """Stop background work and release connections."""
        await self.scheduler.shutdown()
        await self.fanout.close()
        await self.bus.close()
        for provider in self.resolver.providers:
            await provider.aclose()
        if self.redis is not None:
            await self.redis.aclose()


def create_providers(settings: MarketSettings) -> list[QuoteProvider]:
    """Providers in priority order; those without an API key are left out."""
    providers: list[QuoteProvider] = []
    if settings.finnhub_api_key:
        providers.append(FinnhubProvider(settings.finnhub_api_key, timeout=settings.provider_timeout))
    if settings.alpha_vantage_api_key:
        providers.append(AlphaVantageProvider(settings.alpha_vantage_api_key, timeout=settings.provider_timeout))
    if providers:
        logger.info("Quote providers: %s", ", ".join(p.name for p in providers))
    else:
        logger.info("No provider API keys set: serving simulated quotes only")
    return providers


def create_market_services(
    settings: MarketSettings,
    instruments: InstrumentRepository | None = None,
) -> MarketServices:
    """Create the appropriate services based on settings.

    - REDIS_URL set → Redis bus, registry and cache (multi-instance)
    - Otherwise     → in-memory backends (single process)

    Returns services with the scheduler not yet started.
    """
    redis_client = None
    if settings.redis_url:
        redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
        bus: MessageBus = RedisMessageBus(redis_client)
        registry: SymbolRegistry = RedisSymbolRegistry(redis_client)
        cache: QuoteCache = RedisQuoteCache(redis_client)
        logger.info("Shared state: Redis at %s", settings.redis_url)
    else:
        bus = InMemoryMessageBus()
        registry = InMemorySymbolRegistry()
        cache = InMemoryQuoteCache()
        logger.info("Shared state: in-memory (single instance)")

    resolver = QuoteResolver(
        create_providers(settings),
        instruments=instruments or InMemoryInstrumentRepository(),
    )
    fanout = FanoutManager(
        bus,
        registry,
        resolver,
        instance_id=settings.instance_id,
        registry_ttl=settings.registry_ttl,
    )
    scheduler = RefreshScheduler(
        resolver,
        fanout,
        cache,
        interval=settings.refresh_interval,
        batch_size=settings.batch_size,
        cache_ttl=settings.cache_ttl,
        grace_period=settings.shutdown_grace,
    )
    return MarketServices(
        bus=bus,
        registry=registry,
        cache=cache,
        resolver=resolver,
        fanout=fanout,
        scheduler=scheduler,
        redis=redis_client,
    )
