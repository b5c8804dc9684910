"""FastAPI application serving quote streams and on-demand quotes."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from quotehub.market import (
    MarketServices,
    MarketSettings,
    StaticTokenVerifier,
    create_market_services,
    create_quote_router,
    create_stream_router,
)
from quotehub.market.interface import TokenVerifier

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: MarketSettings | None = None,
    services: MarketServices | None = None,
    verify_token: TokenVerifier | None = None,
) -> FastAPI:
    """Build the app. The refresh scheduler runs for the app's lifetime."""
    settings = settings or MarketSettings.from_env()
    services = services or create_market_services(settings)
    verify_token = verify_token or StaticTokenVerifier(settings.api_tokens)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        services.scheduler.start()
        logger.info("quotehub instance %s ready", services.fanout.instance_id)
        try:
            yield
        finally:
            await services.aclose()

    app = FastAPI(title="quotehub", lifespan=lifespan)
    app.state.services = services
    app.include_router(create_stream_router(services.fanout, verify_token))
    app.include_router(
        create_quote_router(services.resolver, services.cache, verify_token, settings.cache_ttl)
    )

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "instance": services.fanout.instance_id,
            "scheduler_running": services.scheduler.is_running,
            "local_symbols": services.fanout.local_symbols(),
            "quotes": services.resolver.metrics(),
        }

    return app


def run() -> None:
    """Console entry point: ``quotehub``."""
    import uvicorn

    settings = MarketSettings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)
