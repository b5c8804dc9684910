"""On-demand quote and search HTTP routes (cache first, then the resolver)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel

from .auth import bearer_token
from .errors import AuthError, InvalidRequestError, StoreError
from .interface import QuoteCache, TokenVerifier
from .models import Quote, normalize_symbol
from .resolver import QuoteResolver

logger = logging.getLogger(__name__)


class QuotesRequest(BaseModel):
    symbols: list[str]


def create_quote_router(
    resolver: QuoteResolver,
    cache: QuoteCache,
    verify_token: TokenVerifier,
    cache_ttl: float,
) -> APIRouter:
    """Create the market router. Every route requires a bearer token."""

    async def require_identity(authorization: str | None = Header(default=None)) -> str:
        try:
            return await verify_token(bearer_token(authorization))
        except AuthError as e:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e

    router = APIRouter(prefix="/api/market", tags=["market"], dependencies=[Depends(require_identity)])

    async def cached_quote(symbol: str) -> Quote:
        try:
            quote = await cache.get(symbol)
        except StoreError as e:
            logger.warning("Quote cache read failed for %s: %s", symbol, e)
            quote = None
        if quote is not None:
            return quote

        quote = await resolver.get_quote(symbol)
        try:
            await cache.set(quote, cache_ttl)
        except StoreError as e:
            logger.warning("Quote cache write failed for %s: %s", symbol, e)
        return quote

    @router.get("/quote/{symbol}")
    async def get_quote(symbol: str) -> dict:
        try:
            normalized = normalize_symbol(symbol)
        except InvalidRequestError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
        quote = await cached_quote(normalized)
        return {"data": quote.to_dict()}

    @router.post("/quotes")
    async def get_quotes(body: QuotesRequest) -> dict:
        try:
            quotes = await resolver.get_multiple_quotes(body.symbols)
        except InvalidRequestError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
        return {"data": [q.to_dict() for q in quotes]}

    @router.get("/search")
    async def search(q: str = "") -> dict:
        if not q.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid search query")
        matches = await resolver.search_instruments(q)
        for match in matches:
            await resolver.save_instrument_metadata(match.symbol, match.description)
        return {"data": [m.to_dict() for m in matches]}

    return router
