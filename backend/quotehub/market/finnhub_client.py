"""Finnhub REST client: primary real-time quote provider and instrument search."""

from __future__ import annotations

from .errors import ProviderError, ProviderFailure
from .http_provider import HttpQuoteProvider
from .models import DataSource, InstrumentMatch, Quote

MAX_SEARCH_RESULTS = 10


class FinnhubProvider(HttpQuoteProvider):
    """Quotes from ``GET /api/v1/quote`` and search from ``GET /api/v1/search``.

    Rate limits:
      - Free tier: 60 req/min. The refresh scheduler's batch cap keeps a
        single instance well under that.
    """

    name = "finnhub"
    data_source = DataSource.FINNHUB
    base_url = "https://finnhub.io/api/v1"

    async def _fetch(self, symbol: str) -> Quote:
        data = await self._get_json("/quote", {"symbol": symbol, "token": self._api_key})
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected Finnhub payload for {symbol}", ProviderFailure.INVALID_PAYLOAD)

        # Finnhub answers unknown symbols with 200 and all-zero fields
        if not data.get("c") and not data.get("pc"):
            raise ProviderError(f"Invalid symbol or no data: {symbol}", ProviderFailure.INVALID_SYMBOL)

        try:
            return Quote.build(
                symbol=symbol,
                price=float(data["c"]),
                previous_close=float(data["pc"]),
                high=float(data["h"]),
                low=float(data["l"]),
                open=float(data["o"]),
                volume=0,  # the quote endpoint carries no volume
                data_source=self.data_source,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"Malformed Finnhub quote for {symbol}: {e!r}", ProviderFailure.INVALID_PAYLOAD) from e

    def supports_search(self) -> bool:
        return self.configured

    async def search(self, query: str) -> list[InstrumentMatch]:
        data = await self._get_json("/search", {"q": query, "token": self._api_key})
        try:
            rows = data["result"][:MAX_SEARCH_RESULTS]
            return [InstrumentMatch(symbol=str(r["symbol"]), description=str(r["description"])) for r in rows]
        except (KeyError, TypeError) as e:
            raise ProviderError(f"Malformed Finnhub search response: {e!r}", ProviderFailure.INVALID_PAYLOAD) from e
