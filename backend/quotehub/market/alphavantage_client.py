"""Alpha Vantage REST client: secondary quote provider."""

from __future__ import annotations

from .errors import ProviderError, ProviderFailure
from .http_provider import HttpQuoteProvider
from .models import DataSource, Quote


class AlphaVantageProvider(HttpQuoteProvider):
    """Quotes from the ``GLOBAL_QUOTE`` function.

    Rate limits:
      - Free tier: 5 req/min, 25 req/day. When the limit is hit the API
        still answers 200 but with an empty ``Global Quote`` object, which
        is treated the same as an unknown symbol.
    """

    name = "alphavantage"
    data_source = DataSource.ALPHAVANTAGE
    base_url = "https://www.alphavantage.co"

    async def _fetch(self, symbol: str) -> Quote:
        payload = await self._get_json(
            "/query",
            {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self._api_key},
        )
        data = payload.get("Global Quote") if isinstance(payload, dict) else None
        if not data:
            raise ProviderError(
                f"Invalid symbol or API limit reached: {symbol}",
                ProviderFailure.INVALID_SYMBOL,
            )

        try:
            return Quote.build(
                symbol=symbol,
                price=float(data["05. price"]),
                previous_close=float(data["08. previous close"]),
                high=float(data["03. high"]),
                low=float(data["04. low"]),
                open=float(data["02. open"]),
                volume=int(data["06. volume"]),
                data_source=self.data_source,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(
                f"Malformed Alpha Vantage quote for {symbol}: {e!r}",
                ProviderFailure.INVALID_PAYLOAD,
            ) from e
