"""Quote resolution chain: ranked providers, then the simulated feed."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Sequence

from .errors import InvalidBatchError, ProviderFailure
from .interface import InstrumentRepository, ProviderResult, QuoteProvider
from .models import Instrument, InstrumentMatch, Quote, normalize_symbol
from .simulator import QuoteSimulator

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 20
MAX_SEARCH_RESULTS = 10


class QuoteResolver:
    """Central orchestrator: provider chain -> simulated fallback.

    ``get_quote`` never fails for a valid symbol. Provider failures are
    logged and the next provider is tried; once every provider has failed
    the simulator produces the quote.

    Usage::

        resolver = QuoteResolver([FinnhubProvider(key), AlphaVantageProvider(key)])
        quote = await resolver.get_quote("aapl")
    """

    def __init__(
        self,
        providers: Sequence[QuoteProvider],
        simulator: QuoteSimulator | None = None,
        instruments: InstrumentRepository | None = None,
        max_batch: int = MAX_BATCH_SIZE,
    ) -> None:
        self.providers = list(providers)
        self.simulator = simulator or QuoteSimulator()
        self.instruments = instruments
        self.max_batch = max_batch
        self._served: Counter[str] = Counter()  # data source -> quotes served
        self._failures: Counter[str] = Counter()  # "provider:reason" -> count

    # --------------------------------------------------------------- quotes

    async def get_quote(self, symbol: str) -> Quote:
        """Resolve one quote. Raises InvalidSymbolError only for unusable input."""
        return await self._resolve(normalize_symbol(symbol))

    async def get_multiple_quotes(self, symbols: Sequence[str]) -> list[Quote]:
        """Resolve quotes concurrently, preserving input order.

        The batch is validated up front: empty or oversized batches and
        invalid symbols are rejected before any provider is called.
        """
        if not symbols:
            raise InvalidBatchError("At least one symbol is required")
        if len(symbols) > self.max_batch:
            raise InvalidBatchError(f"At most {self.max_batch} symbols per request, got {len(symbols)}")
        normalized = [normalize_symbol(s) for s in symbols]
        return list(await asyncio.gather(*(self._resolve(s) for s in normalized)))

    # --------------------------------------------------------------- search

    async def search_instruments(self, query: str) -> list[InstrumentMatch]:
        """Search via the first provider that supports it. Empty on any failure."""
        query = (query or "").strip()
        if not query:
            return []
        provider = next((p for p in self.providers if p.supports_search()), None)
        if provider is None:
            return []
        try:
            results = await provider.search(query)
        except Exception as e:
            logger.error("Instrument search via %s failed for %r: %s", provider.name, query, e)
            return []
        return results[:MAX_SEARCH_RESULTS]

    async def save_instrument_metadata(self, symbol: str, name: str | None = None) -> None:
        """Persist metadata for a symbol if the repository does not know it yet.

        Best effort: failures are logged, never raised.
        """
        if self.instruments is None:
            return
        try:
            symbol = normalize_symbol(symbol)
            if await self.instruments.get_instrument(symbol) is not None:
                return
            if not name:
                matches = await self.search_instruments(symbol)
                name = matches[0].description if matches else symbol
            await self.instruments.upsert_instrument(Instrument(symbol=symbol, name=name, exchange="US"))
            logger.info("Saved instrument: %s", symbol)
        except Exception:
            logger.exception("Failed to save instrument %s", symbol)

    # -------------------------------------------------------------- metrics

    def metrics(self) -> dict[str, dict[str, int]]:
        return {"served": dict(self._served), "provider_failures": dict(self._failures)}

    # ------------------------------------------------------------- internal

    async def _resolve(self, symbol: str) -> Quote:
        for provider in self.providers:
            result = await self._try_provider(provider, symbol)
            if result.succeeded:
                self._served[provider.data_source.value] += 1
                return result.quote
            self._failures[f"{provider.name}:{result.failure.value}"] += 1
            if result.failure is not ProviderFailure.NOT_CONFIGURED:
                logger.warning(
                    "%s failed for %s (%s): %s",
                    provider.name,
                    symbol,
                    result.failure.value,
                    result.detail,
                )

        quote = self.simulator.quote(symbol, await self._sector_of(symbol))
        self._served[quote.data_source.value] += 1
        logger.debug("Using simulated quote for %s: %.2f", symbol, quote.price)
        return quote

    async def _sector_of(self, symbol: str) -> str | None:
        """Sector of a known instrument, used to pick the simulated volatility."""
        if self.instruments is None:
            return None
        try:
            instrument = await self.instruments.get_instrument(symbol)
        except Exception as e:
            logger.warning("Instrument lookup failed for %s: %s", symbol, e)
            return None
        return instrument.sector if instrument is not None else None

    @staticmethod
    async def _try_provider(provider: QuoteProvider, symbol: str) -> ProviderResult:
        try:
            return await provider.fetch_quote(symbol)
        except Exception as e:
            logger.exception("Provider %s raised for %s", provider.name, symbol)
            return ProviderResult.fail(ProviderFailure.TRANSPORT, repr(e))
