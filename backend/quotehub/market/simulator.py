"""GBM-based simulated quote feed.

Used as the last link of the quote resolution chain, when every real
provider has failed for a symbol.
"""

from __future__ import annotations

import logging
import math
from typing import Protocol

import numpy as np

from .errors import SimulationError
from .models import DataSource, Quote
from .seed_prices import (
    DEFAULT_PARAMS,
    DEFAULT_SECTOR_VOLATILITY,
    SECTOR_VOLATILITY,
    SYMBOL_PARAMS,
    SymbolParams,
)

logger = logging.getLogger(__name__)

# Five-minute step: 1/78 of a trading day, as a fraction of a 252-day year
SIMULATION_DT = 1 / (252 * 78)

# Daily step for price paths
DAILY_DT = 1 / 252

# Max relative spread of simulated open/high/low around the price
OHLC_SPREAD = 0.005

MAX_SIMULATED_VOLUME = 10_000_000


class RandomSource(Protocol):
    """Anything that yields uniform samples in [0, 1) from ``random()``.

    ``numpy.random.Generator`` satisfies this; tests pass fixed sources.
    """

    def random(self) -> float: ...


_default_rng = np.random.default_rng()


def standard_normal(rng: RandomSource | None = None) -> float:
    """Draw a standard normal sample with the Box-Muller transform."""
    rng = rng or _default_rng
    u1 = float(rng.random())
    u2 = float(rng.random())
    # log(0) is undefined; nudge u1 into (0, 1)
    u1 = max(u1, 1e-12)
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


def next_price(
    current: float,
    drift: float,
    volatility: float,
    dt: float,
    rng: RandomSource | None = None,
) -> float:
    """Advance a price by one Geometric Brownian Motion step.

    Math:
        S(t+dt) = S(t) * exp(drift * dt + volatility * sqrt(dt) * Z)

    Where:
        drift      = annualized expected return
        volatility = annualized standard deviation
        dt         = time step as fraction of a trading year
        Z          = standard normal sample (Box-Muller)

    A non-positive ``dt`` is treated as zero, i.e. an identity step.
    """
    if current <= 0:
        raise SimulationError(f"Seed price must be positive, got {current}")
    dt = max(dt, 0.0)
    z = standard_normal(rng)
    return current * math.exp(drift * dt + volatility * math.sqrt(dt) * z)


def price_path(
    start: float,
    steps: int,
    drift: float = DEFAULT_PARAMS.drift,
    volatility: float = DEFAULT_PARAMS.volatility,
    dt: float = DAILY_DT,
    rng: RandomSource | None = None,
) -> list[float]:
    """Generate a fresh GBM price path of ``steps`` prices beginning at ``start``.

    Recomputed on every call; nothing is cached between calls.
    """
    if steps <= 0:
        return []
    prices = [start]
    for _ in range(1, steps):
        prices.append(next_price(prices[-1], drift, volatility, dt, rng))
    return prices


def symbol_params(symbol: str, sector: str | None = None) -> SymbolParams:
    """GBM parameters for a symbol.

    Symbols outside the table get the default drift and base price, with
    the volatility typical of ``sector`` when it is known.
    """
    params = SYMBOL_PARAMS.get(symbol.upper())
    if params is not None:
        return params
    return DEFAULT_PARAMS._replace(volatility=sector_volatility(sector))


def sector_volatility(sector: str | None) -> float:
    """Typical annualized volatility for a sector (0.30 when unknown)."""
    return SECTOR_VOLATILITY.get((sector or "").lower(), DEFAULT_SECTOR_VOLATILITY)


class SimulationStore:
    """Last simulated price per symbol, seeding the next GBM step.

    Process-local and never expires; each QuoteSimulator owns one.
    """

    def __init__(self) -> None:
        self._prices: dict[str, float] = {}

    def get(self, symbol: str) -> float | None:
        return self._prices.get(symbol)

    def set(self, symbol: str, price: float) -> None:
        self._prices[symbol] = price

    def clear(self) -> None:
        self._prices.clear()

    def __len__(self) -> int:
        return len(self._prices)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._prices


class QuoteSimulator:
    """Produces simulated quotes that follow a continuous GBM path per symbol."""

    def __init__(
        self,
        store: SimulationStore | None = None,
        rng: RandomSource | None = None,
        dt: float = SIMULATION_DT,
    ) -> None:
        self.store = store if store is not None else SimulationStore()
        self._rng = rng or _default_rng
        self._dt = dt

    def quote(self, symbol: str, sector: str | None = None) -> Quote:
        """Simulate the next quote for ``symbol``. Never raises."""
        symbol = symbol.upper()
        params = symbol_params(symbol, sector)
        base_price = params.base_price
        if base_price <= 0:
            logger.error("Non-positive base price for %s, using default %.2f", symbol, DEFAULT_PARAMS.base_price)
            base_price = DEFAULT_PARAMS.base_price

        last_price = self.store.get(symbol) or base_price
        try:
            price = next_price(last_price, params.drift, params.volatility, self._dt, self._rng)
        except SimulationError:
            logger.error("Invalid simulation seed for %s: %s", symbol, last_price)
            last_price = base_price
            price = next_price(last_price, params.drift, params.volatility, self._dt, self._rng)

        price = round(price, 2)
        self.store.set(symbol, price)

        open_ = base_price * (1 + standard_normal(self._rng) * OHLC_SPREAD)
        high = max(price, open_, last_price) * (1 + float(self._rng.random()) * OHLC_SPREAD)
        low = min(price, open_, last_price) * (1 - float(self._rng.random()) * OHLC_SPREAD)

        return Quote.build(
            symbol=symbol,
            price=price,
            previous_close=round(base_price, 2),
            high=round(high, 2),
            low=round(low, 2),
            open=round(open_, 2),
            volume=int(float(self._rng.random()) * MAX_SIMULATED_VOLUME),
            data_source=DataSource.SIMULATED,
        )
