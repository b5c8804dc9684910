"""Per-symbol GBM parameters and base prices for the simulated feed."""

from __future__ import annotations

from typing import NamedTuple


class SymbolParams(NamedTuple):
    drift: float  # annualized expected return
    volatility: float  # annualized standard deviation
    base_price: float


SYMBOL_PARAMS: dict[str, SymbolParams] = {
    # High-growth tech: high volatility, high return
    "TSLA": SymbolParams(drift=0.15, volatility=0.60, base_price=250.0),
    "NVDA": SymbolParams(drift=0.20, volatility=0.50, base_price=880.0),
    # Mega-cap tech
    "AAPL": SymbolParams(drift=0.12, volatility=0.30, base_price=180.0),
    "MSFT": SymbolParams(drift=0.12, volatility=0.28, base_price=380.0),
    "GOOGL": SymbolParams(drift=0.10, volatility=0.30, base_price=140.0),
    "AMZN": SymbolParams(drift=0.12, volatility=0.35, base_price=170.0),
    "META": SymbolParams(drift=0.10, volatility=0.40, base_price=480.0),
    # Blue-chip stable
    "JNJ": SymbolParams(drift=0.06, volatility=0.15, base_price=160.0),
    "PG": SymbolParams(drift=0.05, volatility=0.15, base_price=150.0),
    "KO": SymbolParams(drift=0.05, volatility=0.18, base_price=60.0),
    # Financial
    "JPM": SymbolParams(drift=0.08, volatility=0.25, base_price=190.0),
    "BAC": SymbolParams(drift=0.07, volatility=0.28, base_price=35.0),
}

# Parameters for symbols not in the table above
DEFAULT_PARAMS = SymbolParams(drift=0.10, volatility=0.30, base_price=100.0)

# Typical annualized volatility by sector
SECTOR_VOLATILITY: dict[str, float] = {
    "technology": 0.40,
    "healthcare": 0.35,
    "financial": 0.25,
    "energy": 0.35,
    "utilities": 0.15,
    "consumer": 0.25,
    "industrial": 0.25,
}

DEFAULT_SECTOR_VOLATILITY = 0.30
