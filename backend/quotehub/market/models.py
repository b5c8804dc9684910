"""Data models for quote distribution."""

from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import InvalidSymbolError

MAX_SYMBOL_LENGTH = 10


class DataSource(str, Enum):
    """Where a quote came from, in provider priority order."""

    FINNHUB = "finnhub"  # primary provider
    ALPHAVANTAGE = "alphavantage"  # secondary provider
    SIMULATED = "simulated"


def normalize_symbol(raw: Any) -> str:
    """Strip and uppercase a symbol. Raises InvalidSymbolError if unusable."""
    if not isinstance(raw, str):
        raise InvalidSymbolError("Symbol must be a string")
    symbol = raw.strip().upper()
    if not symbol:
        raise InvalidSymbolError("Symbol must not be empty")
    if len(symbol) > MAX_SYMBOL_LENGTH:
        raise InvalidSymbolError(f"Symbol longer than {MAX_SYMBOL_LENGTH} characters: {symbol}")
    return symbol


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class Quote:
    """Immutable point-in-time price observation for a symbol.

    Use ``Quote.build`` so that ``change`` and ``change_percent`` are derived
    from ``price`` and ``previous_close`` rather than trusted from a payload.
    """

    symbol: str
    price: float
    change: float
    change_percent: float
    high: float
    low: float
    open: float
    previous_close: float
    volume: int
    data_source: DataSource
    timestamp: int = field(default_factory=_now_ms)  # Unix milliseconds

    @classmethod
    def build(
        cls,
        *,
        symbol: str,
        price: float,
        previous_close: float,
        high: float,
        low: float,
        open: float,
        volume: int,
        data_source: DataSource,
        timestamp: int | None = None,
    ) -> Quote:
        change = price - previous_close
        change_percent = change / previous_close * 100 if previous_close != 0 else 0.0
        return cls(
            symbol=symbol.upper(),
            price=price,
            change=change,
            change_percent=change_percent,
            high=high,
            low=low,
            open=open,
            previous_close=previous_close,
            volume=volume,
            data_source=data_source,
            timestamp=timestamp if timestamp is not None else _now_ms(),
        )

    @property
    def is_real_time(self) -> bool:
        """False iff the quote came from the simulated feed."""
        return self.data_source is not DataSource.SIMULATED

    def to_dict(self) -> dict:
        """Serialize for JSON transmission (bus payloads, cache, websocket)."""
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change": self.change,
            "changePercent": self.change_percent,
            "high": self.high,
            "low": self.low,
            "open": self.open,
            "previousClose": self.previous_close,
            "volume": self.volume,
            "timestamp": self.timestamp,
            "dataSource": self.data_source.value,
            "isRealTime": self.is_real_time,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> Quote:
        return cls(
            symbol=str(data["symbol"]),
            price=float(data["price"]),
            change=float(data["change"]),
            change_percent=float(data["changePercent"]),
            high=float(data["high"]),
            low=float(data["low"]),
            open=float(data["open"]),
            previous_close=float(data["previousClose"]),
            volume=int(data["volume"]),
            data_source=DataSource(data["dataSource"]),
            timestamp=int(data["timestamp"]),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> Quote:
        return cls.from_dict(json.loads(raw))


def validate_quote(quote: Quote) -> bool:
    """Basic quote sanity check.

    Returns True if every numeric field is finite, price > 0, low <= high and
    volume is non-negative.
    """
    numbers = (
        quote.price,
        quote.change,
        quote.change_percent,
        quote.high,
        quote.low,
        quote.open,
        quote.previous_close,
    )
    if any(not math.isfinite(n) for n in numbers):
        return False
    if quote.price <= 0:
        return False
    if quote.low > quote.high:
        return False
    return quote.volume >= 0


@dataclass(frozen=True, slots=True)
class InstrumentMatch:
    """One search hit: a symbol and its human-readable description."""

    symbol: str
    description: str

    def to_dict(self) -> dict:
        return {"symbol": self.symbol, "description": self.description}


@dataclass(frozen=True, slots=True)
class Instrument:
    """Instrument metadata exchanged with the instrument repository."""

    symbol: str
    name: str
    exchange: str = "US"
    sector: str | None = None
