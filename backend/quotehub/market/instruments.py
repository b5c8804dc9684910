"""In-memory instrument repository used when no database is wired in."""

from __future__ import annotations

from .interface import InstrumentRepository
from .models import Instrument


class InMemoryInstrumentRepository(InstrumentRepository):
    def __init__(self) -> None:
        self._rows: dict[str, Instrument] = {}

    async def upsert_instrument(self, instrument: Instrument) -> None:
        self._rows[instrument.symbol.upper()] = instrument

    async def get_instrument(self, symbol: str) -> Instrument | None:
        return self._rows.get(symbol.upper())

    def __len__(self) -> int:
        return len(self._rows)
