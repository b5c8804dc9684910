"""Real-time quote distribution for quotehub.

Public API:
    Quote                  - Immutable quote value object
    QuoteResolver          - Provider chain with simulated fallback
    FanoutManager          - Per-symbol subscription multiplexing over the bus
    RefreshScheduler       - Periodic fetch/publish/cache of active symbols
    MarketSettings         - Environment-driven configuration
    create_market_services - Factory that selects Redis or in-memory backends
    create_stream_router   - FastAPI router factory for the WebSocket endpoint
    create_quote_router    - FastAPI router factory for on-demand quotes
"""

from .auth import StaticTokenVerifier
from .config import MarketSettings
from .errors import (
    AuthError,
    BusError,
    InvalidBatchError,
    InvalidRequestError,
    InvalidSymbolError,
    ProviderError,
    ProviderFailure,
    QuoteHubError,
    SimulationError,
    StoreError,
)
from .factory import MarketServices, create_market_services
from .fanout import FanoutManager
from .models import DataSource, Instrument, InstrumentMatch, Quote
from .resolver import QuoteResolver
from .routes import create_quote_router
from .scheduler import RefreshScheduler, TickResult
from .simulator import QuoteSimulator, SimulationStore, next_price, price_path
from .stream import create_stream_router

__all__ = [
    "Quote",
    "DataSource",
    "Instrument",
    "InstrumentMatch",
    "QuoteResolver",
    "QuoteSimulator",
    "SimulationStore",
    "next_price",
    "price_path",
    "FanoutManager",
    "RefreshScheduler",
    "TickResult",
    "MarketSettings",
    "MarketServices",
    "StaticTokenVerifier",
    "create_market_services",
    "create_stream_router",
    "create_quote_router",
    "QuoteHubError",
    "ProviderError",
    "ProviderFailure",
    "SimulationError",
    "BusError",
    "StoreError",
    "AuthError",
    "InvalidRequestError",
    "InvalidSymbolError",
    "InvalidBatchError",
]
