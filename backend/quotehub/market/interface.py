"""Abstract interfaces for quote providers and shared infrastructure."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .errors import ProviderFailure
from .models import DataSource, Instrument, InstrumentMatch, Quote

# Callback invoked with (channel, raw message) for every bus message
MessageHandler = Callable[[str, str], Awaitable[None]]

# Resolves an access token to a user identity; raises AuthError when invalid
TokenVerifier = Callable[[str], Awaitable[str]]


@dataclass(frozen=True, slots=True)
class ProviderResult:
    """Outcome of one provider call: a quote, or the reason there is none."""

    quote: Quote | None = None
    failure: ProviderFailure | None = None
    detail: str = ""

    @classmethod
    def ok(cls, quote: Quote) -> ProviderResult:
        return cls(quote=quote)

    @classmethod
    def fail(cls, failure: ProviderFailure, detail: str = "") -> ProviderResult:
        return cls(failure=failure, detail=detail)

    @property
    def succeeded(self) -> bool:
        return self.quote is not None


class QuoteProvider(ABC):
    """Contract for an external real-market quote source.

    Implementations make exactly one attempt per call and report failure
    through ``ProviderResult`` instead of raising.
    """

    name: str
    data_source: DataSource

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> ProviderResult:
        """Fetch the current quote for an already-normalized symbol."""

    async def search(self, query: str) -> list[InstrumentMatch]:
        """Search instruments by name or symbol. Providers without search raise."""
        raise NotImplementedError

    def supports_search(self) -> bool:
        return False

    async def aclose(self) -> None:
        """Release network resources. Safe to call multiple times."""


class MessageBus(ABC):
    """Shared publish/subscribe bus connecting all process instances.

    Lifecycle:
        bus = RedisMessageBus(client)
        await bus.subscribe("stock:AAPL", handler)
        await bus.publish("stock:AAPL", payload)
        await bus.unsubscribe("stock:AAPL")
        await bus.close()
    """

    @abstractmethod
    async def publish(self, channel: str, message: str) -> None:
        """Deliver ``message`` to every subscriber of ``channel`` in the fleet."""

    @abstractmethod
    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        """Start receiving messages for ``channel``. Replaces any prior handler."""

    @abstractmethod
    async def unsubscribe(self, channel: str) -> None:
        """Stop receiving messages for ``channel``. No-op if not subscribed."""

    @abstractmethod
    def subscribed_channels(self) -> set[str]:
        """Channels this bus instance is currently subscribed to."""

    async def close(self) -> None:
        """Tear down all subscriptions. Safe to call multiple times."""


class SymbolRegistry(ABC):
    """Fleet-wide record of symbols with at least one interested listener.

    Every process instance owns its own membership entries, each with an
    expiry. A symbol is active while any instance holds a live entry for it.
    """

    @abstractmethod
    async def add(self, instance_id: str, symbol: str, ttl: float) -> None:
        """Create or refresh this instance's entry for ``symbol``."""

    @abstractmethod
    async def remove(self, instance_id: str, symbol: str) -> None:
        """Drop this instance's entry for ``symbol``. Other instances are untouched."""

    @abstractmethod
    async def active_symbols(self) -> list[str]:
        """Union of symbols with a live entry from any instance, sorted."""


class QuoteCache(ABC):
    """Short-lived shared cache of the latest quote per symbol."""

    @abstractmethod
    async def set(self, quote: Quote, ttl: float) -> None:
        """Store ``quote`` under its symbol for ``ttl`` seconds."""

    @abstractmethod
    async def get(self, symbol: str) -> Quote | None:
        """Latest unexpired quote for ``symbol``, or None."""


class InstrumentRepository(ABC):
    """Persistent instrument metadata (owned by an external collaborator)."""

    @abstractmethod
    async def upsert_instrument(self, instrument: Instrument) -> None:
        ...

    @abstractmethod
    async def get_instrument(self, symbol: str) -> Instrument | None:
        ...


class Connection(Protocol):
    """One listener connection, as provided by the transport layer.

    The fan-out manager drives topic membership and event emission but does
    not own the connection lifecycle (accept, handshake, heartbeat).
    """

    id: str
    identity: str

    @property
    def topics(self) -> set[str]: ...

    def join(self, topic: str) -> None: ...

    def leave(self, topic: str) -> None: ...

    async def emit(self, event: str, payload: Any) -> None: ...
