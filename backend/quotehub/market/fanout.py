"""Subscription and fan-out manager.

Keeps exactly one upstream bus subscription per symbol per process, however
many local connections are interested in it, and relays every bus message
for that symbol to those connections.

Per symbol, per process:
    Idle   --first local interest-->  Active  (bus subscribe, registry add)
    Active --more interest-->         Active  (count + 1)
    Active --last interest leaves-->  Idle    (bus unsubscribe, registry remove)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import socket
import uuid
from typing import Any

from .errors import BusError, InvalidRequestError, StoreError
from .interface import Connection, MessageBus, SymbolRegistry
from .models import Quote, normalize_symbol
from .resolver import QuoteResolver

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "stock:"
DEFAULT_REGISTRY_TTL = 15.0
DEFAULT_EMIT_TIMEOUT = 5.0


def channel_for(symbol: str) -> str:
    """Bus channel and connection topic for a symbol, e.g. ``stock:AAPL``."""
    return f"{CHANNEL_PREFIX}{symbol.upper()}"


def default_instance_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:6]}"


class FanoutManager:
    """Multiplexes per-symbol listener interest across connections and instances."""

    def __init__(
        self,
        bus: MessageBus,
        registry: SymbolRegistry,
        resolver: QuoteResolver,
        instance_id: str | None = None,
        registry_ttl: float = DEFAULT_REGISTRY_TTL,
        emit_timeout: float = DEFAULT_EMIT_TIMEOUT,
    ) -> None:
        self.bus = bus
        self.registry = registry
        self.resolver = resolver
        self.instance_id = instance_id or default_instance_id()
        self.registry_ttl = registry_ttl
        self.emit_timeout = emit_timeout

        self._interest: dict[str, int] = {}  # symbol -> local listener count
        self._listeners: dict[str, dict[str, Connection]] = {}  # symbol -> {connection id: connection}
        self._connections: dict[str, set[str]] = {}  # connection id -> symbols

    # --- Interest bookkeeping ---

    async def add_interest(self, symbol: str) -> None:
        """Register one more local listener for ``symbol``.

        The first one subscribes to the bus channel and adds this instance's
        registry entry. Raises BusError if that subscription fails.
        """
        count = self._interest.get(symbol, 0) + 1
        self._interest[symbol] = count
        if count > 1:
            return

        channel = channel_for(symbol)
        try:
            await self.bus.subscribe(channel, self._on_bus_message)
        except BusError:
            self._drop_interest(symbol)
            raise
        logger.info("Subscribed to bus channel %s", channel)
        await self._registry_add(symbol)

    async def remove_interest(self, symbol: str) -> None:
        """Release one local listener. At zero, tear down the bus subscription."""
        if symbol not in self._interest:
            return
        if self._drop_interest(symbol) > 0:
            return

        channel = channel_for(symbol)
        try:
            await self.bus.unsubscribe(channel)
            logger.info("Unsubscribed from bus channel %s", channel)
        except BusError as e:
            logger.error("Failed to unsubscribe from %s: %s", channel, e)
        try:
            await self.registry.remove(self.instance_id, symbol)
        except StoreError as e:
            logger.error("Failed to remove %s from active registry: %s", symbol, e)

    def interest_count(self, symbol: str) -> int:
        return self._interest.get(symbol.upper(), 0)

    def local_symbols(self) -> list[str]:
        return sorted(self._interest)

    async def refresh_liveness(self) -> None:
        """Re-write this instance's registry entry for every locally active symbol."""
        for symbol in list(self._interest):
            await self._registry_add(symbol)

    async def get_active_symbols(self) -> list[str]:
        """Symbols with a live listener on any instance. Empty if the registry is unreachable."""
        try:
            return await self.registry.active_symbols()
        except StoreError as e:
            logger.error("Failed to read active symbols: %s", e)
            return []

    # --- Publishing ---

    async def publish(self, symbol: str, quote: Quote) -> None:
        """Publish a quote to every instance subscribed to the symbol's channel.

        Raises BusError if the bus rejects the publish.
        """
        await self.bus.publish(channel_for(symbol), quote.to_json())

    # --- Connection protocol ---

    async def connect(self, connection: Connection) -> None:
        self._connections.setdefault(connection.id, set())
        logger.info("Connection %s opened (identity %s)", connection.id, connection.identity)

    async def disconnect(self, connection: Connection) -> None:
        """Release every interest held by a departing connection."""
        symbols = self._connections.pop(connection.id, set())
        for symbol in symbols:
            self._drop_listener(connection.id, symbol)
        for symbol in sorted(symbols):
            await self.remove_interest(symbol)
        logger.info("Connection %s closed, released %d symbols", connection.id, len(symbols))

    async def subscribe(self, connection: Connection, raw_symbol: Any) -> str:
        symbol = normalize_symbol(raw_symbol)
        topic = channel_for(symbol)
        symbols = self._connections.setdefault(connection.id, set())

        if symbol not in symbols:
            # Recorded before the first await so a concurrent subscribe sees it
            symbols.add(symbol)
            self._listeners.setdefault(symbol, {})[connection.id] = connection
            connection.join(topic)
            try:
                await self.add_interest(symbol)
            except BusError:
                self._forget(connection, symbol)
                raise
            logger.info("%s subscribed to %s", connection.identity, symbol)

        quote = await self.resolver.get_quote(symbol)
        await connection.emit("subscribed", {"symbol": symbol, "room": topic})
        await connection.emit("price_update", quote.to_dict())
        return symbol

    async def unsubscribe(self, connection: Connection, raw_symbol: Any) -> str:
        symbol = normalize_symbol(raw_symbol)
        symbols = self._connections.get(connection.id, set())

        if symbol in symbols:
            self._forget(connection, symbol)
            await self.remove_interest(symbol)
            logger.info("%s unsubscribed from %s", connection.identity, symbol)

        await connection.emit("unsubscribed", {"symbol": symbol})
        return symbol

    async def subscriptions(self, connection: Connection) -> list[str]:
        symbols = sorted(self._connections.get(connection.id, set()))
        await connection.emit("subscriptions", {"symbols": symbols})
        return symbols

    async def handle_event(self, connection: Connection, event: str, payload: Any) -> None:
        """Dispatch one listener request. Bad requests get an ``error`` event."""
        try:
            if event == "subscribe":
                await self.subscribe(connection, _symbol_from(payload))
            elif event == "unsubscribe":
                await self.unsubscribe(connection, _symbol_from(payload))
            elif event == "get_subscriptions":
                await self.subscriptions(connection)
            else:
                await connection.emit("error", {"message": f"Unknown event: {event}"})
        except InvalidRequestError as e:
            await connection.emit("error", {"message": str(e)})
        except BusError as e:
            logger.error("%s on %s failed: %s", event, connection.id, e)
            await connection.emit("error", {"message": f"Failed to {event} symbol"})

    async def close(self) -> None:
        """Drop every bus subscription and registry entry held by this instance."""
        for symbol in list(self._interest):
            try:
                await self.bus.unsubscribe(channel_for(symbol))
            except BusError as e:
                logger.error("Failed to unsubscribe from %s: %s", symbol, e)
            try:
                await self.registry.remove(self.instance_id, symbol)
            except StoreError as e:
                logger.error("Failed to remove %s from active registry: %s", symbol, e)
        self._interest.clear()
        self._listeners.clear()
        self._connections.clear()
        logger.info("Fan-out manager %s closed", self.instance_id)

    # --- Internal ---

    def _forget(self, connection: Connection, symbol: str) -> None:
        """Remove a connection's local record of ``symbol`` (interest count untouched)."""
        self._connections.get(connection.id, set()).discard(symbol)
        self._drop_listener(connection.id, symbol)
        connection.leave(channel_for(symbol))

    def _drop_listener(self, connection_id: str, symbol: str) -> None:
        listeners = self._listeners.get(symbol, {})
        listeners.pop(connection_id, None)
        if not listeners:
            self._listeners.pop(symbol, None)

    def _drop_interest(self, symbol: str) -> int:
        count = self._interest.get(symbol, 0) - 1
        if count <= 0:
            self._interest.pop(symbol, None)
            return 0
        self._interest[symbol] = count
        return count

    async def _registry_add(self, symbol: str) -> None:
        try:
            await self.registry.add(self.instance_id, symbol, self.registry_ttl)
        except StoreError as e:
            logger.error("Failed to mark %s active in registry: %s", symbol, e)

    async def _on_bus_message(self, channel: str, message: str) -> None:
        symbol = channel.removeprefix(CHANNEL_PREFIX)
        try:
            payload = json.loads(message)
        except ValueError:
            logger.warning("Dropping non-JSON message on %s", channel)
            return

        connections = list(self._listeners.get(symbol, {}).values())
        if connections:
            await asyncio.gather(*(self._emit_safely(c, "price_update", payload) for c in connections))

    async def _emit_safely(self, connection: Connection, event: str, payload: Any) -> None:
        try:
            await asyncio.wait_for(connection.emit(event, payload), timeout=self.emit_timeout)
        except asyncio.TimeoutError:
            logger.warning("Dropped %s for slow connection %s", event, connection.id)
        except Exception as e:
            logger.warning("Failed to deliver %s to %s: %s", event, connection.id, e)


def _symbol_from(payload: Any) -> Any:
    if not isinstance(payload, dict) or "symbol" not in payload:
        raise InvalidRequestError("Invalid request: symbol is required")
    return payload["symbol"]
