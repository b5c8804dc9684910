"""Publish/subscribe bus: in-memory and Redis backends."""

from __future__ import annotations

import asyncio
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .errors import BusError
from .interface import MessageBus, MessageHandler

logger = logging.getLogger(__name__)


class InMemoryBroker:
    """Stands in for the shared pub/sub server inside a single process.

    Several InMemoryMessageBus instances attached to the same broker behave
    like separate process instances sharing one Redis.
    """

    def __init__(self) -> None:
        self._buses: list[InMemoryMessageBus] = []

    def attach(self, bus: InMemoryMessageBus) -> None:
        self._buses.append(bus)

    def detach(self, bus: InMemoryMessageBus) -> None:
        if bus in self._buses:
            self._buses.remove(bus)

    async def deliver(self, channel: str, message: str) -> int:
        receivers = 0
        for bus in list(self._buses):
            if await bus._deliver(channel, message):
                receivers += 1
        return receivers


class InMemoryMessageBus(MessageBus):
    """MessageBus for single-process deployments and tests."""

    def __init__(self, broker: InMemoryBroker | None = None) -> None:
        self._broker = broker or InMemoryBroker()
        self._handlers: dict[str, MessageHandler] = {}
        self._broker.attach(self)

    async def publish(self, channel: str, message: str) -> None:
        await self._broker.deliver(channel, message)

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        self._handlers[channel] = handler

    async def unsubscribe(self, channel: str) -> None:
        self._handlers.pop(channel, None)

    def subscribed_channels(self) -> set[str]:
        return set(self._handlers)

    async def close(self) -> None:
        self._handlers.clear()
        self._broker.detach(self)

    async def _deliver(self, channel: str, message: str) -> bool:
        handler = self._handlers.get(channel)
        if handler is None:
            return False
        try:
            await handler(channel, message)
        except Exception:
            logger.exception("Bus handler failed for %s", channel)
        return True


class RedisMessageBus(MessageBus):
    """MessageBus backed by Redis pub/sub.

    Uses a dedicated PubSub connection; a background task reads messages and
    hands each one to its channel's handler in a separate task, so a slow
    handler on one channel does not delay the others.
    """

    def __init__(self, client: Redis, poll_timeout: float = 1.0) -> None:
        self._client = client
        self._pubsub = client.pubsub()
        self._poll_timeout = poll_timeout
        self._handlers: dict[str, MessageHandler] = {}
        self._task: asyncio.Task | None = None
        self._dispatches: set[asyncio.Task] = set()  # in-flight handler calls

    async def publish(self, channel: str, message: str) -> None:
        try:
            await self._client.publish(channel, message)
        except RedisError as e:
            raise BusError(f"Publish to {channel} failed: {e}") from e

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        try:
            await self._pubsub.subscribe(channel)
        except RedisError as e:
            raise BusError(f"Subscribe to {channel} failed: {e}") from e
        self._handlers[channel] = handler
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._listen_loop(), name="redis-bus-listener")

    async def unsubscribe(self, channel: str) -> None:
        if self._handlers.pop(channel, None) is None:
            return
        try:
            await self._pubsub.unsubscribe(channel)
        except RedisError as e:
            raise BusError(f"Unsubscribe from {channel} failed: {e}") from e

    def subscribed_channels(self) -> set[str]:
        return set(self._handlers)

    async def close(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        for task in list(self._dispatches):
            task.cancel()
        await asyncio.gather(*self._dispatches, return_exceptions=True)
        self._dispatches.clear()
        self._handlers.clear()
        try:
            await self._pubsub.aclose()
        except RedisError as e:
            logger.warning("Error closing Redis pubsub: %s", e)

    # --- Internal ---

    async def _listen_loop(self) -> None:
        while True:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=self._poll_timeout
                )
            except RedisError as e:
                logger.error("Redis pubsub read failed: %s", e)
                await asyncio.sleep(self._poll_timeout)
                continue
            if message is None or message.get("type") != "message":
                continue
            # The read loop never waits on a handler
            task = asyncio.create_task(self._dispatch(message))
            self._dispatches.add(task)
            task.add_done_callback(self._dispatches.discard)

    async def _dispatch(self, message: dict) -> None:
        channel = message["channel"]
        data = message["data"]
        if isinstance(channel, bytes):
            channel = channel.decode()
        if isinstance(data, bytes):
            data = data.decode()
        handler = self._handlers.get(channel)
        if handler is None:
            return
        try:
            await handler(channel, data)
        except Exception:
            logger.exception("Bus handler failed for %s", channel)
