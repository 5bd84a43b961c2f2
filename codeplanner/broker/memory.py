# FILE: codeplanner/broker/memory.py
"""
In-process broker.

Same delivery semantics as the redis broker (fan-out to current
subscribers, per-channel FIFO, messages to empty channels are dropped)
for tests and single-process development.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, Set

from codeplanner.broker.base import Broker, Subscription
from codeplanner.errors import BrokerUnavailable

logger = logging.getLogger(__name__)

_CLOSED = object()


class MemorySubscription(Subscription):
    def __init__(self, broker: "InMemoryBroker", channel: str):
        super().__init__(channel)
        self._broker = broker
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def _deliver(self, message: str) -> None:
        if not self._closed:
            self._queue.put_nowait(message)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broker._remove(self)
        self._queue.put_nowait(_CLOSED)


class InMemoryBroker(Broker):
    def __init__(self):
        self._channels: Dict[str, Set[MemorySubscription]] = {}
        self._connected = False
        self.published_count = 0

    async def connect(self) -> None:
        self._connected = True
        logger.info("[broker] in-memory broker ready")

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def publish(self, channel: str, message: str) -> int:
        if not self._connected:
            raise BrokerUnavailable(f"Broker not connected; cannot publish to {channel}")
        subscribers = list(self._channels.get(channel, ()))
        for sub in subscribers:
            sub._deliver(message)
        self.published_count += 1
        return len(subscribers)

    async def subscribe(self, channel: str) -> MemorySubscription:
        if not self._connected:
            raise BrokerUnavailable(f"Broker not connected; cannot subscribe to {channel}")
        sub = MemorySubscription(self, channel)
        self._channels.setdefault(channel, set()).add(sub)
        return sub

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def _remove(self, sub: MemorySubscription) -> None:
        subs = self._channels.get(sub.channel)
        if subs is None:
            return
        subs.discard(sub)
        if not subs:
            del self._channels[sub.channel]

    async def close(self) -> None:
        for subs in list(self._channels.values()):
            for sub in list(subs):
                await sub.close()
        self._channels.clear()
        self._connected = False
        logger.info("[broker] in-memory broker closed")
