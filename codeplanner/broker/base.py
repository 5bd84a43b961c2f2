# FILE: codeplanner/broker/base.py
"""
Publish/subscribe contract shared by gateway and worker.

Messages are opaque strings. Within one channel, messages from one publisher
are delivered to each subscriber in publish order. Delivery is
fire-and-forget: a message published while nobody is subscribed is lost.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator


class Subscription(ABC):
    """
    A live subscription to one channel.

    Usage:
        sub = await broker.subscribe("results:abc")
        async for message in sub:
            ...
        await sub.close()
    """

    def __init__(self, channel: str):
        self.channel = channel

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[str]:
        """Yield messages until the subscription is closed."""

    @abstractmethod
    async def close(self) -> None:
        """Unsubscribe. Idempotent; ends any running iteration."""

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class Broker(ABC):
    """Channel-based pub/sub. Raises BrokerUnavailable on transport failure."""

    @abstractmethod
    async def connect(self) -> None:
        """Verify connectivity. Called once at process startup."""

    @abstractmethod
    async def publish(self, channel: str, message: str) -> int:
        """Publish a message. Returns the number of receivers when known."""

    @abstractmethod
    async def subscribe(self, channel: str) -> Subscription:
        """Subscribe to a channel. Messages published after this returns are delivered."""

    @abstractmethod
    async def close(self) -> None:
        """Close every subscription and the underlying connection."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...
