# FILE: codeplanner/broker/redis_broker.py
"""
Redis pub/sub broker (redis.asyncio).

One client connection for publishing, one PubSub connection per
subscription. Redis pub/sub is fire-and-forget: subscribe before the
message you care about can be published.
"""

import logging
from typing import AsyncIterator, Optional, Set

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from codeplanner.broker.base import Broker, Subscription
from codeplanner.errors import BrokerUnavailable

logger = logging.getLogger(__name__)


class RedisSubscription(Subscription):
    """
    Wraps a PubSub bound to one channel.

    Polls get_message() with a short timeout so close() from another task
    ends the iteration without two readers on one connection.
    """

    def __init__(self, broker: "RedisBroker", pubsub, channel: str, poll_timeout: float = 1.0):
        super().__init__(channel)
        self._broker = broker
        self._pubsub = pubsub
        self._poll_timeout = poll_timeout
        self._closed = False
        self._reading = False
        self._released = False

    async def __aiter__(self) -> AsyncIterator[str]:
        try:
            while not self._closed:
                self._reading = True
                try:
                    message = await self._pubsub.get_message(
                        ignore_subscribe_messages=True, timeout=self._poll_timeout
                    )
                finally:
                    self._reading = False
                if message is None or message.get("type") != "message":
                    continue
                yield message["data"]
        except RedisError as e:
            raise BrokerUnavailable(f"Subscription to {self.channel} failed: {e}") from e
        if self._closed:
            await self._release()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broker._forget(self)
        if not self._reading:
            await self._release()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
        except RedisError as e:
            logger.warning("[broker] unsubscribe from %s failed: %s", self.channel, e)


class RedisBroker(Broker):
    def __init__(self, url: str, poll_timeout: float = 1.0):
        self._url = url
        self._poll_timeout = poll_timeout
        self._client: Optional[aioredis.Redis] = None
        self._subscriptions: Set[RedisSubscription] = set()

    async def connect(self) -> None:
        self._client = aioredis.from_url(self._url, decode_responses=True)
        try:
            await self._client.ping()
        except RedisError as e:
            raise BrokerUnavailable(f"Cannot reach redis broker: {e}") from e
        logger.info("[broker] connected to redis")

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _require_client(self) -> aioredis.Redis:
        if self._client is None:
            raise BrokerUnavailable("Redis broker not connected")
        return self._client

    async def publish(self, channel: str, message: str) -> int:
        client = self._require_client()
        try:
            return await client.publish(channel, message)
        except RedisError as e:
            logger.error("[broker] publish to %s failed: %s", channel, e)
            raise BrokerUnavailable(f"Publish to {channel} failed: {e}") from e

    async def subscribe(self, channel: str) -> RedisSubscription:
        client = self._require_client()
        pubsub = client.pubsub()
        try:
            await pubsub.subscribe(channel)
        except RedisError as e:
            logger.error("[broker] subscribe to %s failed: %s", channel, e)
            raise BrokerUnavailable(f"Subscribe to {channel} failed: {e}") from e
        sub = RedisSubscription(self, pubsub, channel, poll_timeout=self._poll_timeout)
        self._subscriptions.add(sub)
        return sub

    def _forget(self, sub: RedisSubscription) -> None:
        self._subscriptions.discard(sub)

    async def close(self) -> None:
        for sub in list(self._subscriptions):
            await sub.close()
        if self._client is not None:
            try:
                await self._client.aclose()
            except RedisError as e:
                logger.warning("[broker] close failed: %s", e)
            self._client = None
        logger.info("[broker] redis broker closed")
