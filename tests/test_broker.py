# FILE: tests/test_broker.py
"""
Tests for the broker backends.

The in-process broker is exercised directly; the redis broker runs against
a mocked redis.asyncio client.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError


class TestInMemoryBroker:

    @pytest.mark.asyncio
    async def test_fan_out_in_order(self, broker):
        a = await broker.subscribe("results:j1")
        b = await broker.subscribe("results:j1")

        for i in range(3):
            assert await broker.publish("results:j1", f"m{i}") == 2
        await a.close()
        await b.close()

        assert [m async for m in a] == ["m0", "m1", "m2"]
        assert [m async for m in b] == ["m0", "m1", "m2"]

    @pytest.mark.asyncio
    async def test_no_subscribers_drops(self, broker):
        assert await broker.publish("jobs:pending", "lost") == 0

        late = await broker.subscribe("jobs:pending")
        await late.close()

        assert [m async for m in late] == []

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, broker):
        sub = await broker.subscribe("results:j1")
        await sub.close()
        await sub.close()

        assert broker.subscriber_count("results:j1") == 0
        assert await broker.publish("results:j1", "after") == 0

    @pytest.mark.asyncio
    async def test_context_manager(self, broker):
        async with await broker.subscribe("c") as sub:
            assert broker.subscriber_count("c") == 1
        assert broker.subscriber_count("c") == 0
        assert sub.channel == "c"

    @pytest.mark.asyncio
    async def test_not_connected(self):
        from codeplanner.broker.memory import InMemoryBroker
        from codeplanner.errors import BrokerUnavailable

        broker = InMemoryBroker()

        with pytest.raises(BrokerUnavailable):
            await broker.publish("c", "m")
        with pytest.raises(BrokerUnavailable):
            await broker.subscribe("c")

    @pytest.mark.asyncio
    async def test_close_ends_iteration(self, broker):
        sub = await broker.subscribe("c")
        await broker.publish("c", "m")
        await broker.close()

        assert [m async for m in sub] == ["m"]
        assert not broker.is_connected


class TestCreateBroker:

    def test_selects_backend(self):
        from codeplanner.broker import InMemoryBroker, RedisBroker, create_broker
        from codeplanner.config import Settings

        assert isinstance(create_broker(Settings(broker_backend="memory")), InMemoryBroker)
        assert isinstance(create_broker(Settings(broker_backend="redis")), RedisBroker)

    def test_unknown_backend(self):
        from codeplanner.broker import create_broker
        from codeplanner.config import Settings
        from codeplanner.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            create_broker(Settings(broker_backend="kafka"))


def _redis_client():
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.publish = AsyncMock(return_value=1)
    client.aclose = AsyncMock()
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.get_message = AsyncMock(return_value=None)
    client.pubsub.return_value = pubsub
    return client, pubsub


class TestRedisBroker:

    @pytest.mark.asyncio
    async def test_connect_and_publish(self):
        from codeplanner.broker.redis_broker import RedisBroker

        client, _ = _redis_client()
        with patch("codeplanner.broker.redis_broker.aioredis.from_url", return_value=client) as from_url:
            broker = RedisBroker("redis://localhost:6379")
            await broker.connect()

        assert await broker.publish("jobs:pending", "{}") == 1
        from_url.assert_called_once_with("redis://localhost:6379", decode_responses=True)
        client.publish.assert_awaited_once_with("jobs:pending", "{}")
        await broker.close()
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreachable(self):
        from codeplanner.broker.redis_broker import RedisBroker
        from codeplanner.errors import BrokerUnavailable

        client, _ = _redis_client()
        client.ping = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        with patch("codeplanner.broker.redis_broker.aioredis.from_url", return_value=client):
            with pytest.raises(BrokerUnavailable):
                await RedisBroker("redis://nowhere:6379").connect()

    @pytest.mark.asyncio
    async def test_publish_failure(self):
        from codeplanner.broker.redis_broker import RedisBroker
        from codeplanner.errors import BrokerUnavailable

        client, _ = _redis_client()
        client.publish = AsyncMock(side_effect=RedisConnectionError("reset"))
        with patch("codeplanner.broker.redis_broker.aioredis.from_url", return_value=client):
            broker = RedisBroker("redis://localhost:6379")
            await broker.connect()

        with pytest.raises(BrokerUnavailable):
            await broker.publish("jobs:pending", "{}")

    @pytest.mark.asyncio
    async def test_publish_before_connect(self):
        from codeplanner.broker.redis_broker import RedisBroker
        from codeplanner.errors import BrokerUnavailable

        with pytest.raises(BrokerUnavailable):
            await RedisBroker("redis://localhost:6379").publish("c", "m")

    @pytest.mark.asyncio
    async def test_subscription_yields_data_messages(self):
        from codeplanner.broker.redis_broker import RedisBroker

        client, pubsub = _redis_client()
        pubsub.get_message = AsyncMock(side_effect=[
            None,
            {"type": "message", "channel": "results:j1", "data": "first"},
            {"type": "pmessage", "channel": "results:j1", "data": "ignored"},
            {"type": "message", "channel": "results:j1", "data": "second"},
        ])
        with patch("codeplanner.broker.redis_broker.aioredis.from_url", return_value=client):
            broker = RedisBroker("redis://localhost:6379", poll_timeout=0.01)
            await broker.connect()

        sub = await broker.subscribe("results:j1")
        received = []
        async for message in sub:
            received.append(message)
            if len(received) == 2:
                break
        await sub.close()

        assert received == ["first", "second"]
        pubsub.subscribe.assert_awaited_once_with("results:j1")
        pubsub.unsubscribe.assert_awaited_once_with("results:j1")
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_subscription_failure(self):
        from codeplanner.broker.redis_broker import RedisBroker
        from codeplanner.errors import BrokerUnavailable

        client, pubsub = _redis_client()
        pubsub.get_message = AsyncMock(side_effect=RedisConnectionError("lost"))
        with patch("codeplanner.broker.redis_broker.aioredis.from_url", return_value=client):
            broker = RedisBroker("redis://localhost:6379")
            await broker.connect()

        sub = await broker.subscribe("jobs:pending")
        with pytest.raises(BrokerUnavailable):
            async for _ in sub:
                pass
