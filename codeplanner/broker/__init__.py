# FILE: codeplanner/broker/__init__.py
"""Pub/sub broker: abstract contract, in-process and redis backends."""

from codeplanner.broker.base import Broker, Subscription
from codeplanner.broker.memory import InMemoryBroker
from codeplanner.broker.redis_broker import RedisBroker
from codeplanner.config import Settings
from codeplanner.errors import ConfigurationError


def create_broker(settings: Settings) -> Broker:
    """Build the broker selected by CODEPLANNER_BROKER (not yet connected)."""
    if settings.broker_backend == "redis":
        return RedisBroker(settings.redis_url)
    if settings.broker_backend == "memory":
        return InMemoryBroker()
    raise ConfigurationError(
        f"Unknown broker backend {settings.broker_backend!r}; expected 'redis' or 'memory'"
    )


__all__ = ["Broker", "Subscription", "InMemoryBroker", "RedisBroker", "create_broker"]
