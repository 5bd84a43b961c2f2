# FILE: codeplanner/gateway/__init__.py
"""WebSocket gateway: client connections <-> broker."""

from codeplanner.gateway.app import create_app
from codeplanner.gateway.connections import Connection, ConnectionTable
from codeplanner.gateway.server import Gateway

__all__ = ["Connection", "ConnectionTable", "Gateway", "create_app"]
