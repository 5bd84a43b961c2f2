# FILE: codeplanner/gateway/app.py
"""
FastAPI application for the gateway.

    /ws      WebSocket; owner id from ?owner=..., else the configured default
    /health  connection count and broker state
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from codeplanner import __version__
from codeplanner.broker import Broker, create_broker
from codeplanner.config import Settings
from codeplanner.gateway.server import Gateway

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, broker: Optional[Broker] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    broker = broker or create_broker(settings)
    gateway = Gateway(
        broker,
        default_owner_id=settings.default_owner_id,
        default_project_id=settings.default_project_id,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # BrokerUnavailable here aborts startup
        if not broker.is_connected:
            await broker.connect()
        logger.info("[gateway] ready on /ws")
        try:
            yield
        finally:
            logger.info("[gateway] shutting down")
            await gateway.shutdown()
            await broker.close()

    app = FastAPI(title="CodePlanner Gateway", version=__version__, lifespan=lifespan)
    app.state.gateway = gateway

    @app.get("/health")
    async def health():
        return {"status": "ok", **gateway.status()}

    @app.websocket("/ws")
    async def ws_endpoint(websocket: WebSocket):
        await websocket.accept()
        conn = gateway.open_connection(websocket, websocket.query_params.get("owner"))
        try:
            while True:
                text = await websocket.receive_text()
                await gateway.handle_message(conn, text)
        except WebSocketDisconnect:
            pass
        finally:
            gateway.close_connection(conn.connection_id)

    return app
