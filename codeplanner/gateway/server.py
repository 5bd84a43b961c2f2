# FILE: codeplanner/gateway/server.py
"""
Gateway — routes client requests to the broker and relays results back.

No business logic: the gateway assigns a job id, publishes the job
envelope to jobs:pending and forwards everything that arrives on
results:<jobId> to the originating connection.

Per request:
    1. subscribe results:<jobId>   (before publishing, so no result is missed)
    2. publish job to jobs:pending (failure -> error message to the client)
    3. relay task: stream -> stream, complete -> response, error -> error;
       unsubscribe after the terminal result

Results for a connection that has closed are dropped; the job itself keeps
running in the worker.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set
from uuid import uuid4

from codeplanner.broker.base import Broker, Subscription
from codeplanner.errors import BrokerUnavailable, GatewayConnectionError, InvalidEnvelope
from codeplanner.gateway.connections import Connection, ConnectionTable, TextSender
from codeplanner.jobs.channels import JOBS_PENDING, results_channel
from codeplanner.jobs.schemas import ClientMessage, RawJob, ResultEnvelope

logger = logging.getLogger(__name__)

INVALID_MESSAGE = "Invalid message format"


class Gateway:
    def __init__(
        self,
        broker: Broker,
        default_owner_id: str = "user1",
        default_project_id: str = "project1",
    ):
        self.broker = broker
        self.default_owner_id = default_owner_id
        self.default_project_id = default_project_id
        self.connections = ConnectionTable()
        self._relays: Set[asyncio.Task] = set()
        self.jobs_submitted = 0

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def open_connection(self, sender: TextSender, owner_id: Optional[str] = None) -> Connection:
        return self.connections.register(sender, owner_id or self.default_owner_id)

    def close_connection(self, connection_id: str) -> None:
        # In-flight jobs are not cancelled; their relays drop further results
        self.connections.remove(connection_id)

    # =========================================================================
    # INBOUND
    # =========================================================================

    def _request_data(self, text: str) -> Optional[Dict[str, Any]]:
        """
        Extract the request data object.

        Accepts {"type": "request", "data": {...}} or the data object itself.
        """
        try:
            message = json.loads(text)
        except (TypeError, ValueError):
            return None
        if not isinstance(message, dict):
            return None
        data = message.get("data", message)
        if not isinstance(data, dict):
            return None
        command = data.get("command")
        if not isinstance(command, str) or not command:
            return None
        return data

    async def handle_message(self, conn: Connection, text: str) -> Optional[str]:
        """Turn one client message into a job. Returns the job id, or None if rejected."""
        data = self._request_data(text)
        if data is None:
            logger.warning("[gateway] invalid message from %s", conn.connection_id)
            await self._send(conn, ClientMessage.error(INVALID_MESSAGE))
            return None

        project_id = data.get("projectId")
        job = RawJob(
            job_id=str(uuid4()),
            connection_id=conn.connection_id,
            owner_id=conn.owner_id,
            project_id=project_id if isinstance(project_id, str) and project_id else self.default_project_id,
            command=data["command"],
            data=data,
        )
        return await self.submit(conn, job)

    async def submit(self, conn: Connection, job: RawJob) -> Optional[str]:
        channel = results_channel(job.job_id)
        try:
            subscription = await self.broker.subscribe(channel)
        except BrokerUnavailable as e:
            logger.error("[gateway] subscribe for job %s failed: %s", job.job_id, e.message)
            await self._send(conn, ClientMessage.error(f"Failed to submit job: {e.message}", job.job_id))
            return None

        try:
            await self.broker.publish(JOBS_PENDING, job.to_json())
        except BrokerUnavailable as e:
            logger.error("[gateway] publish of job %s failed: %s", job.job_id, e.message)
            await subscription.close()
            await self._send(conn, ClientMessage.error(f"Failed to submit job: {e.message}", job.job_id))
            return None

        self.jobs_submitted += 1
        logger.info("[gateway] job %s (%s) published for %s", job.job_id, job.command, conn.connection_id)
        task = asyncio.create_task(self._relay(conn.connection_id, job.job_id, subscription))
        self._relays.add(task)
        task.add_done_callback(self._relays.discard)
        return job.job_id

    # =========================================================================
    # RELAY
    # =========================================================================

    async def _relay(self, connection_id: str, job_id: str, subscription: Subscription) -> None:
        try:
            async for raw in subscription:
                try:
                    result = ResultEnvelope.parse(raw)
                except InvalidEnvelope as e:
                    logger.warning("[gateway] bad result on %s: %s", subscription.channel, e.message)
                    continue

                conn = self.connections.get(connection_id)
                if conn is None:
                    logger.debug("[gateway] connection %s gone; dropping %s for %s",
                                 connection_id, result.type.value, job_id)
                else:
                    await self._send(conn, ClientMessage.from_result(result))

                if result.is_terminal:
                    logger.info("[gateway] job %s finished (%s)", job_id, result.type.value)
                    break
        except BrokerUnavailable as e:
            logger.error("[gateway] result subscription for %s failed: %s", job_id, e.message)
            conn = self.connections.get(connection_id)
            if conn is not None:
                await self._send(conn, ClientMessage.error(f"Lost result stream: {e.message}", job_id))
        finally:
            await subscription.close()

    async def _send(self, conn: Connection, message: ClientMessage) -> bool:
        try:
            await conn.send(message)
            return True
        except GatewayConnectionError as e:
            logger.info("[gateway] %s", e.message)
            self.connections.remove(conn.connection_id)
            return False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def active_relays(self) -> int:
        return len(self._relays)

    async def shutdown(self) -> None:
        for task in list(self._relays):
            task.cancel()
        if self._relays:
            await asyncio.gather(*list(self._relays), return_exceptions=True)
        for conn in self.connections.all():
            self.connections.remove(conn.connection_id)

    def status(self) -> Dict[str, Any]:
        return {
            "connections": len(self.connections),
            "active_jobs": len(self._relays),
            "jobs_submitted": self.jobs_submitted,
            "broker_connected": self.broker.is_connected,
        }
