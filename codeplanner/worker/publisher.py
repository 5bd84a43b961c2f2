# FILE: codeplanner/worker/publisher.py
"""
Per-job result publisher.

Publishes are awaited one at a time, so stream results reach the
results:<jobId> channel in emission order. Exactly one terminal result
(complete or error) is published; anything after it is dropped with a
warning.
"""

import logging
from typing import Any, Optional

from codeplanner.broker.base import Broker
from codeplanner.jobs.channels import results_channel
from codeplanner.jobs.schemas import ErrorPayload, ProgressInfo, ResultEnvelope, ResultType

logger = logging.getLogger(__name__)


class ResultPublisher:
    def __init__(self, broker: Broker, job_id: str):
        self.broker = broker
        self.job_id = job_id
        self.channel = results_channel(job_id)
        self.finished = False
        self.stream_count = 0

    async def _publish(self, type_: ResultType, data: Any) -> bool:
        if self.finished:
            logger.warning("[worker] job %s already finished; dropping %s result", self.job_id, type_.value)
            return False
        if type_ != ResultType.STREAM:
            # Set before publishing so a failed publish is not followed by a second terminal
            self.finished = True
        envelope = ResultEnvelope(job_id=self.job_id, type=type_, data=data)
        await self.broker.publish(self.channel, envelope.to_json())
        if type_ == ResultType.STREAM:
            self.stream_count += 1
        return True

    async def progress(self, current: int, total: int, message: str) -> bool:
        info = ProgressInfo.of(current, total, message)
        return await self._publish(ResultType.STREAM, {"progress": info.to_wire()})

    async def chunk(self, text: str) -> bool:
        return await self._publish(ResultType.STREAM, {"chunk": text})

    async def complete(self, data: Any = None) -> bool:
        return await self._publish(ResultType.COMPLETE, data if data is not None else {"type": "complete"})

    async def error(self, message: str, stack: Optional[str] = None) -> bool:
        return await self._publish(ResultType.ERROR, ErrorPayload(message=message, stack=stack).to_wire())
