# FILE: codeplanner/worker/engine.py
"""
Job Worker — consumes jobs:pending and runs handlers with bounded concurrency.

Per job:
    received -> dispatched(command) -> stream* -> complete | error

Dispatch is semaphore-gated: the consumer loop waits for a free slot before
reading the next message, so at most max_concurrent_jobs handlers run at
once while each handler runs in its own task. A failing job produces one
error result and never stops the consumer.

Delivery may be duplicated by the broker; the most recent job ids are
remembered and repeats are ignored.
"""

import asyncio
import logging
import traceback
from collections import OrderedDict
from typing import Any, Dict, Optional, Set

from codeplanner.broker.base import Broker, Subscription
from codeplanner.errors import (
    BrokerUnavailable,
    CodePlannerError,
    HandlerFailure,
    InvalidEnvelope,
    StoreUnavailable,
)
from codeplanner.jobs.channels import JOBS_PENDING
from codeplanner.jobs.schemas import RawJob, parse_raw_job, to_typed_job
from codeplanner.worker.handlers import JobHandlers
from codeplanner.worker.publisher import ResultPublisher

logger = logging.getLogger(__name__)

DEDUPE_WINDOW = 1024


class JobWorker:
    """
    Usage:
        worker = JobWorker(broker, handlers, max_concurrent_jobs=4)
        await worker.start()
        ...
        await worker.stop()
    """

    def __init__(
        self,
        broker: Broker,
        handlers: JobHandlers,
        max_concurrent_jobs: int = 4,
        job_timeout_seconds: float = 0.0,
        dedupe_window: int = DEDUPE_WINDOW,
    ):
        self.broker = broker
        self.handlers = handlers
        self.max_concurrent_jobs = max(1, max_concurrent_jobs)
        self.job_timeout_seconds = job_timeout_seconds
        self.dedupe_window = dedupe_window

        self._registry = handlers.registry()
        self._semaphore = asyncio.Semaphore(self.max_concurrent_jobs)
        self._subscription: Optional[Subscription] = None
        self._consumer: Optional[asyncio.Task] = None
        self._active: Set[asyncio.Task] = set()
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._running = False

        self.processed = 0
        self.failed = 0
        self.duplicates = 0

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Subscribe to jobs:pending. BrokerUnavailable here is fatal for the caller."""
        if self._running:
            logger.warning("[worker] already running")
            return
        self._subscription = await self.broker.subscribe(JOBS_PENDING)
        self._running = True
        self._consumer = asyncio.create_task(self._consume())
        logger.info(
            "[worker] listening on %s (max %d concurrent jobs)",
            JOBS_PENDING, self.max_concurrent_jobs,
        )

    async def stop(self) -> None:
        """Stop accepting jobs and wait for in-flight jobs to finish."""
        if not self._running:
            return
        self._running = False
        if self._subscription is not None:
            await self._subscription.close()
        if self._consumer is not None:
            await asyncio.gather(self._consumer, return_exceptions=True)
        if self._active:
            logger.info("[worker] waiting for %d in-flight jobs", len(self._active))
            await asyncio.gather(*list(self._active), return_exceptions=True)
        logger.info("[worker] stopped")

    async def wait_closed(self) -> None:
        """Block until the consumer loop ends (subscription closed or failed)."""
        if self._consumer is not None:
            await self._consumer

    async def drain(self) -> None:
        """Wait until no job is in flight."""
        while self._active:
            await asyncio.gather(*list(self._active), return_exceptions=True)

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "active_jobs": len(self._active),
            "max_concurrent_jobs": self.max_concurrent_jobs,
            "processed": self.processed,
            "failed": self.failed,
            "duplicates": self.duplicates,
        }

    # =========================================================================
    # CONSUMER
    # =========================================================================

    async def _consume(self) -> None:
        try:
            async for message in self._subscription:
                await self._semaphore.acquire()
                task = asyncio.create_task(self._process(message))
                self._active.add(task)
                task.add_done_callback(self._job_done)
        except BrokerUnavailable as e:
            logger.error("[worker] job subscription failed: %s", e.message)
            self._running = False
            raise

    def _job_done(self, task: asyncio.Task) -> None:
        self._active.discard(task)
        self._semaphore.release()

    def _remember(self, job_id: str) -> bool:
        """Record a job id. False if it was already seen."""
        if job_id in self._seen:
            return False
        self._seen[job_id] = None
        while len(self._seen) > self.dedupe_window:
            self._seen.popitem(last=False)
        return True

    # =========================================================================
    # JOB PROCESSING
    # =========================================================================

    async def _process(self, message: str) -> None:
        try:
            raw = parse_raw_job(message)
        except InvalidEnvelope as e:
            self.failed += 1
            if e.job_id is None:
                logger.error("[worker] dropping undecodable job message: %s", e.message)
                return
            await self._report(ResultPublisher(self.broker, e.job_id), e)
            return

        if not self._remember(raw.job_id):
            self.duplicates += 1
            logger.warning("[worker] duplicate delivery of job %s ignored", raw.job_id)
            return

        logger.info(
            "[worker] processing job %s - %s (%s/%s)",
            raw.job_id, raw.command, raw.owner_id, raw.project_id,
        )
        publisher = ResultPublisher(self.broker, raw.job_id)
        try:
            await self._run(raw, publisher)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            self.failed += 1
            logger.error("[worker] job %s timed out", raw.job_id)
            await self._report(
                publisher,
                HandlerFailure(f"Job timed out after {self.job_timeout_seconds:g}s"),
            )
        except Exception as e:
            self.failed += 1
            logger.error("[worker] job %s failed: %s", raw.job_id, e, exc_info=True)
            await self._report(publisher, e)
        else:
            self.processed += 1

    async def _run(self, raw: RawJob, publisher: ResultPublisher) -> None:
        job = to_typed_job(raw)
        handler = self._registry[type(job)]
        coro = handler(job, publisher)
        if self.job_timeout_seconds and self.job_timeout_seconds > 0:
            await asyncio.wait_for(coro, timeout=self.job_timeout_seconds)
        else:
            await coro
        if not publisher.finished:
            await publisher.complete()

    async def _report(self, publisher: ResultPublisher, error: BaseException) -> None:
        """Publish the job's single error result. Never raises."""
        failure = _as_reportable(error)
        stack = None
        if not isinstance(error, CodePlannerError):
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        try:
            await publisher.error(failure.message, stack=stack)
        except BrokerUnavailable as e:
            logger.error(
                "[worker] could not publish error for job %s: %s", publisher.job_id, e.message
            )


def _as_reportable(error: BaseException) -> CodePlannerError:
    """Map an exception to the error shown to the client."""
    if isinstance(error, (StoreUnavailable, BrokerUnavailable)):
        return HandlerFailure(f"Job failed: {error.message}", cause=error)
    if isinstance(error, CodePlannerError):
        return error
    return HandlerFailure(str(error) or error.__class__.__name__, cause=error)
