# FILE: codeplanner/llm/scheduler.py
"""
Rate-Limited Call Scheduler.

Paces outbound provider calls to at most N per minute. One instance per
call class ("embedding", "planning"), constructed by the process that
composes the worker and injected into every generator that needs it.

States:
    idle      - queue empty, no drain task
    draining  - drain task dequeues one task per interval
A drained queue returns the scheduler to idle; the next schedule() call
starts a fresh drain task.

Guarantees:
    - FIFO dispatch in submission order
    - successive dispatch starts are >= 60/rpm seconds apart
    - a failing task only rejects its own future; the queue keeps moving
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

TaskFactory = Callable[[], Awaitable[Any]]


class RateLimitedScheduler:
    """
    Usage:
        planning = RateLimitedScheduler(requests_per_minute=20, name="planning")
        stream = await planning.schedule(lambda: client.chat.completions.create(...), "chat")
    """

    def __init__(self, requests_per_minute: int, name: str = "default"):
        self.requests_per_minute = max(1, int(requests_per_minute))
        self.interval = 60.0 / self.requests_per_minute
        self.name = name

        self._queue: Deque[Tuple[TaskFactory, Optional[str], asyncio.Future]] = deque()
        self._drain_task: Optional[asyncio.Task] = None
        self._running: Set[asyncio.Task] = set()
        self._last_dispatch: Optional[float] = None

        self.dispatched = 0
        self.failed = 0

        logger.info(
            "[scheduler] %s initialized: %d req/min (~%.0fms/req)",
            name, self.requests_per_minute, self.interval * 1000,
        )

    @property
    def state(self) -> str:
        if self._drain_task is not None and not self._drain_task.done():
            return "draining"
        return "idle"

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    def schedule(self, task: Callable[[], Awaitable[T]], label: Optional[str] = None) -> "asyncio.Future[T]":
        """
        Enqueue a task factory. Returns a future for the task's result.

        The factory is called only when the task is dispatched, so the
        outbound request starts no earlier than its slot.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.append((task, label, future))
        logger.debug(
            "[scheduler] %s queued%s, queue length %d",
            self.name, f" ({label})" if label else "", len(self._queue),
        )
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(self._drain())
        return future

    async def _drain(self) -> None:
        loop = asyncio.get_running_loop()
        while self._queue:
            if self._last_dispatch is not None:
                wait = self._last_dispatch + self.interval - loop.time()
                if wait > 0:
                    await asyncio.sleep(wait)

            task, label, future = self._queue.popleft()
            if future.cancelled():
                continue

            self._last_dispatch = loop.time()
            self.dispatched += 1
            logger.debug(
                "[scheduler] %s dispatching%s, remaining %d",
                self.name, f" ({label})" if label else "", len(self._queue),
            )
            runner = loop.create_task(self._run(task, label, future))
            self._running.add(runner)
            runner.add_done_callback(self._running.discard)

    async def _run(self, task: TaskFactory, label: Optional[str], future: asyncio.Future) -> None:
        try:
            result = await task()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            self.failed += 1
            logger.warning(
                "[scheduler] %s task%s failed: %s",
                self.name, f" ({label})" if label else "", e,
            )
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)

    async def aclose(self) -> None:
        """Cancel queued and running tasks. Used at process shutdown."""
        while self._queue:
            _, _, future = self._queue.popleft()
            future.cancel()
        tasks = list(self._running)
        if self._drain_task is not None:
            tasks.append(self._drain_task)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._drain_task = None

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state,
            "requests_per_minute": self.requests_per_minute,
            "queue_length": len(self._queue),
            "running": len(self._running),
            "dispatched": self.dispatched,
            "failed": self.failed,
        }
