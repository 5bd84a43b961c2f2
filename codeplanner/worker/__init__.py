# FILE: codeplanner/worker/__init__.py
"""Job worker: consumes jobs:pending, runs handlers, publishes results."""

from codeplanner.worker.engine import JobWorker
from codeplanner.worker.handlers import JobHandlers
from codeplanner.worker.locks import KeyedLock
from codeplanner.worker.publisher import ResultPublisher

__all__ = ["JobWorker", "JobHandlers", "KeyedLock", "ResultPublisher"]
