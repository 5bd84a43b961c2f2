# FILE: codeplanner/worker/runner.py
"""
Worker composition: builds the store, schedulers, generators and handlers
from Settings. One scheduler per call class, shared by every job.
"""

import logging
from typing import Dict, Tuple

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from codeplanner.broker import create_broker
from codeplanner.broker.base import Broker
from codeplanner.config import Settings
from codeplanner.db import init_db, make_engine, make_session_factory
from codeplanner.errors import StoreUnavailable
from codeplanner.indexing.chunker import CodeChunker
from codeplanner.indexing.extractor import PythonChunkExtractor
from codeplanner.llm.embeddings import EmbeddingGenerator
from codeplanner.llm.generation import ErrorDebugger, PlanGenerator
from codeplanner.llm.scheduler import RateLimitedScheduler
from codeplanner.store.similarity import SimilarityStore
from codeplanner.worker.engine import JobWorker
from codeplanner.worker.handlers import JobHandlers

logger = logging.getLogger(__name__)


def open_store(database_url: str) -> Tuple[SimilarityStore, Engine]:
    """Create tables and return the store. Raises StoreUnavailable."""
    engine = make_engine(database_url)
    try:
        init_db(engine)
    except SQLAlchemyError as e:
        raise StoreUnavailable(f"Cannot initialize similarity store: {e.__class__.__name__}: {e}") from e
    return SimilarityStore(make_session_factory(engine)), engine


def build_schedulers(settings: Settings) -> Dict[str, RateLimitedScheduler]:
    return {
        "embedding": RateLimitedScheduler(settings.embedding_rpm, name="embedding"),
        "planning": RateLimitedScheduler(settings.planning_rpm, name="planning"),
    }


def build_worker(
    settings: Settings, broker: Broker, store: SimilarityStore
) -> Tuple[JobWorker, Dict[str, RateLimitedScheduler]]:
    """Wire a JobWorker. Raises ConfigurationError when API keys are missing."""
    schedulers = build_schedulers(settings)
    handlers = JobHandlers(
        store=store,
        embedder=EmbeddingGenerator.from_settings(
            settings.embedding, schedulers["embedding"], settings.embedding_batch_size
        ),
        planner=PlanGenerator.from_settings(settings.planning, schedulers["planning"]),
        debugger=ErrorDebugger.from_settings(settings.debug, schedulers["planning"]),
        extractor=PythonChunkExtractor(),
        chunker=CodeChunker(),
        plan_context_chunks=settings.plan_context_chunks,
        error_context_chunks=settings.error_context_chunks,
    )
    worker = JobWorker(
        broker,
        handlers,
        max_concurrent_jobs=settings.max_concurrent_jobs,
        job_timeout_seconds=settings.job_timeout_seconds,
    )
    return worker, schedulers


async def close_worker(
    worker: JobWorker, schedulers: Dict[str, RateLimitedScheduler], broker: Broker
) -> None:
    await worker.stop()
    for scheduler in schedulers.values():
        await scheduler.aclose()
    await broker.close()


async def start_worker(
    settings: Settings,
) -> Tuple[JobWorker, Dict[str, RateLimitedScheduler], Broker, Engine]:
    """
    Open the store, connect the broker and start a worker.

    Raises CodePlannerError (fatal at startup). Anything already opened is
    closed before the error propagates.
    """
    broker = create_broker(settings)
    store, engine = open_store(settings.database_url)
    try:
        await broker.connect()
        worker, schedulers = build_worker(settings, broker, store)
        await worker.start()
    except Exception:
        await broker.close()
        engine.dispose()
        raise
    return worker, schedulers, broker, engine
