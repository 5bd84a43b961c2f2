# FILE: tests/conftest.py
"""
Pytest configuration for the CodePlanner test suite.

Configures:
- pytest-asyncio for async test support
- in-memory SQLite similarity store
- in-process broker
- deterministic fake embedding / generation collaborators
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
import pytest_asyncio

pytest_plugins = ["pytest_asyncio"]


SAMPLE_MODULE = '''"""Sample service module."""

import os


def load_config(path):
    with open(path) as f:
        return f.read()


def save_config(path, data):
    with open(path, "w") as f:
        f.write(data)


async def fetch_user(user_id):
    return {"id": user_id}


class UserRepository:
    def __init__(self, db):
        self.db = db

    def get(self, user_id):
        return self.db.get(user_id)
'''


# =============================================================================
# FAKES
# =============================================================================

class FakeEmbedder:
    """
    Deterministic 3-d embeddings.

    Texts mentioning "config" point along x, "user" along y, anything else
    along z, so similarity ordering is predictable.
    """

    def __init__(self, batch_size: int = 2, delay: float = 0.0):
        self.batch_size = batch_size
        self.delay = delay
        self.queries: List[str] = []
        self.code_calls = 0

    @staticmethod
    def vector_for(text: str) -> List[float]:
        lowered = text.lower()
        return [
            1.0 if "config" in lowered else 0.0,
            1.0 if "user" in lowered else 0.0,
            0.5,
        ]

    async def embed(self, text: str) -> List[float]:
        self.queries.append(text)
        return self.vector_for(text)

    async def embed_code(self, contents, on_batch=None):
        self.code_calls += 1
        results = []
        for i in range(0, len(contents), self.batch_size):
            if self.delay:
                await asyncio.sleep(self.delay)
            results.extend(self.vector_for(c) for c in contents[i:i + self.batch_size])
            if on_batch is not None:
                await on_batch(len(results), len(contents))
        return results


class FakePlanner:
    def __init__(self, pieces: Optional[List[str]] = None, delay: float = 0.0):
        self.pieces = pieces if pieces is not None else ["## Plan\n", "1. Add cache", " layer\n", "2. Test it"]
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0

    async def generate_plan(self, query, context):
        self.calls.append((query, list(context)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            for piece in self.pieces:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield piece
        finally:
            self.active -= 1


class FakeDebugger:
    def __init__(self, pieces: Optional[List[str]] = None, fail_with: Optional[Exception] = None):
        self.pieces = pieces if pieces is not None else ["Root cause: ", "missing key"]
        self.fail_with = fail_with
        self.calls = []

    async def analyze_error(self, error, context, related, file_context=None):
        self.calls.append((error, context, list(related), file_context))
        if self.fail_with is not None:
            raise self.fail_with
        for piece in self.pieces:
            yield piece


class RecordingSender:
    """Stands in for a WebSocket: collects every text frame sent."""

    def __init__(self):
        self.sent: List[str] = []
        self.closed = False
        self.terminal = asyncio.Event()

    async def send_text(self, data: str) -> None:
        if self.closed:
            raise RuntimeError("WebSocket is closed")
        self.sent.append(data)
        if '"type":"response"' in data or '"type":"error"' in data:
            self.terminal.set()


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def session_factory():
    from codeplanner.db import init_db, make_engine, make_session_factory

    engine = make_engine("sqlite:///:memory:")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    from codeplanner.store.similarity import SimilarityStore
    return SimilarityStore(session_factory)


@pytest_asyncio.fixture
async def broker():
    from codeplanner.broker.memory import InMemoryBroker

    b = InMemoryBroker()
    await b.connect()
    yield b
    await b.close()


@pytest.fixture
def sample_project(tmp_path):
    """Project with 3 functions and 1 class in one module."""
    pkg = tmp_path / "service"
    pkg.mkdir()
    (pkg / "app.py").write_text(SAMPLE_MODULE)
    (pkg / "test_app.py").write_text("def test_nothing():\n    assert True\n")
    return tmp_path


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_planner():
    return FakePlanner()


@pytest.fixture
def fake_debugger():
    return FakeDebugger()


@pytest.fixture
def handlers(store, fake_embedder, fake_planner, fake_debugger):
    from codeplanner.indexing.extractor import PythonChunkExtractor
    from codeplanner.worker.handlers import JobHandlers

    return JobHandlers(
        store=store,
        embedder=fake_embedder,
        planner=fake_planner,
        debugger=fake_debugger,
        extractor=PythonChunkExtractor(),
    )


@pytest_asyncio.fixture
async def worker(broker, handlers):
    from codeplanner.worker.engine import JobWorker

    w = JobWorker(broker, handlers, max_concurrent_jobs=4)
    await w.start()
    yield w
    await w.stop()


@pytest.fixture
def make_job():
    from uuid import uuid4
    from codeplanner.jobs.schemas import RawJob

    def _make(command: str, data: dict, owner_id: str = "user1", project_id: str = "project1", job_id=None):
        return RawJob(
            job_id=job_id or str(uuid4()),
            connection_id="conn-test",
            owner_id=owner_id,
            project_id=project_id,
            command=command,
            data=data,
        )
    return _make


@pytest.fixture
def run_job(broker):
    """Publish a job and collect its results up to and including the terminal one."""
    from codeplanner.jobs.channels import JOBS_PENDING, results_channel
    from codeplanner.jobs.schemas import ResultEnvelope

    async def _run(job, timeout: float = 5.0):
        results = []
        sub = await broker.subscribe(results_channel(job.job_id))

        async def _read():
            async for raw in sub:
                result = ResultEnvelope.parse(raw)
                results.append(result)
                if result.is_terminal:
                    return

        await broker.publish(JOBS_PENDING, job.to_json())
        try:
            await asyncio.wait_for(_read(), timeout)
        finally:
            await sub.close()
        return results

    return _run
