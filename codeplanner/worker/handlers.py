# FILE: codeplanner/worker/handlers.py
"""
Command handlers: index, plan, analyze-error.

Each handler receives a typed job and its ResultPublisher, streams partial
results, and finishes with exactly one complete result. Exceptions
propagate to JobWorker, which turns them into the job's error result.

Collaborators are injected so tests can substitute fakes:
    extractor  .extract(project_path) -> List[Chunk]          (sync, run in a thread)
    embedder   .embed(text), .embed_code(contents, on_batch)
    planner    .generate_plan(query, context) -> async iterator of str
    debugger   .analyze_error(error, context, related, file_context) -> async iterator of str
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Type

from codeplanner.analysis.error_parser import ErrorParser, read_file_context
from codeplanner.config import ERROR_CONTEXT_CHUNKS, PLAN_CONTEXT_CHUNKS
from codeplanner.errors import HandlerFailure
from codeplanner.indexing.chunker import CodeChunker, chunking_stats
from codeplanner.indexing.extractor import ChunkExtractor
from codeplanner.jobs.schemas import AnalyzeErrorJob, IndexJob, IndexStats, PlanJob
from codeplanner.store.similarity import SimilarityStore
from codeplanner.worker.locks import KeyedLock
from codeplanner.worker.publisher import ResultPublisher

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[None]]


class JobHandlers:
    def __init__(
        self,
        store: SimilarityStore,
        embedder,
        planner,
        debugger,
        extractor: ChunkExtractor,
        chunker: Optional[CodeChunker] = None,
        error_parser: Optional[ErrorParser] = None,
        project_locks: Optional[KeyedLock] = None,
        plan_context_chunks: int = PLAN_CONTEXT_CHUNKS,
        error_context_chunks: int = ERROR_CONTEXT_CHUNKS,
    ):
        self.store = store
        self.embedder = embedder
        self.planner = planner
        self.debugger = debugger
        self.extractor = extractor
        self.chunker = chunker or CodeChunker()
        self.error_parser = error_parser or ErrorParser()
        self.project_locks = project_locks or KeyedLock()
        self.plan_context_chunks = plan_context_chunks
        self.error_context_chunks = error_context_chunks

    def registry(self) -> Dict[Type, Handler]:
        return {
            IndexJob: self.index,
            PlanJob: self.plan,
            AnalyzeErrorJob: self.analyze_error,
        }

    # =========================================================================
    # INDEX
    # =========================================================================

    async def index(self, job: IndexJob, out: ResultPublisher) -> None:
        project_path = job.data.project_path
        logger.info("[worker] Indexing %s for %s/%s", project_path, job.owner_id, job.project_id)

        extracted = await asyncio.to_thread(self.extractor.extract, project_path)
        chunks = self.chunker.chunk_all(extracted)
        total = len(chunks)
        split = chunking_stats(extracted, chunks)
        logger.info(
            "[worker] %d chunks extracted, %d after chunking (avg %d chars, largest %d)",
            split.original_count, split.chunked_count, split.average_chunk_size, split.largest_chunk,
        )

        key = (job.owner_id, job.project_id)
        async with self.project_locks.hold(key):
            await self.store.clear(job.owner_id, job.project_id)

            if total == 0:
                await out.progress(0, 0, "No code chunks found")
                stats = IndexStats()
            else:
                await out.progress(0, total, "Generating embeddings")

                async def on_batch(done: int, batch_total: int) -> None:
                    await out.progress(done, batch_total, "Generating embeddings")

                vectors = await self.embedder.embed_code([c.content for c in chunks], on_batch=on_batch)
                embedded = [c.model_copy(update={"embedding": v}) for c, v in zip(chunks, vectors)]
                await self.store.put_batch(job.owner_id, job.project_id, embedded)
                stats = await self.store.stats(job.owner_id, job.project_id)

        logger.info("[worker] Indexing completed: %d chunks stored", stats.total_chunks)
        await out.complete({
            "message": f"Successfully indexed {stats.total_chunks} code chunks",
            "stats": stats.to_wire(),
        })

    # =========================================================================
    # PLAN
    # =========================================================================

    async def plan(self, job: PlanJob, out: ResultPublisher) -> None:
        query = job.data.query
        logger.info("[worker] Generating plan for %s/%s", job.owner_id, job.project_id)

        vector = await self.embedder.embed(query)
        context = await self.store.search(job.owner_id, job.project_id, vector, self.plan_context_chunks)
        logger.info("[worker] Found %d relevant code chunks", len(context))

        async for text in self.planner.generate_plan(query, context):
            await out.chunk(text)
        await out.complete({"type": "complete"})

    # =========================================================================
    # ANALYZE ERROR
    # =========================================================================

    async def analyze_error(self, job: AnalyzeErrorJob, out: ResultPublisher) -> None:
        data = job.data
        errors = self.error_parser.parse_all(data.error_input, data.error_type)
        if not errors:
            raise HandlerFailure("Failed to parse error input")
        parsed = errors[0]
        if len(errors) > 1:
            groups = self.error_parser.group_errors(errors)
            logger.info("[worker] %d errors in %d groups, analyzing the first", len(errors), len(groups))
        context = self.error_parser.error_context(parsed)
        logger.info("[worker] Parsed error: %s - %s", parsed.type, parsed.message)

        vector = await self.embedder.embed(parsed.search_text())
        related = await self.store.search(job.owner_id, job.project_id, vector, self.error_context_chunks)

        file_context = None
        if data.project_path and parsed.file_path and parsed.line_number:
            file_context = await asyncio.to_thread(
                read_file_context, data.project_path, parsed.file_path, parsed.line_number
            )

        async for text in self.debugger.analyze_error(parsed, context, related, file_context):
            await out.chunk(text)
        await out.complete({"type": "complete"})
