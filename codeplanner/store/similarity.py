# FILE: codeplanner/store/similarity.py
"""
Similarity store: chunk persistence and brute-force cosine search.

Scoped by (owner_id, project_id). Search is a linear scan over every chunk
in the scope; there is no approximate index. Ties keep insertion order.

All database work runs in a thread via asyncio.to_thread so the event loop
is never blocked. Any SQLAlchemy failure surfaces as StoreUnavailable.
"""

import asyncio
import json
import logging
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from codeplanner.errors import StoreUnavailable
from codeplanner.jobs.schemas import Chunk, ChunkKind, IndexStats, ScoredChunk
from codeplanner.store.models import ChunkRecord

logger = logging.getLogger(__name__)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors. 0.0 for mismatched or zero vectors."""
    if len(vec_a) != len(vec_b) or len(vec_a) == 0:
        return 0.0
    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def _cosine_scores(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.zeros(len(matrix), dtype=np.float64)
    nonzero = norms > 0
    scores[nonzero] = dots[nonzero] / norms[nonzero]
    # float rounding can push an identical vector to 1.0000000000000002
    return np.clip(scores, -1.0, 1.0)


def _to_chunk(record: ChunkRecord, with_embedding: bool = True) -> Chunk:
    return Chunk(
        id=record.chunk_id,
        content=record.content,
        kind=ChunkKind(record.kind),
        source_path=record.source_path,
        name=record.name,
        embedding=json.loads(record.embedding) if with_embedding else None,
    )


class SimilarityStore:
    """
    Async facade over the chunks table.

    Usage:
        store = SimilarityStore(make_session_factory(engine))
        await store.put_batch("user1", "project1", chunks)
        hits = await store.search("user1", "project1", query_vector, k=15)
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # =========================================================================
    # WRITE
    # =========================================================================

    async def put(self, owner_id: str, project_id: str, chunk: Chunk) -> None:
        await self.put_batch(owner_id, project_id, [chunk])

    async def put_batch(self, owner_id: str, project_id: str, chunks: Iterable[Chunk]) -> int:
        """Store chunks in one transaction, overwriting any with the same id."""
        chunks = list(chunks)
        missing = [c.id for c in chunks if not c.embedding]
        if missing:
            raise ValueError(f"Chunks without embedding cannot be stored: {', '.join(missing[:5])}")
        if not chunks:
            return 0
        return await self._run(self._put_batch_sync, owner_id, project_id, chunks)

    async def clear(self, owner_id: str, project_id: str) -> int:
        """Remove every chunk in the scope. Idempotent."""
        return await self._run(self._clear_sync, owner_id, project_id)

    # =========================================================================
    # READ
    # =========================================================================

    async def search(
        self,
        owner_id: str,
        project_id: str,
        query_vector: Sequence[float],
        k: int,
    ) -> List[ScoredChunk]:
        """
        Up to k chunks ranked by descending cosine similarity.

        An empty or never-indexed scope yields [] rather than an error.
        """
        if k <= 0:
            return []
        return await self._run(self._search_sync, owner_id, project_id, list(query_vector), k)

    async def stats(self, owner_id: str, project_id: str) -> IndexStats:
        return await self._run(self._stats_sync, owner_id, project_id)

    async def get(self, owner_id: str, project_id: str, chunk_id: str) -> Optional[Chunk]:
        return await self._run(self._get_sync, owner_id, project_id, chunk_id)

    # =========================================================================
    # SYNC IMPLEMENTATION
    # =========================================================================

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            logger.error("[store] %s failed: %s", fn.__name__.strip("_"), e)
            raise StoreUnavailable(f"Similarity store unavailable: {e.__class__.__name__}") from e

    def _scope(self, session: Session, owner_id: str, project_id: str):
        return session.query(ChunkRecord).filter(
            ChunkRecord.owner_id == owner_id,
            ChunkRecord.project_id == project_id,
        )

    def _put_batch_sync(self, owner_id: str, project_id: str, chunks: List[Chunk]) -> int:
        with self._session_factory() as session, session.begin():
            ids = [c.id for c in chunks]
            existing = {
                r.chunk_id: r
                for r in self._scope(session, owner_id, project_id)
                .filter(ChunkRecord.chunk_id.in_(ids))
                .all()
            }
            for chunk in chunks:
                record = existing.get(chunk.id)
                if record is None:
                    record = ChunkRecord(owner_id=owner_id, project_id=project_id, chunk_id=chunk.id)
                    session.add(record)
                    existing[chunk.id] = record
                record.kind = ChunkKind(chunk.kind).value
                record.source_path = chunk.source_path
                record.name = chunk.name
                record.content = chunk.content
                record.embedding = json.dumps(list(chunk.embedding))
        logger.debug("[store] put %d chunks into %s/%s", len(chunks), owner_id, project_id)
        return len(chunks)

    def _clear_sync(self, owner_id: str, project_id: str) -> int:
        with self._session_factory() as session, session.begin():
            count = self._scope(session, owner_id, project_id).delete(synchronize_session=False)
        logger.info("[store] cleared %d chunks from %s/%s", count, owner_id, project_id)
        return count

    def _search_sync(
        self, owner_id: str, project_id: str, query_vector: List[float], k: int
    ) -> List[ScoredChunk]:
        with self._session_factory() as session:
            records = self._scope(session, owner_id, project_id).order_by(ChunkRecord.id).all()

        if not records:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        vectors = [json.loads(r.embedding) for r in records]

        # Mismatched dimensions score 0.0 instead of failing the whole scan
        if all(len(v) == len(query) for v in vectors):
            scores = _cosine_scores(query, np.asarray(vectors, dtype=np.float64))
        else:
            scores = np.asarray([cosine_similarity(query_vector, v) for v in vectors])

        order = np.argsort(-scores, kind="stable")[:k]
        results = []
        for i in order:
            chunk = _to_chunk(records[i])
            results.append(ScoredChunk(**chunk.model_dump(), similarity=float(scores[i])))
        return results

    def _stats_sync(self, owner_id: str, project_id: str) -> IndexStats:
        with self._session_factory() as session:
            rows = (
                session.query(
                    ChunkRecord.kind,
                    func.count(ChunkRecord.id),
                    func.coalesce(func.sum(func.length(ChunkRecord.content)), 0),
                )
                .filter(ChunkRecord.owner_id == owner_id, ChunkRecord.project_id == project_id)
                .group_by(ChunkRecord.kind)
                .all()
            )
        chunk_types: Dict[str, int] = {}
        total_chunks = 0
        total_size = 0
        for kind, count, size in rows:
            chunk_types[kind] = int(count)
            total_chunks += int(count)
            total_size += int(size or 0)
        return IndexStats(total_chunks=total_chunks, total_size=total_size, chunk_types=chunk_types)

    def _get_sync(self, owner_id: str, project_id: str, chunk_id: str) -> Optional[Chunk]:
        with self._session_factory() as session:
            record = (
                self._scope(session, owner_id, project_id)
                .filter(ChunkRecord.chunk_id == chunk_id)
                .first()
            )
        return _to_chunk(record) if record else None
