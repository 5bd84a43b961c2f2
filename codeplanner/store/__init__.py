# FILE: codeplanner/store/__init__.py
"""Chunk persistence and cosine-similarity search."""

from codeplanner.store.models import ChunkRecord
from codeplanner.store.similarity import SimilarityStore, cosine_similarity

__all__ = ["ChunkRecord", "SimilarityStore", "cosine_similarity"]
