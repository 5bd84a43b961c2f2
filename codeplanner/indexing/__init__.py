# FILE: codeplanner/indexing/__init__.py
from codeplanner.indexing.chunker import ChunkingStats, CodeChunker, chunking_stats, is_boundary_line
from codeplanner.indexing.extractor import ChunkExtractor, PythonChunkExtractor

__all__ = [
    "ChunkingStats",
    "CodeChunker",
    "chunking_stats",
    "is_boundary_line",
    "ChunkExtractor",
    "PythonChunkExtractor",
]
