# FILE: codeplanner/indexing/extractor.py
"""
Chunk extraction — turns a project directory into named code fragments.

The worker depends only on the ChunkExtractor protocol; any extractor can
be injected. PythonChunkExtractor is the default: one chunk per top-level
function and class, one whole-file chunk for files that define neither.

Chunk ids (stable across re-index):
    func:<relative path>:<name>
    class:<relative path>:<name>
    file:<relative path>
"""

from __future__ import annotations

import ast
import logging
import os
from typing import List, Protocol

from codeplanner.jobs.schemas import Chunk, ChunkKind

logger = logging.getLogger(__name__)

SKIP_DIRS = {
    "node_modules", "__pycache__", "venv", "env", ".venv",
    "build", "dist", "site-packages",
}
MAX_FILE_BYTES = 1_000_000


class ChunkExtractor(Protocol):
    def extract(self, project_path: str) -> List[Chunk]:
        ...


def _is_test_file(name: str) -> bool:
    return name.startswith("test_") or name.endswith("_test.py") or name == "conftest.py"


class PythonChunkExtractor:
    """Extract top-level functions and classes from every .py file under a project."""

    def __init__(self, include_tests: bool = False):
        self.include_tests = include_tests

    def iter_source_files(self, project_path: str) -> List[str]:
        files = []
        for root, dirs, names in os.walk(project_path):
            dirs[:] = sorted(d for d in dirs if not d.startswith(".") and d not in SKIP_DIRS)
            for name in sorted(names):
                if not name.endswith(".py"):
                    continue
                if not self.include_tests and _is_test_file(name):
                    continue
                files.append(os.path.join(root, name))
        return files

    def extract(self, project_path: str) -> List[Chunk]:
        if not os.path.isdir(project_path):
            raise FileNotFoundError(f"Project path does not exist: {project_path}")

        chunks: List[Chunk] = []
        for path in self.iter_source_files(project_path):
            rel = os.path.relpath(path, project_path).replace(os.sep, "/")
            try:
                if os.path.getsize(path) > MAX_FILE_BYTES:
                    logger.warning("[extractor] Skipping %s: file too large", rel)
                    continue
                with open(path, "r", encoding="utf-8") as f:
                    source = f.read()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("[extractor] Skipping %s: %s", rel, e)
                continue
            chunks.extend(self.extract_source(source, rel))

        logger.info("[extractor] Extracted %d chunks from %s", len(chunks), project_path)
        return chunks

    def extract_source(self, source: str, rel_path: str) -> List[Chunk]:
        """Chunks for one file's source text. Unparseable files yield []."""
        try:
            tree = ast.parse(source)
        except SyntaxError as e:
            logger.warning("[extractor] AST parse failed for %s: %s", rel_path, e)
            return []

        lines = source.splitlines()
        chunks: List[Chunk] = []
        for node in tree.body:
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                kind, prefix = ChunkKind.FUNCTION, "func"
            elif isinstance(node, ast.ClassDef):
                kind, prefix = ChunkKind.CLASS, "class"
            else:
                continue
            start = min([d.lineno for d in node.decorator_list] + [node.lineno])
            end = getattr(node, "end_lineno", None) or node.lineno
            chunks.append(Chunk(
                id=f"{prefix}:{rel_path}:{node.name}",
                content="\n".join(lines[start - 1:end]),
                kind=kind,
                source_path=rel_path,
                name=node.name,
            ))

        if not chunks and source.strip():
            chunks.append(Chunk(
                id=f"file:{rel_path}",
                content=source,
                kind=ChunkKind.FILE,
                source_path=rel_path,
                name=os.path.basename(rel_path),
            ))
        return chunks
