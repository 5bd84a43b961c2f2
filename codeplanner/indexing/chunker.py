# FILE: codeplanner/indexing/chunker.py
"""
Code Chunker — splits oversized chunks into bounded sub-chunks.

A chunk within both limits (max_lines, max_chars) is returned unchanged.
Otherwise:

    boundary mode (default)
        Accumulate lines; start a new sub-chunk before a declaration line
        (def / class / function / interface / type), when the line limit is
        reached, or when the next line would exceed max_chars. Each new
        sub-chunk starts with the last `overlap_lines` lines of the previous
        one, trimmed from the front to at most a quarter of max_chars and so
        that the first fresh line still fits.
    line mode
        Sliding window of max_lines advancing by max_lines - overlap_lines.

Sub-chunk ids are "<parent id>:chunk:<n>", names "<name>_chunk_<n>".
A single line longer than max_chars is kept whole.
"""

import logging
from dataclasses import dataclass
from typing import List

from codeplanner.jobs.schemas import Chunk

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINES = 100
DEFAULT_MAX_CHARS = 5000
DEFAULT_OVERLAP_LINES = 5
OVERLAP_CHAR_DIVISOR = 4  # carried overlap is at most max_chars // 4

_BOUNDARY_PREFIXES = (
    # Python
    "def ",
    "async def ",
    "class ",
    # TypeScript / JavaScript
    "function ",
    "async function ",
    "export function ",
    "export async function ",
    "export default function ",
    "export class ",
    "interface ",
    "export interface ",
    "type ",
    "export type ",
)


def is_boundary_line(line: str) -> bool:
    trimmed = line.strip()
    if trimmed.startswith(_BOUNDARY_PREFIXES):
        return True
    if trimmed.startswith("const ") and ("= function" in trimmed or "= async function" in trimmed):
        return True
    return False


@dataclass
class ChunkingStats:
    original_count: int
    chunked_count: int
    average_chunk_size: int
    largest_chunk: int
    smallest_chunk: int


class CodeChunker:
    def __init__(
        self,
        max_lines: int = DEFAULT_MAX_LINES,
        max_chars: int = DEFAULT_MAX_CHARS,
        overlap_lines: int = DEFAULT_OVERLAP_LINES,
        preserve_boundaries: bool = True,
    ):
        if max_lines < 1 or max_chars < 1:
            raise ValueError("max_lines and max_chars must be positive")
        if not 0 <= overlap_lines < max_lines:
            raise ValueError("overlap_lines must be >= 0 and smaller than max_lines")
        self.max_lines = max_lines
        self.max_chars = max_chars
        self.overlap_lines = overlap_lines
        self.preserve_boundaries = preserve_boundaries

    def is_small_enough(self, chunk: Chunk) -> bool:
        return (
            len(chunk.content.split("\n")) <= self.max_lines
            and len(chunk.content) <= self.max_chars
        )

    def chunk(self, chunk: Chunk) -> List[Chunk]:
        if self.is_small_enough(chunk):
            return [chunk]
        lines = chunk.content.split("\n")
        if self.preserve_boundaries:
            pieces = self._split_by_boundaries(lines)
        else:
            pieces = self._split_by_lines(lines)
        return [self._sub_chunk(chunk, n, piece) for n, piece in enumerate(pieces)]

    def chunk_all(self, chunks: List[Chunk]) -> List[Chunk]:
        result: List[Chunk] = []
        for c in chunks:
            result.extend(self.chunk(c))
        if len(result) != len(chunks):
            logger.info("[chunker] split %d chunks into %d", len(chunks), len(result))
        return result

    # =========================================================================
    # SPLITTING
    # =========================================================================

    def _carry(self, current: List[str]) -> List[str]:
        carried = current[-self.overlap_lines:] if self.overlap_lines else []
        budget = self.max_chars // OVERLAP_CHAR_DIVISOR
        while carried and sum(len(l) + 1 for l in carried) > budget:
            carried.pop(0)
        return carried

    def _split_by_boundaries(self, lines: List[str]) -> List[List[str]]:
        pieces: List[List[str]] = []
        current: List[str] = []
        fresh = 0  # lines in `current` not carried over from the previous piece
        chars = 0

        for line in lines:
            line_chars = len(line) + 1
            if fresh > 0 and (is_boundary_line(line) or chars + line_chars > self.max_chars):
                pieces.append(current)
                current = self._carry(current)
                fresh = 0
                chars = sum(len(l) + 1 for l in current)

            if fresh == 0:
                while current and chars + line_chars > self.max_chars:
                    chars -= len(current.pop(0)) + 1

            current.append(line)
            fresh += 1
            chars += line_chars

            if len(current) >= self.max_lines:
                pieces.append(current)
                current = self._carry(current)
                fresh = 0
                chars = sum(len(l) + 1 for l in current)

        if fresh > 0:
            pieces.append(current)
        return pieces

    def _split_by_lines(self, lines: List[str]) -> List[List[str]]:
        pieces: List[List[str]] = []
        step = self.max_lines - self.overlap_lines
        start = 0
        while start < len(lines):
            end = min(start + self.max_lines, len(lines))
            pieces.append(lines[start:end])
            if end == len(lines):
                break
            start += step
        return pieces

    def _sub_chunk(self, parent: Chunk, n: int, lines: List[str]) -> Chunk:
        return Chunk(
            id=f"{parent.id}:chunk:{n}",
            content="\n".join(lines),
            kind=parent.kind,
            source_path=parent.source_path,
            name=f"{parent.name}_chunk_{n}" if parent.name else None,
        )


def chunking_stats(original: List[Chunk], chunked: List[Chunk]) -> ChunkingStats:
    sizes = [len(c.content) for c in chunked]
    if not sizes:
        return ChunkingStats(len(original), 0, 0, 0, 0)
    return ChunkingStats(
        original_count=len(original),
        chunked_count=len(chunked),
        average_chunk_size=round(sum(sizes) / len(sizes)),
        largest_chunk=max(sizes),
        smallest_chunk=min(sizes),
    )
