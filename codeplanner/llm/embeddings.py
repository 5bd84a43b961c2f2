# FILE: codeplanner/llm/embeddings.py
"""
Embedding generation for code chunks.

Every provider call goes through the injected "embedding" scheduler and is
wrapped in the throttling retry. Texts are normalized and prefixed with a
context marker before embedding.
"""

import logging
import re
from typing import Awaitable, Callable, List, Optional, Sequence

import httpx
from openai import AsyncOpenAI

from codeplanner.config import ProviderSettings
from codeplanner.llm.retry import with_rate_limit_retry
from codeplanner.llm.scheduler import RateLimitedScheduler

logger = logging.getLogger(__name__)

MAX_EMBEDDING_CHARS = 30000  # ~8k tokens at 4 chars/token
TRUNCATION_MARKER = "... [truncated]"

_WHITESPACE_RE = re.compile(r"\s+")

# on_batch(embedded_so_far, total)
BatchCallback = Callable[[int, int], Awaitable[None]]


def prepare_code_for_embedding(code: str) -> str:
    """Collapse whitespace and add a context marker."""
    prepared = _WHITESPACE_RE.sub(" ", code).strip()
    if "function " in prepared or "def " in prepared:
        return f"function code: {prepared}"
    if "class " in prepared:
        return f"class definition: {prepared}"
    if "interface " in prepared:
        return f"interface definition: {prepared}"
    return f"code file: {prepared}"


def truncate_text(text: str, max_chars: int = MAX_EMBEDDING_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


class EmbeddingGenerator:
    """
    Usage:
        gen = EmbeddingGenerator(AsyncOpenAI(api_key=...), scheduler)
        vectors = await gen.embed_texts(texts, on_batch=report_progress)
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        scheduler: RateLimitedScheduler,
        model: str = "text-embedding-3-small",
        batch_size: int = 20,
    ):
        self.client = client
        self.scheduler = scheduler
        self.model = model
        self.batch_size = max(1, batch_size)

    @classmethod
    def from_settings(
        cls,
        provider: ProviderSettings,
        scheduler: RateLimitedScheduler,
        batch_size: int,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "EmbeddingGenerator":
        # 429s are retried through the scheduler, not by the SDK
        client = AsyncOpenAI(
            api_key=provider.require_key("embedding"),
            base_url=provider.base_url,
            max_retries=0,
            http_client=http_client,
        )
        return cls(client, scheduler, model=provider.model, batch_size=batch_size)

    async def _create(self, inputs: List[str]) -> List[List[float]]:
        label = f"embeddings.create({len(inputs)})"
        response = await with_rate_limit_retry(
            lambda: self.scheduler.schedule(
                lambda: self.client.embeddings.create(model=self.model, input=inputs),
                label,
            ),
            label=label,
        )
        data = sorted(response.data, key=lambda d: d.index)
        if len(data) != len(inputs):
            raise ValueError(f"Provider returned {len(data)} embeddings for {len(inputs)} inputs")
        return [list(d.embedding) for d in data]

    async def embed(self, text: str) -> List[float]:
        """Embed a query string (no code marker)."""
        vectors = await self._create([truncate_text(text)])
        return vectors[0]

    async def embed_texts(
        self,
        texts: Sequence[str],
        on_batch: Optional[BatchCallback] = None,
    ) -> List[List[float]]:
        """Embed texts in batches of batch_size, calling on_batch after each."""
        results: List[List[float]] = []
        total = len(texts)
        batches = (total + self.batch_size - 1) // self.batch_size
        for i in range(0, total, self.batch_size):
            batch = [truncate_text(t) for t in texts[i:i + self.batch_size]]
            logger.info(
                "[embeddings] Generating embeddings for batch %d/%d",
                i // self.batch_size + 1, batches,
            )
            results.extend(await self._create(batch))
            if on_batch is not None:
                await on_batch(len(results), total)
        return results

    async def embed_code(
        self,
        contents: Sequence[str],
        on_batch: Optional[BatchCallback] = None,
    ) -> List[List[float]]:
        return await self.embed_texts([prepare_code_for_embedding(c) for c in contents], on_batch)
