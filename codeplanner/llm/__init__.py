# FILE: codeplanner/llm/__init__.py
"""Provider access: scheduling, throttling retry, embeddings and streaming generation."""

from codeplanner.llm.embeddings import EmbeddingGenerator
from codeplanner.llm.generation import ErrorDebugger, PlanGenerator, StreamingGenerator
from codeplanner.llm.retry import is_throttling_error, retry_after_seconds, with_rate_limit_retry
from codeplanner.llm.scheduler import RateLimitedScheduler

__all__ = [
    "EmbeddingGenerator",
    "ErrorDebugger",
    "PlanGenerator",
    "StreamingGenerator",
    "RateLimitedScheduler",
    "is_throttling_error",
    "retry_after_seconds",
    "with_rate_limit_retry",
]
