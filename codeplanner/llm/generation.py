# FILE: codeplanner/llm/generation.py
"""
Streaming text generation for plan and analyze-error jobs.

Only the request that opens the stream is scheduled (and retried); the
tokens are read outside the scheduler so a long response does not hold a
rate-limit slot.

All generators yield plain text fragments in arrival order. Errors while
reading the stream propagate to the caller.
"""

import logging
from typing import AsyncIterator, Dict, Optional, Sequence

import httpx
from openai import AsyncOpenAI

from codeplanner.analysis.error_parser import ErrorContext, ParsedError
from codeplanner.config import ProviderSettings
from codeplanner.jobs.schemas import Chunk
from codeplanner.llm import prompts
from codeplanner.llm.retry import with_rate_limit_retry
from codeplanner.llm.scheduler import RateLimitedScheduler

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4000


def _needs_max_completion_tokens(model: str) -> bool:
    """Reasoning-family OpenAI models reject max_tokens."""
    name = (model or "").lower().rsplit("/", 1)[-1]
    return name.startswith(("o1", "o3", "o4", "gpt-5"))


def _token_param(model: str, value: int) -> Dict[str, int]:
    if _needs_max_completion_tokens(model):
        return {"max_completion_tokens": value}
    return {"max_tokens": value}


class StreamingGenerator:
    """Chat-completion streaming through a shared planning scheduler."""

    role = "planning"

    def __init__(
        self,
        client: AsyncOpenAI,
        scheduler: RateLimitedScheduler,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        self.client = client
        self.scheduler = scheduler
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(
        cls,
        provider: ProviderSettings,
        scheduler: RateLimitedScheduler,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        # 429s are retried through the scheduler, not by the SDK
        client = AsyncOpenAI(
            api_key=provider.require_key(cls.role),
            base_url=provider.base_url,
            max_retries=0,
            http_client=http_client,
        )
        return cls(client, scheduler, model=provider.model, temperature=provider.temperature)

    async def stream_completion(
        self, system_prompt: str, user_prompt: str, label: Optional[str] = None
    ) -> AsyncIterator[str]:
        label = label or "chat.completions(stream)"
        create_kwargs = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": True,
            "temperature": self.temperature,
            **_token_param(self.model, self.max_tokens),
        }

        stream = await with_rate_limit_retry(
            lambda: self.scheduler.schedule(
                lambda: self.client.chat.completions.create(**create_kwargs),
                label,
            ),
            label=label,
        )

        async for chunk in stream:
            choices = getattr(chunk, "choices", None)
            if not choices:
                continue
            delta = getattr(choices[0], "delta", None)
            content = getattr(delta, "content", None) if delta is not None else None
            if content:
                yield content


class PlanGenerator(StreamingGenerator):
    role = "planning"

    def generate_plan(self, query: str, context: Sequence[Chunk]) -> AsyncIterator[str]:
        logger.info("[planner] Generating plan with %d context chunks", len(context))
        return self.stream_completion(
            prompts.PLAN_SYSTEM_PROMPT,
            prompts.build_plan_prompt(query, context),
            label="chat.completions(plan)",
        )


class ErrorDebugger(StreamingGenerator):
    role = "debug"

    def analyze_error(
        self,
        error: ParsedError,
        context: ErrorContext,
        related: Sequence[Chunk],
        file_context: Optional[str] = None,
    ) -> AsyncIterator[str]:
        logger.info(
            "[debugger] Analyzing %s error (%s) with %d related chunks",
            error.type, context.category, len(related),
        )
        return self.stream_completion(
            prompts.DEBUG_SYSTEM_PROMPT,
            prompts.build_debug_prompt(error, context, related, file_context),
            label="chat.completions(debug)",
        )
