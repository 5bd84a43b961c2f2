# FILE: codeplanner/llm/retry.py
"""
Throttling retry wrapper.

Applied around scheduler.schedule(), never inside it: each retry goes back
through the scheduler queue and takes a fresh slot.

    stream = await with_rate_limit_retry(
        lambda: planning.schedule(lambda: client.chat.completions.create(...), "chat"),
        label="chat.completions(stream)",
    )

Only throttling errors (HTTP 429) are retried. Anything else propagates on
the first failure. Exhausted retries raise RateLimited.
"""

import asyncio
import logging
import random
import re
from typing import Any, Awaitable, Callable, Optional, TypeVar

import openai

from codeplanner.errors import RateLimited

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 5
DEFAULT_BASE_DELAY = 0.5
DEFAULT_MAX_DELAY = 8.0
DEFAULT_MAX_JITTER = 0.25

_STATUS_429_RE = re.compile(r"\b429\b")


def is_throttling_error(error: BaseException) -> bool:
    """True for provider 429s, however the client library reports them."""
    if isinstance(error, RateLimited):
        # already exhausted its own retries
        return False
    if isinstance(error, openai.RateLimitError):
        return True
    has_status = False
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if value == 429 or value == "429":
            return True
        if isinstance(value, int) and not isinstance(value, bool):
            has_status = True
    # message text is only consulted when no HTTP status is attached
    return not has_status and bool(_STATUS_429_RE.search(str(error)))


def _header(headers: Any, name: str) -> Optional[str]:
    if headers is None:
        return None
    getter = getattr(headers, "get", None)
    if getter is None:
        return None
    return getter(name) or getter(name.title())


def retry_after_seconds(error: BaseException) -> Optional[float]:
    """Server-supplied Retry-After hint in seconds, if the error carries one."""
    candidates = [getattr(error, "headers", None)]
    response = getattr(error, "response", None)
    if response is not None:
        candidates.append(getattr(response, "headers", None))
    for headers in candidates:
        raw = _header(headers, "retry-after")
        if raw is None:
            continue
        try:
            value = float(raw)
        except (TypeError, ValueError):
            continue
        if value >= 0:
            return value
    return None


async def with_rate_limit_retry(
    call: Callable[[], Awaitable[T]],
    *,
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    max_jitter: float = DEFAULT_MAX_JITTER,
    label: Optional[str] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Await call(), retrying throttling failures with exponential backoff.

    Delay for attempt n (0-based) is min(max_delay, base_delay * 2**n), or the
    Retry-After hint when present, plus up to max_jitter of random jitter,
    capped at max_delay. At most `retries` retries (retries + 1 calls).
    """
    attempt = 0
    while True:
        try:
            return await call()
        except Exception as e:
            if not is_throttling_error(e):
                raise
            if attempt >= retries:
                logger.error(
                    "[retry] rate limited%s, giving up after %d attempts",
                    f" ({label})" if label else "", attempt + 1,
                )
                raise RateLimited(attempt + 1, label=label, last_error=e) from e

            hint = retry_after_seconds(e)
            delay = hint if hint is not None else min(max_delay, base_delay * (2 ** attempt))
            delay = min(max_delay, delay + random.random() * max_jitter)
            logger.warning(
                "[retry] rate limited (429)%s, retrying in %.2fs (attempt %d/%d)",
                f" ({label})" if label else "", delay, attempt + 1, retries,
            )
            await sleep(delay)
            attempt += 1
