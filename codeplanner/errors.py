# FILE: codeplanner/errors.py
"""
Error taxonomy for the CodePlanner pipeline.

Every failure path ends in one of these types. Library errors are translated
at the seam that owns them:
- SQLAlchemy errors  -> StoreUnavailable   (codeplanner.store)
- redis errors       -> BrokerUnavailable  (codeplanner.broker)
- provider 429s      -> RateLimited        (codeplanner.llm.retry, after retries)
"""

from typing import Optional


class CodePlannerError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(CodePlannerError):
    """Required configuration (API keys, URLs) is missing or invalid."""


class GatewayConnectionError(CodePlannerError):
    """Transport-level failure between Gateway and a client connection."""


class BrokerUnavailable(CodePlannerError):
    """Publish/subscribe against the broker failed."""


class StoreUnavailable(CodePlannerError):
    """Similarity store I/O failed. Callers must not assume partial success."""


class InvalidEnvelope(CodePlannerError):
    """A job or result envelope could not be decoded or failed validation."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id


class UnknownCommand(CodePlannerError):
    """Job carried a command with no registered handler."""

    def __init__(self, command: str):
        super().__init__(f"Unknown command: {command}")
        self.command = command


class HandlerFailure(CodePlannerError):
    """Uncaught exception inside a job handler."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


RATE_LIMIT_GUIDANCE = (
    "You have hit the model provider's rate limit (429 Too Many Requests).\n"
    "- Wait a few minutes and try again.\n"
    "- Check your usage and quota with your provider.\n"
    "- Consider using a different API key or provider.\n"
    "- Reduce request frequency if automating."
)


class RateLimited(CodePlannerError):
    """Throttling retries were exhausted. Message is user-visible guidance."""

    def __init__(self, attempts: int, label: Optional[str] = None, last_error: Optional[BaseException] = None):
        what = f" for {label}" if label else ""
        super().__init__(
            f"Rate limited{what} after {attempts} attempts.\n\n{RATE_LIMIT_GUIDANCE}"
        )
        self.attempts = attempts
        self.label = label
        self.last_error = last_error
