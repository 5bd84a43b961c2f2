# FILE: codeplanner/config.py
"""
Runtime configuration for gateway and worker processes.

All tunables in one place. Values come from the environment (a .env file is
loaded by the process entry points). Components never read os.environ
themselves; they receive a Settings instance or the individual values.

Credential lookup follows a fallback chain so one key can serve every
provider role:
    EMBEDDING_API_KEY -> OPENAI_API_KEY -> OPENROUTER_API_KEY
    PLANNING_API_KEY  -> OPENAI_API_KEY -> OPENROUTER_API_KEY
    DEBUG_API_KEY     -> planning key
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from codeplanner.errors import ConfigurationError


# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_REDIS_URL = "redis://localhost:6379"
DEFAULT_DATABASE_URL = "sqlite:///./data/codeplanner_vectors.db"

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_PLANNING_MODEL = "gpt-4-turbo-preview"

EMBEDDING_BATCH_SIZE = 20
EMBEDDING_RPM = 3000  # OpenAI tier limit
PLANNING_RPM = 20

PLAN_CONTEXT_CHUNKS = 15
ERROR_CONTEXT_CHUNKS = 10

MAX_CONCURRENT_JOBS = 4


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


# =============================================================================
# SETTINGS
# =============================================================================

@dataclass
class ProviderSettings:
    """Credentials and model for one OpenAI-compatible provider role."""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: str = DEFAULT_PLANNING_MODEL
    temperature: float = 0.3

    def require_key(self, role: str) -> str:
        if not self.api_key:
            raise ConfigurationError(
                f"Missing {role} API key. Set {role.upper()}_API_KEY or OPENAI_API_KEY or OPENROUTER_API_KEY"
            )
        return self.api_key


@dataclass
class Settings:
    """Application settings grouped by concern."""
    redis_url: str = DEFAULT_REDIS_URL
    broker_backend: str = "redis"
    database_url: str = DEFAULT_DATABASE_URL

    embedding: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(model=DEFAULT_EMBEDDING_MODEL)
    )
    planning: ProviderSettings = field(default_factory=ProviderSettings)
    debug: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(temperature=0.2)
    )

    embedding_batch_size: int = EMBEDDING_BATCH_SIZE
    embedding_rpm: int = EMBEDDING_RPM
    planning_rpm: int = PLANNING_RPM
    plan_context_chunks: int = PLAN_CONTEXT_CHUNKS
    error_context_chunks: int = ERROR_CONTEXT_CHUNKS

    max_concurrent_jobs: int = MAX_CONCURRENT_JOBS
    job_timeout_seconds: float = 0.0

    gateway_host: str = "0.0.0.0"
    gateway_port: int = 3000
    default_owner_id: str = "user1"
    default_project_id: str = "project1"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment with sane defaults for local development."""
        planning = ProviderSettings(
            api_key=_first_env("PLANNING_API_KEY", "OPENAI_API_KEY", "OPENROUTER_API_KEY"),
            base_url=_first_env("PLANNING_BASE_URL", "LLM_BASE_URL", "OPENAI_BASE_URL"),
            model=os.getenv("PLANNING_MODEL", DEFAULT_PLANNING_MODEL),
            temperature=_float_env("TEMPERATURE", 0.3),
        )
        return cls(
            redis_url=os.getenv("REDIS_URL", DEFAULT_REDIS_URL),
            broker_backend=os.getenv("CODEPLANNER_BROKER", "redis").strip().lower(),
            database_url=os.getenv("CODEPLANNER_DATABASE_URL", DEFAULT_DATABASE_URL),
            embedding=ProviderSettings(
                api_key=_first_env("EMBEDDING_API_KEY", "OPENAI_API_KEY", "OPENROUTER_API_KEY"),
                base_url=_first_env("EMBEDDING_BASE_URL", "LLM_BASE_URL", "OPENAI_BASE_URL"),
                model=os.getenv("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            ),
            planning=planning,
            debug=ProviderSettings(
                api_key=_first_env("DEBUG_API_KEY") or planning.api_key,
                base_url=_first_env("DEBUG_BASE_URL") or planning.base_url,
                model=os.getenv("DEBUG_MODEL", planning.model),
                temperature=_float_env("TEMPERATURE", 0.2),
            ),
            embedding_batch_size=max(1, _int_env("BATCH_SIZE", EMBEDDING_BATCH_SIZE)),
            embedding_rpm=max(1, _int_env("EMBEDDING_RPM", EMBEDDING_RPM)),
            planning_rpm=max(1, _int_env("RPM", PLANNING_RPM)),
            plan_context_chunks=_int_env("MAX_CONTEXT_CHUNKS", PLAN_CONTEXT_CHUNKS),
            error_context_chunks=_int_env("ERROR_CONTEXT_CHUNKS", ERROR_CONTEXT_CHUNKS),
            max_concurrent_jobs=max(1, _int_env("MAX_CONCURRENT_JOBS", MAX_CONCURRENT_JOBS)),
            job_timeout_seconds=_float_env("JOB_TIMEOUT_SECONDS", 0.0),
            gateway_host=os.getenv("GATEWAY_HOST", "0.0.0.0"),
            gateway_port=_int_env("GATEWAY_PORT", 3000),
            default_owner_id=os.getenv("CODEPLANNER_DEFAULT_OWNER", "user1"),
            default_project_id=os.getenv("CODEPLANNER_DEFAULT_PROJECT", "project1"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
