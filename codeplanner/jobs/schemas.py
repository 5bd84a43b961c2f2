# FILE: codeplanner/jobs/schemas.py
"""
Job, result and client message envelopes.

Wire format is UTF-8 JSON with camelCase keys; Python attributes are
snake_case. The broker treats every envelope as an opaque string.

Job envelope (jobs:pending):
    {jobId, connectionId, ownerId, projectId, command, data}
Result envelope (results:<jobId>):
    {jobId, type: stream|complete|error, data, timestamp}
Client message (gateway <-> client):
    {type: stream|response|error, jobId, data}

Job payloads are a tagged union keyed by `command`. The gateway only builds
RawJob (no business validation); the worker narrows it with to_typed_job().
"""

from __future__ import annotations

import json
import time
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from codeplanner.errors import InvalidEnvelope, UnknownCommand


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# ENUMS
# =============================================================================

class ChunkKind(str, Enum):
    """Kind of indexed code fragment. FILE is the whole-file fallback."""
    FUNCTION = "function"
    CLASS = "class"
    FILE = "file"


class Command(str, Enum):
    INDEX = "index"
    PLAN = "plan"
    ANALYZE_ERROR = "analyze-error"


class ResultType(str, Enum):
    STREAM = "stream"
    COMPLETE = "complete"
    ERROR = "error"


class ClientMessageType(str, Enum):
    STREAM = "stream"
    RESPONSE = "response"
    ERROR = "error"


# =============================================================================
# CHUNKS
# =============================================================================

class Chunk(_WireModel):
    """
    Unit of indexed source text.

    Searchable only once `embedding` is set. `id` is stable within an
    (owner, project) scope.
    """
    id: str
    content: str
    kind: ChunkKind
    source_path: str
    name: Optional[str] = None
    embedding: Optional[List[float]] = None


class ScoredChunk(Chunk):
    """Search hit: a chunk annotated with cosine similarity in [-1, 1]."""
    similarity: float


# =============================================================================
# PAYLOADS
# =============================================================================

class IndexPayload(_WireModel):
    project_path: str


class PlanPayload(_WireModel):
    query: str = Field(min_length=1)
    project_path: Optional[str] = None


class AnalyzeErrorPayload(_WireModel):
    error_input: str = Field(min_length=1)
    error_type: Optional[Literal["compiler", "linter", "runtime"]] = None
    project_path: Optional[str] = None


class ProgressInfo(_WireModel):
    current: int
    total: int
    message: str
    percentage: int

    @classmethod
    def of(cls, current: int, total: int, message: str) -> "ProgressInfo":
        percentage = 100 if total <= 0 else round(current / total * 100)
        return cls(current=current, total=total, message=message, percentage=percentage)


class IndexStats(_WireModel):
    total_chunks: int = 0
    total_size: int = 0
    chunk_types: Dict[str, int] = Field(default_factory=dict)


class ErrorPayload(_WireModel):
    message: str
    stack: Optional[str] = None


# =============================================================================
# JOB ENVELOPES
# =============================================================================

class _JobBase(_WireModel):
    job_id: str = Field(min_length=1)
    connection_id: str
    owner_id: str
    project_id: str


class RawJob(_JobBase):
    """Job as published by the gateway: command and data are not interpreted."""
    command: str
    data: Dict[str, Any] = Field(default_factory=dict)


class IndexJob(_JobBase):
    command: Literal["index"] = "index"
    data: IndexPayload


class PlanJob(_JobBase):
    command: Literal["plan"] = "plan"
    data: PlanPayload


class AnalyzeErrorJob(_JobBase):
    command: Literal["analyze-error"] = "analyze-error"
    data: AnalyzeErrorPayload


Job = Annotated[Union[IndexJob, PlanJob, AnalyzeErrorJob], Field(discriminator="command")]

_JOB_ADAPTER: TypeAdapter = TypeAdapter(Job)
_KNOWN_COMMANDS = {c.value for c in Command}


def parse_raw_job(message: Union[str, bytes]) -> RawJob:
    """Decode the envelope header. Raises InvalidEnvelope when unusable."""
    try:
        return RawJob.model_validate_json(message)
    except PydanticValidationError as exc:
        job_id = _sniff_job_id(message)
        raise InvalidEnvelope(f"Invalid job envelope: {exc.error_count()} validation error(s)", job_id=job_id)


def to_typed_job(raw: RawJob) -> Union[IndexJob, PlanJob, AnalyzeErrorJob]:
    """Narrow a RawJob to its command variant."""
    if raw.command not in _KNOWN_COMMANDS:
        raise UnknownCommand(raw.command)
    try:
        return _JOB_ADAPTER.validate_python(raw.model_dump(by_alias=True))
    except PydanticValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise InvalidEnvelope(
            f"Invalid payload for command '{raw.command}': {fields}", job_id=raw.job_id
        )


def decode_job(message: Union[str, bytes]) -> Union[IndexJob, PlanJob, AnalyzeErrorJob]:
    return to_typed_job(parse_raw_job(message))


def _sniff_job_id(message: Union[str, bytes]) -> Optional[str]:
    try:
        data = json.loads(message)
    except (TypeError, ValueError):
        return None
    if isinstance(data, dict) and isinstance(data.get("jobId"), str) and data["jobId"]:
        return data["jobId"]
    return None


# =============================================================================
# RESULTS
# =============================================================================

def now_ms() -> int:
    return int(time.time() * 1000)


class ResultEnvelope(_WireModel):
    job_id: str
    type: ResultType
    data: Any = None
    timestamp: int = Field(default_factory=now_ms)

    @property
    def is_terminal(self) -> bool:
        return self.type in (ResultType.COMPLETE, ResultType.ERROR)

    @classmethod
    def parse(cls, message: Union[str, bytes]) -> "ResultEnvelope":
        try:
            return cls.model_validate_json(message)
        except PydanticValidationError as exc:
            raise InvalidEnvelope(f"Invalid result envelope: {exc.error_count()} validation error(s)")


_CLIENT_TYPE_FOR_RESULT = {
    ResultType.STREAM: ClientMessageType.STREAM,
    ResultType.COMPLETE: ClientMessageType.RESPONSE,
    ResultType.ERROR: ClientMessageType.ERROR,
}


class ClientMessage(_WireModel):
    type: ClientMessageType
    job_id: str
    data: Any = None

    @classmethod
    def from_result(cls, result: ResultEnvelope) -> "ClientMessage":
        return cls(type=_CLIENT_TYPE_FOR_RESULT[result.type], job_id=result.job_id, data=result.data)

    @classmethod
    def error(cls, message: str, job_id: str = "unknown") -> "ClientMessage":
        return cls(type=ClientMessageType.ERROR, job_id=job_id, data={"message": message})
