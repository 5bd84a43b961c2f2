# FILE: codeplanner/jobs/__init__.py
"""Job envelopes and channel naming."""

from codeplanner.jobs.channels import JOBS_PENDING, results_channel
from codeplanner.jobs.schemas import (
    AnalyzeErrorJob,
    AnalyzeErrorPayload,
    Chunk,
    ChunkKind,
    ClientMessage,
    ClientMessageType,
    Command,
    ErrorPayload,
    IndexJob,
    IndexPayload,
    IndexStats,
    PlanJob,
    PlanPayload,
    ProgressInfo,
    RawJob,
    ResultEnvelope,
    ResultType,
    ScoredChunk,
    decode_job,
    parse_raw_job,
    to_typed_job,
)

__all__ = [
    "JOBS_PENDING",
    "results_channel",
    "AnalyzeErrorJob",
    "AnalyzeErrorPayload",
    "Chunk",
    "ChunkKind",
    "ClientMessage",
    "ClientMessageType",
    "Command",
    "ErrorPayload",
    "IndexJob",
    "IndexPayload",
    "IndexStats",
    "PlanJob",
    "PlanPayload",
    "ProgressInfo",
    "RawJob",
    "ResultEnvelope",
    "ResultType",
    "ScoredChunk",
    "decode_job",
    "parse_raw_job",
    "to_typed_job",
]
