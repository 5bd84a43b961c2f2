# FILE: codeplanner/jobs/channels.py
"""Broker channel names shared by gateway and worker."""

JOBS_PENDING = "jobs:pending"
RESULTS_PREFIX = "results:"


def results_channel(job_id: str) -> str:
    return f"{RESULTS_PREFIX}{job_id}"
