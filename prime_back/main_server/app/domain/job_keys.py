# main_server/app/domain/job_keys.py
from __future__ import annotations

DEFAULT_KEY_PREFIX = "prime-job"


def make_job_id(limit: int) -> str:
    """Same limit -> same job id. This is the dedup key."""
    return f"limit-{int(limit)}"


def status_key(job_id: str, prefix: str = DEFAULT_KEY_PREFIX) -> str:
    return f"{prefix}:{job_id}:status"


def result_key(job_id: str, prefix: str = DEFAULT_KEY_PREFIX) -> str:
    return f"{prefix}:{job_id}:result"


def queue_key(prefix: str = DEFAULT_KEY_PREFIX) -> str:
    return f"{prefix}:queue"


def processing_key(prefix: str = DEFAULT_KEY_PREFIX) -> str:
    """Deliveries a worker has claimed but not acknowledged yet."""
    return f"{prefix}:processing"
