# main_server/app/domain/jobs_domain.py
from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


def now_ms() -> int:
    return int(time.time() * 1000)


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.FINISHED, JobState.ERROR)


@dataclass(frozen=True)
class JobStatus:
    """
    Mutable lifecycle of a job, stored as a whole record on every change.
    The enqueue side writes QUEUED once, the worker owns every write after that.
    """

    status: JobState
    job_id: str
    limit: int
    progress: float  # 0.0 ~ 1.0
    prime_count_so_far: int
    started_at: int
    updated_at: int
    error_message: Optional[str] = None

    @classmethod
    def queued(cls, *, job_id: str, limit: int) -> "JobStatus":
        now = now_ms()
        return cls(
            status=JobState.QUEUED,
            job_id=job_id,
            limit=limit,
            progress=0.0,
            prime_count_so_far=0,
            started_at=now,
            updated_at=now,
        )

    @classmethod
    def running(cls, *, job_id: str, limit: int, started_at: int) -> "JobStatus":
        return cls(
            status=JobState.RUNNING,
            job_id=job_id,
            limit=limit,
            progress=0.0,
            prime_count_so_far=0,
            started_at=started_at,
            updated_at=started_at,
        )

    def with_progress(self, *, progress: float, prime_count_so_far: int) -> "JobStatus":
        return replace(
            self,
            status=JobState.RUNNING,
            progress=progress,
            prime_count_so_far=prime_count_so_far,
            updated_at=now_ms(),
        )

    def finished(self, *, prime_count: int, finished_at: int) -> "JobStatus":
        return replace(
            self,
            status=JobState.FINISHED,
            progress=1.0,
            prime_count_so_far=prime_count,
            updated_at=finished_at,
            error_message=None,
        )

    def failed(self, *, error: str) -> "JobStatus":
        return replace(
            self,
            status=JobState.ERROR,
            progress=0.0,
            prime_count_so_far=0,
            updated_at=now_ms(),
            error_message=error,
        )


@dataclass(frozen=True)
class JobResult:
    """Terminal artifact. Only ever written for a successful run."""

    job_id: str
    limit: int
    prime_count: int
    duration_ms: int
    started_at: int
    finished_at: int
    status: JobState = JobState.FINISHED

    def to_status(self) -> JobStatus:
        return JobStatus(
            status=JobState.FINISHED,
            job_id=self.job_id,
            limit=self.limit,
            progress=1.0,
            prime_count_so_far=self.prime_count,
            started_at=self.started_at,
            updated_at=self.finished_at,
        )
