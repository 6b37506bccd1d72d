# application/usecases/get_job_usecase.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from prime_back.main_server.app.application.job_store import JobStore
from prime_back.main_server.app.domain.errors_domain import JobNotFoundError
from prime_back.main_server.app.domain.jobs_domain import JobResult, JobState, JobStatus


@dataclass(frozen=True)
class JobView:
    job_id: str
    status: JobState
    progress: float
    prime_count_so_far: int
    result: Optional[JobResult] = None
    raw_status: Optional[JobStatus] = None


"""
    read status + result and merge them into one view
    either record may have expired before the other, so each field
    falls back to whatever the other record knows
"""
@dataclass(frozen=True)
class GetJobStatusUseCase:
    job_store: JobStore

    async def execute(self, job_id: str) -> JobView:
        status, result = await asyncio.gather(
            self.job_store.get_status(job_id),
            self.job_store.get_result(job_id),
        )
        if status is None and result is None:
            raise JobNotFoundError(job_id)

        if status is not None:
            return JobView(
                job_id=job_id,
                status=status.status,
                progress=status.progress,
                prime_count_so_far=status.prime_count_so_far,
                result=result,
                raw_status=status,
            )

        return JobView(
            job_id=job_id,
            status=result.status,
            progress=1.0 if result.status == JobState.FINISHED else 0.0,
            prime_count_so_far=result.prime_count,
            result=result,
        )
