# main_server/app/application/usecases/enqueue_job_usecase.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from prime_back.main_server.app.application.job_store import JobStore
from prime_back.main_server.app.application.ports.dispatcher_port import Dispatcher, JobDelivery
from prime_back.main_server.app.domain.errors_domain import DispatchError, InvalidLimitError
from prime_back.main_server.app.domain.job_keys import make_job_id
from prime_back.main_server.app.domain.jobs_domain import JobResult, JobState, JobStatus
from prime_back.main_server.app.domain.primes_domain import MIN_LIMIT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnqueueOutcome:
    job_id: str
    from_cache: bool
    status: JobState
    progress: Optional[float] = None
    result: Optional[JobResult] = None


@dataclass(frozen=True)
class EnqueuePrimeJobUseCase:
    """
    Request-facing entry point. In order:
      1) cached finished result  -> return it, no new work
      2) live (non-error) status -> report it, no second dispatch
      3) otherwise               -> write QUEUED, dispatch once

    Steps 2 and 3 are read-then-write without a lock, so two callers racing
    on the same limit may both dispatch. The worker tolerates that.
    """

    job_store: JobStore
    dispatcher: Dispatcher
    queued_ttl_seconds: int = 60 * 10

    async def execute(self, *, limit: int) -> EnqueueOutcome:
        if limit is None or limit < MIN_LIMIT:
            raise InvalidLimitError(limit or 0)

        job_id = make_job_id(limit)

        cached = await self.job_store.get_result(job_id)
        if cached is not None and cached.status == JobState.FINISHED:
            logger.debug("cache hit for %s", job_id)
            return EnqueueOutcome(
                job_id=job_id,
                from_cache=True,
                status=JobState.FINISHED,
                result=cached,
            )

        existing = await self.job_store.get_status(job_id)
        if existing is not None and existing.status != JobState.ERROR:
            logger.debug("job %s already %s, not dispatching", job_id, existing.status.value)
            return EnqueueOutcome(
                job_id=job_id,
                from_cache=False,
                status=existing.status,
                progress=existing.progress,
            )

        # orphaned QUEUED records expire so a lost dispatch never blocks retries
        await self.job_store.save_status(
            JobStatus.queued(job_id=job_id, limit=limit),
            ttl_seconds=self.queued_ttl_seconds,
        )

        try:
            await self.dispatcher.dispatch(JobDelivery(job_id=job_id, limit=limit))
        except DispatchError:
            logger.error("dispatch failed for %s", job_id)
            raise
        except Exception as e:
            logger.exception("dispatch failed for %s", job_id)
            raise DispatchError(job_id, str(e)) from e

        logger.info("job %s queued (limit=%d)", job_id, limit)
        return EnqueueOutcome(job_id=job_id, from_cache=False, status=JobState.QUEUED)
