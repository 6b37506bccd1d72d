# main_server/app/application/usecases/run_job_usecase.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from prime_back.main_server.app.application.job_store import JobStore
from prime_back.main_server.app.domain.errors_domain import StoreUnavailableError
from prime_back.main_server.app.domain.jobs_domain import JobResult, JobStatus, now_ms
from prime_back.main_server.app.domain.primes_domain import (
    PrimeProgress,
    PrimeResult,
    ProgressCallback,
    count_primes,
)

logger = logging.getLogger(__name__)

ComputeFn = Callable[[int, Optional[ProgressCallback]], Awaitable[PrimeResult]]


@dataclass(frozen=True)
class WorkerOutcome:
    ok: bool
    job_id: str
    error: Optional[str] = None
    skipped: bool = False


@dataclass(frozen=True)
class RunPrimeJobUseCase:
    """
    Dispatcher-facing entry point. Safe to call more than once for the same job:
    the work is deterministic and every write overwrites the same keys.

    Always leaves a terminal (finished) or error status behind and reports
    the outcome instead of raising, so the dispatcher can apply its retry policy.
    """

    job_store: JobStore
    compute: ComputeFn = count_primes
    running_ttl_seconds: Optional[int] = 60 * 60
    result_ttl_seconds: int = 60 * 10
    error_ttl_seconds: int = 60 * 10
    skip_if_finished: bool = True

    async def execute(self, *, job_id: str, limit: int) -> WorkerOutcome:
        logger.info("worker invoked for %s (limit=%d)", job_id, limit)

        if self.skip_if_finished:
            done = await self.job_store.get_result(job_id)
            if done is not None:
                logger.info("job %s already finished, skipping recompute", job_id)
                await self._write_terminal(done)
                return WorkerOutcome(ok=True, job_id=job_id, skipped=True)

        started_at = now_ms()
        status = JobStatus.running(job_id=job_id, limit=limit, started_at=started_at)

        try:
            await self.job_store.save_status(status, ttl_seconds=self.running_ttl_seconds)

            async def on_progress(p: PrimeProgress) -> None:
                nonlocal status
                status = status.with_progress(
                    progress=p.progress,
                    prime_count_so_far=p.prime_count_so_far,
                )
                await self.job_store.save_status(status, ttl_seconds=self.running_ttl_seconds)

            result = await self.compute(limit, on_progress)

        except Exception as e:
            message = str(e) or type(e).__name__
            logger.exception("job %s failed", job_id)
            await self._write_error(status.failed(error=message))
            return WorkerOutcome(ok=False, job_id=job_id, error=message)

        final = JobResult(
            job_id=job_id,
            limit=result.limit,
            prime_count=result.prime_count,
            duration_ms=result.duration_ms,
            started_at=started_at,
            finished_at=now_ms(),
        )
        if not await self._write_terminal(final):
            # nothing got persisted, let the dispatcher try again
            return WorkerOutcome(ok=False, job_id=job_id, error="store unavailable")

        logger.info(
            "job %s finished: %d primes <= %d in %d ms",
            job_id,
            final.prime_count,
            final.limit,
            final.duration_ms,
        )
        return WorkerOutcome(ok=True, job_id=job_id)

    async def _write_terminal(self, result: JobResult) -> bool:
        """True when at least one of the two final records was written."""
        # both writes are attempted even if one of them fails
        outcomes = await asyncio.gather(
            self.job_store.save_result(result, ttl_seconds=self.result_ttl_seconds),
            self.job_store.save_status(result.to_status(), ttl_seconds=self.result_ttl_seconds),
            return_exceptions=True,
        )
        written = 0
        for what, outcome in zip(("result", "status"), outcomes):
            if isinstance(outcome, Exception):
                logger.error("could not write final %s for %s: %s", what, result.job_id, outcome)
            else:
                written += 1
        return written > 0

    async def _write_error(self, status: JobStatus) -> None:
        try:
            await self.job_store.save_status(status, ttl_seconds=self.error_ttl_seconds)
        except StoreUnavailableError as e:
            logger.error("could not record error status for %s: %s", status.job_id, e)
