from __future__ import annotations

import hmac
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, Query, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from prime_back.main_server.app.api.v1.deps import (
    get_direct_uc,
    get_enqueue_uc,
    get_run_uc,
    get_status_uc,
)
from prime_back.main_server.app.application.job_store import JobStore
from prime_back.main_server.app.application.usecases.count_primes_usecase import CountPrimesDirectUseCase
from prime_back.main_server.app.application.usecases.enqueue_job_usecase import EnqueuePrimeJobUseCase
from prime_back.main_server.app.application.usecases.get_job_usecase import GetJobStatusUseCase
from prime_back.main_server.app.application.usecases.run_job_usecase import RunPrimeJobUseCase
from prime_back.main_server.app.domain.jobs_domain import JobState
from prime_back.main_server.app.domain.primes_domain import normalize_limit
from prime_back.main_server.app.infra.config import AppConfig, get_config

router = APIRouter(prefix="/prime", tags=["prime"])


"""
The router only does three things
1) pull the limit / jobId out of the request
2) call the use case
3) map the domain objects onto camelCase response DTOs
"""


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# limit may come as a number, a string, or not at all (then ?limit= is used)
class LimitRequest(_CamelModel):
    limit: Any = None


class WorkerRequest(_CamelModel):
    job_id: str
    limit: int


class PrimeResultResponse(_CamelModel):
    limit: int
    prime_count: int
    duration_ms: int


class JobResultDTO(_CamelModel):
    status: JobState
    job_id: str
    limit: int
    prime_count: int
    duration_ms: int
    started_at: int
    finished_at: int


class JobStatusDTO(_CamelModel):
    status: JobState
    job_id: str
    limit: int
    progress: float
    prime_count_so_far: int
    started_at: int
    updated_at: int
    error_message: Optional[str] = None


class EnqueueResponse(_CamelModel):
    job_id: str
    mode: str = "queue"
    from_cache: bool
    status: JobState
    progress: Optional[float] = None
    result: Optional[JobResultDTO] = None


class JobStatusResponse(_CamelModel):
    job_id: str
    status: JobState
    progress: float
    prime_count_so_far: int
    result: Optional[JobResultDTO] = None
    raw_status: Optional[JobStatusDTO] = None


class WorkerResponse(_CamelModel):
    ok: bool
    job_id: str
    error: Optional[str] = None


def _pick_limit(body: Optional[LimitRequest], query_limit: Optional[str]) -> int:
    raw = body.limit if body is not None and body.limit is not None else query_limit
    return normalize_limit(raw)


"""
    POST /prime/queue
    202 when the job is (or already was) queued/running, 200 when the result is cached
"""
@router.post(
    "/queue",
    response_model=EnqueueResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enqueue_prime_job(
    response: Response,
    body: Optional[LimitRequest] = Body(None),
    limit: Optional[str] = Query(None),
    uc: EnqueuePrimeJobUseCase = Depends(get_enqueue_uc),
):
    outcome = await uc.execute(limit=_pick_limit(body, limit))

    if outcome.from_cache:
        response.status_code = status.HTTP_200_OK

    return EnqueueResponse(
        job_id=outcome.job_id,
        from_cache=outcome.from_cache,
        status=outcome.status,
        progress=outcome.progress,
        result=JobStore.result_to_dict(outcome.result) if outcome.result else None,
    )


@router.get("/status", response_model=JobStatusResponse, response_model_exclude_none=True)
async def get_prime_job_status(
    job_id: Optional[str] = Query(None, alias="jobId"),
    uc: GetJobStatusUseCase = Depends(get_status_uc),
):
    if not job_id:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "jobId is required"})

    # JobNotFoundError is mapped to 404 by the app
    view = await uc.execute(job_id)

    return JobStatusResponse(
        job_id=view.job_id,
        status=view.status,
        progress=view.progress,
        prime_count_so_far=view.prime_count_so_far,
        result=JobStore.result_to_dict(view.result) if view.result else None,
        raw_status=JobStore.status_to_dict(view.raw_status) if view.raw_status else None,
    )


"""
    push-style worker invocation for an external dispatcher
    non-2xx tells the dispatcher to retry under its own policy
"""
@router.post("/worker", response_model=WorkerResponse, response_model_exclude_none=True)
async def run_prime_job(
    body: WorkerRequest,
    x_worker_token: Optional[str] = Header(None),
    cfg: AppConfig = Depends(get_config),
    uc: RunPrimeJobUseCase = Depends(get_run_uc),
):
    if cfg.worker_shared_secret and not hmac.compare_digest(
        (x_worker_token or "").encode(), cfg.worker_shared_secret.encode()
    ):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"ok": False, "jobId": body.job_id, "error": "invalid worker token"},
        )

    outcome = await uc.execute(job_id=body.job_id, limit=body.limit)
    if not outcome.ok:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "jobId": outcome.job_id, "error": outcome.error},
        )
    return WorkerResponse(ok=True, job_id=outcome.job_id)


@router.post("/direct", response_model=PrimeResultResponse)
async def count_primes_direct(
    body: Optional[LimitRequest] = Body(None),
    limit: Optional[str] = Query(None),
    uc: CountPrimesDirectUseCase = Depends(get_direct_uc),
):
    result = await uc.execute(limit=_pick_limit(body, limit))
    return PrimeResultResponse(
        limit=result.limit,
        prime_count=result.prime_count,
        duration_ms=result.duration_ms,
    )
