# main_server/app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from prime_back.main_server.app.api.v1.deps import shutdown_dependencies
from prime_back.main_server.app.api.v1.routers.health import router as health_router
from prime_back.main_server.app.api.v1.routers.primes import router as primes_router
from prime_back.main_server.app.domain.errors_domain import (
    DispatchError,
    InvalidLimitError,
    JobNotFoundError,
    StoreUnavailableError,
)
from prime_back.main_server.app.infra.config import get_config
from prime_back.main_server.app.infra.log_config import setup_logging
from prime_back.main_server.app.infra.redis import close_redis

log = logging.getLogger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg = get_config()
    setup_logging(cfg.log_level)
    log.info("API starting | backend=%s | prefix=%s", cfg.job_backend, cfg.key_prefix)
    yield
    await shutdown_dependencies()
    await close_redis()
    log.info("API stopped")


# -------------------------
# domain errors -> HTTP
# -------------------------
async def _invalid_limit(request: Request, exc: InvalidLimitError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": str(exc), "limit": exc.limit},
    )


async def _job_not_found(request: Request, exc: JobNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"jobId": exc.job_id, "status": "notFound"},
    )


async def _dispatch_failed(request: Request, exc: DispatchError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"jobId": exc.job_id, "error": "Could not dispatch job, try again"},
    )


async def _store_unavailable(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    log.error("store unavailable: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Job store unavailable"},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Prime Job Server", version="1.0.0", lifespan=lifespan)

    app.add_exception_handler(InvalidLimitError, _invalid_limit)
    app.add_exception_handler(JobNotFoundError, _job_not_found)
    app.add_exception_handler(DispatchError, _dispatch_failed)
    app.add_exception_handler(StoreUnavailableError, _store_unavailable)

    app.include_router(health_router)
    app.include_router(primes_router, prefix="/api")
    return app


app = create_app()
