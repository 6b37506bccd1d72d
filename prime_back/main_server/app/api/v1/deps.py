from __future__ import annotations

from functools import lru_cache

from prime_back.main_server.app.adapters.dispatch.local_dispatcher import LocalTaskDispatcher
from prime_back.main_server.app.adapters.dispatch.redis_queue_dispatcher import RedisQueueDispatcher
from prime_back.main_server.app.adapters.jobs.job_store_redis import RedisKeyValueStore
from prime_back.main_server.app.adapters.jobs.memory_repo import InMemoryKeyValueStore
from prime_back.main_server.app.application.job_store import JobStore
from prime_back.main_server.app.application.ports.dispatcher_port import Dispatcher, JobDelivery
from prime_back.main_server.app.application.ports.key_value_store_port import KeyValueStore
from prime_back.main_server.app.application.usecases.count_primes_usecase import CountPrimesDirectUseCase
from prime_back.main_server.app.application.usecases.enqueue_job_usecase import EnqueuePrimeJobUseCase
from prime_back.main_server.app.application.usecases.get_job_usecase import GetJobStatusUseCase
from prime_back.main_server.app.application.usecases.run_job_usecase import RunPrimeJobUseCase, WorkerOutcome
from prime_back.main_server.app.infra.config import get_config
from prime_back.main_server.app.infra.redis import get_redis


# ------------------------------------------------------------
# store / dispatcher: one per process, picked by JOB_BACKEND
# ------------------------------------------------------------
@lru_cache
def get_key_value_store() -> KeyValueStore:
    if get_config().job_backend == "memory":
        return InMemoryKeyValueStore()
    return RedisKeyValueStore(get_redis())


def get_job_store() -> JobStore:
    """
    Routers and use cases only ever see JobStore, never redis.
    """
    return JobStore(get_key_value_store(), key_prefix=get_config().key_prefix)


async def _run_delivery(delivery: JobDelivery) -> WorkerOutcome:
    return await get_run_uc().execute(job_id=delivery.job_id, limit=delivery.limit)


@lru_cache
def get_dispatcher() -> Dispatcher:
    cfg = get_config()
    if cfg.job_backend == "memory":
        return LocalTaskDispatcher(
            _run_delivery,
            max_attempts=cfg.dispatch_max_attempts,
            retry_delay_seconds=cfg.dispatch_retry_delay_seconds,
        )
    return RedisQueueDispatcher(get_redis(), key_prefix=cfg.key_prefix)


# ------------------------------------------------------------
# use cases
# ------------------------------------------------------------
def get_enqueue_uc() -> EnqueuePrimeJobUseCase:
    return EnqueuePrimeJobUseCase(
        job_store=get_job_store(),
        dispatcher=get_dispatcher(),
        queued_ttl_seconds=get_config().queued_ttl_seconds,
    )


def get_run_uc() -> RunPrimeJobUseCase:
    cfg = get_config()
    return RunPrimeJobUseCase(
        job_store=get_job_store(),
        running_ttl_seconds=cfg.running_ttl_seconds,
        result_ttl_seconds=cfg.result_ttl_seconds,
        error_ttl_seconds=cfg.error_ttl_seconds,
    )


def get_status_uc() -> GetJobStatusUseCase:
    return GetJobStatusUseCase(job_store=get_job_store())


def get_direct_uc() -> CountPrimesDirectUseCase:
    return CountPrimesDirectUseCase()


async def shutdown_dependencies() -> None:
    if get_dispatcher.cache_info().currsize:
        dispatcher = get_dispatcher()
        if isinstance(dispatcher, LocalTaskDispatcher):
            await dispatcher.aclose()
    get_dispatcher.cache_clear()
    get_key_value_store.cache_clear()
