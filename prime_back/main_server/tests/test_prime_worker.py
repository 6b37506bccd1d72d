import asyncio
import json

import pytest

from conftest import RecordingDispatcher
from prime_back.main_server.app.adapters.dispatch.local_dispatcher import LocalTaskDispatcher
from prime_back.main_server.app.adapters.dispatch.redis_queue_dispatcher import RedisQueueDispatcher
from prime_back.main_server.app.application.ports.dispatcher_port import JobDelivery
from prime_back.main_server.app.application.usecases.run_job_usecase import RunPrimeJobUseCase, WorkerOutcome
from prime_back.main_server.app.domain.job_keys import DEFAULT_KEY_PREFIX
from prime_back.main_server.app.domain.jobs_domain import JobState
from prime_back.main_server.app.worker.prime_worker import WorkerConfig, consume, process_one_delivery


async def _broken(limit, on_progress=None):
    raise RuntimeError("flaky")


class StubQueueRedis:
    def __init__(self):
        self.lists = {}

    async def lpush(self, key, value):
        self.lists.setdefault(key, []).insert(0, value)
        return len(self.lists[key])

    async def lmove(self, src, dest, wherefrom="LEFT", whereto="RIGHT"):
        items = self.lists.get(src)
        if not items:
            return None
        value = items.pop() if wherefrom == "RIGHT" else items.pop(0)
        target = self.lists.setdefault(dest, [])
        if whereto == "RIGHT":
            target.append(value)
        else:
            target.insert(0, value)
        return value

    async def blmove(self, src, dest, timeout, wherefrom="LEFT", whereto="RIGHT"):
        value = await self.lmove(src, dest, wherefrom, whereto)
        if value is None:
            await asyncio.sleep(0)
        return value

    async def lrem(self, key, count, value):
        items = self.lists.get(key, [])
        if value in items:
            items.remove(value)
            return 1
        return 0


def _cfg(**kw):
    return WorkerConfig(redis_url="redis://unused", retry_delay_seconds=0, **kw)


# -----------------------------
# redis queue dispatcher
# -----------------------------
@pytest.mark.asyncio
async def test_queue_is_fifo_and_round_trips_deliveries():
    dispatcher = RedisQueueDispatcher(StubQueueRedis(), key_prefix="t")

    await dispatcher.dispatch(JobDelivery(job_id="limit-10", limit=10))
    await dispatcher.dispatch(JobDelivery(job_id="limit-20", limit=20, attempt=2))

    assert dispatcher.queue_key == "t:queue"
    assert (await dispatcher.claim(timeout_seconds=1)).delivery == JobDelivery("limit-10", 10, 1)
    assert (await dispatcher.claim(timeout_seconds=1)).delivery == JobDelivery("limit-20", 20, 2)
    assert await dispatcher.claim(timeout_seconds=1) is None


@pytest.mark.asyncio
async def test_malformed_queue_payload_is_dropped():
    r = StubQueueRedis()
    await r.lpush("t:queue", "{not json")
    await r.lpush("t:queue", json.dumps({"limit": 3}))

    dispatcher = RedisQueueDispatcher(r, key_prefix="t")
    assert await dispatcher.claim() is None
    assert await dispatcher.claim() is None
    assert r.lists["t:processing"] == []


@pytest.mark.asyncio
async def test_claimed_delivery_stays_in_processing_until_acked():
    r = StubQueueRedis()
    dispatcher = RedisQueueDispatcher(r, key_prefix="t")
    await dispatcher.dispatch(JobDelivery("limit-10", 10))

    claimed = await dispatcher.claim(timeout_seconds=1)

    assert r.lists["t:queue"] == []
    assert r.lists["t:processing"] == [claimed.raw]

    await dispatcher.ack(claimed)
    assert r.lists["t:processing"] == []


@pytest.mark.asyncio
async def test_recover_requeues_deliveries_of_a_dead_worker(job_store):
    r = StubQueueRedis()
    dispatcher = RedisQueueDispatcher(r, key_prefix="t")
    await dispatcher.dispatch(JobDelivery("limit-10", 10))
    await dispatcher.dispatch(JobDelivery("limit-100", 100))

    # first worker takes both jobs and dies before acking either
    await dispatcher.claim(timeout_seconds=1)
    await dispatcher.claim(timeout_seconds=1)
    assert r.lists["t:queue"] == []

    restarted = RedisQueueDispatcher(r, key_prefix="t")
    assert await restarted.recover() == 2
    assert r.lists["t:processing"] == []
    assert await restarted.recover() == 0

    stop = asyncio.Event()
    uc = RunPrimeJobUseCase(job_store=job_store)
    task = asyncio.create_task(consume(name="c1", uc=uc, dispatcher=restarted, cfg=_cfg(), stop_event=stop))

    for _ in range(200):
        if await job_store.get_result("limit-100") is not None:
            break
        await asyncio.sleep(0)
    stop.set()
    await asyncio.wait_for(task, timeout=5)

    assert (await job_store.get_result("limit-10")).prime_count == 4
    assert (await job_store.get_result("limit-100")).prime_count == 25
    assert r.lists["t:processing"] == []


def test_worker_defaults_to_the_shared_key_prefix():
    cfg = WorkerConfig(redis_url="redis://unused")
    assert cfg.key_prefix == DEFAULT_KEY_PREFIX
    assert RedisQueueDispatcher(StubQueueRedis(), key_prefix=cfg.key_prefix).queue_key == f"{DEFAULT_KEY_PREFIX}:queue"


# -----------------------------
# retry policy
# -----------------------------
@pytest.mark.asyncio
async def test_successful_delivery_is_not_requeued(job_store, dispatcher):
    uc = RunPrimeJobUseCase(job_store=job_store)

    outcome = await process_one_delivery(
        delivery=JobDelivery("limit-10", 10), uc=uc, dispatcher=dispatcher, cfg=_cfg()
    )

    assert outcome.ok
    assert dispatcher.deliveries == []


@pytest.mark.asyncio
async def test_failed_delivery_is_requeued_with_next_attempt(job_store, dispatcher):
    uc = RunPrimeJobUseCase(job_store=job_store, compute=_broken)

    outcome = await process_one_delivery(
        delivery=JobDelivery("limit-10", 10, attempt=1), uc=uc, dispatcher=dispatcher, cfg=_cfg(max_attempts=3)
    )

    assert not outcome.ok
    assert dispatcher.deliveries == [JobDelivery("limit-10", 10, attempt=2)]
    assert (await job_store.get_status("limit-10")).status == JobState.ERROR


@pytest.mark.asyncio
async def test_last_attempt_is_not_requeued(job_store, dispatcher):
    uc = RunPrimeJobUseCase(job_store=job_store, compute=_broken)

    await process_one_delivery(
        delivery=JobDelivery("limit-10", 10, attempt=3), uc=uc, dispatcher=dispatcher, cfg=_cfg(max_attempts=3)
    )

    assert dispatcher.deliveries == []


@pytest.mark.asyncio
async def test_requeue_failure_is_swallowed_after_logging(job_store):
    uc = RunPrimeJobUseCase(job_store=job_store, compute=_broken)

    outcome = await process_one_delivery(
        delivery=JobDelivery("limit-10", 10), uc=uc, dispatcher=RecordingDispatcher(fail=True), cfg=_cfg()
    )
    assert not outcome.ok


@pytest.mark.asyncio
async def test_consumer_drains_queue_until_stopped(job_store):
    r = StubQueueRedis()
    dispatcher = RedisQueueDispatcher(r, key_prefix="t")
    await dispatcher.dispatch(JobDelivery("limit-10", 10))
    await dispatcher.dispatch(JobDelivery("limit-100", 100))

    stop = asyncio.Event()
    uc = RunPrimeJobUseCase(job_store=job_store)
    task = asyncio.create_task(consume(name="c0", uc=uc, dispatcher=dispatcher, cfg=_cfg(), stop_event=stop))

    for _ in range(200):
        if await job_store.get_result("limit-100") is not None:
            break
        await asyncio.sleep(0)
    stop.set()
    await asyncio.wait_for(task, timeout=5)

    assert (await job_store.get_result("limit-10")).prime_count == 4
    assert (await job_store.get_result("limit-100")).prime_count == 25


# -----------------------------
# in-process dispatcher
# -----------------------------
@pytest.mark.asyncio
async def test_local_dispatcher_retries_until_success():
    attempts = []

    async def handler(delivery):
        attempts.append(delivery.attempt)
        return WorkerOutcome(ok=delivery.attempt >= 2, job_id=delivery.job_id)

    local = LocalTaskDispatcher(handler, max_attempts=3, retry_delay_seconds=0)
    await local.dispatch(JobDelivery("limit-10", 10))
    await local.drain()

    assert attempts == [1, 2]
    assert local.pending == 0


@pytest.mark.asyncio
async def test_local_dispatcher_gives_up_after_max_attempts():
    attempts = []

    async def handler(delivery):
        attempts.append(delivery.attempt)
        raise RuntimeError("always")

    local = LocalTaskDispatcher(handler, max_attempts=3, retry_delay_seconds=0)
    await local.dispatch(JobDelivery("limit-10", 10))
    await local.drain()

    assert attempts == [1, 2, 3]
