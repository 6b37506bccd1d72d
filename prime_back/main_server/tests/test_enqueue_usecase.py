import pytest

from conftest import RecordingDispatcher
from prime_back.main_server.app.application.usecases.enqueue_job_usecase import EnqueuePrimeJobUseCase
from prime_back.main_server.app.domain.errors_domain import DispatchError, InvalidLimitError
from prime_back.main_server.app.domain.jobs_domain import JobResult, JobState, JobStatus


def _uc(job_store, dispatcher, **kw):
    return EnqueuePrimeJobUseCase(job_store=job_store, dispatcher=dispatcher, **kw)


@pytest.mark.asyncio
async def test_first_enqueue_writes_queued_and_dispatches_once(job_store, dispatcher, kv):
    outcome = await _uc(job_store, dispatcher, queued_ttl_seconds=42).execute(limit=100)

    assert outcome.job_id == "limit-100"
    assert outcome.from_cache is False
    assert outcome.status == JobState.QUEUED
    assert outcome.result is None

    assert [(d.job_id, d.limit, d.attempt) for d in dispatcher.deliveries] == [("limit-100", 100, 1)]

    status = await job_store.get_status("limit-100")
    assert status.status == JobState.QUEUED
    assert status.progress == 0.0
    assert kv.ttl("test-prime:limit-100:status") == pytest.approx(42)


@pytest.mark.asyncio
async def test_second_enqueue_is_deduplicated(job_store, dispatcher):
    uc = _uc(job_store, dispatcher)

    first = await uc.execute(limit=100)
    second = await uc.execute(limit=100)

    assert first.job_id == second.job_id
    assert second.from_cache is False
    assert second.status == JobState.QUEUED
    assert second.progress == 0.0
    assert len(dispatcher.deliveries) == 1


@pytest.mark.asyncio
async def test_running_job_reports_progress_without_dispatch(job_store, dispatcher):
    running = JobStatus.running(job_id="limit-500", limit=500, started_at=1)
    await job_store.save_status(running.with_progress(progress=0.4, prime_count_so_far=30))

    outcome = await _uc(job_store, dispatcher).execute(limit=500)

    assert outcome.status == JobState.RUNNING
    assert outcome.progress == pytest.approx(0.4)
    assert dispatcher.deliveries == []


@pytest.mark.asyncio
async def test_cached_result_is_served_without_work(job_store, dispatcher):
    cached = JobResult(job_id="limit-10", limit=10, prime_count=4, duration_ms=1, started_at=1, finished_at=2)
    await job_store.save_result(cached)

    outcome = await _uc(job_store, dispatcher).execute(limit=10)

    assert outcome.from_cache is True
    assert outcome.status == JobState.FINISHED
    assert outcome.result == cached
    assert dispatcher.deliveries == []


@pytest.mark.asyncio
async def test_error_status_does_not_block_a_new_attempt(job_store, dispatcher):
    failed = JobStatus.queued(job_id="limit-10", limit=10).failed(error="boom")
    await job_store.save_status(failed)

    outcome = await _uc(job_store, dispatcher).execute(limit=10)

    assert outcome.status == JobState.QUEUED
    assert len(dispatcher.deliveries) == 1
    assert (await job_store.get_status("limit-10")).status == JobState.QUEUED


@pytest.mark.asyncio
async def test_expired_queued_record_allows_readmission(job_store, dispatcher, clock):
    uc = _uc(job_store, dispatcher, queued_ttl_seconds=600)

    await uc.execute(limit=100)
    clock.advance(601)
    await uc.execute(limit=100)

    assert len(dispatcher.deliveries) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 1, -7])
async def test_invalid_limit_mutates_nothing(job_store, dispatcher, kv, limit):
    with pytest.raises(InvalidLimitError):
        await _uc(job_store, dispatcher).execute(limit=limit)

    assert dispatcher.deliveries == []
    assert await job_store.get_status(f"limit-{limit}") is None


@pytest.mark.asyncio
async def test_dispatch_failure_surfaces_and_leaves_queued_status(job_store):
    uc = _uc(job_store, RecordingDispatcher(fail=True))

    with pytest.raises(DispatchError):
        await uc.execute(limit=100)

    status = await job_store.get_status("limit-100")
    assert status is not None
    assert status.status == JobState.QUEUED


@pytest.mark.asyncio
async def test_unexpected_dispatch_errors_are_wrapped(job_store):
    class Exploding:
        async def dispatch(self, delivery):
            raise RuntimeError("socket closed")

    with pytest.raises(DispatchError) as exc:
        await _uc(job_store, Exploding()).execute(limit=100)
    assert exc.value.job_id == "limit-100"
