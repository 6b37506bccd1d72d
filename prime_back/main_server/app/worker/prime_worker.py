# worker/prime_worker.py
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis

from prime_back.main_server.app.adapters.dispatch.redis_queue_dispatcher import RedisQueueDispatcher
from prime_back.main_server.app.adapters.jobs.job_store_redis import RedisKeyValueStore
from prime_back.main_server.app.application.job_store import JobStore
from prime_back.main_server.app.application.ports.dispatcher_port import JobDelivery
from prime_back.main_server.app.application.usecases.run_job_usecase import RunPrimeJobUseCase, WorkerOutcome
from prime_back.main_server.app.domain.errors_domain import DispatchError, StoreUnavailableError
from prime_back.main_server.app.domain.job_keys import DEFAULT_KEY_PREFIX
from prime_back.main_server.app.infra.config import load_config
from prime_back.main_server.app.infra.log_config import setup_logging

log = logging.getLogger("worker")


@dataclass(frozen=True)
class WorkerConfig:
    redis_url: str
    key_prefix: str = DEFAULT_KEY_PREFIX
    concurrency: int = 1
    dequeue_timeout_seconds: int = 3
    max_attempts: int = 3
    retry_delay_seconds: float = 1.0
    running_ttl_seconds: Optional[int] = 60 * 60
    result_ttl_seconds: int = 60 * 10
    error_ttl_seconds: int = 60 * 10


# stops the consumer loops on SIGINT / SIGTERM
class GracefulShutdown:
    def __init__(self) -> None:
        self._stop = asyncio.Event()

    def install(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._stop.set)
            except NotImplementedError:
                signal.signal(sig, lambda *_: self._stop.set())

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop


"""
    one delivery taken off the queue
    on failure the delivery goes back on the queue with attempt+1
    until max_attempts is reached
"""
async def process_one_delivery(
    *,
    delivery: JobDelivery,
    uc: RunPrimeJobUseCase,
    dispatcher: RedisQueueDispatcher,
    cfg: WorkerConfig,
) -> WorkerOutcome:
    outcome = await uc.execute(job_id=delivery.job_id, limit=delivery.limit)
    if outcome.ok:
        return outcome

    if delivery.attempt >= cfg.max_attempts:
        log.error(
            "giving up on %s after %d attempts: %s",
            delivery.job_id,
            delivery.attempt,
            outcome.error,
        )
        return outcome

    await asyncio.sleep(cfg.retry_delay_seconds)
    retry = delivery.next_attempt()
    try:
        await dispatcher.dispatch(retry)
        log.warning("requeued %s (attempt %d): %s", retry.job_id, retry.attempt, outcome.error)
    except DispatchError as e:
        log.error("could not requeue %s: %s", retry.job_id, e)
    return outcome


async def consume(
    *,
    name: str,
    uc: RunPrimeJobUseCase,
    dispatcher: RedisQueueDispatcher,
    cfg: WorkerConfig,
    stop_event: asyncio.Event,
) -> None:
    while not stop_event.is_set():
        try:
            claimed = await dispatcher.claim(timeout_seconds=cfg.dequeue_timeout_seconds)
        except StoreUnavailableError as e:
            log.warning("%s: claim failed, backing off: %s", name, e)
            await asyncio.sleep(cfg.dequeue_timeout_seconds)
            continue

        if claimed is None:
            continue

        delivery = claimed.delivery
        log.info("%s: got %s (attempt %d)", name, delivery.job_id, delivery.attempt)
        try:
            await process_one_delivery(delivery=delivery, uc=uc, dispatcher=dispatcher, cfg=cfg)
        finally:
            # a crash before this line leaves the delivery in the processing list for recover()
            try:
                await dispatcher.ack(claimed)
            except StoreUnavailableError as e:
                log.warning("%s: could not ack %s: %s", name, delivery.job_id, e)


async def worker_loop(cfg: WorkerConfig, *, stop_event: Optional[asyncio.Event] = None) -> None:
    r = redis.from_url(cfg.redis_url, decode_responses=True)
    await r.ping()

    store = JobStore(RedisKeyValueStore(r), key_prefix=cfg.key_prefix)
    dispatcher = RedisQueueDispatcher(r, key_prefix=cfg.key_prefix)
    uc = RunPrimeJobUseCase(
        job_store=store,
        running_ttl_seconds=cfg.running_ttl_seconds,
        result_ttl_seconds=cfg.result_ttl_seconds,
        error_ttl_seconds=cfg.error_ttl_seconds,
    )

    if stop_event is None:
        shutdown = GracefulShutdown()
        shutdown.install()
        stop_event = shutdown.stop_event

    # deliveries left behind by a worker that died mid-job
    await dispatcher.recover()

    log.info(
        "Worker started | queue=%s | redis=%s | concurrency=%d",
        dispatcher.queue_key,
        cfg.redis_url,
        cfg.concurrency,
    )
    try:
        await asyncio.gather(
            *(
                consume(name=f"consumer-{i}", uc=uc, dispatcher=dispatcher, cfg=cfg, stop_event=stop_event)
                for i in range(cfg.concurrency)
            )
        )
    finally:
        await r.aclose()
        log.info("Shutdown complete.")


def _build_parser() -> argparse.ArgumentParser:
    env = load_config()
    p = argparse.ArgumentParser(prog="prime-worker", description="Prime job worker (redis queue -> prime count)")
    p.add_argument("--redis-url", default=env.redis_url, help="Redis connection URL")
    p.add_argument("--key-prefix", default=env.key_prefix, help="Key prefix for status/result/queue keys")
    p.add_argument("--concurrency", type=int, default=1, help="Number of consumer loops")
    p.add_argument("--max-attempts", type=int, default=env.dispatch_max_attempts, help="Deliveries per job before giving up")
    p.add_argument("--retry-delay-sec", type=float, default=env.dispatch_retry_delay_seconds, help="Pause before requeueing a failed job")
    p.add_argument("--log-level", default=env.log_level, help="Logging level (DEBUG/INFO/WARNING/ERROR)")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(args.log_level)

    env = load_config()
    cfg = WorkerConfig(
        redis_url=args.redis_url,
        key_prefix=args.key_prefix,
        concurrency=max(1, args.concurrency),
        max_attempts=max(1, args.max_attempts),
        retry_delay_seconds=args.retry_delay_sec,
        running_ttl_seconds=env.running_ttl_seconds,
        result_ttl_seconds=env.result_ttl_seconds,
        error_ttl_seconds=env.error_ttl_seconds,
    )

    try:
        asyncio.run(worker_loop(cfg))
        return 0
    except KeyboardInterrupt:
        log.info("KeyboardInterrupt -> exit")
        return 0
    except Exception:
        log.exception("Worker crashed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
