"""In-process dispatcher: runs every delivery as an asyncio task on the current loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Set

from prime_back.main_server.app.application.ports.dispatcher_port import JobDelivery
from prime_back.main_server.app.application.usecases.run_job_usecase import WorkerOutcome

logger = logging.getLogger(__name__)

DeliveryHandler = Callable[[JobDelivery], Awaitable[WorkerOutcome]]


class LocalTaskDispatcher:
    """Background-task dispatcher for JOB_BACKEND=memory.

    Mirrors what the queue worker does with a Redis delivery: run the handler,
    and retry a failed run up to ``max_attempts`` times with ``retry_delay_seconds``
    between attempts. Nothing survives a restart.
    """

    def __init__(
        self,
        handler: DeliveryHandler,
        *,
        max_attempts: int = 3,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        self._handler = handler
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay_seconds
        self._tasks: Set[asyncio.Task] = set()

    async def dispatch(self, delivery: JobDelivery) -> None:
        task = asyncio.create_task(self._deliver(delivery), name=f"prime-job:{delivery.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, delivery: JobDelivery) -> None:
        while True:
            try:
                outcome = await self._handler(delivery)
            except Exception:
                logger.exception("handler crashed for %s", delivery.job_id)
                outcome = WorkerOutcome(ok=False, job_id=delivery.job_id, error="handler crashed")

            if outcome.ok:
                return
            if delivery.attempt >= self._max_attempts:
                logger.error(
                    "giving up on %s after %d attempts: %s",
                    delivery.job_id,
                    delivery.attempt,
                    outcome.error,
                )
                return

            delivery = delivery.next_attempt()
            logger.warning("retrying %s (attempt %d)", delivery.job_id, delivery.attempt)
            await asyncio.sleep(self._retry_delay)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight delivery, including retries."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
