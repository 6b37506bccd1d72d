import sys
from pathlib import Path

import pytest

# repository root (the folder holding prime_back/) on the import path
ROOT = Path(__file__).resolve().parents[3]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from prime_back.main_server.app.adapters.jobs.memory_repo import InMemoryKeyValueStore  # noqa: E402
from prime_back.main_server.app.application.job_store import JobStore  # noqa: E402
from prime_back.main_server.app.application.ports.dispatcher_port import JobDelivery  # noqa: E402
from prime_back.main_server.app.domain.errors_domain import DispatchError  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingDispatcher:
    """Remembers every delivery instead of running it."""

    def __init__(self, *, fail: bool = False):
        self.deliveries: list[JobDelivery] = []
        self.fail = fail

    async def dispatch(self, delivery: JobDelivery) -> None:
        if self.fail:
            raise DispatchError(delivery.job_id, "queue is down")
        self.deliveries.append(delivery)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def job_store(kv):
    return JobStore(kv, key_prefix="test-prime")


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()
