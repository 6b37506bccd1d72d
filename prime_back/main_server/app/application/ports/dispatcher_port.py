from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Protocol


# one delivery of a job to the worker side
@dataclass(frozen=True)
class JobDelivery:
    job_id: str
    limit: int
    attempt: int = 1

    def next_attempt(self) -> "JobDelivery":
        return replace(self, attempt=self.attempt + 1)

    def to_payload(self) -> Dict[str, Any]:
        return {"jobId": self.job_id, "limit": self.limit, "attempt": self.attempt}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "JobDelivery":
        return cls(
            job_id=str(data["jobId"]),
            limit=int(data["limit"]),
            attempt=int(data.get("attempt", 1)),
        )


# hands a job over to whatever runs the worker (at-least-once)
class Dispatcher(Protocol):
    async def dispatch(self, delivery: JobDelivery) -> None:
        """Raise DispatchError when the handoff did not happen."""
        ...
