# app/application/job_store.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from prime_back.main_server.app.application.ports.key_value_store_port import KeyValueStore
from prime_back.main_server.app.domain.errors_domain import StoreUnavailableError
from prime_back.main_server.app.domain.job_keys import DEFAULT_KEY_PREFIX, result_key, status_key
from prime_back.main_server.app.domain.jobs_domain import JobResult, JobState, JobStatus

logger = logging.getLogger(__name__)


class JobStore:
    """
    Typed access to the status/result records of a job.

    Key design:
      - status:  {prefix}:{job_id}:status
      - result:  {prefix}:{job_id}:result

    Reads fail soft: a store that is down, or a record that does not decode,
    reads as "absent". Writes raise StoreUnavailableError.
    """

    def __init__(self, kv: KeyValueStore, *, key_prefix: str = DEFAULT_KEY_PREFIX):
        self._kv = kv
        self._p = key_prefix or DEFAULT_KEY_PREFIX

    @property
    def key_prefix(self) -> str:
        return self._p

    def status_key(self, job_id: str) -> str:
        return status_key(job_id, self._p)

    def result_key(self, job_id: str) -> str:
        return result_key(job_id, self._p)

    # -----------------------------
    # serialization (camelCase on the wire)
    # -----------------------------
    @staticmethod
    def _serialize_status(s: JobStatus) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "status": s.status.value,
            "jobId": s.job_id,
            "limit": s.limit,
            "progress": s.progress,
            "primeCountSoFar": s.prime_count_so_far,
            "startedAt": s.started_at,
            "updatedAt": s.updated_at,
        }
        if s.error_message is not None:
            data["errorMessage"] = s.error_message
        return data

    @staticmethod
    def _deserialize_status(h: Dict[str, Any]) -> JobStatus:
        return JobStatus(
            status=JobState(h["status"]),
            job_id=str(h["jobId"]),
            limit=int(h["limit"]),
            progress=float(h.get("progress", 0.0)),
            prime_count_so_far=int(h.get("primeCountSoFar", 0)),
            started_at=int(h.get("startedAt", 0)),
            updated_at=int(h.get("updatedAt", 0)),
            error_message=h.get("errorMessage"),
        )

    @staticmethod
    def _serialize_result(r: JobResult) -> Dict[str, Any]:
        return {
            "status": r.status.value,
            "jobId": r.job_id,
            "limit": r.limit,
            "primeCount": r.prime_count,
            "durationMs": r.duration_ms,
            "startedAt": r.started_at,
            "finishedAt": r.finished_at,
        }

    @staticmethod
    def _deserialize_result(h: Dict[str, Any]) -> JobResult:
        return JobResult(
            status=JobState(h["status"]),
            job_id=str(h["jobId"]),
            limit=int(h["limit"]),
            prime_count=int(h["primeCount"]),
            duration_ms=int(h.get("durationMs", 0)),
            started_at=int(h.get("startedAt", 0)),
            finished_at=int(h.get("finishedAt", 0)),
        )

    @staticmethod
    def status_to_dict(s: JobStatus) -> Dict[str, Any]:
        return JobStore._serialize_status(s)

    @staticmethod
    def result_to_dict(r: JobResult) -> Dict[str, Any]:
        return JobStore._serialize_result(r)

    # -----------------------------
    # reads
    # -----------------------------
    async def _read(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._kv.get(key)
        except StoreUnavailableError as e:
            logger.warning("store read failed, treating %s as absent: %s", key, e)
            return None
        except ValueError as e:
            logger.warning("undecodable value under %s: %s", key, e)
            return None

    async def get_status(self, job_id: str) -> Optional[JobStatus]:
        raw = await self._read(self.status_key(job_id))
        if raw is None:
            return None
        try:
            return self._deserialize_status(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("malformed status record for %s: %s", job_id, e)
            return None

    async def get_result(self, job_id: str) -> Optional[JobResult]:
        raw = await self._read(self.result_key(job_id))
        if raw is None:
            return None
        try:
            return self._deserialize_result(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("malformed result record for %s: %s", job_id, e)
            return None

    # -----------------------------
    # writes
    # -----------------------------
    async def save_status(self, status: JobStatus, *, ttl_seconds: Optional[int] = None) -> None:
        await self._kv.set(
            self.status_key(status.job_id),
            self._serialize_status(status),
            ttl_seconds=ttl_seconds,
        )

    async def save_result(self, result: JobResult, *, ttl_seconds: Optional[int] = None) -> None:
        await self._kv.set(
            self.result_key(result.job_id),
            self._serialize_result(result),
            ttl_seconds=ttl_seconds,
        )
