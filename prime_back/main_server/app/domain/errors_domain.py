# main_server/app/domain/errors_domain.py
from __future__ import annotations


class JobNotFoundError(Exception):
    """
    Raised when neither a status nor a result record exists for the job.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidLimitError(ValueError):
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__("Provide limit >= 2")


class DispatchError(Exception):
    """The job could not be handed to the dispatcher."""

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Dispatch failed for {job_id}: {reason}")


class StoreUnavailableError(Exception):
    """The key-value store did not answer."""
