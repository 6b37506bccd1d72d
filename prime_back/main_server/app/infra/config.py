from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional

from prime_back.main_server.app.domain.job_keys import DEFAULT_KEY_PREFIX

BACKENDS = ("redis", "memory")


@dataclass(frozen=True)
class AppConfig:
    redis_url: str = "redis://localhost:6379/0"
    job_backend: str = "redis"
    key_prefix: str = DEFAULT_KEY_PREFIX

    # retention windows (seconds)
    queued_ttl_seconds: int = 60 * 10
    running_ttl_seconds: Optional[int] = 60 * 60
    result_ttl_seconds: int = 60 * 10
    error_ttl_seconds: int = 60 * 10

    dispatch_max_attempts: int = 3
    dispatch_retry_delay_seconds: float = 1.0

    # empty -> the worker endpoint accepts every caller
    worker_shared_secret: str = ""
    log_level: str = "INFO"


def _int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    env = os.environ if env is None else env

    backend = env.get("JOB_BACKEND", "redis").strip().lower()
    if backend not in BACKENDS:
        raise ValueError(f"JOB_BACKEND must be one of {BACKENDS}, got {backend!r}")

    # 0 disables expiry for running records
    running_ttl = _int(env, "RUNNING_TTL_SECONDS", 60 * 60)

    return AppConfig(
        redis_url=env.get("REDIS_URL", "redis://localhost:6379/0"),
        job_backend=backend,
        key_prefix=env.get("JOB_KEY_PREFIX", DEFAULT_KEY_PREFIX) or DEFAULT_KEY_PREFIX,
        queued_ttl_seconds=_int(env, "QUEUED_TTL_SECONDS", 60 * 10, minimum=1),
        running_ttl_seconds=running_ttl or None,
        result_ttl_seconds=_int(env, "RESULT_TTL_SECONDS", 60 * 10, minimum=1),
        error_ttl_seconds=_int(env, "ERROR_TTL_SECONDS", 60 * 10, minimum=1),
        dispatch_max_attempts=_int(env, "DISPATCH_MAX_ATTEMPTS", 3, minimum=1),
        dispatch_retry_delay_seconds=_float(env, "DISPATCH_RETRY_DELAY_SECONDS", 1.0),
        worker_shared_secret=env.get("WORKER_SHARED_SECRET", ""),
        log_level=env.get("LOG_LEVEL", "INFO"),
    )


@lru_cache
def get_config() -> AppConfig:
    return load_config()
