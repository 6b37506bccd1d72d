# main_server/app/domain/primes_domain.py
from __future__ import annotations

import asyncio
import inspect
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from prime_back.main_server.app.domain.errors_domain import InvalidLimitError

MIN_LIMIT = 2
MAX_LIMIT = 500_000_000_000_000_000

# progress budget per run, clamped to [MIN_REPORT_STEPS, MAX_REPORT_STEPS]
MIN_REPORT_STEPS = 100
MAX_REPORT_STEPS = 1000

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class PrimeProgress:
    current: int
    limit: int
    progress: float  # 0.0 ~ 1.0
    prime_count_so_far: int
    elapsed_ms: int


@dataclass(frozen=True)
class PrimeResult:
    limit: int
    prime_count: int
    duration_ms: int


ProgressCallback = Callable[[PrimeProgress], Union[None, Awaitable[None]]]


def is_prime(n: int) -> bool:
    if n < 2:
        return False
    if n == 2:
        return True
    if n % 2 == 0:
        return False

    for i in range(3, math.isqrt(n) + 1, 2):
        if n % i == 0:
            return False
    return True


def report_steps(limit: int) -> int:
    return max(MIN_REPORT_STEPS, min(MAX_REPORT_STEPS, limit // 1000))


def report_stride(limit: int) -> int:
    """
    How many numbers to check between two progress callbacks.
    Rounded up so the callback never fires more than report_steps(limit) times.
    """
    return max(1, -(-limit // report_steps(limit)))


def _parse_digits(digits: str) -> int:
    # int() refuses very long digit strings; anything longer than MAX_LIMIT is clamped anyway
    significant = digits.lstrip("+-").lstrip("0")
    if len(significant) > len(str(MAX_LIMIT)):
        return 0 if digits.startswith("-") else MAX_LIMIT
    value = int(significant) if significant else 0
    return -value if digits.startswith("-") else value


def normalize_limit(raw: Any) -> int:
    """
    Parse a user supplied limit the forgiving way: leading digits win ("10.5" -> 10),
    anything without them becomes 0, negatives become 0, huge values are clamped
    to MAX_LIMIT. Raises InvalidLimitError when the result is below MIN_LIMIT.
    """
    if isinstance(raw, bool):
        raw = None
    if isinstance(raw, float) and math.isfinite(raw):
        raw = int(raw)
    if isinstance(raw, int):
        value = raw
    else:
        m = _LEADING_INT.match(str(raw if raw is not None else ""))
        value = _parse_digits(m.group(1)) if m else 0

    limit = min(MAX_LIMIT, max(0, value))
    if limit < MIN_LIMIT:
        raise InvalidLimitError(limit)
    return limit


async def count_primes(limit: int, on_progress: Optional[ProgressCallback] = None) -> PrimeResult:
    started = time.monotonic()

    if limit < MIN_LIMIT:
        return PrimeResult(limit=limit, prime_count=0, duration_ms=0)

    stride = report_stride(limit)
    count = 0

    for n in range(2, limit + 1):
        if is_prime(n):
            count += 1

        if n % stride != 0:
            continue

        if on_progress is not None:
            ret = on_progress(
                PrimeProgress(
                    current=n,
                    limit=limit,
                    progress=n / limit,
                    prime_count_so_far=count,
                    elapsed_ms=int((time.monotonic() - started) * 1000),
                )
            )
            # the callback may write to the store; wait for it before moving on
            if inspect.isawaitable(ret):
                await ret

        # give other tasks on the loop (status polls, other jobs) a turn
        await asyncio.sleep(0)

    duration_ms = int((time.monotonic() - started) * 1000)
    return PrimeResult(limit=limit, prime_count=count, duration_ms=duration_ms)
