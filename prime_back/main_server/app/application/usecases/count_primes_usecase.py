from __future__ import annotations

import logging
from dataclasses import dataclass

from prime_back.main_server.app.domain.errors_domain import InvalidLimitError
from prime_back.main_server.app.domain.primes_domain import MIN_LIMIT, PrimeResult, count_primes

logger = logging.getLogger(__name__)


# blocking baseline: no queue, no cache, just run it
@dataclass(frozen=True)
class CountPrimesDirectUseCase:
    async def execute(self, *, limit: int) -> PrimeResult:
        if limit < MIN_LIMIT:
            raise InvalidLimitError(limit)
        result = await count_primes(limit)
        logger.info("direct count: %d primes <= %d in %d ms", result.prime_count, limit, result.duration_ms)
        return result
