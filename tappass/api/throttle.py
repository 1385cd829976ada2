"""Unknown-ID throttle for the scan endpoint.

Keyed by reader_id, not by operator: the budget protects the physical
entry point, whoever is holding it.  The check runs before the lookup;
a miss is charged only after the store answers "not found".
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from tappass.core.config import SETTINGS
from tappass.core.metrics import LOOKUP_THROTTLE_HITS
from tappass.db.redis import redis_pool
from tappass.services.lookup_throttle import (
    InMemoryLookupThrottle,
    LookupThrottle,
    RedisLookupThrottle,
    ThrottleConfig,
    ThrottleStatus,
)

logger = logging.getLogger(__name__)

_config = ThrottleConfig(
    limit=SETTINGS.lookup_miss_limit,
    window_seconds=SETTINGS.lookup_miss_window_seconds,
)

if redis_pool is not None:
    lookup_throttle: LookupThrottle = RedisLookupThrottle(redis_pool, _config)
else:
    lookup_throttle = InMemoryLookupThrottle(_config)


def _too_many(reader_id: str, result: ThrottleStatus) -> HTTPException:
    LOOKUP_THROTTLE_HITS.inc()
    logger.warning(
        "Lookup throttle engaged misses=%d",
        result.misses,
        extra={"reader_id": reader_id},
    )
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many unknown digital IDs from this reader",
        headers={"Retry-After": str(int(result.retry_after) + 1)},
    )


async def ensure_not_throttled(reader_id: str) -> None:
    try:
        result = await lookup_throttle.status(reader_id)
    except Exception:
        # Fail open: a throttle outage must not lock readers out.
        logger.exception("Lookup throttle unavailable", extra={"reader_id": reader_id})
        return
    if result.blocked:
        raise _too_many(reader_id, result)


async def charge_miss(reader_id: str) -> None:
    try:
        result = await lookup_throttle.record_miss(reader_id)
    except Exception:
        logger.exception("Lookup throttle unavailable", extra={"reader_id": reader_id})
        return
    if result.blocked:
        logger.info(
            "Reader exhausted its unknown-ID budget misses=%d",
            result.misses,
            extra={"reader_id": reader_id},
        )
