"""
Redis-backed scan debounce shared by all API workers.

Implements ScanDebouncer with `SET key 1 NX PX <window>`: the first scan
creates the key and is processed, repeats inside the window find it and are
skipped. Redis expires the key, so there is nothing to clean up.

Circuit Breaker Pattern:
  On Redis failure the debouncer "fails open" (processes the scan).
  A repeated scan then reaches the idempotent attendance write.
"""

import hashlib

from regdesk.core.logging import get_logger
from regdesk.core.metrics import redis_connection_errors
from regdesk.infrastructure.redis_client import get_redis
from regdesk.services.interfaces.debounce import ScanDebouncer

logger = get_logger(__name__)


def _key(scanner_id: str, payload: str) -> str:
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()[:24]
    return f"scan:{scanner_id}:{digest}"


class RedisDebouncer(ScanDebouncer):
    """
    Use when:
    - Several API workers serve the same scanner station
    - Scanner clients reconnect to different workers
    """

    def __init__(self, window_seconds: float, redis=None):
        self.window_ms = max(int(window_seconds * 1000), 1)
        self.redis = redis if redis is not None else get_redis()

    async def should_process(self, scanner_id: str, payload: str) -> bool:
        try:
            created = await self.redis.set(_key(scanner_id, payload), "1", nx=True, px=self.window_ms)
            return bool(created)
        except Exception as e:
            # Circuit breaker: fail open
            redis_connection_errors.inc()
            logger.warning("scan_debounce_unavailable", error=str(e))
            return True

    async def reset(self, scanner_id: str, payload: str):
        try:
            await self.redis.delete(_key(scanner_id, payload))
        except Exception as e:
            redis_connection_errors.inc()
            logger.warning("scan_debounce_reset_failed", error=str(e))
