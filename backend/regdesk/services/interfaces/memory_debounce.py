"""
In-memory debounce strategy.
"""

import time
from typing import Callable

from regdesk.services.interfaces.debounce import ScanDebouncer


class InMemoryDebouncer(ScanDebouncer):
    """
    Per-process debounce keyed by (scanner, payload).

    Use when:
    - A single API worker or a scanner-side process
    - No Redis available
    """

    def __init__(self, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_seen: dict[tuple[str, str], float] = {}

    async def should_process(self, scanner_id: str, payload: str) -> bool:
        now = self._clock()
        self._evict(now)
        key = (scanner_id, payload)
        if key in self._last_seen:
            return False
        self._last_seen[key] = now
        return True

    async def reset(self, scanner_id: str, payload: str):
        self._last_seen.pop((scanner_id, payload), None)

    def _evict(self, now: float):
        expired = [k for k, seen in self._last_seen.items() if now - seen >= self.window_seconds]
        for key in expired:
            del self._last_seen[key]
