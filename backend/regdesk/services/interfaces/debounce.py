"""
Scan debounce strategy interface.
Allows swapping between a per-process and a shared implementation.
"""

from abc import ABC, abstractmethod


class ScanDebouncer(ABC):
    """
    Suppresses repeated decodes of the same QR payload.

    A camera decodes the same code many times while it is held in view;
    only the first decode inside the window is processed.

    Implementations:
    - InMemoryDebouncer: per-process, single scanner station
    - RedisDebouncer: shared across API workers
    """

    @abstractmethod
    async def should_process(self, scanner_id: str, payload: str) -> bool:
        """
        Record a scan and decide whether to act on it.

        Returns:
            True for the first scan of `payload` by `scanner_id` in the window
            False for repeats (skip)
        """
        pass

    @abstractmethod
    async def reset(self, scanner_id: str, payload: str):
        """Forget a payload so the next scan is processed (e.g. after a failed write)."""
        pass
