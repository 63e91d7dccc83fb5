"""
Scan debounce strategy factory.
Configures which debounce implementation the scan endpoint uses.
"""

from typing import Optional

from regdesk.services.interfaces.debounce import ScanDebouncer
from regdesk.services.interfaces.memory_debounce import InMemoryDebouncer
from regdesk.services.scan_debounce import RedisDebouncer
from regdesk.core.config import settings


def get_debounce_strategy() -> ScanDebouncer:
    """
    Get configured debounce strategy.

    - memory: per-process (default, single worker)
    - redis: shared across workers (requires REDIS_ENABLED)

    Selected via DEBOUNCE_STRATEGY env var.
    """
    strategy = getattr(settings, 'DEBOUNCE_STRATEGY', 'memory')

    if strategy == 'redis' and settings.REDIS_ENABLED:
        return RedisDebouncer(settings.SCAN_DEBOUNCE_SECONDS)
    else:
        return InMemoryDebouncer(settings.SCAN_DEBOUNCE_SECONDS)


# Singleton instance
_debouncer: Optional[ScanDebouncer] = None

def get_debouncer() -> ScanDebouncer:
    """Get debounce strategy singleton (FastAPI dependency)."""
    global _debouncer
    if _debouncer is None:
        _debouncer = get_debounce_strategy()
    return _debouncer
