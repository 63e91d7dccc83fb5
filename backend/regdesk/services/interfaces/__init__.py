"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .debounce import ScanDebouncer
from .memory_debounce import InMemoryDebouncer

__all__ = ['ScanDebouncer', 'InMemoryDebouncer']
