"""
Daneel Web — Atomic Replace Cell

Single-writer / multi-reader holder for "the latest value". Readers get
the whole current object or nothing; there is no partially updated state
to observe because values are immutable and replaced wholesale.
"""

from __future__ import annotations

import threading
from typing import Generic, TypeVar

T = TypeVar("T")


class AtomicCell(Generic[T]):
    """
    Last-write-wins cell.

    The lock covers only the reference swap, so a writer is never blocked
    by readers for longer than that.
    """

    def __init__(self, initial: T | None = None) -> None:
        self._lock = threading.Lock()
        self._value: T | None = initial
        self._version: int = 0 if initial is None else 1

    def swap(self, value: T) -> T | None:
        """Replace the held value. Returns the one it replaced."""
        with self._lock:
            previous = self._value
            self._value = value
            self._version += 1
        return previous

    def get(self) -> T | None:
        return self._value

    @property
    def version(self) -> int:
        """Number of values ever stored. 0 means never written."""
        return self._version
