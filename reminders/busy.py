"""
In-flight operation tracking.

Each draft and each notification may have at most one mutating operation
running at a time. A second attempt on the same key fails fast with Busy
instead of waiting or interleaving.

Design decisions:
- State lives in a registry keyed by draft or notification id, not on the
  objects themselves, so many drafts can be open at once
- The event loop is single-threaded, so checking and marking a key happen
  without an await in between and need no lock
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from reminders.errors import Busy

logger = logging.getLogger("busy_registry")


class BusyRegistry:
    """
    Tracks which keys have an operation in flight.

    Example usage:
        registry = BusyRegistry()

        async with registry.hold("ntf-001", "cancel"):
            ...  # a concurrent hold("ntf-001") raises Busy
    """

    def __init__(self):
        # key -> name of the operation holding it
        self._in_flight: dict[str, str] = {}

    def is_busy(self, key: str) -> bool:
        return key in self._in_flight

    def operation_for(self, key: str) -> Optional[str]:
        """Name of the operation currently holding `key`, if any."""
        return self._in_flight.get(key)

    def acquire(self, key: str, operation: str) -> None:
        if key in self._in_flight:
            logger.warning(
                f"Rejected {operation} on {key}: {self._in_flight[key]} already in flight"
            )
            raise Busy(key, self._in_flight[key])
        self._in_flight[key] = operation

    def release(self, key: str) -> None:
        self._in_flight.pop(key, None)

    @asynccontextmanager
    async def hold(self, key: str, operation: str) -> AsyncIterator[None]:
        self.acquire(key, operation)
        try:
            yield
        finally:
            self.release(key)

    def __len__(self) -> int:
        return len(self._in_flight)
