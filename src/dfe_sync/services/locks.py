"""Per-location mutual exclusion."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from dfe_sync.errors import SyncInProgressError

logger = logging.getLogger(__name__)


class LocationLocks:
    """
    One non-blocking lock per location.

    A second operation on a busy location is rejected with
    SyncInProgressError instead of waiting; different locations never
    contend with each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, location: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(location, threading.Lock())

    @contextmanager
    def hold(self, location: str) -> Iterator[None]:
        """Hold the location's lock for the duration of the block."""
        lock = self._lock_for(location)
        if not lock.acquire(blocking=False):
            logger.warning(f"Rejected concurrent operation for location {location}")
            raise SyncInProgressError(location)
        try:
            yield
        finally:
            lock.release()

    def is_busy(self, location: str) -> bool:
        """Return True if an operation currently holds the location."""
        return self._lock_for(location).locked()
