"""Time sources supplying the ledger's notion of ``now``."""

from datetime import datetime, timezone
import logging
import threading
from typing import Protocol


logger = logging.getLogger(__name__)


class Clock(Protocol):
    """Read-only current-time oracle returning epoch seconds."""

    def now(self) -> int:
        ...


class SystemClock:
    """UTC wall clock that never reports a time earlier than a previous reading."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        """Return current UTC epoch seconds."""
        current = int(datetime.now(timezone.utc).timestamp())
        with self._lock:
            if current < self._last:
                logger.warning("System clock moved backwards by %ds; holding at %d", self._last - current, self._last)
                current = self._last
            self._last = current
            return current


class ManualClock:
    """Settable clock for simulations and tests."""

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("start must be >= 0")
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance(self, seconds: int) -> int:
        """Move the clock forward and return the new reading."""
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, timestamp: int) -> int:
        """Jump to ``timestamp``; it must not be earlier than the current reading."""
        with self._lock:
            if timestamp < self._now:
                raise ValueError("ManualClock cannot move backwards")
            self._now = timestamp
            return self._now
