"""Per-run helpers: a deadline and a collecting log.

Both are created fresh for every run so concurrent runs share nothing.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from reserve_recon.errors import RunTimeout


class Deadline:
    """Caller-specified bound on a whole run."""

    def __init__(
        self,
        seconds: Optional[float],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._start = clock()
        self._seconds = seconds

    def elapsed(self) -> float:
        return self._clock() - self._start

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when the run is unbounded."""
        if self._seconds is None:
            return None
        return max(0.0, self._seconds - self.elapsed())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, stage: str) -> None:
        if self.expired():
            raise RunTimeout(f"Run deadline of {self._seconds}s elapsed before {stage}")

    def bound(self, timeout: float) -> float:
        """Clamp a per-call timeout to what is left of the run."""
        remaining = self.remaining()
        return timeout if remaining is None else min(timeout, remaining)


class RunLog:
    """Human-readable run lines, echoed to a module logger."""

    def __init__(self, logger: logging.Logger, prefix: str = "") -> None:
        self._logger = logger
        self._prefix = prefix
        self._lines: list[str] = []

    def info(self, message: str) -> None:
        self._emit(logging.INFO, message)

    def warning(self, message: str) -> None:
        self._emit(logging.WARNING, message)

    def error(self, message: str) -> None:
        self._emit(logging.ERROR, message)

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def _emit(self, level: int, message: str) -> None:
        self._lines.append(message)
        self._logger.log(level, "%s%s", self._prefix, message)
