"""Clock sources used by issuance and redemption.

Every service receives a clock instead of calling ``datetime.now`` itself, so
expiry decisions can be replayed deterministically in tests.
"""
from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Optional, Protocol

from .datetime_utils import as_utc, now_utc


class Clock(Protocol):
    skew_tolerance: timedelta

    def now(self) -> datetime:
        raise NotImplementedError


def _check_skew(skew_tolerance: timedelta) -> timedelta:
    if skew_tolerance < timedelta(0):
        raise ValueError("skew_tolerance must not be negative")
    return skew_tolerance


class SystemClock:
    """Wall clock in UTC with a fixed tolerance for issuer/verifier drift.

    Never goes backwards: if the wall clock is stepped back (NTP correction),
    ``now`` keeps returning the latest value seen until real time catches up.
    """

    def __init__(self, skew_tolerance: timedelta = timedelta(0)):
        self.skew_tolerance = _check_skew(skew_tolerance)
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        current = now_utc()
        with self._lock:
            if self._last is not None and current < self._last:
                return self._last
            self._last = current
            return current

    def __repr__(self) -> str:
        return f"SystemClock(skew_tolerance={self.skew_tolerance!r})"


class FrozenClock:
    """Manually driven clock (tests, replays of recorded scans)."""

    def __init__(self, current: datetime, skew_tolerance: timedelta = timedelta(0)):
        self.skew_tolerance = _check_skew(skew_tolerance)
        self._current = as_utc(current)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set(self, value: datetime) -> None:
        with self._lock:
            self._current = as_utc(value)

    def advance(self, delta: timedelta) -> datetime:
        with self._lock:
            self._current = self._current + delta
            return self._current
