"""
Clock Abstraction

Time source shared by accounts, ledgers and the interest scheduler, so that
tests can simulate the passage of days and months without real delay.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional
import threading


class Clock(ABC):
    """Source of the current instant (timezone-aware, UTC)"""

    @abstractmethod
    def now(self) -> datetime:
        """Current instant"""
        pass

    def today(self) -> date:
        """Current calendar date"""
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(Clock):
    """Clock that only moves when told to"""

    def __init__(self, start: Optional[datetime] = None):
        if start is None:
            start = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)
        elif start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: Optional[timedelta] = None, **kwargs) -> datetime:
        """Move forward by a timedelta (or timedelta keyword arguments)"""
        step = delta if delta is not None else timedelta(**kwargs)
        if step < timedelta(0):
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now = self._now + step
            return self._now

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        with self._lock:
            if instant < self._now:
                raise ValueError("ManualClock cannot move backwards")
            self._now = instant


_default_clock = SystemClock()


def default_clock() -> Clock:
    """Clock used when none is injected"""
    return _default_clock
