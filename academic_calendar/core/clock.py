# academic_calendar/core/clock.py - Injectable time source
from abc import ABC, abstractmethod
from datetime import datetime, timedelta


class Clock(ABC):
    """Time source used by the calendar services. Naive UTC, like the model timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.utcnow()


class FixedClock(Clock):
    """Clock pinned to a given instant; advance() moves it forward"""

    def __init__(self, moment: datetime):
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime):
        self._moment = moment

    def advance(self, **kwargs):
        self._moment = self._moment + timedelta(**kwargs)


def academic_year_label(moment: datetime) -> str:
    """
    Academic year a moment falls in. Years roll over in September:
    2025-09-01 -> "2025/2026", 2026-03-01 -> "2025/2026".
    """
    year = moment.year
    if moment.month >= 9:
        return f"{year}/{year + 1}"
    return f"{year - 1}/{year}"


system_clock = SystemClock()

__all__ = ["Clock", "SystemClock", "FixedClock", "academic_year_label", "system_clock"]
