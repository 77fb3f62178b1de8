"""
MathMentor Scheduling Backend — Clock Source
==============================================

What:  The single source of "now" for every time-based rule.
Why:   "Class must start in the future" and "booking window has ended" depend
       on the current instant. Injecting the clock lets tests pin it.
"""

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant as a timezone-aware datetime."""
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Clock pinned to a given instant; `advance()` moves it forward.

    Used by tests and by operational scripts that replay a past day.
    """

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def advance(self, delta) -> None:
        self._instant = self._instant + delta


system_clock = SystemClock()
