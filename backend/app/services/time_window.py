"""
MathMentor Scheduling Backend — Time Window Helpers
=====================================================

What:  Value object for a same-day wall-clock window plus the overlap rule.
Why:   Classes, bookings and conflict checks all reason about the same
       (date, start, end) triple. Keeping the arithmetic in one place keeps
       the half-open semantics identical everywhere.

Overlap semantics (half-open intervals [start, end)):
    a overlaps b  ⟺  a.start < b.end AND a.end > b.start

    10:00-11:00 vs 10:30-11:30 → overlap
    10:00-11:00 vs 11:00-12:00 → no overlap (back-to-back is allowed)
"""

from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo
from typing import Optional

from app.config import settings
from app.exceptions import ValidationError


def windows_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Half-open interval overlap test; symmetric in its two windows."""
    return a_start < b_end and a_end > b_start


def minutes_between(start: time, end: time) -> int:
    """Whole minutes from `start` to `end` on the same day."""
    start_s = start.hour * 3600 + start.minute * 60 + start.second
    end_s = end.hour * 3600 + end.minute * 60 + end.second
    return (end_s - start_s) // 60


@dataclass(frozen=True)
class TimeWindow:
    """A same-day window on a calendar date."""

    scheduled_date: date
    start_time: time
    end_time: time

    @property
    def duration_minutes(self) -> int:
        return minutes_between(self.start_time, self.end_time)

    def validate(
        self,
        min_minutes: Optional[int] = None,
        max_minutes: Optional[int] = None,
        expected_duration: Optional[int] = None,
    ) -> "TimeWindow":
        """
        Checks start < end, the session length bounds and, when given, that a
        caller-supplied duration matches the window.

        Raises:
            ValidationError: on any violated rule
        """
        if not self.start_time < self.end_time:
            raise ValidationError(
                "start_time must be before end_time",
                field="start_time",
                context={
                    "start_time": self.start_time.isoformat(),
                    "end_time": self.end_time.isoformat(),
                },
            )
        duration = self.duration_minutes
        lower = settings.min_session_minutes if min_minutes is None else min_minutes
        upper = settings.max_session_minutes if max_minutes is None else max_minutes
        if duration < lower or duration > upper:
            raise ValidationError(
                f"Duration must be between {lower} and {upper} minutes",
                field="duration_minutes",
                context={"duration_minutes": duration},
            )
        if expected_duration is not None and expected_duration != duration:
            raise ValidationError(
                "duration_minutes does not match the time window",
                field="duration_minutes",
                context={"duration_minutes": expected_duration, "window_minutes": duration},
            )
        return self

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.scheduled_date == other.scheduled_date and windows_overlap(
            self.start_time, self.end_time, other.start_time, other.end_time
        )

    def contains(self, other: "TimeWindow") -> bool:
        """True when `other` lies entirely inside this window."""
        return (
            self.scheduled_date == other.scheduled_date
            and self.start_time <= other.start_time
            and other.end_time <= self.end_time
        )

    def starts_at(self, tz: Optional[tzinfo] = None) -> datetime:
        return datetime.combine(
            self.scheduled_date, self.start_time, tzinfo=tz or settings.scheduling_tz
        )

    def ends_at(self, tz: Optional[tzinfo] = None) -> datetime:
        return datetime.combine(
            self.scheduled_date, self.end_time, tzinfo=tz or settings.scheduling_tz
        )

    @classmethod
    def of(cls, row) -> "TimeWindow":
        """Window of any row carrying scheduled_date/start_time/end_time."""
        return cls(row.scheduled_date, row.start_time, row.end_time)
