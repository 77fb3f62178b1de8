"""
Tests for the time window value object and the overlap rule.

What we test:
    ✅ Half-open overlap: partial overlap, containment, back-to-back
    ✅ Overlap is symmetric
    ✅ validate(): window order, duration bounds, duration mismatch
    ✅ contains() and timezone-aware start/end instants
"""

from datetime import date, time, timedelta, timezone

import pytest

from app.exceptions import ValidationError
from app.services.time_window import TimeWindow, minutes_between, windows_overlap

DAY = date(2025, 1, 20)


def w(start: str, end: str, day: date = DAY) -> TimeWindow:
    return TimeWindow(day, time.fromisoformat(start), time.fromisoformat(end))


class TestOverlap:
    def test_partial_overlap(self):
        assert w("10:00", "11:00").overlaps(w("10:30", "11:30"))

    def test_back_to_back_is_not_an_overlap(self):
        assert not w("10:00", "11:00").overlaps(w("11:00", "12:00"))
        assert not w("11:00", "12:00").overlaps(w("10:00", "11:00"))

    def test_containment_overlaps(self):
        assert w("09:00", "12:00").overlaps(w("10:00", "10:30"))

    def test_identical_windows_overlap(self):
        assert w("10:00", "11:00").overlaps(w("10:00", "11:00"))

    def test_different_days_never_overlap(self):
        assert not w("10:00", "11:00").overlaps(w("10:00", "11:00", DAY + timedelta(days=1)))

    @pytest.mark.parametrize(
        "a,b",
        [
            (("10:00", "11:00"), ("10:30", "11:30")),
            (("10:00", "11:00"), ("11:00", "12:00")),
            (("08:00", "09:00"), ("10:00", "11:00")),
            (("09:00", "12:00"), ("10:00", "10:30")),
        ],
    )
    def test_symmetric(self, a, b):
        a_s, a_e = (time.fromisoformat(t) for t in a)
        b_s, b_e = (time.fromisoformat(t) for t in b)
        assert windows_overlap(a_s, a_e, b_s, b_e) == windows_overlap(b_s, b_e, a_s, a_e)


class TestValidate:
    def test_valid_window_returns_itself(self):
        window = w("10:00", "11:00")
        assert window.validate() is window
        assert window.duration_minutes == 60

    def test_start_must_precede_end(self):
        with pytest.raises(ValidationError) as exc_info:
            w("11:00", "10:00").validate()
        assert exc_info.value.field == "start_time"

    def test_equal_start_and_end_rejected(self):
        with pytest.raises(ValidationError):
            w("10:00", "10:00").validate()

    def test_too_short(self):
        with pytest.raises(ValidationError) as exc_info:
            w("10:00", "10:10").validate()
        assert "between 15 and 480" in exc_info.value.message

    def test_too_long(self):
        with pytest.raises(ValidationError):
            w("08:00", "16:30").validate()

    def test_explicit_bounds_override_settings(self):
        assert w("10:00", "10:05").validate(min_minutes=1).duration_minutes == 5

    def test_duration_mismatch(self):
        with pytest.raises(ValidationError) as exc_info:
            w("10:00", "11:00").validate(expected_duration=45)
        assert exc_info.value.context["window_minutes"] == 60


class TestContainsAndInstants:
    def test_contains(self):
        outer = w("10:00", "12:00")
        assert outer.contains(w("10:00", "12:00"))
        assert outer.contains(w("10:30", "11:00"))
        assert not outer.contains(w("09:30", "11:00"))
        assert not outer.contains(w("11:30", "12:30"))

    def test_instants_are_timezone_aware(self):
        window = w("10:00", "11:30")
        assert window.starts_at().tzinfo is not None
        assert window.ends_at(timezone.utc) - window.starts_at(timezone.utc) == timedelta(minutes=90)

    def test_minutes_between(self):
        assert minutes_between(time(9, 15), time(10, 0)) == 45
