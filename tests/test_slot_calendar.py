"""Tests for date keys, time labels, and the daily slot grid."""

from datetime import UTC, date, datetime

import pytest

from app.core.slot_calendar import (
    SlotGrid,
    format_date_key,
    format_time_label,
    parse_date_key,
    parse_time_label,
)
from app.services.scheduler_service import iter_available_slots

GRID = SlotGrid(opening_hour=10, closing_hour=21, interval_minutes=30)
TODAY = date(2030, 1, 7)


def at(hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(2030, 1, 7, hour, minute, second, tzinfo=UTC)


def test_date_key_has_no_padding():
    """Date keys are day_month_year without leading zeros."""
    assert format_date_key(date(2025, 6, 5)) == "5_6_2025"
    assert parse_date_key("5_6_2025") == date(2025, 6, 5)
    assert parse_date_key("25_12_2025") == date(2025, 12, 25)


@pytest.mark.parametrize("key", ["2025-06-05", "5_6_25", "5/6/2025", "", "31_2_2025"])
def test_parse_date_key_rejects_malformed(key):
    """Malformed keys and impossible days are rejected."""
    with pytest.raises(ValueError):
        parse_date_key(key)


def test_time_labels():
    """Time labels are zero-padded HH:MM."""
    assert format_time_label(9 * 60) == "09:00"
    assert format_time_label(14 * 60 + 30) == "14:30"
    assert parse_time_label("20:30") == 20 * 60 + 30


@pytest.mark.parametrize("label", ["9:30", "24:00", "12:60", "1230", "noon"])
def test_parse_time_label_rejects_malformed(label):
    with pytest.raises(ValueError):
        parse_time_label(label)


def test_first_slot_today_rounds_up_to_next_half_hour():
    """At 14:20 the first slot offered today is 14:30."""
    labels = GRID.day_labels(TODAY, at(14, 20))
    assert labels[0] == "14:30"
    assert labels[-1] == "20:30"


def test_first_slot_on_boundary_is_kept():
    assert GRID.day_labels(TODAY, at(14, 30))[0] == "14:30"
    assert GRID.day_labels(TODAY, at(14, 30, 1))[0] == "15:00"


def test_before_opening_starts_at_opening():
    assert GRID.day_labels(TODAY, at(9, 10))[0] == "10:00"
    assert GRID.day_labels(TODAY, at(0, 0))[0] == "10:00"


def test_no_slots_left_after_last_start():
    """Once the last slot has started nothing is offered today."""
    assert GRID.day_labels(TODAY, at(20, 45)) == []
    assert GRID.day_labels(TODAY, at(21, 0)) == []
    assert GRID.day_labels(TODAY, at(23, 59)) == []


def test_future_day_has_full_grid():
    """A later day offers every slot from 10:00 to 20:30."""
    labels = GRID.day_labels(date(2030, 1, 8), at(14, 20))
    assert len(labels) == 22
    assert labels[0] == "10:00"
    assert labels[-1] == "20:30"
    assert "21:00" not in labels


def test_past_day_has_no_slots():
    assert GRID.day_labels(date(2030, 1, 6), at(14, 20)) == []


def test_window_covers_consecutive_days():
    days = list(GRID.window(at(14, 20), 7))
    assert days[0] == TODAY
    assert days[-1] == date(2030, 1, 13)
    assert len(days) == 7


def test_offers_only_future_slots_inside_window():
    now = at(14, 20)
    assert GRID.offers(TODAY, "14:30", now, 7)
    assert not GRID.offers(TODAY, "14:00", now, 7)
    assert not GRID.offers(TODAY, "14:45", now, 7)
    assert GRID.offers(date(2030, 1, 13), "10:00", now, 7)
    assert not GRID.offers(date(2030, 1, 14), "10:00", now, 7)
    assert not GRID.offers(TODAY, "21:00", now, 7)


def test_grid_rejects_inverted_hours():
    with pytest.raises(ValueError):
        SlotGrid(opening_hour=21, closing_hour=10)


def test_available_slots_exclude_booked_times():
    """Booked labels are removed; other days are untouched."""
    now = at(14, 20)
    booked = {"7_1_2030": {"14:30", "16:00"}, "8_1_2030": {"10:00"}}

    days = list(iter_available_slots(GRID, booked, now, 3))

    assert [day.date_key for day in days] == ["7_1_2030", "8_1_2030", "9_1_2030"]
    assert days[0].times[0] == "15:00"
    assert "16:00" not in days[0].times
    assert "10:00" not in days[1].times
    assert days[1].times[0] == "10:30"
    assert len(days[2].times) == 22


def test_fully_booked_day_is_listed_empty():
    now = at(20, 0)
    booked = {"7_1_2030": {"20:00", "20:30"}}

    days = list(iter_available_slots(GRID, booked, now, 1))

    assert len(days) == 1
    assert days[0].times == []


def test_available_slots_are_repeatable():
    """Listing is pure: same inputs give the same answer."""
    now = at(11, 5)
    booked = {"7_1_2030": {"12:00"}}
    first = list(iter_available_slots(GRID, booked, now, 7))
    second = list(iter_available_slots(GRID, booked, now, 7))
    assert first == second
