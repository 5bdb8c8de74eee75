"""Date-key / time-label encoding and the daily slot grid.

Date keys look like ``5_6_2025`` (day, month, year without padding) and time
labels like ``14:30``. Both are stored as opaque strings but can always be
parsed back so slots can be compared and regenerated.
"""

import math
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from app.config import settings

_DATE_KEY_RE = re.compile(r"^(\d{1,2})_(\d{1,2})_(\d{4})$")
_TIME_LABEL_RE = re.compile(r"^(\d{2}):(\d{2})$")


def format_date_key(day: date) -> str:
    """Encode a calendar day as a date key."""
    return f"{day.day}_{day.month}_{day.year}"


def parse_date_key(key: str) -> date:
    """
    Decode a date key.

    Raises:
        ValueError: If the key is malformed or not a real calendar day
    """
    match = _DATE_KEY_RE.match(key)
    if not match:
        raise ValueError(f"Invalid date key: {key!r}")
    day, month, year = (int(part) for part in match.groups())
    return date(year, month, day)


def format_time_label(minutes: int) -> str:
    """Encode minutes since midnight as a time label."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_time_label(label: str) -> int:
    """
    Decode a time label to minutes since midnight.

    Raises:
        ValueError: If the label is malformed
    """
    match = _TIME_LABEL_RE.match(label)
    if not match:
        raise ValueError(f"Invalid time label: {label!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time label: {label!r}")
    return hours * 60 + minutes


@dataclass(frozen=True)
class SlotGrid:
    """Daily operating window cut into fixed-size slots."""

    opening_hour: int = 10
    closing_hour: int = 21
    interval_minutes: int = 30

    def __post_init__(self) -> None:
        if self.opening_hour >= self.closing_hour:
            raise ValueError("Opening hour must be before closing hour")

    @property
    def opening_minutes(self) -> int:
        return self.opening_hour * 60

    @property
    def closing_minutes(self) -> int:
        return self.closing_hour * 60

    def first_start(self, day: date, now: datetime) -> int | None:
        """
        Minutes since midnight of the first bookable slot on ``day``.

        For the current day this is the first slot boundary at or after
        ``now``, never before opening time. Past days have no slots.
        """
        today = now.date()
        if day < today:
            return None
        if day > today:
            return self.opening_minutes

        elapsed = now.hour * 3600 + now.minute * 60 + now.second + now.microsecond / 1_000_000
        step = self.interval_minutes * 60
        next_boundary = math.ceil(elapsed / step) * self.interval_minutes
        return max(next_boundary, self.opening_minutes)

    def day_labels(self, day: date, now: datetime) -> list[str]:
        """All time labels offered on ``day`` as seen at ``now``."""
        start = self.first_start(day, now)
        if start is None:
            return []
        return [
            format_time_label(minutes)
            for minutes in range(start, self.closing_minutes, self.interval_minutes)
        ]

    def window(self, now: datetime, days: int) -> Iterator[date]:
        """Calendar days of a rolling window starting today."""
        today = now.date()
        for offset in range(days):
            yield today + timedelta(days=offset)

    def offers(self, day: date, label: str, now: datetime, days: int) -> bool:
        """Whether ``label`` on ``day`` is inside the window and still in the future."""
        today = now.date()
        if not today <= day < today + timedelta(days=days):
            return False
        return label in self.day_labels(day, now)


def default_grid() -> SlotGrid:
    """Slot grid built from settings."""
    return SlotGrid(
        opening_hour=settings.slot_opening_hour,
        closing_hour=settings.slot_closing_hour,
        interval_minutes=settings.slot_interval_minutes,
    )


def clinic_now() -> datetime:
    """Current wall-clock time in the clinic timezone."""
    return datetime.now(ZoneInfo(settings.clinic_timezone))
