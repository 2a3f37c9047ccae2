# ==============================================================================
# Period Resolution
# ==============================================================================
"""
Convert a {period, date} pair into an absolute time window and a bucketing
granularity.

Supported periods:
- Calendar units: "day"/"d", "month"/"m", "year"/"y". The window covers the
  whole unit containing the date.
- Rolling windows: "{amount}{unit}" with unit h, d, w, m or y ("1h", "7d",
  "30d", "1y"). The window ends at the date.
- "all": from the fixed launch date up to the date.

All arithmetic is done in UTC. Windows are closed: [start, end].
"""

import calendar
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from webstats.core.errors import ValidationError
from webstats.core.models import Granularity

ALL_TIME = "all"

# Default "all time" origin; deployments override it via settings
DEFAULT_LAUNCH_DATE = datetime(2024, 1, 1, tzinfo=timezone.utc)

CALENDAR_PERIODS = {
    "day": "day",
    "d": "day",
    "month": "month",
    "m": "month",
    "year": "year",
    "y": "year",
}

CALENDAR_GRANULARITY = {
    "day": Granularity.HOUR,
    "month": Granularity.DAY,
    "year": Granularity.MONTH,
}

ROLLING_PERIOD = re.compile(r"^(\d+)([hdwmy])$")

_FIXED_STEPS = {
    Granularity.MINUTE: timedelta(minutes=1),
    Granularity.HOUR: timedelta(hours=1),
    Granularity.DAY: timedelta(days=1),
}


# ==============================================================================
# Date Helpers
# ==============================================================================


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date(value: str | datetime) -> datetime:
    """
    Parse an ISO-8601 timestamp.

    Raises:
        ValidationError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return to_utc(value)
    try:
        return to_utc(datetime.fromisoformat(value.strip()))
    except (AttributeError, ValueError) as e:
        raise ValidationError(f"Invalid date: {value!r}") from e


def add_months(value: datetime, months: int) -> datetime:
    """Shift by whole calendar months, clamping the day to the target month."""
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def truncate(value: datetime, granularity: Granularity) -> datetime:
    """Start of the bucket containing value."""
    value = to_utc(value)
    if granularity == Granularity.MINUTE:
        return value.replace(second=0, microsecond=0)
    if granularity == Granularity.HOUR:
        return value.replace(minute=0, second=0, microsecond=0)
    if granularity == Granularity.DAY:
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def shift(value: datetime, steps: int, granularity: Granularity) -> datetime:
    """Move value by a number of granularity steps (negative moves back)."""
    if granularity == Granularity.MONTH:
        return add_months(value, steps)
    return value + steps * _FIXED_STEPS[granularity]


def steps_between(start: datetime, end: datetime, granularity: Granularity) -> int:
    """Number of granularity steps from start to end, rounded up."""
    if end <= start:
        return 0
    if granularity == Granularity.MONTH:
        months = (end.year - start.year) * 12 + (end.month - start.month)
        if add_months(start, months) < end:
            months += 1
        return months
    return math.ceil((end - start) / _FIXED_STEPS[granularity])


def _start_of(value: datetime, unit: str) -> datetime:
    value = truncate(value, Granularity.DAY)
    if unit == "month":
        return value.replace(day=1)
    if unit == "year":
        return value.replace(month=1, day=1)
    return value


def _end_of(value: datetime, unit: str) -> datetime:
    start = _start_of(value, unit)
    if unit == "day":
        following = start + timedelta(days=1)
    elif unit == "month":
        following = add_months(start, 1)
    else:
        following = start.replace(year=start.year + 1)
    return following - timedelta(microseconds=1)


def _rolling_delta_start(date: datetime, amount: int, unit: str) -> datetime:
    if unit == "h":
        return date - timedelta(hours=amount)
    if unit == "d":
        return date - timedelta(days=amount)
    if unit == "w":
        return date - timedelta(weeks=amount)
    if unit == "m":
        return add_months(date, -amount)
    return add_months(date, -12 * amount)


def _rolling_granularity(amount: int, unit: str) -> Granularity:
    if unit == "h":
        return Granularity.MINUTE
    if unit == "d":
        return Granularity.HOUR if amount == 1 else Granularity.DAY
    if unit in ("w", "m"):
        return Granularity.DAY
    return Granularity.MONTH


# ==============================================================================
# Time Window
# ==============================================================================


@dataclass(frozen=True)
class TimeWindow:
    """
    A resolved query window.

    Attributes:
        start: Inclusive lower bound (UTC)
        end: Inclusive upper bound (UTC)
        granularity: Bucket size for time series
        data_points: Number of buckets, counted back from the bucket holding end
    """

    start: datetime
    end: datetime
    granularity: Granularity
    data_points: int

    def bucket_starts(self) -> list[datetime]:
        """Bucket start times, newest first."""
        last = truncate(self.end, self.granularity)
        return [shift(last, -i, self.granularity) for i in range(self.data_points)]

    def bucket_of(self, value: datetime) -> datetime:
        """Start of the bucket a timestamp falls into."""
        return truncate(value, self.granularity)

    def contains(self, value: datetime) -> bool:
        """Check whether a timestamp lies inside the window."""
        return self.start <= to_utc(value) <= self.end


def resolve_period(
    period: str,
    date: str | datetime,
    launch_date: datetime = DEFAULT_LAUNCH_DATE,
) -> TimeWindow:
    """
    Resolve a period and reference date into a TimeWindow.

    Args:
        period: Period name ("day", "month", "year", "7d", "all", ...)
        date: Reference date (ISO string or datetime)
        launch_date: Origin used by the "all" period

    Returns:
        Resolved TimeWindow

    Raises:
        ValidationError: If the period or date is malformed
    """
    if not period:
        raise ValidationError("Period is required")
    date = parse_date(date)
    key = period.strip().lower()

    if key == ALL_TIME:
        start = to_utc(launch_date)
        if date < start:
            raise ValidationError(f"Date {date.isoformat()} is before the launch date")
        granularity = Granularity.MONTH
        first, last = truncate(start, granularity), truncate(date, granularity)
        points = steps_between(first, last, granularity) + 1
        return TimeWindow(start, date, granularity, points)

    unit = CALENDAR_PERIODS.get(key)
    if unit is not None:
        start = _start_of(date, unit)
        end = _end_of(date, unit)
        granularity = CALENDAR_GRANULARITY[unit]
        if unit == "day":
            points = 24
        elif unit == "month":
            points = calendar.monthrange(start.year, start.month)[1]
        else:
            points = 12
        return TimeWindow(start, end, granularity, points)

    match = ROLLING_PERIOD.match(key)
    if match is None:
        raise ValidationError(f"Invalid period: {period!r}")
    amount, rolling_unit = int(match.group(1)), match.group(2)
    if amount <= 0:
        raise ValidationError(f"Invalid period: {period!r}")

    start = _rolling_delta_start(date, amount, rolling_unit)
    granularity = _rolling_granularity(amount, rolling_unit)
    points = steps_between(start, date, granularity) + 1
    return TimeWindow(start, date, granularity, points)


class PeriodResolver:
    """Period resolution bound to a launch date."""

    def __init__(self, launch_date: datetime = DEFAULT_LAUNCH_DATE):
        self._launch_date = to_utc(launch_date)

    def resolve(self, period: str, date: str | datetime) -> TimeWindow:
        return resolve_period(period, date, self._launch_date)
