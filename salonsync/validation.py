from __future__ import annotations

import datetime as dt
from typing import Iterable

from salonsync.domain import LeaveRange, ValidationError, WeeklyScheduleEntry


def weekday_of(day: dt.date) -> int:
    # date.weekday() is 0=Monday; the salon stores 0=Sunday.
    return (day.weekday() + 1) % 7


def validate_weekday(weekday: int) -> int:
    if isinstance(weekday, bool) or not isinstance(weekday, int) or not 0 <= weekday <= 6:
        raise ValidationError(f"Invalid weekday: {weekday!r}. Expected integer 0..6 (0=Sunday).")
    return weekday


def validate_leave(leave: LeaveRange) -> LeaveRange:
    if leave.start_date > leave.end_date:
        raise ValidationError(
            f"Leave {leave.id!r} has an inverted range: {leave.start_date.isoformat()} > {leave.end_date.isoformat()}"
        )
    return leave


def validate_schedule(entries: Iterable[WeeklyScheduleEntry]) -> tuple[WeeklyScheduleEntry, ...]:
    """Return the schedule indexed by weekday (0=Sunday).

    Exactly one entry per weekday is required.
    """
    by_day: dict[int, WeeklyScheduleEntry] = {}
    for entry in entries:
        validate_weekday(entry.weekday)
        if entry.weekday in by_day:
            raise ValidationError(f"Duplicate schedule entry for weekday {entry.weekday}")
        if entry.break_start and entry.break_end and entry.break_start >= entry.break_end:
            raise ValidationError(
                f"Break for weekday {entry.weekday} must start before it ends "
                f"({entry.break_start} >= {entry.break_end})"
            )
        by_day[entry.weekday] = entry

    missing = [d for d in range(7) if d not in by_day]
    if missing:
        raise ValidationError(f"Schedule is missing weekdays: {missing}")

    return tuple(by_day[d] for d in range(7))


def normalize_time(raw: str) -> str:
    """'9:5' / '09:05:00' -> '09:05'."""
    parts = str(raw).strip().split(":")
    if len(parts) < 2:
        raise ValidationError(f"Invalid time of day: {raw!r}")
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise ValidationError(f"Invalid time of day: {raw!r}") from e
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValidationError(f"Invalid time of day: {raw!r}")
    return f"{hours:02d}:{minutes:02d}"


def to_minutes(hhmm: str) -> int:
    hours, minutes = normalize_time(hhmm).split(":")
    return int(hours) * 60 + int(minutes)


def from_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"
