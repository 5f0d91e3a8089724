from __future__ import annotations

import datetime as dt
from typing import Callable, Sequence

from salonsync.domain import DayStatus, LeaveRange, ViewingContext, Visibility, WeeklyScheduleEntry
from salonsync.store import Snapshot
from salonsync.validation import weekday_of

DaysOffLookup = Callable[[str], "frozenset[int] | set[int]"]

_DEFAULT_VISIBILITY = Visibility()


def _is_open(schedule: Sequence[WeeklyScheduleEntry | None], weekday: int) -> bool:
    # Missing or malformed entries count as open.
    try:
        entry = schedule[weekday]
    except (IndexError, TypeError):
        return True
    if not isinstance(entry, WeeklyScheduleEntry):
        return True
    return bool(entry.is_open)


def resolve_status(
    day: dt.date,
    weekday: int,
    context: ViewingContext,
    schedule: Sequence[WeeklyScheduleEntry | None],
    leaves: Sequence[LeaveRange],
    days_off_lookup: DaysOffLookup,
    visibility: Visibility = _DEFAULT_VISIBILITY,
) -> DayStatus:
    """Classify one calendar day.

    Rules are evaluated in a fixed order and the first true one wins:
    salon closure, regular weekly closing, then (worker context only)
    personal leave and weekly day off. A hidden rule is skipped as if it
    were false; the remaining rules keep their order.

    `weekday` must already be validated (0..6, 0=Sunday).
    """
    if visibility.show_closures and any(l.is_global and l.covers(day) for l in leaves):
        return DayStatus.CLOSED_EXCEPTION

    if not _is_open(schedule, weekday):
        return DayStatus.CLOSED_REGULAR

    if context.worker_id is not None:
        worker_id = context.worker_id
        if visibility.show_leaves and any(l.worker_id == worker_id and l.covers(day) for l in leaves):
            return DayStatus.ON_LEAVE
        if visibility.show_weekly_off and weekday in days_off_lookup(worker_id):
            return DayStatus.WEEKLY_OFF

    return DayStatus.OPEN


def resolve_for_snapshot(
    day: dt.date,
    snapshot: Snapshot,
    context: ViewingContext,
    visibility: Visibility = _DEFAULT_VISIBILITY,
) -> DayStatus:
    return resolve_status(
        day,
        weekday_of(day),
        context,
        snapshot.schedule,
        snapshot.leaves,
        snapshot.days_off,
        visibility,
    )
