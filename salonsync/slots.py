from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from salonsync.domain import DayStatus, ViewingContext, WeeklyScheduleEntry
from salonsync.resolver import resolve_for_snapshot
from salonsync.store import Snapshot
from salonsync.validation import from_minutes, to_minutes, weekday_of


@dataclass(frozen=True)
class Availability:
    date: dt.date
    status: DayStatus
    starts: tuple[str, ...] = ()

    @property
    def is_full(self) -> bool:
        return self.status is DayStatus.OPEN and not self.starts


def available_starts(
    entry: WeeklyScheduleEntry,
    occupied: list[tuple[int, int]],
    service_minutes: int,
) -> tuple[str, ...]:
    """Bookable start times for one day, as HH:MM.

    Candidates are projected from anchors (opening time and the end of
    every occupied interval) in steps of the service duration, stopping at
    the first clash or when the service would overrun closing time.
    `occupied` holds [start, end) intervals in minutes since midnight.
    """
    if service_minutes <= 0:
        raise ValueError("service_minutes must be > 0")

    day_start = to_minutes(entry.open_time)
    day_end = to_minutes(entry.close_time)

    blocks = list(occupied)
    brk = entry.effective_break
    if brk is not None:
        blocks.append((to_minutes(brk[0]), to_minutes(brk[1])))
    blocks.sort()

    anchors = {day_start}
    anchors.update(end for _, end in blocks if day_start <= end < day_end)

    candidates: set[int] = set()
    for anchor in sorted(anchors):
        t = anchor
        while t <= day_end - service_minutes:
            if any(t < b_end and t + service_minutes > b_start for b_start, b_end in blocks):
                break
            candidates.add(t)
            t += service_minutes

    return tuple(from_minutes(t) for t in sorted(candidates))


def day_availability(
    day: dt.date,
    snapshot: Snapshot,
    worker_id: str | None,
    service_minutes: int,
) -> Availability:
    context = ViewingContext(worker_id=worker_id)
    status = resolve_for_snapshot(day, snapshot, context)
    if status is not DayStatus.OPEN:
        return Availability(date=day, status=status)

    weekday = weekday_of(day)
    if len(snapshot.schedule) > weekday:
        entry = snapshot.schedule[weekday]
    else:
        entry = WeeklyScheduleEntry(weekday=weekday)

    occupied = []
    for appt in snapshot.appointments_on(day):
        if worker_id is not None and appt.worker_id != worker_id:
            continue
        start = to_minutes(appt.time)
        occupied.append((start, start + snapshot.service_duration(appt.service)))

    return Availability(date=day, status=status, starts=available_starts(entry, occupied, service_minutes))
