from __future__ import annotations

import calendar
import datetime as dt
from dataclasses import dataclass

from salonsync.domain import OTHER_BADGE_LABEL, UNKNOWN_WORKER_LABEL, DayStatus, ViewingContext, Visibility
from salonsync.resolver import resolve_for_snapshot
from salonsync.store import Snapshot, appointments_for_context
from salonsync.validation import to_minutes


@dataclass(frozen=True)
class Badge:
    label: str
    count: int


@dataclass(frozen=True)
class DayCell:
    date: dt.date
    status: DayStatus
    appointment_count: int = 0
    badges: tuple[Badge, ...] = ()
    is_today: bool = False


@dataclass(frozen=True)
class MonthGrid:
    year: int
    month: int
    leading_blanks: int  # Monday-first layout
    cells: tuple[DayCell, ...]

    def cell(self, day: dt.date) -> DayCell | None:
        for c in self.cells:
            if c.date == day:
                return c
        return None


def _badges(snapshot: Snapshot, day_appointments: list, context: ViewingContext) -> tuple[Badge, ...]:
    if not day_appointments:
        return ()
    if not context.salon_wide:
        own = sum(1 for a in day_appointments if a.worker_id == context.worker_id)
        other = len(day_appointments) - own
        badges = [Badge(label="RDV", count=own)] if own else []
        if other:
            badges.append(Badge(label=OTHER_BADGE_LABEL, count=other))
        return tuple(badges)

    counts: dict[str | None, int] = {}
    for appt in day_appointments:
        counts[appt.worker_id] = counts.get(appt.worker_id, 0) + 1

    badges: list[Badge] = []
    for worker in snapshot.workers:
        if worker.id in counts:
            badges.append(Badge(label=worker.name, count=counts.pop(worker.id)))
    other = counts.pop(None, 0)
    for count in counts.values():
        badges.append(Badge(label=UNKNOWN_WORKER_LABEL, count=count))
    if other:
        badges.append(Badge(label=OTHER_BADGE_LABEL, count=other))
    return tuple(badges)


def build_month_grid(
    year: int,
    month: int,
    snapshot: Snapshot,
    context: ViewingContext,
    visibility: Visibility = Visibility(),
    today: dt.date | None = None,
) -> MonthGrid:
    today = today or dt.date.today()
    first = dt.date(year, month, 1)
    _, days_in_month = calendar.monthrange(year, month)

    visible = appointments_for_context(snapshot.appointments, context)
    by_date: dict[dt.date, list] = {}
    for appt in visible:
        by_date.setdefault(appt.date, []).append(appt)

    cells = []
    for n in range(1, days_in_month + 1):
        day = dt.date(year, month, n)
        status = resolve_for_snapshot(day, snapshot, context, visibility)
        day_appts = by_date.get(day, [])
        cells.append(
            DayCell(
                date=day,
                status=status,
                appointment_count=len(day_appts),
                badges=_badges(snapshot, day_appts, context) if status is DayStatus.OPEN else (),
                is_today=day == today,
            )
        )

    return MonthGrid(year=year, month=month, leading_blanks=first.weekday(), cells=tuple(cells))


def default_detail_date(now: dt.datetime, closing_time: str) -> dt.date:
    """Day to open on startup: today, or tomorrow once the salon has closed."""
    closing_minutes = to_minutes(closing_time)
    now_minutes = now.hour * 60 + now.minute
    if now_minutes > closing_minutes or (now_minutes == closing_minutes and (now.second or now.microsecond)):
        return now.date() + dt.timedelta(days=1)
    return now.date()
