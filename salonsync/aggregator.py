from __future__ import annotations

import datetime as dt
from typing import Iterable, Sequence

from salonsync.domain import (
    UNASSIGNED_LABEL,
    UNKNOWN_WORKER_LABEL,
    Appointment,
    DayView,
    ViewingContext,
    WaitlistCount,
    Worker,
    WorkerGroup,
)
from salonsync.store import waiting_count_for


def _by_time(appointments: Iterable[Appointment]) -> tuple[Appointment, ...]:
    # Zero-padded HH:MM compares correctly as strings; sorted() keeps fetch order on ties.
    return tuple(sorted(appointments, key=lambda a: a.time))


def aggregate_day(
    day: dt.date,
    appointments: Sequence[Appointment],
    waitlist_counts: Sequence[WaitlistCount],
    workers: Sequence[Worker],
    context: ViewingContext,
) -> DayView:
    """Group one day's appointments and waiting demand by worker.

    Salon-wide: one group per registered worker that has bookings or
    waiting clients (registry order), then any worker ids the registry does
    not know, then the unassigned group. Worker-scoped: a single group for
    that worker holding only the bookings assigned to them; unassigned
    bookings in the input are not theirs and are left out.

    A view without groups is the explicit "nothing to show" state.
    """
    todays = [a for a in appointments if a.date == day]

    if not context.salon_wide:
        worker_id = context.worker_id
        own = [a for a in todays if a.worker_id == worker_id]
        waiting = waiting_count_for(waitlist_counts, day, worker_id)
        if not own and waiting <= 0:
            return DayView(date=day, salon_wide=False)
        worker = next((w for w in workers if w.id == worker_id), None)
        group = WorkerGroup(
            worker_id=worker_id,
            display_name=worker.name if worker else UNKNOWN_WORKER_LABEL,
            appointments=_by_time(own),
            waiting_count=waiting,
        )
        return DayView(date=day, salon_wide=False, groups=(group,))

    buckets: dict[str | None, list[Appointment]] = {}
    for appt in todays:
        buckets.setdefault(appt.worker_id, []).append(appt)

    groups: list[WorkerGroup] = []
    known: set[str] = set()
    for worker in workers:
        known.add(worker.id)
        booked = buckets.get(worker.id, [])
        waiting = waiting_count_for(waitlist_counts, day, worker.id)
        if booked or waiting > 0:
            groups.append(
                WorkerGroup(
                    worker_id=worker.id,
                    display_name=worker.name,
                    appointments=_by_time(booked),
                    waiting_count=waiting,
                )
            )

    # Bookings of workers missing from the registry must not vanish.
    for worker_id, booked in buckets.items():
        if worker_id is None or worker_id in known:
            continue
        groups.append(
            WorkerGroup(
                worker_id=worker_id,
                display_name=UNKNOWN_WORKER_LABEL,
                appointments=_by_time(booked),
                waiting_count=waiting_count_for(waitlist_counts, day, worker_id),
            )
        )

    unassigned = buckets.get(None, [])
    any_waiting = waiting_count_for(waitlist_counts, day, None)
    if unassigned or any_waiting > 0:
        groups.append(
            WorkerGroup(
                worker_id=None,
                display_name=UNASSIGNED_LABEL,
                appointments=_by_time(unassigned),
                waiting_count=any_waiting,
            )
        )

    return DayView(date=day, salon_wide=True, groups=tuple(groups))
