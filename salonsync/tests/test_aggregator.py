from __future__ import annotations

import datetime as dt

from salonsync.aggregator import aggregate_day
from salonsync.domain import (
    UNASSIGNED_LABEL,
    UNKNOWN_WORKER_LABEL,
    Appointment,
    ViewingContext,
    WaitlistCount,
    Worker,
)
from salonsync.store import appointments_for_context

DAY = dt.date(2025, 7, 10)

WORKERS = (
    Worker(id="3", name="Julie"),
    Worker(id="7", name="Adrien"),
)


def _appt(appt_id: str, time: str, worker_id: str | None = None, day: dt.date = DAY) -> Appointment:
    return Appointment(
        id=appt_id,
        date=day,
        time=time,
        client_name=f"client {appt_id}",
        service="Coupe",
        worker_id=worker_id,
    )


def test_salon_wide_groups_by_worker_with_waiting_counts() -> None:
    appointments = [_appt("1", "14:00", "7"), _appt("2", "09:30", "7"), _appt("3", "11:00")]
    counts = [WaitlistCount(date=DAY, count=2, worker_id="7"), WaitlistCount(date=DAY, count=1)]

    view = aggregate_day(DAY, appointments, counts, WORKERS, ViewingContext.salon())

    assert view.salon_wide is True
    assert [g.worker_id for g in view.groups] == ["7", None]

    adrien, unassigned = view.groups
    assert adrien.display_name == "Adrien"
    assert [a.id for a in adrien.appointments] == ["2", "1"]
    assert adrien.waiting_count == 2

    assert unassigned.display_name == UNASSIGNED_LABEL
    assert [a.id for a in unassigned.appointments] == ["3"]
    assert unassigned.waiting_count == 1


def test_worker_with_only_waiting_clients_gets_a_group() -> None:
    counts = [WaitlistCount(date=DAY, count=3, worker_id="3")]

    view = aggregate_day(DAY, [], counts, WORKERS, ViewingContext.salon())

    assert len(view.groups) == 1
    assert view.groups[0].worker_id == "3"
    assert view.groups[0].appointments == ()
    assert view.groups[0].waiting_count == 3


def test_groups_follow_registry_order() -> None:
    appointments = [_appt("1", "10:00", "7"), _appt("2", "10:00", "3")]

    view = aggregate_day(DAY, appointments, [], WORKERS, ViewingContext.salon())

    assert [g.worker_id for g in view.groups] == ["3", "7"]


def test_nothing_booked_or_waiting_is_the_empty_state() -> None:
    other_day = DAY + dt.timedelta(days=1)
    appointments = [_appt("1", "10:00", "7", day=other_day)]
    counts = [WaitlistCount(date=other_day, count=4, worker_id="7"), WaitlistCount(date=DAY, count=0)]

    view = aggregate_day(DAY, appointments, counts, WORKERS, ViewingContext.salon())

    assert view.is_empty
    assert view.appointment_count == 0


def test_every_appointment_of_the_day_lands_in_exactly_one_group() -> None:
    appointments = [
        _appt("1", "09:00", "7"),
        _appt("2", "09:00", "3"),
        _appt("3", "10:00"),
        _appt("4", "10:30", "42"),  # not in the registry
        _appt("5", "11:00", "7", day=DAY + dt.timedelta(days=1)),
    ]

    view = aggregate_day(DAY, appointments, [], WORKERS, ViewingContext.salon())

    ids = [a.id for g in view.groups for a in g.appointments]
    assert sorted(ids) == ["1", "2", "3", "4"]
    assert view.appointment_count == 4

    unknown = view.group("42")
    assert unknown is not None
    assert unknown.display_name == UNKNOWN_WORKER_LABEL
    # unassigned stays last
    assert view.groups[-1].worker_id is None


def test_equal_times_keep_fetch_order() -> None:
    appointments = [
        _appt("b", "10:00", "7"),
        _appt("a", "09:00", "7"),
        _appt("c", "10:00", "7"),
        _appt("d", "10:00", "7"),
    ]

    view = aggregate_day(DAY, appointments, [], WORKERS, ViewingContext.salon())

    assert [a.id for a in view.groups[0].appointments] == ["a", "b", "c", "d"]


def test_worker_scoped_view_is_a_single_group() -> None:
    appointments = [_appt("1", "15:00", "7"), _appt("2", "08:00", "7")]
    counts = [WaitlistCount(date=DAY, count=2, worker_id="7"), WaitlistCount(date=DAY, count=5)]

    view = aggregate_day(DAY, appointments, counts, WORKERS, ViewingContext.for_worker("7"))

    assert view.salon_wide is False
    assert len(view.groups) == 1
    group = view.groups[0]
    assert group.worker_id == "7"
    assert group.display_name == "Adrien"
    assert [a.id for a in group.appointments] == ["2", "1"]
    assert group.waiting_count == 2


def test_worker_scoped_view_does_not_claim_unassigned_bookings() -> None:
    worker = ViewingContext.for_worker("7")
    snapshot_appointments = [_appt("1", "15:00", "7"), _appt("2", "08:00"), _appt("3", "09:00", "3")]
    visible = appointments_for_context(snapshot_appointments, worker)

    view = aggregate_day(DAY, visible, [], WORKERS, worker)

    assert len(view.groups) == 1
    assert [(a.id, a.worker_id) for a in view.groups[0].appointments] == [("1", "7")]


def test_worker_scoped_view_with_only_unassigned_bookings_is_empty() -> None:
    view = aggregate_day(DAY, [_appt("2", "08:00")], [], WORKERS, ViewingContext.for_worker("7"))

    assert view.is_empty


def test_worker_scoped_view_without_anything_is_empty() -> None:
    counts = [WaitlistCount(date=DAY, count=5)]

    view = aggregate_day(DAY, [], counts, WORKERS, ViewingContext.for_worker("7"))

    assert view.is_empty
    assert view.salon_wide is False


def test_waiting_counts_for_the_same_worker_are_summed() -> None:
    counts = [WaitlistCount(date=DAY, count=1, worker_id="7"), WaitlistCount(date=DAY, count=2, worker_id="7")]

    view = aggregate_day(DAY, [], counts, WORKERS, ViewingContext.salon())

    assert view.group("7").waiting_count == 3
