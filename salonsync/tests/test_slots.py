from __future__ import annotations

import datetime as dt

import pytest

from salonsync.domain import Appointment, DayStatus, WeeklyScheduleEntry
from salonsync.slots import available_starts, day_availability
from salonsync.store import Snapshot

THURSDAY = dt.date(2025, 7, 10)
MORNING = WeeklyScheduleEntry(weekday=4, open_time="09:00", close_time="12:00")


def test_empty_day_is_cut_into_service_sized_steps() -> None:
    assert available_starts(MORNING, [], 30) == ("09:00", "09:30", "10:00", "10:30", "11:00", "11:30")


def test_slots_restart_after_each_booking() -> None:
    # 10:00-10:45 is taken
    starts = available_starts(MORNING, [(600, 645)], 30)

    assert starts == ("09:00", "09:30", "10:45", "11:15")


def test_break_is_never_bookable() -> None:
    entry = WeeklyScheduleEntry(weekday=4, open_time="09:00", close_time="13:00", break_start="11:00", break_end="12:00")

    assert available_starts(entry, [], 60) == ("09:00", "10:00", "12:00")


def test_service_longer_than_the_day_has_no_slot() -> None:
    assert available_starts(MORNING, [], 240) == ()


def test_service_duration_must_be_positive() -> None:
    with pytest.raises(ValueError):
        available_starts(MORNING, [], 0)


def _snapshot(*appointments: Appointment) -> Snapshot:
    schedule = tuple(
        WeeklyScheduleEntry(weekday=d, is_open=d != 0, open_time="09:00", close_time="11:00") for d in range(7)
    )
    return Snapshot(schedule=schedule, appointments=appointments, service_minutes={"Couleur": 60})


def _appt(appt_id: str, time: str, worker_id: str | None, service: str = "Coupe") -> Appointment:
    return Appointment(id=appt_id, date=THURSDAY, time=time, client_name=appt_id, service=service, worker_id=worker_id)


def test_day_availability_uses_service_durations_and_worker_filter() -> None:
    snapshot = _snapshot(_appt("1", "09:00", "7", service="Couleur"), _appt("2", "10:00", "3"))

    adrien = day_availability(THURSDAY, snapshot, "7", 30)
    salon = day_availability(THURSDAY, snapshot, None, 30)

    assert adrien.status is DayStatus.OPEN
    assert adrien.starts == ("10:00", "10:30")
    assert salon.starts == ("10:30",)


def test_full_day_and_closed_day() -> None:
    snapshot = _snapshot(_appt("1", "09:00", "7", service="Couleur"), _appt("2", "10:00", "7", service="Couleur"))

    full = day_availability(THURSDAY, snapshot, "7", 30)
    closed = day_availability(dt.date(2025, 7, 13), snapshot, "7", 30)

    assert full.is_full
    assert closed.status is DayStatus.CLOSED_REGULAR
    assert not closed.is_full
    assert closed.starts == ()
