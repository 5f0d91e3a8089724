from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum

UNASSIGNED_LABEL = "Non assigné"
UNKNOWN_WORKER_LABEL = "Inconnu"
OTHER_BADGE_LABEL = "Autre"


class FetchError(RuntimeError):
    """A read or write against the salon backend failed.

    Covers transport errors, HTTP error statuses and payloads we could not
    parse. Background refreshes log it and keep the previous snapshot.
    """


class ValidationError(ValueError):
    """Input rejected before it reaches the resolver (bad weekday, inverted range...)."""


class DayStatus(str, Enum):
    OPEN = "open"
    CLOSED_REGULAR = "closed_regular"
    CLOSED_EXCEPTION = "closed_exception"
    ON_LEAVE = "on_leave"
    WEEKLY_OFF = "weekly_off"


class AppointmentStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    HOLD = "HOLD"


@dataclass(frozen=True)
class WeeklyScheduleEntry:
    weekday: int  # 0=Sunday
    is_open: bool = True
    open_time: str = "09:00"
    close_time: str = "18:00"
    break_start: str | None = None
    break_end: str | None = None

    @property
    def effective_break(self) -> tuple[str, str] | None:
        # Closing at or before the end of the break disables the break.
        if not self.break_start or not self.break_end:
            return None
        if self.break_start >= self.break_end:
            return None
        if self.close_time <= self.break_end:
            return None
        return self.break_start, self.break_end


@dataclass(frozen=True)
class LeaveRange:
    id: str
    start_date: dt.date
    end_date: dt.date
    worker_id: str | None = None  # None = whole salon
    note: str = ""

    @property
    def is_global(self) -> bool:
        return self.worker_id is None

    def covers(self, day: dt.date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class Worker:
    id: str
    name: str
    days_off: frozenset[int] = frozenset()


@dataclass(frozen=True)
class Appointment:
    id: str
    date: dt.date
    time: str  # HH:MM
    client_name: str
    service: str
    worker_id: str | None = None
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    phone: str | None = None
    email: str | None = None

    @property
    def is_hold(self) -> bool:
        return self.status is AppointmentStatus.HOLD


@dataclass(frozen=True)
class WaitlistCount:
    date: dt.date
    count: int
    worker_id: str | None = None  # None = "any worker"


@dataclass(frozen=True)
class WaitlistEntry:
    id: str
    date: dt.date
    client_name: str
    service: str
    worker_id: str | None = None
    status: str = "WAITING"


@dataclass(frozen=True)
class ViewingContext:
    worker_id: str | None = None

    @property
    def salon_wide(self) -> bool:
        return self.worker_id is None

    @classmethod
    def salon(cls) -> ViewingContext:
        return cls()

    @classmethod
    def for_worker(cls, worker_id: str) -> ViewingContext:
        return cls(worker_id=worker_id)


@dataclass(frozen=True)
class Visibility:
    show_closures: bool = True
    show_leaves: bool = True
    show_weekly_off: bool = True


@dataclass(frozen=True)
class UpdateStatus:
    needs_settings_update: bool
    needs_appointments_update: bool
    settings_timestamp: int
    appointments_timestamp: int


@dataclass(frozen=True)
class WorkerGroup:
    worker_id: str | None
    display_name: str
    appointments: tuple[Appointment, ...] = ()
    waiting_count: int = 0

    @property
    def key(self) -> str | None:
        # None is the unassigned sentinel; groups are matched on this, never on position.
        return self.worker_id


@dataclass(frozen=True)
class DayView:
    date: dt.date
    salon_wide: bool
    groups: tuple[WorkerGroup, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.groups

    def group(self, key: str | None) -> WorkerGroup | None:
        for g in self.groups:
            if g.key == key:
                return g
        return None

    @property
    def appointment_count(self) -> int:
        return sum(len(g.appointments) for g in self.groups)
