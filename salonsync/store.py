from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from salonsync.domain import Appointment, LeaveRange, ViewingContext, WaitlistCount, WeeklyScheduleEntry, Worker

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_MINUTES = 30


@dataclass(frozen=True)
class Snapshot:
    """Everything the resolver and aggregator read, fetched at one point in time."""

    schedule: tuple[WeeklyScheduleEntry, ...] = ()
    leaves: tuple[LeaveRange, ...] = ()
    workers: tuple[Worker, ...] = ()
    appointments: tuple[Appointment, ...] = ()
    service_minutes: Mapping[str, int] = field(default_factory=dict)

    def worker(self, worker_id: str) -> Worker | None:
        for w in self.workers:
            if w.id == worker_id:
                return w
        return None

    def days_off(self, worker_id: str) -> frozenset[int]:
        w = self.worker(worker_id)
        return w.days_off if w is not None else frozenset()

    def appointments_on(self, day: dt.date) -> list[Appointment]:
        return [a for a in self.appointments if a.date == day]

    def service_duration(self, service: str) -> int:
        return self.service_minutes.get(service, DEFAULT_SERVICE_MINUTES)


def appointments_for_context(appointments: Iterable[Appointment], context: ViewingContext) -> list[Appointment]:
    # A worker sees their own bookings plus the salon-assigned ones.
    if context.salon_wide:
        return list(appointments)
    return [a for a in appointments if a.worker_id in (context.worker_id, None)]


def waiting_count_for(counts: Iterable[WaitlistCount], day: dt.date, worker_id: str | None) -> int:
    return sum(c.count for c in counts if c.date == day and c.worker_id == worker_id)


class SnapshotStore:
    """Holds the current Snapshot.

    Readers always see a complete snapshot: updates build a new one and
    swap it in with a single assignment.
    """

    def __init__(self, snapshot: Snapshot | None = None) -> None:
        self._snapshot = snapshot or Snapshot()
        self._version = 0

    @property
    def current(self) -> Snapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._version

    def replace(self, **changes: object) -> Snapshot:
        new = dataclasses.replace(self._snapshot, **changes)
        self._snapshot = new
        self._version += 1
        logger.debug("Snapshot v%d replaced (%s)", self._version, ", ".join(sorted(changes)))
        return new
