from __future__ import annotations

import datetime as dt
import json
from typing import Any, Iterable, Mapping

from salonsync.domain import (
    Appointment,
    AppointmentStatus,
    LeaveRange,
    UpdateStatus,
    WaitlistCount,
    WaitlistEntry,
    WeeklyScheduleEntry,
    Worker,
)
from salonsync.validation import normalize_time, validate_leave, validate_schedule, validate_weekday

# Raw JSON from the salon backend -> domain objects. Everything here raises
# ValueError/KeyError/TypeError on bad input; the API client turns those into FetchError.


def parse_id(raw: Any) -> str | None:
    """Canonical worker/record id: '7' for 7, 7.0 and ' 7 '; None for null-ish values."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    value = str(raw).strip()
    if value in {"", "null", "None", "undefined"}:
        return None
    return value


def parse_date(raw: Any) -> dt.date:
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    # Accept '2025-07-10' and '2025-07-10T00:00:00.000Z'
    return dt.date.fromisoformat(str(raw).strip()[:10])


def _first(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _optional_time(raw: Any) -> str | None:
    if raw in (None, ""):
        return None
    return normalize_time(raw)


def _schedule_entry(weekday: int, raw: Any) -> WeeklyScheduleEntry:
    if not isinstance(raw, Mapping):
        return WeeklyScheduleEntry(weekday=weekday)

    try:
        open_time = normalize_time(_first(raw, "open", "openTime", "start", default="09:00"))
        close_time = normalize_time(_first(raw, "close", "closeTime", "end", default="18:00"))
        break_start = _optional_time(_first(raw, "breakStart", "pause_start"))
        break_end = _optional_time(_first(raw, "breakEnd", "pause_end"))
    except ValueError:
        # Unreadable hours: keep the day open with defaults.
        return WeeklyScheduleEntry(weekday=weekday, is_open=bool(raw.get("isOpen", True)))

    if break_start and break_end and break_start >= break_end:
        break_start = break_end = None

    return WeeklyScheduleEntry(
        weekday=weekday,
        is_open=bool(raw.get("isOpen", True)),
        open_time=open_time,
        close_time=close_time,
        break_start=break_start,
        break_end=break_end,
    )


def parse_schedule(raw: Any) -> tuple[WeeklyScheduleEntry, ...]:
    """Parse `openingHours` from the settings payload.

    Supports the 7-entry list (index = weekday, 0=Sunday), a mapping keyed
    by weekday, and the legacy `{start, end, closedDays}` form. Missing days
    are open.
    """
    if isinstance(raw, str):
        raw = json.loads(raw)

    entries: dict[int, Any] = {}
    if isinstance(raw, list):
        entries = dict(enumerate(raw[:7]))
    elif isinstance(raw, Mapping) and "closedDays" in raw:
        closed = {validate_weekday(int(d)) for d in raw.get("closedDays") or []}
        legacy = {"open": raw.get("start", "09:00"), "close": raw.get("end", "18:00")}
        entries = {d: {**legacy, "isOpen": d not in closed} for d in range(7)}
    elif isinstance(raw, Mapping):
        for key, value in raw.items():
            if str(key).isdigit() and 0 <= int(key) <= 6:
                entries[int(key)] = value

    return validate_schedule(_schedule_entry(d, entries.get(d)) for d in range(7))


def parse_service_minutes(raw: Iterable[Mapping[str, Any]] | None) -> dict[str, int]:
    result: dict[str, int] = {}
    for item in raw or []:
        try:
            minutes = int(item.get("duration"))
        except (TypeError, ValueError):
            continue
        if minutes <= 0:
            continue
        for key in ("name", "id"):
            name = parse_id(item.get(key))
            if name is not None:
                result.setdefault(name, minutes)
    return result


def parse_leave(raw: Mapping[str, Any]) -> LeaveRange:
    leave = LeaveRange(
        id=parse_id(_first(raw, "id")) or "",
        start_date=parse_date(_first(raw, "start_date", "startDate", "start")),
        end_date=parse_date(_first(raw, "end_date", "endDate", "end")),
        worker_id=parse_id(_first(raw, "admin_id", "adminId", "worker_id", "user_id")),
        note=str(raw.get("note") or ""),
    )
    return validate_leave(leave)


def _days_off(raw: Any) -> frozenset[int]:
    if raw in (None, ""):
        return frozenset()
    if isinstance(raw, str):
        raw = json.loads(raw)
    return frozenset(validate_weekday(int(d)) for d in raw)


def parse_worker(raw: Mapping[str, Any]) -> Worker:
    worker_id = parse_id(raw.get("id"))
    if worker_id is None:
        raise ValueError(f"Worker without id: {raw!r}")
    return Worker(
        id=worker_id,
        name=str(_first(raw, "name", "displayName", "display_name", "username", default=worker_id)),
        days_off=_days_off(_first(raw, "daysOff", "days_off")),
    )


def parse_appointment(raw: Mapping[str, Any]) -> Appointment:
    status_raw = str(raw.get("status") or "").upper()
    return Appointment(
        id=parse_id(raw.get("id")) or "",
        date=parse_date(raw["date"]),
        time=normalize_time(raw["time"]),
        client_name=str(_first(raw, "name", "client_name", default="")),
        service=str(raw.get("service") or ""),
        worker_id=parse_id(_first(raw, "admin_id", "adminId", "worker_id")),
        status=AppointmentStatus.HOLD if status_raw == "HOLD" else AppointmentStatus.CONFIRMED,
        phone=raw.get("phone") or None,
        email=raw.get("email") or None,
    )


def parse_waitlist_counts(day: dt.date, raw: Iterable[Mapping[str, Any]]) -> list[WaitlistCount]:
    counts = []
    for item in raw:
        count = int(item.get("count") or 0)
        if count < 0:
            raise ValueError(f"Negative waitlist count: {item!r}")
        counts.append(
            WaitlistCount(
                date=day,
                count=count,
                worker_id=parse_id(_first(item, "desired_worker_id", "desiredWorkerId", "worker_id")),
            )
        )
    return counts


def parse_waitlist_entry(raw: Mapping[str, Any]) -> WaitlistEntry:
    return WaitlistEntry(
        id=parse_id(raw.get("id")) or "",
        date=parse_date(_first(raw, "target_date", "date")),
        client_name=str(_first(raw, "client_name", "name", default="")),
        service=str(_first(raw, "desired_service_id", "service", default="")),
        worker_id=parse_id(_first(raw, "desired_worker_id", "desiredWorkerId", "worker_id")),
        status=str(raw.get("status") or "WAITING").upper(),
    )


def count_waitlist(entries: Iterable[WaitlistEntry], day: dt.date) -> list[WaitlistCount]:
    """Per-worker demand derived from request rows; only WAITING requests count."""
    totals: dict[str | None, int] = {}
    for entry in entries:
        if entry.date != day or entry.status != "WAITING":
            continue
        totals[entry.worker_id] = totals.get(entry.worker_id, 0) + 1
    return [WaitlistCount(date=day, count=n, worker_id=w) for w, n in totals.items()]


def parse_update_status(raw: Mapping[str, Any]) -> UpdateStatus:
    return UpdateStatus(
        needs_settings_update=bool(raw.get("needsSettingsUpdate", True)),
        needs_appointments_update=bool(raw.get("needsApptUpdate", True)),
        settings_timestamp=int(raw.get("settingsTimestamp") or 0),
        appointments_timestamp=int(raw.get("apptTimestamp") or 0),
    )
