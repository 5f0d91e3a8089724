from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Iterable, TypeVar

import httpx

from salonsync.config import Settings
from salonsync.domain import (
    Appointment,
    FetchError,
    LeaveRange,
    UpdateStatus,
    WaitlistCount,
    WaitlistEntry,
    WeeklyScheduleEntry,
    Worker,
)
from salonsync.payloads import (
    parse_appointment,
    parse_leave,
    parse_schedule,
    parse_service_minutes,
    parse_update_status,
    parse_waitlist_counts,
    parse_waitlist_entry,
    parse_worker,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse(what: str, fn: Callable[[], T]) -> T:
    try:
        return fn()
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise FetchError(f"Unreadable {what} payload ({type(e).__name__}: {e})") from e


def _as_list(data: Any, what: str) -> list:
    if not isinstance(data, list):
        raise FetchError(f"Unexpected {what} payload: expected a list, got {type(data).__name__}")
    return data


class SalonApiClient:
    """Async client for the salon backend.

    Reads return immutable domain objects with canonical (string) ids.
    Every failure, transport or parse, surfaces as FetchError.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str | None = None,
        timeout_seconds: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Basic {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> SalonApiClient:
        return cls(
            base_url=settings.api_base_url,
            token=settings.api_token,
            timeout_seconds=settings.request_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> SalonApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            r = await self._client.request(method, path, **kwargs)
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"{method} {path} returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"{method} {path} failed ({type(e).__name__}: {e})") from e

        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise FetchError(f"{method} {path} returned invalid JSON") from e

    # --- reads ---

    async def _get_settings(self) -> dict:
        data = await self._request("GET", "/api/admin/settings")
        if not isinstance(data, dict):
            raise FetchError("Unexpected settings payload: expected an object")
        return data

    async def get_schedule(self) -> tuple[WeeklyScheduleEntry, ...]:
        data = await self._get_settings()
        return _parse("schedule", lambda: parse_schedule(data.get("openingHours")))

    async def get_service_durations(self) -> dict[str, int]:
        data = await self._get_settings()
        return _parse("services", lambda: parse_service_minutes(data.get("services")))

    async def get_schedule_and_services(self) -> tuple[tuple[WeeklyScheduleEntry, ...], dict[str, int]]:
        # Both live in the settings document; one request instead of two.
        data = await self._get_settings()
        schedule = _parse("schedule", lambda: parse_schedule(data.get("openingHours")))
        services = _parse("services", lambda: parse_service_minutes(data.get("services")))
        return schedule, services

    async def get_leaves(self) -> list[LeaveRange]:
        data = _as_list(await self._request("GET", "/api/admin/leaves"), "leaves")
        return _parse("leaves", lambda: [parse_leave(item) for item in data])

    async def get_workers(self) -> list[Worker]:
        data = _as_list(await self._request("GET", "/api/workers"), "workers")
        return _parse("workers", lambda: [parse_worker(item) for item in data])

    async def get_appointments(self, worker_id: str | None = None) -> list[Appointment]:
        params = {"adminId": worker_id} if worker_id is not None else None
        data = _as_list(await self._request("GET", "/api/admin/appointments", params=params), "appointments")
        return _parse("appointments", lambda: [parse_appointment(item) for item in data])

    async def get_waitlist_counts(self, day: dt.date) -> list[WaitlistCount]:
        data = _as_list(
            await self._request("GET", "/api/admin/waiting-list/counts", params={"date": day.isoformat()}),
            "waitlist counts",
        )
        return _parse("waitlist counts", lambda: parse_waitlist_counts(day, data))

    async def get_waitlist_requests(self, day: dt.date) -> list[WaitlistEntry]:
        data = _as_list(
            await self._request("GET", "/api/admin/waiting-list", params={"date": day.isoformat()}),
            "waitlist requests",
        )
        return _parse("waitlist requests", lambda: [parse_waitlist_entry(item) for item in data])

    async def get_update_status(self, *, last_settings: int = 0, last_appointments: int = 0) -> UpdateStatus:
        data = await self._request(
            "GET",
            "/api/updates",
            params={"lastSettings": last_settings, "lastAppt": last_appointments},
        )
        if not isinstance(data, dict):
            raise FetchError("Unexpected update status payload: expected an object")
        return _parse("update status", lambda: parse_update_status(data))

    # --- writes (callers re-fetch afterwards) ---

    async def create_leave(self, *, start: dt.date, end: dt.date, worker_id: str | None = None, note: str = "") -> None:
        await self._request(
            "POST",
            "/api/admin/leaves",
            json={"start": start.isoformat(), "end": end.isoformat(), "adminId": worker_id, "note": note},
        )

    async def delete_leave(self, leave_id: str) -> None:
        await self._request("DELETE", f"/api/admin/leaves/{leave_id}")

    async def update_appointment(self, appointment_id: str, *, time: str) -> None:
        await self._request("PUT", f"/api/admin/appointments/{appointment_id}", json={"time": time})

    async def delete_appointment(self, appointment_id: str) -> None:
        await self._request("DELETE", f"/api/admin/appointments/{appointment_id}")

    async def create_worker(
        self,
        *,
        username: str,
        password: str,
        display_name: str | None = None,
        days_off: Iterable[int] = (),
    ) -> None:
        await self._request(
            "POST",
            "/api/admin/workers",
            json={
                "username": username,
                "password": password,
                "displayName": display_name,
                "daysOff": sorted(days_off),
            },
        )

    async def update_worker(
        self,
        worker_id: str,
        *,
        display_name: str | None = None,
        password: str | None = None,
        days_off: Iterable[int] | None = None,
    ) -> None:
        body: dict[str, Any] = {}
        if display_name is not None:
            body["displayName"] = display_name
        if password is not None:
            body["password"] = password
        if days_off is not None:
            body["daysOff"] = sorted(days_off)
        await self._request("PUT", f"/api/admin/workers/{worker_id}", json=body)

    async def delete_worker(self, worker_id: str) -> None:
        await self._request("DELETE", f"/api/admin/workers/{worker_id}")
