from __future__ import annotations

import asyncio
import datetime as dt
import json

import httpx
import pytest

from salonsync.api_client import SalonApiClient
from salonsync.domain import AppointmentStatus, FetchError

DAY = dt.date(2025, 7, 10)

SETTINGS_PAYLOAD = {
    "openingHours": [
        {"isOpen": False},
        {"isOpen": False, "open": "09:00", "close": "19:00"},
        {"isOpen": True, "open": "09:00", "close": "19:00", "breakStart": "12:00", "breakEnd": "13:00"},
        {"isOpen": True, "open": "09:00", "close": "19:00"},
        {"isOpen": True, "open": "9:30", "close": "19:00"},
        {"isOpen": True, "open": "09:00", "close": "12:00", "breakStart": "12:00", "breakEnd": "13:00"},
        {"isOpen": True, "open": "09:00", "close": "17:00"},
    ],
    "services": [{"name": "Coupe", "duration": 30}, {"name": "Couleur", "duration": "90"}],
}


def _client(handler) -> SalonApiClient:
    return SalonApiClient(base_url="http://salon.test", token="dXNlcjpwYXNz", transport=httpx.MockTransport(handler))


def _run(coro_fn):
    async def go():
        async with coro_fn.__self__:
            return await coro_fn()

    return asyncio.run(go())


def test_schedule_and_services_come_from_settings() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        assert request.url.path == "/api/admin/settings"
        return httpx.Response(200, json=SETTINGS_PAYLOAD)

    client = _client(handler)
    schedule, services = _run(client.get_schedule_and_services)

    assert seen[0].headers["Authorization"] == "Basic dXNlcjpwYXNz"
    assert len(schedule) == 7
    assert [e.is_open for e in schedule] == [False, False, True, True, True, True, True]
    assert schedule[2].effective_break == ("12:00", "13:00")
    assert schedule[4].open_time == "09:30"
    # closes at the start of the break: break is void
    assert schedule[5].effective_break is None
    assert services == {"Coupe": 30, "Couleur": 90}


def test_appointments_are_normalized_and_filtered_by_worker() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/admin/appointments"
        assert request.url.params["adminId"] == "7"
        return httpx.Response(
            200,
            json=[
                {"id": 1, "name": "Léa", "date": "2025-07-10", "time": "9:00", "service": "Coupe", "admin_id": 7},
                {
                    "id": 2,
                    "name": "Tom",
                    "date": "2025-07-10T00:00:00.000Z",
                    "time": "10:30:00",
                    "service": "Coupe",
                    "admin_id": None,
                    "status": "HOLD",
                    "phone": "",
                },
            ],
        )

    client = _client(handler)

    async def go():
        async with client:
            return await client.get_appointments("7")

    first, second = asyncio.run(go())

    assert first.worker_id == "7"
    assert first.time == "09:00"
    assert first.status is AppointmentStatus.CONFIRMED
    assert second.worker_id is None
    assert second.date == DAY
    assert second.time == "10:30"
    assert second.is_hold
    assert second.phone is None


def test_waitlist_counts_keep_any_worker_demand() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/admin/waiting-list/counts"
        assert request.url.params["date"] == "2025-07-10"
        return httpx.Response(200, json=[{"desired_worker_id": 7, "count": "2"}, {"desired_worker_id": None, "count": 1}])

    client = _client(handler)

    async def go():
        async with client:
            return await client.get_waitlist_counts(DAY)

    counts = asyncio.run(go())

    assert [(c.worker_id, c.count, c.date) for c in counts] == [("7", 2, DAY), (None, 1, DAY)]


def test_workers_and_leaves() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/workers":
            return httpx.Response(200, json=[{"id": 7, "name": "Adrien", "daysOff": "[3]"}, {"id": "8", "name": "Julie"}])
        if request.url.path == "/api/admin/leaves":
            return httpx.Response(
                200,
                json=[
                    {"id": 1, "start_date": "2025-08-01", "end_date": "2025-08-15", "admin_id": None, "note": "Été"},
                    {"id": 2, "start_date": "2025-07-10", "end_date": "2025-07-10", "admin_id": "7"},
                ],
            )
        return httpx.Response(404)

    client = _client(handler)

    async def go():
        async with client:
            return await client.get_workers(), await client.get_leaves()

    workers, leaves = asyncio.run(go())

    assert workers[0].id == "7"
    assert workers[0].days_off == frozenset({3})
    assert workers[1].days_off == frozenset()
    assert leaves[0].is_global
    assert leaves[0].note == "Été"
    assert leaves[1].worker_id == "7"
    assert leaves[1].covers(DAY)


def test_inverted_leave_is_a_fetch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"id": 1, "start_date": "2025-08-15", "end_date": "2025-08-01"}])

    client = _client(handler)

    with pytest.raises(FetchError, match=r"Unreadable leaves payload"):
        _run(client.get_leaves)


@pytest.mark.parametrize(
    "response, message",
    [
        (httpx.Response(500, json={"error": "boom"}), r"HTTP 500"),
        (httpx.Response(200, content=b"<html>"), r"invalid JSON"),
        (httpx.Response(200, json={"not": "a list"}), r"expected a list"),
    ],
)
def test_bad_responses_become_fetch_errors(response: httpx.Response, message: str) -> None:
    client = _client(lambda request: response)

    with pytest.raises(FetchError, match=message):
        _run(client.get_workers)


def test_transport_errors_become_fetch_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(FetchError, match=r"ConnectError"):
        _run(client.get_workers)


def test_update_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["lastSettings"] == "5"
        return httpx.Response(
            200,
            json={"needsSettingsUpdate": True, "needsApptUpdate": False, "settingsTimestamp": 9, "apptTimestamp": 4},
        )

    client = _client(handler)

    async def go():
        async with client:
            return await client.get_update_status(last_settings=5)

    status = asyncio.run(go())

    assert status.needs_settings_update
    assert not status.needs_appointments_update
    assert status.settings_timestamp == 9


def test_writes_send_the_expected_requests() -> None:
    seen: list[tuple[str, str, dict | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        seen.append((request.method, request.url.path, body))
        return httpx.Response(200, json={"success": True})

    client = _client(handler)

    async def go():
        async with client:
            await client.create_leave(start=DAY, end=DAY, worker_id="7", note="RDV médical")
            await client.delete_leave("3")
            await client.update_appointment("12", time="15:30")
            await client.delete_appointment("12")
            await client.update_worker("7", days_off=[3, 1])

    asyncio.run(go())

    assert seen == [
        ("POST", "/api/admin/leaves", {"start": "2025-07-10", "end": "2025-07-10", "adminId": "7", "note": "RDV médical"}),
        ("DELETE", "/api/admin/leaves/3", None),
        ("PUT", "/api/admin/appointments/12", {"time": "15:30"}),
        ("DELETE", "/api/admin/appointments/12", None),
        ("PUT", "/api/admin/workers/7", {"daysOff": [1, 3]}),
    ]
