from __future__ import annotations

import asyncio
import contextlib
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol

from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from salonsync.aggregator import aggregate_day
from salonsync.api_client import SalonApiClient
from salonsync.config import Settings
from salonsync.domain import DayView, FetchError, ViewingContext, WaitlistCount
from salonsync.grid import MonthGrid, build_month_grid
from salonsync.merge import GroupChange, diff_views
from salonsync.payloads import count_waitlist
from salonsync.store import Snapshot, SnapshotStore, appointments_for_context

logger = logging.getLogger(__name__)

RESOURCES = frozenset({"settings", "leaves", "workers", "appointments"})


class ViewSink(Protocol):
    """Presentation side. The engine only tells it what changed."""

    def render_grid(self, grid: MonthGrid) -> None: ...

    def render_detail(self, view: DayView) -> None: ...

    def patch_detail(self, view: DayView, changes: list[GroupChange]) -> None: ...

    def close_detail(self) -> None: ...


class RefreshGeneration:
    """Monotonic cycle counter. Only the most recently started cycle may apply its result."""

    def __init__(self) -> None:
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def start(self) -> int:
        self._latest += 1
        return self._latest

    def invalidate(self) -> None:
        self._latest += 1

    def is_current(self, generation: int) -> bool:
        return generation == self._latest


class ResourceGenerations:
    """Cycle counter tracked per resource.

    A fetched resource is applied only if no cycle started later fetched
    that same resource; cycles over disjoint resources never invalidate
    each other.
    """

    def __init__(self) -> None:
        self._counter = 0
        self._latest: dict[str, int] = {}

    def start(self, resources: Iterable[str]) -> int:
        self._counter += 1
        for resource in resources:
            self._latest[resource] = self._counter
        return self._counter

    def invalidate(self) -> None:
        self._counter += 1
        for resource in self._latest:
            self._latest[resource] = self._counter

    def is_current(self, resource: str, generation: int) -> bool:
        return self._latest.get(resource) == generation


@dataclass(frozen=True)
class DetailState:
    date: dt.date
    view: DayView
    waitlist: tuple[WaitlistCount, ...] = ()


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_before_attempt(retry_state: RetryCallState) -> None:
    logger.info("Initial load attempt %s: start", retry_state.attempt_number)


def _log_after_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        logger.warning("Initial load attempt %s: failed (%s)", retry_state.attempt_number, _short_exc(retry_state))


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    if sleep_seconds is None:
        logger.info("Waiting before next initial load attempt...")
        return
    logger.info("Initial load attempt %s in %.0f s", retry_state.attempt_number + 1, sleep_seconds)


class SyncEngine:
    """Keeps the month grid and the open day view in step with the backend.

    Two loops: the grid loop re-fetches appointments (and settings when the
    backend reports a change) and replaces the grid wholesale; the detail
    loop, alive only while a day is open, re-fetches that day's waitlist and
    patches just the groups that changed.

    Every cycle takes a generation number when it starts. A response is
    applied only if no newer cycle fetching the same data has started
    since, so a slow request can never overwrite fresher data. Failed
    cycles are logged and leave the rendered state as it was; the next tick
    tries again.
    """

    def __init__(
        self,
        client: SalonApiClient,
        sink: ViewSink,
        settings: Settings,
        *,
        store: SnapshotStore | None = None,
        clock: Callable[[], dt.datetime] = dt.datetime.now,
        startup_wait: wait_base | None = None,
    ) -> None:
        self._client = client
        self._sink = sink
        self._settings = settings
        self._store = store or SnapshotStore()
        self._clock = clock
        self._startup_wait = startup_wait or wait_exponential(multiplier=2, min=2, max=10)

        self._context = settings.context
        self._visibility = settings.visibility
        today = clock().date()
        self._month = (today.year, today.month)

        self._grid_generation = ResourceGenerations()
        self._detail_generation = RefreshGeneration()
        self._grid: MonthGrid | None = None
        self._detail: DetailState | None = None
        self._grid_task: asyncio.Task | None = None
        self._detail_task: asyncio.Task | None = None
        self._settings_timestamp = 0

    # --- state ---

    @property
    def snapshot(self) -> Snapshot:
        return self._store.current

    @property
    def context(self) -> ViewingContext:
        return self._context

    @property
    def grid(self) -> MonthGrid | None:
        return self._grid

    @property
    def detail_view(self) -> DayView | None:
        return self._detail.view if self._detail else None

    @property
    def detail_refreshing(self) -> bool:
        return self._detail_task is not None and not self._detail_task.done()

    @property
    def running(self) -> bool:
        return self._grid_task is not None and not self._grid_task.done()

    def _visible_appointments(self) -> list:
        return appointments_for_context(self.snapshot.appointments, self._context)

    # --- fetching ---

    async def _fetch(self, resources: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Fetch resources concurrently; returns the snapshot fields each one fills.

        If one read fails the others are cancelled and the error propagates.
        """
        wanted = set(resources)
        unknown = wanted - RESOURCES
        if unknown:
            raise ValueError(f"Unknown resources: {sorted(unknown)}")

        calls: dict[str, Any] = {}
        if "settings" in wanted:
            calls["settings"] = self._client.get_schedule_and_services()
        if "leaves" in wanted:
            calls["leaves"] = self._client.get_leaves()
        if "workers" in wanted:
            calls["workers"] = self._client.get_workers()
        if "appointments" in wanted:
            calls["appointments"] = self._client.get_appointments(self._context.worker_id)

        tasks = {name: asyncio.create_task(call, name=f"fetch-{name}") for name, call in calls.items()}
        try:
            results = await asyncio.gather(*tasks.values())
        except Exception:
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise

        fetched: dict[str, dict[str, Any]] = {}
        for name, result in zip(tasks, results):
            if name == "settings":
                schedule, services = result
                fetched[name] = {"schedule": tuple(schedule), "service_minutes": dict(services)}
            else:
                fetched[name] = {name: tuple(result)}
        return fetched

    def _apply_fetched(self, generation: int, fetched: dict[str, dict[str, Any]]) -> set[str]:
        """Swap in the resources no newer cycle has fetched since; returns their names."""
        fresh = {name for name in fetched if self._grid_generation.is_current(name, generation)}
        stale = set(fetched) - fresh
        if stale:
            logger.debug("Discarding stale %s from cycle #%d", ", ".join(sorted(stale)), generation)
        if not fresh:
            return fresh

        changes: dict[str, Any] = {}
        for name in fresh:
            changes.update(fetched[name])
        self._store.replace(**changes)
        self._render_grid()
        if self._detail is not None:
            self._apply_detail(self._detail.date, self._detail.waitlist)
        return fresh

    async def _fetch_waitlist(self, day: dt.date) -> list[WaitlistCount]:
        if self._settings.waitlist_source == "requests":
            return count_waitlist(await self._client.get_waitlist_requests(day), day)
        return await self._client.get_waitlist_counts(day)

    async def _load_everything(self) -> None:
        generation = self._grid_generation.start(RESOURCES)
        fetched = await self._fetch(RESOURCES)
        self._apply_fetched(generation, fetched)

    async def load_initial(self) -> None:
        """First full load. Unlike background refreshes, this one retries right away."""
        decorated = retry(
            stop=stop_after_attempt(self._settings.startup_retry_attempts),
            wait=self._startup_wait,
            retry=retry_if_exception_type(FetchError),
            before=_log_before_attempt,
            after=_log_after_attempt,
            before_sleep=_log_before_sleep,
            reraise=True,
        )(self._load_everything)
        await decorated()
        logger.info(
            "Initial load done: %d workers, %d leaves, %d appointments",
            len(self.snapshot.workers),
            len(self.snapshot.leaves),
            len(self.snapshot.appointments),
        )

    # --- grid ---

    def _render_grid(self) -> MonthGrid:
        year, month = self._month
        grid = build_month_grid(
            year,
            month,
            self.snapshot,
            self._context,
            self._visibility,
            today=self._clock().date(),
        )
        self._grid = grid
        self._sink.render_grid(grid)
        return grid

    def show_month(self, year: int, month: int) -> MonthGrid:
        # Navigation only: re-render from the cached snapshot.
        self._month = (year, month)
        return self._render_grid()

    async def refresh_grid(self) -> bool:
        resources = {"appointments"}
        settings_timestamp = self._settings_timestamp
        try:
            try:
                status = await self._client.get_update_status(last_settings=self._settings_timestamp)
            except FetchError as e:
                logger.debug("Update status unavailable (%s), re-fetching settings", e)
                resources |= {"settings", "leaves", "workers"}
            else:
                if status.needs_settings_update:
                    resources |= {"settings", "leaves", "workers"}
                    settings_timestamp = status.settings_timestamp
            generation = self._grid_generation.start(resources)
            fetched = await self._fetch(resources)
        except FetchError as e:
            logger.warning("Grid refresh failed (%s: %s)", type(e).__name__, e)
            return False

        applied = self._apply_fetched(generation, fetched)
        if "settings" in applied:
            self._settings_timestamp = settings_timestamp
        return bool(applied)

    async def invalidate(self, *resources: str) -> bool:
        """Re-fetch the given resources after a write and re-render.

        Returns False only if the re-fetch failed. A resource that a newer
        cycle fetched in the meantime is left to that cycle.
        """
        generation = self._grid_generation.start(resources)
        try:
            fetched = await self._fetch(resources)
        except FetchError as e:
            logger.warning("Re-fetch of %s failed (%s: %s)", ", ".join(sorted(resources)), type(e).__name__, e)
            return False

        self._apply_fetched(generation, fetched)
        return True

    async def set_context(self, context: ViewingContext) -> bool:
        self._context = context
        refreshed = await self.invalidate("appointments")
        if self._detail is not None:
            await self.open_day(self._detail.date, auto_refresh=self.detail_refreshing)
        return refreshed

    # --- detail ---

    def _apply_detail(self, day: dt.date, waitlist: tuple[WaitlistCount, ...]) -> list[GroupChange]:
        detail = self._detail
        if detail is None:
            return []
        new_view = aggregate_day(day, self._visible_appointments(), waitlist, self.snapshot.workers, self._context)
        changes = diff_views(detail.view, new_view)
        self._detail = DetailState(date=day, view=new_view, waitlist=waitlist)
        if changes:
            logger.debug("Day %s: %d group(s) changed", day.isoformat(), len(changes))
            self._sink.patch_detail(new_view, changes)
        return changes

    async def open_day(self, day: dt.date, *, auto_refresh: bool = True) -> DayView | None:
        """Show one day with its waiting counts and, if asked, keep polling them.

        Any previous detail loop is cancelled and its in-flight response is
        discarded. The view is rendered once the day's waitlist is in; if
        that fetch fails the day opens without waiting counts and the next
        detail cycle fills them. Returns None if the day was closed, or
        another one opened, before the waitlist arrived.
        """
        self._cancel_detail_task()
        generation = self._detail_generation.start()
        try:
            waitlist = tuple(await self._fetch_waitlist(day))
        except FetchError as e:
            logger.warning("Waitlist for %s failed (%s: %s)", day.isoformat(), type(e).__name__, e)
            waitlist = ()

        if not self._detail_generation.is_current(generation):
            logger.debug("Opening %s superseded", day.isoformat())
            return None

        view = aggregate_day(day, self._visible_appointments(), waitlist, self.snapshot.workers, self._context)
        self._detail = DetailState(date=day, view=view, waitlist=waitlist)
        self._sink.render_detail(view)

        if auto_refresh:
            self._detail_task = asyncio.create_task(self._detail_loop(), name=f"detail-refresh-{day.isoformat()}")
        return view

    def close_day(self) -> None:
        self._cancel_detail_task()
        self._detail_generation.invalidate()
        if self._detail is not None:
            self._detail = None
            self._sink.close_detail()

    async def refresh_detail(self) -> list[GroupChange] | None:
        """One detail cycle. Returns the applied changes, or None if nothing was applied."""
        if self._detail is None:
            return None
        day = self._detail.date
        generation = self._detail_generation.start()
        try:
            waitlist = await self._fetch_waitlist(day)
        except FetchError as e:
            logger.warning("Detail refresh for %s failed (%s: %s)", day.isoformat(), type(e).__name__, e)
            return None

        if not self._detail_generation.is_current(generation) or self._detail is None or self._detail.date != day:
            logger.debug("Discarding stale detail refresh #%d for %s", generation, day.isoformat())
            return None

        return self._apply_detail(day, tuple(waitlist))

    def _cancel_detail_task(self) -> None:
        if self._detail_task is not None:
            self._detail_task.cancel()
            self._detail_task = None

    # --- loops ---

    async def _grid_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.grid_refresh_seconds)
            await self.refresh_grid()

    async def _detail_loop(self) -> None:
        # open_day already fetched the first waitlist.
        while True:
            await asyncio.sleep(self._settings.detail_refresh_seconds)
            await self.refresh_detail()

    def start(self) -> None:
        if self.running:
            return
        self._grid_task = asyncio.create_task(self._grid_loop(), name="grid-refresh")
        logger.info(
            "Sync started. grid=%ss detail=%ss context=%s",
            self._settings.grid_refresh_seconds,
            self._settings.detail_refresh_seconds,
            self._context.worker_id or "salon",
        )

    async def stop(self) -> None:
        tasks = [t for t in (self._grid_task, self._detail_task) if t is not None]
        self._grid_task = None
        self._detail_task = None
        self._grid_generation.invalidate()
        self._detail_generation.invalidate()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Sync stopped.")

    # --- writes ---

    async def create_leave(self, *, start: dt.date, end: dt.date, worker_id: str | None = None, note: str = "") -> bool:
        await self._client.create_leave(start=start, end=end, worker_id=worker_id, note=note)
        return await self.invalidate("leaves")

    async def delete_leave(self, leave_id: str) -> bool:
        await self._client.delete_leave(leave_id)
        return await self.invalidate("leaves")

    async def update_appointment(self, appointment_id: str, *, time: str) -> bool:
        await self._client.update_appointment(appointment_id, time=time)
        return await self.invalidate("appointments")

    async def delete_appointment(self, appointment_id: str) -> bool:
        await self._client.delete_appointment(appointment_id)
        return await self.invalidate("appointments")

    async def create_worker(self, *, username: str, password: str, display_name: str | None = None, days_off: Iterable[int] = ()) -> bool:
        await self._client.create_worker(username=username, password=password, display_name=display_name, days_off=days_off)
        return await self.invalidate("workers")

    async def update_worker(
        self,
        worker_id: str,
        *,
        display_name: str | None = None,
        password: str | None = None,
        days_off: Iterable[int] | None = None,
    ) -> bool:
        await self._client.update_worker(worker_id, display_name=display_name, password=password, days_off=days_off)
        # Moving a day off can move bookings server-side.
        return await self.invalidate("workers", "appointments")

    async def delete_worker(self, worker_id: str) -> bool:
        await self._client.delete_worker(worker_id)
        return await self.invalidate("workers", "appointments")
