from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from salonsync.domain import ValidationError, ViewingContext, Visibility
from salonsync.payloads import parse_id
from salonsync.validation import normalize_time

_WAITLIST_SOURCES = {"counts", "requests"}


def _parse_flag(name: str, default: str = "1") -> bool:
    raw = os.getenv(name, default).strip().lower()
    return raw not in {"0", "false", "no"}


def _parse_positive_number(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected a number of seconds.") from e
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0")
    return value


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    api_token: str | None = None

    grid_refresh_seconds: float = 5.0
    detail_refresh_seconds: float = 10.0
    request_timeout_seconds: float = 20.0

    # How many times the startup load (schedule, leaves, workers, appointments) is attempted.
    startup_retry_attempts: int = 3

    # Empty = salon-wide view.
    worker_filter: str | None = None

    show_closures: bool = True
    show_leaves: bool = True
    show_weekly_off: bool = True

    # After this time the dashboard opens on tomorrow instead of today.
    salon_closing_time: str = "22:00"

    # "counts" uses the aggregated endpoint, "requests" counts WAITING rows itself.
    waitlist_source: str = "counts"

    @property
    def context(self) -> ViewingContext:
        return ViewingContext(worker_id=self.worker_filter)

    @property
    def visibility(self) -> Visibility:
        return Visibility(
            show_closures=self.show_closures,
            show_leaves=self.show_leaves,
            show_weekly_off=self.show_weekly_off,
        )


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    startup_retry_attempts = int(os.getenv("STARTUP_RETRY_ATTEMPTS", "3"))
    if startup_retry_attempts < 1:
        raise RuntimeError("STARTUP_RETRY_ATTEMPTS must be >= 1")

    closing_raw = os.getenv("SALON_CLOSING_TIME", "22:00")
    try:
        salon_closing_time = normalize_time(closing_raw)
    except ValidationError as e:
        raise RuntimeError(f"Invalid SALON_CLOSING_TIME value: {closing_raw!r}. Expected HH:MM.") from e

    waitlist_source = os.getenv("WAITLIST_SOURCE", "counts").strip().lower()
    if waitlist_source not in _WAITLIST_SOURCES:
        raise RuntimeError(f"Invalid WAITLIST_SOURCE value: {waitlist_source!r}. Expected one of {sorted(_WAITLIST_SOURCES)}.")

    return Settings(
        api_base_url=_require("SALON_API_BASE_URL").rstrip("/"),
        api_token=os.getenv("SALON_API_TOKEN") or None,
        grid_refresh_seconds=_parse_positive_number("GRID_REFRESH_SECONDS", "5"),
        detail_refresh_seconds=_parse_positive_number("DETAIL_REFRESH_SECONDS", "10"),
        request_timeout_seconds=_parse_positive_number("REQUEST_TIMEOUT_SECONDS", "20"),
        startup_retry_attempts=startup_retry_attempts,
        worker_filter=parse_id(os.getenv("WORKER_FILTER")),
        show_closures=_parse_flag("SHOW_CLOSURES"),
        show_leaves=_parse_flag("SHOW_LEAVES"),
        show_weekly_off=_parse_flag("SHOW_WEEKLY_OFF"),
        salon_closing_time=salon_closing_time,
        waitlist_source=waitlist_source,
    )
