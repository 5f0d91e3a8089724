import argparse
import asyncio
import dataclasses
import datetime as dt
import logging

from salonsync.api_client import SalonApiClient
from salonsync.config import Settings, load_settings
from salonsync.console import ConsoleSink
from salonsync.domain import FetchError
from salonsync.grid import default_detail_date
from salonsync.sync import SyncEngine


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _parse_month(raw: str) -> tuple[int, int]:
    try:
        parsed = dt.datetime.strptime(raw, "%Y-%m")
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid month {raw!r}, expected YYYY-MM") from e
    return parsed.year, parsed.month


def _parse_day(raw: str) -> dt.date:
    try:
        return dt.date.fromisoformat(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date {raw!r}, expected YYYY-MM-DD") from e


async def run(settings: Settings, *, once: bool, month: tuple[int, int] | None, day: dt.date | None) -> None:
    async with SalonApiClient.from_settings(settings) as client:
        engine = SyncEngine(client, ConsoleSink(), settings)
        await engine.load_initial()

        day = day or default_detail_date(dt.datetime.now(), settings.salon_closing_time)
        if month is not None:
            engine.show_month(*month)

        if once:
            await engine.open_day(day, auto_refresh=False)
            return

        await engine.open_day(day)
        engine.start()
        try:
            await asyncio.Event().wait()
        finally:
            await engine.stop()


def main() -> int:
    parser = argparse.ArgumentParser(description="salonsync: live salon calendar")
    parser.add_argument("--once", action="store_true", help="Load, print the month and the day, then exit")
    parser.add_argument("--month", type=_parse_month, help="Month to show (YYYY-MM)")
    parser.add_argument("--date", type=_parse_day, help="Day to open (YYYY-MM-DD)")
    parser.add_argument("--worker", help="Worker id to filter on (default: whole salon)")
    args = parser.parse_args()

    _setup_logging()
    settings = load_settings()
    if args.worker:
        settings = dataclasses.replace(settings, worker_filter=args.worker.strip())

    try:
        asyncio.run(run(settings, once=args.once, month=args.month, day=args.date))
    except FetchError as e:
        logging.getLogger(__name__).error("Could not load salon data (%s)", e)
        return 1
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted, exiting.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
