import argparse
import asyncio
import logging

from squashbot.clock import site_date
from squashbot.config import load_settings
from squashbot.domain import AllIdentitiesFailed, BookingError, Slot
from squashbot.worker import book, find_free_court, lookup_with_retry


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Z-Center squash court booker")
    sub = parser.add_subparsers(dest="command", required=True)

    look = sub.add_parser("look", help="Show whole free hours per court")
    look.add_argument("--tomorrow", action="store_true", help="Use tomorrow (site time) instead of today")

    book_cmd = sub.add_parser("book", help="Book a court for one hour")
    book_cmd.add_argument("--hour", type=int, required=True, choices=range(24), metavar="H", help="Start hour on a 24-hour clock")
    book_cmd.add_argument("--court", type=int, default=None, help="Court number; picked from availability if omitted")
    book_cmd.add_argument("--tomorrow", action="store_true", help="Use tomorrow (site time) instead of today")
    return parser


async def _look(settings, *, is_tomorrow: bool) -> int:
    day = site_date(settings.tz, is_tomorrow=is_tomorrow)
    matrix = await lookup_with_retry(settings, day)
    for court in settings.courts:
        hours = matrix.free_hours(str(court + settings.resource_id_offset))
        free = ", ".join(f"{h:02d}:00" for h in hours) or "none"
        print(f"Court {court}: {free}")
    return 0


async def _book(settings, *, hour: int, court: int | None, is_tomorrow: bool) -> int:
    log = logging.getLogger(__name__)
    day = site_date(settings.tz, is_tomorrow=is_tomorrow)

    if court is None:
        court = await find_free_court(settings, day, hour)
        if court is None:
            print(f"No court is free at {hour:02d}:00 on {day.isoformat()}")
            return 1
    elif court not in settings.courts:
        print(f"Unknown court {court}; courts are 1-{settings.court_count}")
        return 2

    slot = Slot(court=court, date=day, hour=hour)
    try:
        result = await book(slot, settings)
    except AllIdentitiesFailed as e:
        for attempt in e.attempts:
            log.error("%s: %s", attempt.identity.username, attempt.reason)
        print(f"Booking failed: {e}")
        return 1

    print(f"Booked court {court} at {hour:02d}:00 on {day.isoformat()} as {result.identity.username}")
    return 0


def main() -> int:
    args = _build_parser().parse_args()

    _setup_logging()
    settings = load_settings()

    try:
        if args.command == "look":
            return asyncio.run(_look(settings, is_tomorrow=args.tomorrow))
        return asyncio.run(_book(settings, hour=args.hour, court=args.court, is_tomorrow=args.tomorrow))
    except BookingError as e:
        # Lookup exhausted its retries or returned something unreadable.
        logging.getLogger(__name__).error("%s: %s", type(e).__name__, e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
