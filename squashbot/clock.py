from __future__ import annotations

import datetime as dt
from typing import Callable
from zoneinfo import ZoneInfo

# Returns an aware "now". Injected so tests can pin the date.
Clock = Callable[[], dt.datetime]


def system_clock() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def site_date(tz: ZoneInfo, *, is_tomorrow: bool = False, clock: Clock = system_clock) -> dt.date:
    """Today (or tomorrow) as seen by the site, not by the caller's machine."""
    today = clock().astimezone(tz).date()
    return today + dt.timedelta(days=1) if is_tomorrow else today


def format_site_date(day: dt.date) -> str:
    # The site expects US locale dates: MM/DD/YYYY.
    return day.strftime("%m/%d/%Y")
