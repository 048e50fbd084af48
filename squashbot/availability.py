from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import httpx

from squashbot.clock import format_site_date
from squashbot.config import Settings
from squashbot.domain import ParseError
from squashbot.http_session import new_session, send

logger = logging.getLogger(__name__)

AVAILABILITY_PATH = "/MIT/Library/OlsService.asmx/GetSchedulerResourceAvailability"

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class AvailabilityMatrix:
    """Minute-by-minute occupancy per resource for one day.

    Courts are booked by the hour but the site reports minutes, so hour-level
    questions go through hour_available(). Minutes the site did not report are
    treated as occupied.
    """

    day: dt.date
    occupied: Mapping[str, tuple[bool, ...]] = field(default_factory=dict)

    @property
    def resource_ids(self) -> list[str]:
        return sorted(self.occupied, key=lambda r: (len(r), r))

    def is_free(self, resource_id: str, minute: int) -> bool:
        minutes = self.occupied.get(resource_id, ())
        if not 0 <= minute < len(minutes):
            return False
        return not minutes[minute]

    def hour_available(self, resource_id: str, hour: int) -> bool:
        start = hour * 60
        return all(self.is_free(resource_id, m) for m in range(start, start + 60))

    def free_hours(self, resource_id: str) -> list[int]:
        return [h for h in range(24) if self.hour_available(resource_id, h)]


def _unwrap_asmx(body: Any) -> Any:
    # ASMX services wrap results as {"d": ...}; "d" is sometimes a JSON string itself.
    if isinstance(body, dict) and "d" in body:
        body = body["d"]
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except json.JSONDecodeError as e:
            raise ParseError("Availability payload is not valid JSON") from e
    return body


def parse_availability(body: Any, day: dt.date) -> AvailabilityMatrix:
    entries = _unwrap_asmx(body)
    if not isinstance(entries, list):
        raise ParseError(f"Unexpected availability payload: {type(entries).__name__}")

    occupied: dict[str, tuple[bool, ...]] = {}
    # Field names and flag polarity (truthy = occupied) are assumed, not confirmed against the live site.
    for entry in entries:
        try:
            resource_id = str(entry["ResourceId"])
            flags = tuple(bool(f) for f in entry["Availability"][:MINUTES_PER_DAY])
        except (KeyError, TypeError) as e:
            raise ParseError(f"Availability entry is missing ResourceId/Availability: {entry!r}") from e
        occupied[resource_id] = flags

    return AvailabilityMatrix(day=day, occupied=occupied)


async def lookup(
    resource_ids: Iterable[str],
    day: dt.date,
    *,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AvailabilityMatrix:
    """Ask the site which minutes of `day` are taken for each resource.

    Unauthenticated and stateless. Raises TransportError on network/HTTP failure
    and never retries; that is the caller's call.
    """
    payload = {
        "siteId": str(settings.site_id),
        "resourceIds": sorted({str(r) for r in resource_ids}, key=lambda r: (len(r), r)),
        "selectedDate": format_site_date(day),
    }

    async with new_session(settings, transport=transport) as client:
        response = await send(client, "POST", AVAILABILITY_PATH, json=payload)

    try:
        body = response.json()
    except ValueError as e:
        raise ParseError("Availability response is not JSON") from e

    matrix = parse_availability(body, day)
    logger.info("Availability for %s: %d resource(s)", payload["selectedDate"], len(matrix.occupied))
    return matrix


def pick_court(matrix: AvailabilityMatrix, hour: int, courts: Iterable[int], resource_id_offset: int) -> int | None:
    """Lowest-numbered court whose whole hour is free."""
    for court in sorted(courts):
        if matrix.hour_available(str(court + resource_id_offset), hour):
            return court
    return None
