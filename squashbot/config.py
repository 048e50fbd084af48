from __future__ import annotations

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from squashbot.domain import Identity

DEFAULT_BASE_URL = "https://east-a-60ols.csi-cloudapp.net"


def _split_csv(raw: str) -> list[str]:
    return [p.strip() for p in raw.split(",")]


def _parse_identities(usernames_raw: str, passwords_raw: str) -> tuple[Identity, ...]:
    # Usernames and passwords are parallel comma-separated lists, zipped by position.
    # Example:
    #   MIT_RECREATION_USERNAMES=alice,bob
    #   MIT_RECREATION_PASSWORDS=pw1,pw2
    usernames = _split_csv(usernames_raw)
    passwords = _split_csv(passwords_raw)

    if len(usernames) != len(passwords):
        raise RuntimeError(
            f"MIT_RECREATION_USERNAMES has {len(usernames)} entries but "
            f"MIT_RECREATION_PASSWORDS has {len(passwords)}. They are zipped by position."
        )

    identities: list[Identity] = []
    for i, (username, password) in enumerate(zip(usernames, passwords), start=1):
        if not username:
            raise RuntimeError(f"MIT_RECREATION_USERNAMES entry #{i} is empty")
        if not password:
            # Never echo the password list itself.
            raise RuntimeError(f"MIT_RECREATION_PASSWORDS entry #{i} (for {username!r}) is empty")
        identities.append(Identity(username=username, secret=password))

    return tuple(identities)


@dataclass(frozen=True)
class Settings:
    # Tried strictly in this order when booking.
    identities: tuple[Identity, ...]

    base_url: str = DEFAULT_BASE_URL
    site_timezone: str = "America/New_York"

    request_timeout_seconds: float = 30.0

    # Retry tuning
    # How many times the availability lookup is attempted before giving up.
    # Booking attempts are never retried; fallback to the next identity replaces that.
    lookup_retry_attempts: int = 3

    # Site layout. Z-Center courts 1-5 are resource ids 17-21.
    site_id: int = 1261
    court_count: int = 5
    resource_id_offset: int = 16

    @property
    def courts(self) -> range:
        return range(1, self.court_count + 1)

    @property
    def resource_ids(self) -> list[str]:
        return [str(c + self.resource_id_offset) for c in self.courts]

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.site_timezone)


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    base_url = os.getenv("BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/")
    if not base_url.startswith(("http://", "https://")):
        raise RuntimeError(f"BASE_URL must be an http(s) URL, got {base_url!r}")

    site_timezone = os.getenv("SITE_TIMEZONE", "America/New_York").strip()
    try:
        ZoneInfo(site_timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise RuntimeError(f"Unknown SITE_TIMEZONE: {site_timezone!r}") from e

    request_timeout_seconds = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))
    if request_timeout_seconds <= 0:
        raise RuntimeError("REQUEST_TIMEOUT_SECONDS must be > 0")

    lookup_retry_attempts = int(os.getenv("LOOKUP_RETRY_ATTEMPTS", "3"))
    if lookup_retry_attempts < 1:
        raise RuntimeError("LOOKUP_RETRY_ATTEMPTS must be >= 1")

    return Settings(
        identities=_parse_identities(
            _require("MIT_RECREATION_USERNAMES"),
            _require("MIT_RECREATION_PASSWORDS"),
        ),
        base_url=base_url,
        site_timezone=site_timezone,
        request_timeout_seconds=request_timeout_seconds,
        lookup_retry_attempts=lookup_retry_attempts,
    )
