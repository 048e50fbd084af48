from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

import httpx


@dataclass(frozen=True)
class Identity:
    """A username/secret pair for the scheduling site."""

    username: str
    secret: str = field(repr=False)


@dataclass(frozen=True, order=True)
class Slot:
    """The reservation we want: one court, one day, one hour.

    `date` is already resolved in the site's timezone (see clock.site_date).
    """

    court: int
    date: dt.date
    hour: int  # 0-23
    duration_minutes: int = 60

    def __post_init__(self) -> None:
        if self.court < 1:
            raise ValueError(f"Court number must be >= 1, got {self.court}")
        if not 0 <= self.hour <= 23:
            raise ValueError(f"Hour must be on a 24-hour clock (0-23), got {self.hour}")

    @property
    def start_minute(self) -> int:
        return self.hour * 60

    def resource_id(self, offset: int) -> str:
        return str(self.court + offset)


@dataclass(frozen=True)
class Receipt:
    username: str
    slot: Slot
    message: str
    url: str


class FlowState(str, Enum):
    INIT = "init"
    AUTHENTICATED = "authenticated"
    STAGED = "staged"
    CONFIRMED = "confirmed"

    @property
    def next_step(self) -> str:
        return _NEXT_STEP[self]


_NEXT_STEP = {
    FlowState.INIT: "authenticate",
    FlowState.AUTHENTICATED: "stage",
    FlowState.STAGED: "confirm",
    FlowState.CONFIRMED: "done",
}


class BookingError(RuntimeError):
    """Base class for everything that can abort a booking attempt."""


class TransportError(BookingError):
    """Network failure, timeout or non-2xx HTTP status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(BookingError):
    """An expected hidden token or payload was missing from a response."""


class AuthError(BookingError):
    """The site sent us back to the login page.

    Login itself is never verified, so this may mean wrong credentials or an
    expired session; the site does not tell us which.
    """


class StageError(BookingError):
    pass


class ConfirmError(BookingError):
    def __init__(self, message: str, *, response: httpx.Response | None = None) -> None:
        super().__init__(message)
        self.response = response


@dataclass(frozen=True)
class Failure:
    identity: Identity
    step: FlowState  # state the flow was in when it failed
    error: BookingError

    @property
    def is_transport(self) -> bool:
        return isinstance(self.error, TransportError)

    @property
    def reason(self) -> str:
        msg = str(self.error).strip() or type(self.error).__name__
        status = getattr(self.error, "status_code", None)
        if status is not None:
            return f"{type(self.error).__name__} during {self.step.next_step} (HTTP {status}): {msg}"
        return f"{type(self.error).__name__} during {self.step.next_step}: {msg}"


@dataclass(frozen=True)
class Success:
    identity: Identity
    receipt: Receipt
    # Identities that were tried and failed before this one, in order.
    failures: tuple[Failure, ...] = ()


FlowResult = Union[Success, Failure]
AttemptLog = tuple[Failure, ...]


class AllIdentitiesFailed(BookingError):
    """Every configured identity was tried and none confirmed a booking."""

    def __init__(self, attempts: AttemptLog) -> None:
        self.attempts = attempts
        if attempts:
            lines = "; ".join(f"{a.identity.username}: {a.reason}" for a in attempts)
            super().__init__(f"Booking failed for all {len(attempts)} identities ({lines})")
        else:
            super().__init__("Booking failed: no identities configured")
