from __future__ import annotations

import asyncio
import datetime as dt
from unittest.mock import AsyncMock, patch

import pytest
from tenacity import wait_none

from squashbot.availability import AvailabilityMatrix
from squashbot.domain import AllIdentitiesFailed, AuthError, Slot, Success, TransportError
from squashbot.tests.fake_site import FakeSite, RecordingFactory, make_settings
from squashbot.worker import book, find_free_court, lookup_with_retry

SLOT = Slot(court=3, date=dt.date(2026, 10, 19), hour=18)


def test_first_identity_failing_stage_falls_back_to_second() -> None:
    # "a" gets a 500 at stage, "b" goes all the way through.
    site = FakeSite(passwords={"a": "pw1", "b": "pw2"}, stage_status={"a": 500})
    settings = make_settings(("a", "pw1"), ("b", "pw2"))
    factory = RecordingFactory(settings, site)

    result = asyncio.run(book(SLOT, settings, factory))

    assert isinstance(result, Success)
    assert result.identity.username == "b"
    assert result.receipt.message
    assert [f.identity.username for f in result.failures] == ["a"]
    assert result.failures[0].error.status_code == 500
    assert site.logins == ["a", "b"]


def test_success_stops_before_remaining_identities() -> None:
    site = FakeSite(passwords={"a": "pw1", "b": "pw2", "c": "pw3"}, stage_status={"a": 500})
    settings = make_settings(("a", "pw1"), ("b", "pw2"), ("c", "pw3"))
    factory = RecordingFactory(settings, site)

    result = asyncio.run(book(SLOT, settings, factory))

    assert result.identity.username == "b"
    assert len(factory.sessions) == 2
    assert "c" not in site.logins
    assert len(site.confirm_forms) == 1


def test_all_identities_failing_raises_with_ordered_attempt_log() -> None:
    site = FakeSite(passwords={"a": "pw1", "b": "pw2"}, stage_status={"a": 500})
    # "b" has a wrong password, "c" does not exist.
    settings = make_settings(("a", "pw1"), ("b", "nope"), ("c", "pw3"))
    factory = RecordingFactory(settings, site)

    with pytest.raises(AllIdentitiesFailed) as exc_info:
        asyncio.run(book(SLOT, settings, factory))

    attempts = exc_info.value.attempts
    assert [a.identity.username for a in attempts] == ["a", "b", "c"]
    assert isinstance(attempts[0].error, TransportError)
    assert isinstance(attempts[1].error, AuthError)
    assert isinstance(attempts[2].error, AuthError)
    assert site.logins == ["a", "b", "c"]
    assert all(s.is_closed for s in factory.sessions)


def test_no_identities_is_an_immediate_failure() -> None:
    site = FakeSite(passwords={})
    settings = make_settings()
    factory = RecordingFactory(settings, site)

    with pytest.raises(AllIdentitiesFailed) as exc_info:
        asyncio.run(book(SLOT, settings, factory))

    assert exc_info.value.attempts == ()
    assert site.requests == []


def test_sequential_book_calls_never_share_a_session() -> None:
    site = FakeSite(passwords={"a": "pw1"})
    settings = make_settings(("a", "pw1"))
    factory = RecordingFactory(settings, site)

    asyncio.run(book(SLOT, settings, factory))
    asyncio.run(book(SLOT, settings, factory))

    first, second = factory.sessions
    assert first is not second
    assert first.cookies is not second.cookies
    assert first.cookies.jar is not second.cookies.jar
    # Each attempt started from an empty jar and saw only the placeholder.
    assert site.placeholder_seen == [True, True]


def test_lookup_with_retry_retries_transport_errors() -> None:
    settings = make_settings(("a", "pw1"))
    matrix = AvailabilityMatrix(day=SLOT.date, occupied={"19": (False,) * 1440})

    with (
        patch("squashbot.worker.lookup", new=AsyncMock(side_effect=[TransportError("down"), matrix])) as lookup,
        patch("squashbot.worker.wait_exponential", return_value=wait_none()),
    ):
        assert asyncio.run(lookup_with_retry(settings, SLOT.date)) is matrix
        assert lookup.await_count == 2


def test_lookup_with_retry_gives_up_after_configured_attempts() -> None:
    settings = make_settings(("a", "pw1"))

    with (
        patch("squashbot.worker.lookup", new=AsyncMock(side_effect=TransportError("down"))) as lookup,
        patch("squashbot.worker.wait_exponential", return_value=wait_none()),
    ):
        with pytest.raises(TransportError):
            asyncio.run(lookup_with_retry(settings, SLOT.date))
        assert lookup.await_count == settings.lookup_retry_attempts


def test_find_free_court_picks_lowest_fully_free_court() -> None:
    settings = make_settings(("a", "pw1"))
    busy = (False,) * (18 * 60 + 30) + (True,) + (False,) * (1440 - 18 * 60 - 31)
    matrix = AvailabilityMatrix(
        day=SLOT.date,
        occupied={"17": busy, "18": (True,) * 1440, "19": (False,) * 1440},
    )

    with patch("squashbot.worker.lookup_with_retry", new=AsyncMock(return_value=matrix)):
        assert asyncio.run(find_free_court(settings, SLOT.date, 18)) == 3
        assert asyncio.run(find_free_court(settings, SLOT.date, 17)) == 1
