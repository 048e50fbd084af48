from __future__ import annotations

import json
import logging

import httpx

from squashbot.clock import format_site_date
from squashbot.config import Settings
from squashbot.domain import (
    AuthError,
    BookingError,
    ConfirmError,
    Failure,
    FlowResult,
    FlowState,
    Identity,
    Receipt,
    Slot,
    StageError,
    Success,
)
from squashbot.forms import CONFIRM_TOKEN_FIELDS, confirm_form, login_form
from squashbot.html_fragments import decode_redirect_descriptor, extract_text, extract_tokens, require_tokens
from squashbot.http_session import SessionFactory, landed_on_login, seed_auth_cookie, send

logger = logging.getLogger(__name__)

LOGIN_PATH = "/MIT/Login.aspx?AspxAutoDetectCookieSupport=1"
STAGE_PATH = "/MIT/Library/OlsService.asmx/SetScheduleInformation"
CONFIRM_PATH = "/MIT/Members/Scheduler/AddFamilyMembersScheduler.aspx?showOfflineMessage=true"

THANK_YOU_ID = "ctl00_pageContentHolder_lblThankYou"

# The confirm POST is rejected without a browser User-Agent.
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_12_6) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/60.0.3112.90 Safari/537.36"
)

SERVICE_ID = 4
SERVICE_NAME = "Recreational Squash"
SERVICE_UNIQUE_IDENTIFIER = "757170ab-4338-4ff6-868d-2fb51cc449f8"


async def authenticate(session: httpx.AsyncClient, identity: Identity, settings: Settings) -> None:
    """Log in on a fresh session.

    Only transport success is checked here. A wrong password shows up later,
    when stage or confirm end up on the login page.
    """
    seed_auth_cookie(session, settings.base_url)
    await send(session, "POST", LOGIN_PATH, data=login_form(identity))


def build_schedule_information(slot: Slot, settings: Settings) -> dict:
    return {
        "ScheduleDate": format_site_date(slot.date),
        "Duration": slot.duration_minutes,
        "Resource": f"Zesiger Squash Court #{slot.court}",
        "Provider": "",
        "SiteId": settings.site_id,
        "ProviderId": 0,
        # Must be a string.
        "ResourceId": slot.resource_id(settings.resource_id_offset),
        "ServiceId": SERVICE_ID,
        "ServiceName": SERVICE_NAME,
        "ServiceUniqueIdentifier": SERVICE_UNIQUE_IDENTIFIER,
    }


def build_stage_payload(slot: Slot, settings: Settings) -> dict[str, str]:
    # The service wants both values as strings: the schedule is JSON inside JSON
    # and the start time is minutes since midnight.
    return {
        "scheduleInformation": json.dumps(build_schedule_information(slot, settings)),
        "startTime": str(slot.start_minute),
    }


async def stage(session: httpx.AsyncClient, slot: Slot, settings: Settings) -> None:
    """Put a provisional hold on the slot. Nothing here releases it; the site expires unconfirmed holds."""
    response = await send(session, "POST", STAGE_PATH, json=build_stage_payload(slot, settings))

    if landed_on_login(response):
        raise AuthError("Stage request was redirected to the login page (bad credentials or expired session)")

    try:
        body = response.json()
    except ValueError as e:
        raise StageError(f"Stage response is not JSON (HTTP {response.status_code})") from e
    if not isinstance(body, dict):
        raise StageError(f"Unexpected stage response: {body!r}")


async def confirm(session: httpx.AsyncClient, slot: Slot, settings: Settings, *, username: str) -> Receipt:
    # 1. Confirmation page carries the hidden tokens for the postback.
    page = await send(session, "GET", CONFIRM_PATH)
    if landed_on_login(page):
        raise AuthError("Confirmation page redirected to the login page (bad credentials or expired session)")
    tokens = require_tokens(extract_tokens(page.text), CONFIRM_TOKEN_FIELDS)

    # 2. Async postback; the answer is a pipe-delimited redirect descriptor, not HTML.
    postback = await send(
        session,
        "POST",
        CONFIRM_PATH,
        data=confirm_form(tokens),
        headers={"User-Agent": BROWSER_USER_AGENT},
    )
    redirect_path = decode_redirect_descriptor(postback.text)

    # 3. The thank-you label is the only proof the booking went through.
    final = await send(session, "GET", redirect_path)
    message = extract_text(final.text, THANK_YOU_ID)
    if not message:
        raise ConfirmError(
            f"No confirmation message on {final.url.path} (HTTP {final.status_code})",
            response=final,
        )

    return Receipt(username=username, slot=slot, message=message, url=str(final.url))


async def run_flow(
    identity: Identity,
    slot: Slot,
    settings: Settings,
    session_factory: SessionFactory,
) -> FlowResult:
    """Authenticate -> stage -> confirm for one identity on one brand-new session.

    Any BookingError stops the flow where it happened; nothing is retried and
    a staged hold is not rolled back.
    """
    state = FlowState.INIT

    async with session_factory() as session:
        try:
            await authenticate(session, identity, settings)
            state = FlowState.AUTHENTICATED
            logger.info("Logged in as %s", identity.username)

            await stage(session, slot, settings)
            state = FlowState.STAGED
            logger.info("Staged court %s at %02d:00 on %s", slot.court, slot.hour, slot.date.isoformat())

            receipt = await confirm(session, slot, settings, username=identity.username)
            state = FlowState.CONFIRMED
            logger.info("Confirmed reservation as %s: %s", identity.username, receipt.message)

        except BookingError as e:
            failure = Failure(identity=identity, step=state, error=e)
            logger.warning("Attempt to book as %s failed (%s)", identity.username, failure.reason)
            return failure

    return Success(identity=identity, receipt=receipt)
