from __future__ import annotations

import datetime as dt
import logging

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from squashbot.availability import AvailabilityMatrix, lookup, pick_court
from squashbot.booking_flow import run_flow
from squashbot.config import Settings
from squashbot.domain import AllIdentitiesFailed, Failure, Slot, Success, TransportError
from squashbot.http_session import SessionFactory, session_factory_for

logger = logging.getLogger(__name__)


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    # Type and message only, no traceback between attempts.
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_before_attempt(retry_state: RetryCallState) -> None:
    logger.info("Availability lookup attempt %s: start", retry_state.attempt_number)


def _log_after_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        reason = _short_exc(retry_state)
        if reason:
            logger.warning("Availability lookup attempt %s: failed (%s)", retry_state.attempt_number, reason)
        else:
            logger.warning("Availability lookup attempt %s: failed", retry_state.attempt_number)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    if sleep_seconds is None:
        logger.info("Waiting before the next availability lookup...")
        return
    logger.info(
        "Waiting %.0f s before availability lookup attempt %s",
        sleep_seconds,
        retry_state.attempt_number + 1,
    )


async def lookup_with_retry(settings: Settings, day: dt.date) -> AvailabilityMatrix:
    """Availability lookup with the caller-side retry policy (transport failures only)."""
    retrying = AsyncRetrying(
        stop=stop_after_attempt(settings.lookup_retry_attempts),
        wait=wait_exponential(multiplier=2, min=2, max=8),
        retry=retry_if_exception_type(TransportError),
        before=_log_before_attempt,
        after=_log_after_attempt,
        before_sleep=_log_before_sleep,
        reraise=True,
    )
    return await retrying(lookup, settings.resource_ids, day, settings=settings)


async def find_free_court(settings: Settings, day: dt.date, hour: int) -> int | None:
    matrix = await lookup_with_retry(settings, day)
    court = pick_court(matrix, hour, settings.courts, settings.resource_id_offset)
    if court is None:
        logger.info("No court is free for the whole %02d:00 hour on %s", hour, day.isoformat())
    else:
        logger.info("Court %s is free at %02d:00 on %s", court, hour, day.isoformat())
    return court


async def book(
    slot: Slot,
    settings: Settings,
    session_factory: SessionFactory | None = None,
) -> Success:
    """Try every identity in order until one confirms the slot.

    Attempts never overlap: two accounts confirming at once could book the
    same court twice. Raises AllIdentitiesFailed with one Failure per identity
    when none succeeds.
    """
    factory = session_factory or session_factory_for(settings)
    failures: list[Failure] = []

    for identity in settings.identities:
        result = await run_flow(identity, slot, settings, factory)
        if isinstance(result, Success):
            return Success(identity=result.identity, receipt=result.receipt, failures=tuple(failures))
        failures.append(result)

    logger.error("Booking failed for all %d identities", len(failures))
    raise AllIdentitiesFailed(tuple(failures))
