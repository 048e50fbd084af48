from __future__ import annotations

import logging
from typing import Any, Callable

import httpx

from squashbot.config import Settings
from squashbot.domain import TransportError

logger = logging.getLogger(__name__)

# Forms-authentication cookie of the site. See seed_auth_cookie().
AUTH_COOKIE = ".CSIASPXFORMSAUTH"

# One session (client + cookie jar) per booking attempt.
SessionFactory = Callable[[], httpx.AsyncClient]


def new_session(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """A fresh client with an empty cookie jar.

    The caller owns it and must close it (`async with`) when the attempt ends;
    sessions are never pooled or handed to another identity.
    """
    return httpx.AsyncClient(
        base_url=settings.base_url,
        cookies=httpx.Cookies(),
        follow_redirects=True,
        timeout=httpx.Timeout(settings.request_timeout_seconds),
        transport=transport,
    )


def session_factory_for(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> SessionFactory:
    return lambda: new_session(settings, transport=transport)


def seed_auth_cookie(session: httpx.AsyncClient, base_url: str) -> None:
    # The site only sets the real auth cookie on login if a cookie with that
    # name already exists for the host. The dummy value is overwritten by login.
    host = httpx.URL(base_url).host
    session.cookies.set(AUTH_COOKIE, "dummy", domain=host)


def landed_on_login(response: httpx.Response) -> bool:
    return response.url.path.lower().endswith("/login.aspx")


async def send(session: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """Issue one request on the session, mapping every HTTP-layer failure to TransportError."""
    try:
        response = await session.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise TransportError(f"{method} {url} timed out ({type(e).__name__})") from e
    except httpx.HTTPError as e:
        raise TransportError(f"{method} {url} failed ({type(e).__name__}: {e})") from e

    logger.debug("%s %s -> %s (%s)", method, url, response.status_code, response.url.path)

    if response.is_error:
        raise TransportError(
            f"{method} {url} returned HTTP {response.status_code}",
            status_code=response.status_code,
        )
    return response
