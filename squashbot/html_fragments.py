"""Pure helpers for pulling values out of ASP.NET pages.

Nothing here touches the network or keeps parser state between calls: the
booking flow passes the extracted tokens explicitly from one request to the next.
"""

from __future__ import annotations

from typing import Iterable, Mapping
from urllib.parse import unquote

from bs4 import BeautifulSoup

from squashbot.domain import ParseError


def extract_tokens(html: str) -> dict[str, str]:
    """Map every hidden input's form name to its value.

    ASP.NET renders `name="ctl00$rnHf"` with `id="ctl00_rnHf"`; we key by name
    because that is what gets posted back.
    """
    soup = BeautifulSoup(html, "html.parser")
    tokens: dict[str, str] = {}
    for tag in soup.find_all("input", attrs={"type": "hidden"}):
        name = tag.get("name") or tag.get("id")
        if not name:
            continue
        tokens[name] = tag.get("value", "")
    return tokens


def require_tokens(tokens: Mapping[str, str], names: Iterable[str]) -> dict[str, str]:
    names = tuple(names)
    # Present but empty is fine; the site posts back whatever value it rendered.
    missing = [n for n in names if n not in tokens]
    if missing:
        raise ParseError(f"Hidden form token(s) not found on page: {', '.join(missing)}")
    return {n: tokens[n] for n in names}


def extract_text(html: str, element_id: str) -> str:
    """Stripped text of the element with the given id, or "" if absent."""
    soup = BeautifulSoup(html, "html.parser")
    el = soup.find(id=element_id)
    if el is None:
        return ""
    return el.get_text(strip=True)


def decode_redirect_descriptor(body: str) -> str:
    """Relative path from an UpdatePanel `...|pageRedirect||%2fpath|` response.

    The path is the second-to-last pipe-delimited segment, URL-encoded.
    """
    parts = body.split("|")
    if len(parts) < 2:
        raise ParseError("Confirmation response is not a pipe-delimited redirect descriptor")
    path = unquote(parts[-2]).strip()
    if not path.startswith("/"):
        raise ParseError(f"Confirmation redirect descriptor has no usable path: {parts[-2]!r}")
    return path
