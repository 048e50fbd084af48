from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Mapping

from squashbot.domain import Identity

_FORMS_DIR = Path(__file__).resolve().parent / "form_templates"

USERNAME_FIELD = "ctl00$pageContentHolder$loginControl$UserName"
PASSWORD_FIELD = "ctl00$pageContentHolder$loginControl$Password"

VIEWSTATE_FIELD = "__VIEWSTATE"
ANTI_TAMPER_FIELD = "ctl00$rnHf"
CONFIRM_TOKEN_FIELDS = (VIEWSTATE_FIELD, ANTI_TAMPER_FIELD)


@lru_cache(maxsize=None)
def _load_template(name: str) -> tuple[tuple[str, str], ...]:
    with open(_FORMS_DIR / f"{name}.json", "r", encoding="utf-8") as f:
        raw = json.load(f)
    # Frozen so a caller can never mutate the cached template for the next attempt.
    return tuple((str(k), str(v)) for k, v in raw.items())


def login_form(identity: Identity) -> dict[str, str]:
    form = dict(_load_template("login"))
    form[USERNAME_FIELD] = identity.username
    form[PASSWORD_FIELD] = identity.secret
    return form


def confirm_form(tokens: Mapping[str, str]) -> dict[str, str]:
    form = dict(_load_template("confirm"))
    for name in CONFIRM_TOKEN_FIELDS:
        form[name] = tokens[name]
    return form
