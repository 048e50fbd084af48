from __future__ import annotations

import pytest

from squashbot.config import load_settings
from squashbot.domain import Identity


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("BASE_URL", "SITE_TIMEZONE", "REQUEST_TIMEOUT_SECONDS", "LOOKUP_RETRY_ATTEMPTS"):
        monkeypatch.delenv(name, raising=False)


def test_load_settings_zips_usernames_and_passwords_in_order(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MIT_RECREATION_USERNAMES", "alice, bob,carol")
    monkeypatch.setenv("MIT_RECREATION_PASSWORDS", "pw1,pw2 , pw3")

    settings = load_settings(dotenv_path=None)

    assert settings.identities == (
        Identity("alice", "pw1"),
        Identity("bob", "pw2"),
        Identity("carol", "pw3"),
    )
    assert settings.base_url == "https://east-a-60ols.csi-cloudapp.net"
    assert settings.site_timezone == "America/New_York"
    assert settings.resource_ids == ["17", "18", "19", "20", "21"]


def test_load_settings_rejects_mismatched_lists(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MIT_RECREATION_USERNAMES", "alice,bob")
    monkeypatch.setenv("MIT_RECREATION_PASSWORDS", "pw1")

    with pytest.raises(RuntimeError, match=r"zipped by position"):
        load_settings(dotenv_path=None)


def test_load_settings_rejects_empty_password_without_leaking_it(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MIT_RECREATION_USERNAMES", "alice,bob")
    monkeypatch.setenv("MIT_RECREATION_PASSWORDS", "secret1,")

    with pytest.raises(RuntimeError) as exc_info:
        load_settings(dotenv_path=None)
    assert "'bob'" in str(exc_info.value)
    assert "secret1" not in str(exc_info.value)


def test_load_settings_requires_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MIT_RECREATION_USERNAMES", raising=False)
    monkeypatch.setenv("MIT_RECREATION_PASSWORDS", "pw1")

    with pytest.raises(RuntimeError, match=r"MIT_RECREATION_USERNAMES"):
        load_settings(dotenv_path=None)


@pytest.mark.parametrize(
    "name, value, message",
    [
        ("SITE_TIMEZONE", "Mars/Olympus_Mons", r"Unknown SITE_TIMEZONE"),
        ("LOOKUP_RETRY_ATTEMPTS", "0", r"LOOKUP_RETRY_ATTEMPTS must be >= 1"),
        ("REQUEST_TIMEOUT_SECONDS", "0", r"REQUEST_TIMEOUT_SECONDS must be > 0"),
        ("BASE_URL", "ftp://example.org", r"BASE_URL must be an http\(s\) URL"),
    ],
)
def test_load_settings_rejects_invalid_tuning(monkeypatch: pytest.MonkeyPatch, name: str, value: str, message: str) -> None:
    monkeypatch.setenv("MIT_RECREATION_USERNAMES", "alice")
    monkeypatch.setenv("MIT_RECREATION_PASSWORDS", "pw1")
    monkeypatch.setenv(name, value)

    with pytest.raises(RuntimeError, match=message):
        load_settings(dotenv_path=None)


def test_identity_repr_hides_secret() -> None:
    assert "hunter2" not in repr(Identity("alice", "hunter2"))


def test_load_settings_does_not_override_existing_env_with_dotenv(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    # load_dotenv(override=False) must not overwrite already-set env vars.
    monkeypatch.setenv("MIT_RECREATION_USERNAMES", "alice")
    monkeypatch.setenv("MIT_RECREATION_PASSWORDS", "pw1")

    dotenv = tmp_path / ".env"
    dotenv.write_text("MIT_RECREATION_USERNAMES=mallory\nMIT_RECREATION_PASSWORDS=x\n")

    settings = load_settings(dotenv_path=str(dotenv))
    assert [i.username for i in settings.identities] == ["alice"]
