"""Tests for cookie export parsing."""

import json

import pytest

from tweet_collector.cookies import (
    Cookie,
    fingerprint,
    load_cookies,
    parse_cookie_json,
    parse_netscape,
    to_playwright,
)
from tweet_collector.errors import ConfigError, CredentialsMissingError

pytestmark = pytest.mark.unit

NETSCAPE = "\n".join([
    "# Netscape HTTP Cookie File",
    "",
    ".x.com\tTRUE\t/\tTRUE\t1893456000\tauth_token\tabc123",
    "#HttpOnly_.x.com\tTRUE\t/\tTRUE\t0\tct0\tcsrf",
    "malformed line",
])


def test_parse_netscape():
    cookies = parse_netscape(NETSCAPE)
    assert [c.name for c in cookies] == ["auth_token", "ct0"]

    auth, ct0 = cookies
    assert auth.domain == ".x.com"
    assert auth.secure is True
    assert auth.expires == 1893456000
    assert ct0.http_only is True
    assert ct0.expires is None


def test_parse_extension_json():
    cookies = parse_cookie_json([
        {
            "name": "auth_token",
            "value": "abc",
            "domain": ".x.com",
            "path": "/",
            "secure": True,
            "httpOnly": True,
            "sameSite": "no_restriction",
            "expirationDate": 1893456000.5,
        },
        {"name": "lang", "value": "en", "sameSite": "unspecified"},
        {"value": "nameless"},
    ])
    assert [c.name for c in cookies] == ["auth_token", "lang"]
    assert cookies[0].same_site == "None"
    assert cookies[0].expires == 1893456000.5
    assert cookies[1].same_site is None


def test_parse_set_cookie_strings():
    cookies = parse_cookie_json(["auth_token=abc; Domain=.x.com; Path=/; Secure"])
    assert cookies == [Cookie(name="auth_token", value="abc", domain=".x.com", path="/", secure=True)]


def test_parse_flat_mapping():
    cookies = parse_cookie_json({"auth_token": "abc", "ct0": "def"})
    assert {c.name: c.value for c in cookies} == {"auth_token": "abc", "ct0": "def"}


def test_parse_rejects_scalars():
    with pytest.raises(ConfigError):
        parse_cookie_json(42)


def test_to_playwright_drops_session_expiry():
    formatted = to_playwright([
        Cookie(name="a", value="1", expires=1893456000),
        Cookie(name="b", value="2", expires=None, http_only=True, same_site="Lax"),
    ])
    assert formatted[0]["expires"] == 1893456000
    assert "expires" not in formatted[1]
    assert formatted[1]["httpOnly"] is True
    assert formatted[1]["sameSite"] == "Lax"


def test_load_cookies_detects_format(tmp_path):
    txt = tmp_path / "cookies.txt"
    txt.write_text(NETSCAPE, encoding="utf-8")
    as_json = tmp_path / "cookies.json"
    as_json.write_text(json.dumps([{"name": "auth_token", "value": "abc"}]), encoding="utf-8")

    assert len(load_cookies(txt)) == 2
    assert load_cookies(as_json)[0].value == "abc"


def test_load_cookies_missing_file(tmp_path):
    with pytest.raises(CredentialsMissingError):
        load_cookies(tmp_path / "absent.txt")


def test_load_cookies_bad_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("[{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_cookies(path)


def test_fingerprint_tracks_session_cookies():
    base = [Cookie(name="auth_token", value="t1"), Cookie(name="lang", value="en")]
    same_session = [Cookie(name="auth_token", value="t1"), Cookie(name="lang", value="fr")]
    other = [Cookie(name="auth_token", value="t2")]

    assert fingerprint(base) == fingerprint(same_session)
    assert fingerprint(base) != fingerprint(other)
