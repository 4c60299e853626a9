"""Credential loading: cookie exports into Playwright-ready cookies.

Supports Netscape ``cookies.txt`` files, browser-extension JSON exports and
JSON lists of ``Set-Cookie`` style strings.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Iterable

from pydantic import BaseModel

from .errors import ConfigError, CredentialsMissingError

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = ".x.com"
# Without these the rendered view falls back to the login wall
SESSION_COOKIES = ("auth_token", "ct0")
# Netscape uses 0 for session cookies; values past 2038 are clamped away
_MAX_EXPIRES = 2147483647


class Cookie(BaseModel):
    """One cookie as handed to the browser context."""

    name: str
    value: str
    domain: str = DEFAULT_DOMAIN
    path: str = "/"
    secure: bool = True
    expires: float | None = None
    http_only: bool | None = None
    same_site: str | None = None

    def to_playwright(self) -> dict[str, Any]:
        cookie: dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "secure": self.secure,
        }
        if self.expires and 0 < self.expires < _MAX_EXPIRES:
            cookie["expires"] = self.expires
        if self.http_only is not None:
            cookie["httpOnly"] = self.http_only
        if self.same_site:
            cookie["sameSite"] = self.same_site
        return cookie


def parse_netscape(text: str) -> list[Cookie]:
    """Parse the tab-separated Netscape format.

    Columns: domain, include-subdomains flag, path, secure, expiration, name, value.
    """
    cookies = []
    for line in text.splitlines():
        # "#HttpOnly_" prefixed lines are real cookies
        http_only = line.startswith("#HttpOnly_")
        if http_only:
            line = line[len("#HttpOnly_"):]
        if not line.strip() or line.startswith("#"):
            continue
        parts = line.rstrip("\r\n").split("\t")
        if len(parts) < 7:
            continue
        domain, _flag, path, secure, expiration, name, value = parts[:7]
        try:
            expires = float(expiration)
        except ValueError:
            expires = None
        cookies.append(
            Cookie(
                name=name,
                value=value,
                domain=domain,
                path=path or "/",
                secure=secure.upper() == "TRUE",
                expires=expires or None,
                http_only=True if http_only else None,
            )
        )
    return cookies


def parse_cookie_json(data: Any) -> list[Cookie]:
    """Parse a JSON cookie export.

    Accepts a list of cookie objects (``expirationDate``/``httpOnly``/
    ``sameSite`` extension keys included), a ``{"cookies": [...]}`` wrapper,
    a flat ``{name: value}`` mapping or a list of ``Set-Cookie`` strings.
    """
    if isinstance(data, dict):
        if isinstance(data.get("cookies"), list):
            data = data["cookies"]
        else:
            return [Cookie(name=str(k), value=str(v)) for k, v in data.items()]

    if not isinstance(data, list):
        raise ConfigError("cookie JSON must be a list or an object")

    cookies = []
    for item in data:
        if isinstance(item, str):
            cookie = _parse_cookie_string(item)
        elif isinstance(item, dict):
            cookie = _parse_cookie_object(item)
        else:
            cookie = None
        if cookie is not None:
            cookies.append(cookie)
    return cookies


def load_cookies(path: str | Path) -> list[Cookie]:
    """Load cookies from a file, detecting JSON vs. Netscape by content."""
    path = Path(path)
    if not path.exists():
        raise CredentialsMissingError(f"cookie file not found: {path}")

    text = path.read_text(encoding="utf-8")
    stripped = text.lstrip()
    if stripped.startswith(("[", "{")):
        try:
            cookies = parse_cookie_json(json.loads(text))
        except json.JSONDecodeError as e:
            raise ConfigError(f"invalid cookie JSON in {path}: {e}") from e
    else:
        cookies = parse_netscape(text)

    names = {c.name for c in cookies}
    missing = [n for n in SESSION_COOKIES if n not in names]
    if missing:
        logger.warning("Cookie file %s lacks %s; session may hit the login wall", path, missing)
    logger.info("Loaded %d cookies from %s", len(cookies), path)
    return cookies


def to_playwright(cookies: Iterable[Cookie]) -> list[dict[str, Any]]:
    return [c.to_playwright() for c in cookies]


def fingerprint(cookies: Iterable[Cookie]) -> str:
    """Stable identity of a credential set, used to serialize sessions."""
    relevant = sorted((c.name, c.value) for c in cookies if c.name in SESSION_COOKIES)
    if not relevant:
        relevant = sorted((c.name, c.value) for c in cookies)
    digest = hashlib.sha256(json.dumps(relevant).encode("utf-8"))
    return digest.hexdigest()[:16]


def _parse_cookie_object(item: dict[str, Any]) -> Cookie | None:
    name = item.get("name")
    if not name:
        return None
    same_site = item.get("sameSite")
    if same_site:
        ss = str(same_site).lower()
        # Extension format -> Playwright format; "unspecified" uses browser default
        if ss == "no_restriction":
            same_site = "None"
        elif ss in ("strict", "lax", "none"):
            same_site = ss.capitalize()
        else:
            same_site = None
    return Cookie(
        name=name,
        value=str(item.get("value", "")),
        domain=item.get("domain") or DEFAULT_DOMAIN,
        path=item.get("path") or "/",
        secure=bool(item.get("secure", True)),
        expires=item.get("expires") or item.get("expirationDate"),
        http_only=item.get("httpOnly"),
        same_site=same_site,
    )


def _parse_cookie_string(raw: str) -> Cookie | None:
    parts = [p.strip() for p in raw.split(";") if p.strip()]
    if not parts or "=" not in parts[0]:
        return None
    name, value = parts[0].split("=", 1)
    attrs: dict[str, Any] = {"secure": False}
    for part in parts[1:]:
        key, _, val = part.partition("=")
        key = key.lower()
        if key == "domain":
            attrs["domain"] = val
        elif key == "path":
            attrs["path"] = val
        elif key == "secure":
            attrs["secure"] = True
        elif key == "httponly":
            attrs["http_only"] = True
    return Cookie(name=name.strip(), value=value.strip(), **attrs)
