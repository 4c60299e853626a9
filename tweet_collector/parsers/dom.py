"""Rendered-page parser: turns article snapshots from the page into Records.

The browser side (see ``tweet_collector.browser.EXTRACT_ARTICLES_JS``) returns
one plain dict per ``article[data-testid="tweet"]`` with raw strings for the
engagement buttons. Everything here is pure so it can be tested without a
browser.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any

from ..errors import ValidationError
from ..models import Record, permanent_url
from .timestamps import normalize_timestamp, to_iso

logger = logging.getLogger(__name__)

_COUNT_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*([kmb])?(?![a-z])", re.IGNORECASE)
_STATUS_RE = re.compile(r"/([^/?#]+)/status/(\d+)")
_MULTIPLIERS = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}

# Links pointing back at the platform itself are not external URLs
_INTERNAL_HOSTS = ("twitter.com", "x.com", "t.co")


def parse_count(value: Any) -> int:
    """Parse an abbreviated engagement count.

    Examples:
        "1.2K" -> 1200
        "3M" -> 3000000
        "1,234 Likes. Like" -> 1234
        "" -> 0
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(0, int(value))

    match = _COUNT_RE.search(str(value).strip())
    if not match:
        return 0
    number, suffix = match.groups()
    try:
        amount = Decimal(number.replace(",", ""))
    except InvalidOperation:
        return 0
    if suffix:
        amount *= _MULTIPLIERS[suffix.lower()]
    return int(amount)


def split_status_url(url: str) -> tuple[str, str] | None:
    """Return ``(author, post_id)`` for a status permalink, or None."""
    match = _STATUS_RE.search(url or "")
    if not match:
        return None
    return match.group(1), match.group(2)


def record_from_article(item: dict[str, Any], author_hint: str = "") -> Record:
    """Build a Record from one extracted article.

    Raises ValidationError when the article has no status id, no usable
    ``time[datetime]`` value, or fields of the wrong type.
    """
    try:
        return _record_from_article(item, author_hint)
    except (AttributeError, TypeError, ValueError) as e:
        raise ValidationError(f"malformed article: {e}") from e


def _record_from_article(item: dict[str, Any], author_hint: str) -> Record:
    post_id = str(item.get("id") or "")
    author = (item.get("author") or "").lstrip("@")
    parsed = split_status_url(item.get("url", ""))
    if parsed:
        author = author or parsed[0]
        post_id = post_id or parsed[1]
    if not post_id:
        raise ValidationError("article has no status id")
    author = author or author_hint.lstrip("@")

    timestamp = normalize_timestamp(item.get("time"))
    social = (item.get("social_context") or "").lower()
    text = item.get("text") or ""

    return Record(
        id=post_id,
        text=text,
        author=author,
        timestamp=timestamp,
        created_at=to_iso(timestamp),
        is_reply="replying to" in social or bool(item.get("replying_to")),
        is_repost="reposted" in social or "retweeted" in social,
        likes=parse_count(item.get("likes")),
        reposts=parse_count(item.get("reposts")),
        replies=parse_count(item.get("replies")),
        views=parse_count(item.get("views")),
        bookmarks=parse_count(item.get("bookmarks")),
        photos=_unique(item.get("photos")),
        videos=_unique(item.get("videos")),
        urls=[u for u in _unique(item.get("urls")) if not _is_internal(u)],
        hashtags=[h.lstrip("#") for h in _unique(item.get("hashtags"))],
        permanent_url=permanent_url(author, post_id),
        quoted_id=item.get("quoted_id") or None,
        source="rendered",
    )


def records_from_articles(
    items: list[dict[str, Any]],
    author_hint: str = "",
) -> tuple[list[Record], int]:
    """Normalize a batch, returning the valid records and the drop count."""
    records: list[Record] = []
    dropped = 0
    for item in items:
        try:
            records.append(record_from_article(item, author_hint))
        except ValidationError as e:
            dropped += 1
            logger.debug("Dropping article: %s", e)
    return records, dropped


def attach_thread(records: list[Record], post_id: str) -> Record | None:
    """Find ``post_id`` and attach the same-author continuation after it.

    The continuation is the run of consecutive non-repost articles by the
    same author that immediately follows the target on a status page.
    """
    for index, record in enumerate(records):
        if record.id != post_id:
            continue
        thread: list[Record] = []
        for follower in records[index + 1:]:
            if follower.author.lower() != record.author.lower() or follower.is_repost:
                break
            thread.append(follower)
        return record.model_copy(update={"thread": thread})
    return None


def _unique(values: Any) -> list[str]:
    if not values:
        return []
    seen: dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(str(value), None)
    return list(seen)


def _is_internal(url: str) -> bool:
    host = re.sub(r"^https?://", "", url).split("/", 1)[0].lower()
    return any(host == h or host.endswith("." + h) for h in _INTERNAL_HOSTS)
