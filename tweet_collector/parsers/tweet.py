"""Tweet parser: turns structured API tweet results into Records.

API responses nest the useful fields several levels deep and move them
between versions. These helpers navigate the JSON and produce flat,
validated Records for the merge engine.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import NotFoundError, RemoteError, ValidationError
from ..models import Profile, Record, permanent_url
from .timestamps import normalize_timestamp, to_iso

logger = logging.getLogger(__name__)

# Legacy text cap; longer posts carry a note_tweet body
TRUNCATION_LENGTH = 280


def record_from_tweet_result(
    result: dict[str, Any],
    author_hint: str = "",
    full_text: str | None = None,
) -> Record:
    """Build a Record from a single tweet result.

    Handles the ``tweet`` visibility wrapper. Raises ValidationError for
    tombstones and for results without an id or a usable timestamp.
    """
    try:
        return _record_from_tweet_result(result, author_hint, full_text)
    except (AttributeError, TypeError, ValueError) as e:
        raise ValidationError(f"malformed tweet result: {e}") from e


def _record_from_tweet_result(
    result: dict[str, Any],
    author_hint: str,
    full_text: str | None,
) -> Record:
    if "tweet" in result and isinstance(result["tweet"], dict):
        result = result["tweet"]

    if result.get("__typename") in ("TweetTombstone", "TweetUnavailable"):
        raise ValidationError("tweet unavailable")

    legacy = result.get("legacy") or {}
    tweet_id = str(legacy.get("id_str") or result.get("rest_id") or "")
    if not tweet_id:
        raise ValidationError("tweet result has no id")

    timestamp = normalize_timestamp(legacy.get("created_at"))
    author = _author_handle(result) or author_hint.lstrip("@")

    text = full_text if full_text is not None else best_text(result)
    entities = legacy.get("entities") or {}
    photos, videos = _extract_media(legacy)

    return Record(
        id=tweet_id,
        text=text,
        author=author,
        timestamp=timestamp,
        created_at=to_iso(timestamp),
        is_reply=bool(legacy.get("in_reply_to_status_id_str")),
        is_repost="retweeted_status_result" in legacy or text.startswith("RT @"),
        likes=_as_count(legacy.get("favorite_count")),
        reposts=_as_count(legacy.get("retweet_count")),
        replies=_as_count(legacy.get("reply_count")),
        views=_get_views(result),
        bookmarks=_as_count(legacy.get("bookmark_count")),
        photos=photos,
        videos=videos,
        urls=[u.get("expanded_url") or u.get("url", "") for u in entities.get("urls") or []],
        hashtags=[h.get("text", "") for h in entities.get("hashtags") or [] if h.get("text")],
        permanent_url=permanent_url(author, tweet_id),
        quoted_id=legacy.get("quoted_status_id_str") or None,
        in_reply_to_id=legacy.get("in_reply_to_status_id_str") or None,
        source="api",
    )


def best_text(result: dict[str, Any]) -> str:
    """Long-form body when present, otherwise the legacy full text."""
    note = _note_text(result)
    if note:
        return note
    return (result.get("legacy") or {}).get("full_text", "")


def is_truncated(result: dict[str, Any]) -> bool:
    """True when the legacy text hit the length cap without a long-form body."""
    if "tweet" in result and isinstance(result["tweet"], dict):
        result = result["tweet"]
    if _note_text(result):
        return False
    text_range = (result.get("legacy") or {}).get("display_text_range") or []
    try:
        return len(text_range) > 1 and int(text_range[1]) >= TRUNCATION_LENGTH
    except (TypeError, ValueError):
        return False


def tweet_id_of(result: dict[str, Any]) -> str:
    if "tweet" in result and isinstance(result["tweet"], dict):
        result = result["tweet"]
    legacy = result.get("legacy") or {}
    return str(legacy.get("id_str") or result.get("rest_id") or "")


def parse_timeline_page(data: dict[str, Any]) -> tuple[list[dict[str, Any]], str | None]:
    """Split a search timeline response into raw tweet results and the next cursor.

    Raises RemoteError when the payload carries an error envelope, lacks the
    timeline structure entirely, or has entries of the wrong shape.
    """
    if not isinstance(data, dict):
        raise RemoteError("timeline response is not an object")
    if data.get("errors"):
        raise RemoteError(f"timeline response carried errors: {data['errors']!r}"[:500])

    try:
        return _parse_timeline(data)
    except (AttributeError, KeyError, TypeError) as e:
        logger.error("Failed to parse timeline: %s", e)
        raise RemoteError(f"timeline parse failed: {e}") from e


def _parse_timeline(data: dict[str, Any]) -> tuple[list[dict[str, Any]], str | None]:
    body = data.get("result") or data.get("data") or {}
    timeline = body.get("timeline") or (
        ((body.get("search_by_raw_query") or {}).get("search_timeline") or {}).get("timeline")
    )
    if timeline is None:
        raise RemoteError("timeline response has no timeline")

    instructions = timeline.get("instructions") or []
    instr_types = [i.get("type", "?") for i in instructions]
    logger.debug("Timeline instructions: %s", instr_types)

    results = []
    for entry in _extract_entries(instructions):
        tweet_data = _entry_to_tweet_result(entry)
        if isinstance(tweet_data, dict) and tweet_data:
            results.append(tweet_data)

    cursor = data.get("cursor") or {}
    next_cursor = cursor.get("bottom") if isinstance(cursor, dict) else None
    if not next_cursor:
        next_cursor = _cursor_from_entries(instructions)
    return results, next_cursor or None


def parse_profile(data: dict[str, Any], handle: str) -> Profile:
    """Resolve a user lookup response into a Profile."""
    body = data.get("result") or data
    user = ((body.get("data") or {}).get("user") or {}).get("result") or {}
    user_id = user.get("rest_id")
    if not user_id:
        raise NotFoundError(f"no user id for @{handle}")

    legacy = user.get("legacy") or {}
    count = legacy.get("statuses_count")
    screen_name = (user.get("core") or {}).get("screen_name") or legacy.get("screen_name")
    return Profile(
        user_id=str(user_id),
        handle=screen_name or handle.lstrip("@"),
        statuses_count=int(count) if count is not None else None,
    )


def parse_full_text(data: dict[str, Any]) -> str | None:
    """Extract the untruncated body from a single-tweet lookup response."""
    body = data.get("result") or data
    result = ((body.get("data") or {}).get("tweetResult") or {}).get("result") or {}
    if "tweet" in result and isinstance(result["tweet"], dict):
        result = result["tweet"]
    text = best_text(result)
    return text or None


# Internal helpers


def _extract_entries(instructions: list[dict]) -> list[dict]:
    entries = []
    for instruction in instructions:
        if instruction.get("type") == "TimelineAddEntries":
            entries.extend(instruction.get("entries") or [])
        elif instruction.get("type") == "TimelineReplaceEntry":
            entry = instruction.get("entry")
            if entry:
                entries.append(entry)
    return entries


def _entry_to_tweet_result(entry: dict) -> dict[str, Any] | None:
    content = entry.get("content") or {}
    entry_type = content.get("entryType") or ""

    if entry_type in ("TimelineTimelineItem", ""):
        item = content.get("itemContent") or {}
        if item.get("itemType", "TimelineTweet") == "TimelineTweet":
            return (item.get("tweet_results") or {}).get("result")

    elif entry_type == "TimelineTimelineModule":
        for module_item in content.get("items") or []:
            item = (module_item.get("item") or {}).get("itemContent") or {}
            if item.get("itemType") == "TimelineTweet":
                return (item.get("tweet_results") or {}).get("result")

    return None


def _cursor_from_entries(instructions: list[dict]) -> str | None:
    for entry in _extract_entries(instructions):
        content = entry.get("content") or {}
        if content.get("cursorType") == "Bottom":
            return content.get("value")
    return None


def _author_handle(result: dict[str, Any]) -> str:
    core = result.get("core") or {}
    user_results = (
        (core.get("user_results") or {}).get("result")
        or (core.get("user_result") or {}).get("result")
        or {}
    )
    return (
        (user_results.get("core") or {}).get("screen_name")
        or (user_results.get("legacy") or {}).get("screen_name", "")
    )


def _note_text(result: dict[str, Any]) -> str:
    note = (
        ((result.get("note_tweet") or {}).get("note_tweet_results") or {}).get("result") or {}
    )
    return note.get("text") or ""


def _as_count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _get_views(result: dict) -> int:
    return _as_count((result.get("views") or {}).get("count"))


def _extract_media(legacy: dict) -> tuple[list[str], list[str]]:
    photos: list[str] = []
    videos: list[str] = []
    extended = legacy.get("extended_entities") or legacy.get("entities") or {}
    for m in extended.get("media") or []:
        if m.get("type") in ("video", "animated_gif"):
            variants = (m.get("video_info") or {}).get("variants") or []
            # Highest bitrate mp4
            mp4s = [v for v in variants if v.get("content_type") == "video/mp4"]
            if mp4s:
                best = max(mp4s, key=lambda v: v.get("bitrate", 0))
                videos.append(best.get("url", ""))
        elif m.get("media_url_https"):
            photos.append(m["media_url_https"])
    return photos, videos
