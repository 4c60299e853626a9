"""Normalizers from native source shapes to canonical Records."""

from .dom import attach_thread, parse_count, record_from_article, records_from_articles
from .timestamps import normalize_timestamp
from .tweet import (
    is_truncated,
    parse_full_text,
    parse_profile,
    parse_timeline_page,
    record_from_tweet_result,
)

__all__ = [
    "attach_thread",
    "is_truncated",
    "normalize_timestamp",
    "parse_count",
    "parse_full_text",
    "parse_profile",
    "parse_timeline_page",
    "record_from_article",
    "record_from_tweet_result",
    "records_from_articles",
]
