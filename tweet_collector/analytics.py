"""Analytics summary handed to the persistence collaborator with the records."""

from __future__ import annotations

from typing import Any, Iterable

from .models import Record
from .parsers.timestamps import to_iso


def summarize(records: Iterable[Record], top_n: int = 5) -> dict[str, Any]:
    """Counts by type and content, engagement totals and the covered date range."""
    records = list(records)
    total = len(records)

    replies = sum(1 for r in records if r.is_reply)
    reposts = sum(1 for r in records if r.is_repost)
    direct = sum(1 for r in records if not r.is_reply and not r.is_repost)

    content_types = {
        "text_only": sum(1 for r in records if not (r.photos or r.videos or r.urls)),
        "with_images": sum(1 for r in records if r.photos),
        "with_videos": sum(1 for r in records if r.videos),
        "with_links": sum(1 for r in records if r.urls),
    }

    total_likes = sum(r.likes for r in records)
    engagement = {
        "total_likes": total_likes,
        "total_reposts": sum(r.reposts for r in records),
        "total_replies": sum(r.replies for r in records),
        "total_views": sum(r.views for r in records),
        "average_likes": round(total_likes / total, 2) if total else 0.0,
    }

    time_range: dict[str, str | None] = {"start": None, "end": None}
    if records:
        timestamps = [r.timestamp for r in records]
        time_range = {"start": to_iso(min(timestamps)), "end": to_iso(max(timestamps))}

    return {
        "total": total,
        "direct": direct,
        "replies": replies,
        "reposts": reposts,
        "content_types": content_types,
        "engagement": engagement,
        "time_range": time_range,
        "top_engaging": [
            {
                "id": r.id,
                "engagement": r.engagement,
                "likes": r.likes,
                "permanent_url": r.permanent_url,
                "text": r.text[:140],
            }
            for r in top_engaging(records, top_n)
        ],
    }


def top_engaging(records: Iterable[Record], n: int = 5) -> list[Record]:
    """Most engaging original posts (reposts excluded)."""
    originals = [r for r in records if not r.is_repost]
    return sorted(originals, key=lambda r: (r.engagement, r.timestamp), reverse=True)[:n]
