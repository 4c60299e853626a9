"""Record and session models shared by the collectors and the orchestrator."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

PERMALINK_BASE = "https://x.com"


def permanent_url(author: str, post_id: str) -> str:
    """Canonical status URL built from author handle and post id."""
    handle = (author or "i").lstrip("@") or "i"
    return f"{PERMALINK_BASE}/{handle}/status/{post_id}"


class Record(BaseModel):
    """A single authored post in canonical shape.

    Built only through the parsers, which guarantee a non-empty ``id`` and a
    millisecond ``timestamp``.
    """

    id: str = Field(min_length=1)
    text: str = ""
    author: str = ""
    timestamp: int = Field(gt=0)  # epoch ms
    created_at: str = ""

    is_reply: bool = False
    is_repost: bool = False

    likes: int = Field(0, ge=0)
    reposts: int = Field(0, ge=0)
    replies: int = Field(0, ge=0)
    views: int = Field(0, ge=0)
    bookmarks: int = Field(0, ge=0)

    photos: list[str] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)
    urls: list[str] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)

    permanent_url: str = ""
    quoted_id: str | None = None
    in_reply_to_id: str | None = None

    # Same-author thread continuation, attached rather than stored top-level
    thread: list[Record] = Field(default_factory=list)
    source: Literal["api", "rendered"] = "api"

    @property
    def engagement(self) -> int:
        return self.likes + self.reposts + self.replies


@dataclass(frozen=True)
class Profile:
    """Resolved target account."""

    user_id: str
    handle: str
    statuses_count: int | None = None


@dataclass(frozen=True)
class TimelinePage:
    """One page of raw API records plus the cursor for the next page."""

    records: list[dict[str, Any]]
    next_cursor: str | None = None


@dataclass
class SessionStats:
    """Per-run statistics, owned by the orchestrator."""

    request_count: int = 0
    rate_limit_hits: int = 0
    retries_count: int = 0
    fallback_count: int = 0
    records_collected: int = 0
    invalid_dropped: int = 0
    oldest_timestamp: int | None = None
    newest_timestamp: int | None = None
    fallback_used: bool = False
    escalation_reason: str | None = None
    started_at: float = field(default_factory=time.time)

    def observe(self, record: Record) -> None:
        """Track the collected date range."""
        ts = record.timestamp
        if self.oldest_timestamp is None or ts < self.oldest_timestamp:
            self.oldest_timestamp = ts
        if self.newest_timestamp is None or ts > self.newest_timestamp:
            self.newest_timestamp = ts

    def elapsed(self) -> float:
        return max(0.0, time.time() - self.started_at)

    def snapshot(self) -> dict[str, Any]:
        data = asdict(self)
        data["elapsed_seconds"] = round(self.elapsed(), 3)
        return data


@dataclass(frozen=True)
class ProgressEvent:
    """Human-readable progress emitted at fixed checkpoints."""

    phase: str
    collected: int
    expected: int | None
    message: str

    @property
    def percent(self) -> float | None:
        if not self.expected or self.expected <= 0:
            return None
        return round(self.collected / self.expected * 100, 1)


@dataclass
class CollectionReport:
    """Final output of one collection run."""

    account: str
    records: list[Record]
    stats: SessionStats
    analytics: dict[str, Any]
    errors: list[dict[str, Any]] = field(default_factory=list)
    state_history: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "records": [r.model_dump(mode="json") for r in self.records],
            "stats": self.stats.snapshot(),
            "analytics": self.analytics,
            "errors": self.errors,
            "state_history": self.state_history,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }
