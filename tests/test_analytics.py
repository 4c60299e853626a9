"""Tests for the analytics summary."""

import pytest

from tweet_collector.analytics import summarize, top_engaging

from tests.fakes import make_record

pytestmark = pytest.mark.unit


@pytest.fixture
def records():
    return [
        make_record("1", timestamp=1_704_067_200_000, likes=10, reposts=1, replies=1),
        make_record("2", timestamp=1_704_153_600_000, is_reply=True, likes=2, photos=["p.jpg"]),
        make_record("3", timestamp=1_704_240_000_000, is_repost=True, likes=500, videos=["v.mp4"]),
        make_record("4", timestamp=1_704_326_400_000, likes=40, urls=["https://example.com"]),
    ]


def test_counts_by_type(records):
    summary = summarize(records)
    assert summary["total"] == 4
    assert (summary["direct"], summary["replies"], summary["reposts"]) == (2, 1, 1)
    assert summary["content_types"] == {
        "text_only": 1,
        "with_images": 1,
        "with_videos": 1,
        "with_links": 1,
    }


def test_engagement_and_range(records):
    summary = summarize(records)
    assert summary["engagement"]["total_likes"] == 552
    assert summary["engagement"]["average_likes"] == 138.0
    assert summary["time_range"] == {
        "start": "2024-01-01T00:00:00.000Z",
        "end": "2024-01-04T00:00:00.000Z",
    }


def test_top_engaging_skips_reposts(records):
    top = top_engaging(records, 2)
    assert [r.id for r in top] == ["4", "1"]
    assert [item["id"] for item in summarize(records)["top_engaging"]] == ["4", "1", "2"]


def test_empty():
    summary = summarize([])
    assert summary["total"] == 0
    assert summary["engagement"]["average_likes"] == 0.0
    assert summary["time_range"] == {"start": None, "end": None}
    assert summary["top_engaging"] == []
