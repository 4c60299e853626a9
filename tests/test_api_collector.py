"""Tests for the structured-API collector against a mocked HTTP endpoint."""

import asyncio
import re

import pytest
from aioresponses import aioresponses

from tweet_collector.collectors.api import ApiCollector, search_query
from tweet_collector.config import Settings
from tweet_collector.errors import ConfigError, NotFoundError, RateLimitError, RemoteError, TransportError

from tests.conftest import API_URL
from tests.fakes import timeline_payload, tweet_result, user_payload

SEARCH = re.compile(r"^https://twitter-api\.example\.com/search-v2\?.*$")
USER = re.compile(r"^https://twitter-api\.example\.com/user\?.*$")


async def _collect_pages(api, handle="jack", expected=None, cursor=None):
    return [page async for page in api.iter_pages(handle, expected, cursor)]


def _requested_urls(m):
    return [str(key[1]) for key in m.requests]


class TestProfileLookup:
    @pytest.mark.asyncio
    async def test_resolves_profile(self, settings):
        with aioresponses() as m:
            m.get(USER, payload=user_payload("12", 4200, "jack"))
            async with ApiCollector(settings) as api:
                profile = await api.lookup_profile("@Jack")

        assert profile.user_id == "12"
        assert profile.statuses_count == 4200
        assert any("username=jack" in u for u in _requested_urls(m))

    @pytest.mark.asyncio
    async def test_unknown_user(self, settings):
        with aioresponses() as m:
            m.get(USER, payload={"result": {"data": {"user": {}}}})
            async with ApiCollector(settings) as api:
                with pytest.raises(NotFoundError):
                    await api.lookup_profile("ghost")

    @pytest.mark.asyncio
    async def test_http_error_carries_status_and_body(self, settings):
        with aioresponses() as m:
            m.get(USER, status=503, body="upstream down")
            async with ApiCollector(settings) as api:
                with pytest.raises(TransportError) as exc:
                    await api.lookup_profile("jack")

        assert exc.value.status == 503
        assert exc.value.body == "upstream down"

    @pytest.mark.asyncio
    async def test_rate_limit(self, settings):
        with aioresponses() as m:
            m.get(USER, status=429, headers={"Retry-After": "30"})
            async with ApiCollector(settings) as api:
                with pytest.raises(RateLimitError) as exc:
                    await api.lookup_profile("jack")

        assert exc.value.retry_after == 30.0

    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(self, settings):
        with aioresponses() as m:
            m.get(USER, exception=asyncio.TimeoutError())
            async with ApiCollector(settings) as api:
                with pytest.raises(TransportError):
                    await api.lookup_profile("jack")

    @pytest.mark.asyncio
    async def test_non_json_body(self, settings):
        with aioresponses() as m:
            m.get(USER, status=200, body="<html>oops</html>")
            async with ApiCollector(settings) as api:
                with pytest.raises(RemoteError):
                    await api.lookup_profile("jack")


class TestPagination:
    @pytest.mark.asyncio
    async def test_follows_cursor_until_missing(self, settings):
        with aioresponses() as m:
            m.get(SEARCH, payload=timeline_payload([tweet_result("1"), tweet_result("2")], bottom="c1"))
            m.get(SEARCH, payload=timeline_payload([tweet_result("3")], bottom="c2"))
            m.get(SEARCH, payload=timeline_payload([tweet_result("4")]))
            async with ApiCollector(settings) as api:
                pages = await _collect_pages(api, expected=100)

        assert [len(p.records) for p in pages] == [2, 1, 1]
        assert pages[-1].next_cursor is None
        urls = _requested_urls(m)
        assert any("cursor=c1" in u for u in urls)
        assert any("cursor=c2" in u for u in urls)

    @pytest.mark.asyncio
    async def test_stops_at_expected_total(self, settings):
        with aioresponses() as m:
            m.get(SEARCH, payload=timeline_payload([tweet_result("1"), tweet_result("2")], bottom="c1"))
            m.get(SEARCH, payload=timeline_payload([tweet_result("3")], bottom="c2"))
            async with ApiCollector(settings) as api:
                pages = await _collect_pages(api, expected=2)

        assert len(pages) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expected", [None, 0, -1])
    async def test_non_credible_total_ends_without_cursor(self, settings, expected):
        with aioresponses() as m:
            m.get(SEARCH, payload=timeline_payload([tweet_result("1")], bottom="c1"))
            m.get(SEARCH, payload=timeline_payload([tweet_result("2")]))
            async with ApiCollector(settings) as api:
                pages = await _collect_pages(api, expected=expected)

        assert len(pages) == 2

    @pytest.mark.asyncio
    async def test_stale_cursor_stops(self, settings):
        with aioresponses() as m:
            m.get(SEARCH, payload=timeline_payload([tweet_result("1")], bottom="same"))
            m.get(SEARCH, payload=timeline_payload([tweet_result("1")], bottom="same"))
            m.get(SEARCH, payload=timeline_payload([tweet_result("1")], bottom="same"))
            async with ApiCollector(settings) as api:
                pages = await _collect_pages(api, expected=100)

        assert len(pages) == 2

    @pytest.mark.asyncio
    async def test_two_empty_pages_stop(self, settings):
        with aioresponses() as m:
            m.get(SEARCH, payload=timeline_payload([], bottom="c1"))
            m.get(SEARCH, payload=timeline_payload([], bottom="c2"))
            m.get(SEARCH, payload=timeline_payload([tweet_result("9")], bottom="c3"))
            async with ApiCollector(settings) as api:
                pages = await _collect_pages(api, expected=100)

        assert len(pages) == 2

    @pytest.mark.asyncio
    async def test_duplicates_across_pages_are_passed_through(self, settings):
        with aioresponses() as m:
            m.get(SEARCH, payload=timeline_payload([tweet_result("1"), tweet_result("2")], bottom="c1"))
            m.get(SEARCH, payload=timeline_payload([tweet_result("2"), tweet_result("3")]))
            async with ApiCollector(settings) as api:
                records = [r async for r in api.iter_records("jack", 100)]

        assert [r["rest_id"] for r in records] == ["1", "2", "2", "3"]

    @pytest.mark.asyncio
    async def test_resume_from_cursor(self, settings):
        with aioresponses() as m:
            m.get(SEARCH, payload=timeline_payload([tweet_result("5")]))
            async with ApiCollector(settings) as api:
                await _collect_pages(api, expected=100, cursor="resume-here")

        assert any("cursor=resume-here" in u for u in _requested_urls(m))

    @pytest.mark.asyncio
    async def test_error_envelope(self, settings):
        with aioresponses() as m:
            m.get(SEARCH, payload={"errors": [{"code": 88, "message": "Rate limit exceeded"}]})
            async with ApiCollector(settings) as api:
                with pytest.raises(RemoteError):
                    await _collect_pages(api, expected=100)

    @pytest.mark.asyncio
    async def test_search_query_targets_author(self, settings):
        with aioresponses() as m:
            m.get(SEARCH, payload=timeline_payload([]))
            async with ApiCollector(settings) as api:
                await _collect_pages(api, handle="@jack")

        assert search_query("@jack") == "from:jack"
        assert any("from" in u and "jack" in u for u in _requested_urls(m))


class TestFullText:
    @pytest.mark.asyncio
    async def test_fetch_full_text(self, settings):
        payload = {"result": {"data": {"tweetResult": {"result": tweet_result("77", text="complete")}}}}
        with aioresponses() as m:
            m.get(f"{API_URL}/tweet/77", payload=payload)
            async with ApiCollector(settings) as api:
                assert await api.fetch_full_text("77") == "complete"


def test_requires_base_url():
    with pytest.raises(ConfigError):
        ApiCollector(Settings(_env_file=None, rapidapi_url=""))


def test_rapidapi_headers(settings):
    api = ApiCollector(settings)
    assert api.headers == {
        "x-rapidapi-host": "twitter-api.example.com",
        "x-rapidapi-key": "test-key",
    }
