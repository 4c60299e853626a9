"""Structured-API collector: cursor-paginated search over a RapidAPI Twitter endpoint.

Pagination is strictly sequential because each cursor is only valid for the
page that follows it. The collector performs no dedup and no retries; the
orchestrator owns both.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator
from urllib.parse import urlparse

import aiohttp

from ..config import Settings
from ..errors import ConfigError, NotFoundError, RateLimitError, RemoteError, TransportError
from ..models import Profile, TimelinePage
from ..parsers.tweet import parse_full_text, parse_profile, parse_timeline_page

logger = logging.getLogger(__name__)

# Consecutive pages with no records before the timeline counts as exhausted
MAX_EMPTY_PAGES = 2


def search_query(handle: str) -> str:
    return f"from:{handle.lstrip('@')}"


class ApiCollector:
    """Async client for the structured API.

    Usage:
        async with ApiCollector(settings) as api:
            profile = await api.lookup_profile("jack")
            async for page in api.iter_pages(profile.handle, profile.statuses_count):
                ...
    """

    def __init__(
        self,
        settings: Settings,
        session: aiohttp.ClientSession | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        if not settings.rapidapi_url:
            raise ConfigError(
                "RAPIDAPI_URL is not configured. Set RAPIDAPI_URL and RAPIDAPI_KEY "
                "in your .env to use the structured API."
            )
        self.settings = settings
        self.base_url = settings.rapidapi_url.rstrip("/")
        self.log = log or logger
        self._session = session
        self._owns_session = session is None
        self.request_count = 0

    @property
    def headers(self) -> dict[str, str]:
        return {
            "x-rapidapi-host": urlparse(self.base_url).netloc,
            "x-rapidapi-key": self.settings.rapidapi_key,
        }

    async def __aenter__(self) -> ApiCollector:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout),
                headers=self.headers,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ──────────────────────────────────────
    # Endpoints
    # ──────────────────────────────────────

    async def lookup_profile(self, account: str) -> Profile:
        """Resolve a handle to its user id and statuses count."""
        handle = account.lstrip("@")
        if not handle:
            raise NotFoundError("empty account identifier")
        data = await self._get("/user", {"username": handle.lower()})
        profile = parse_profile(data, handle)
        self.log.info(
            "Resolved @%s: user_id=%s, statuses=%s",
            profile.handle, profile.user_id, profile.statuses_count,
        )
        return profile

    async def fetch_page(self, handle: str, cursor: str | None = None) -> TimelinePage:
        params: dict[str, Any] = {
            "type": "Latest",
            "count": self.settings.page_size,
            "query": search_query(handle),
        }
        if cursor:
            params["cursor"] = cursor
        data = await self._get("/search-v2", params)
        records, next_cursor = parse_timeline_page(data)
        return TimelinePage(records=records, next_cursor=next_cursor)

    async def iter_pages(
        self,
        handle: str,
        expected_total: int | None,
        cursor: str | None = None,
    ) -> AsyncIterator[TimelinePage]:
        """Yield pages until the expected total is reached or the cursor runs out.

        ``expected_total`` only bounds the loop. When it is missing or not
        positive, iteration ends on the first page without a cursor.
        """
        fetched = 0
        empty_pages = 0
        bound = expected_total if expected_total and expected_total > 0 else None

        while True:
            page = await self.fetch_page(handle, cursor)
            fetched += len(page.records)
            self.log.info(
                "Fetched page: %d records (total %d/%s)",
                len(page.records), fetched, bound if bound is not None else "?",
            )
            yield page

            if not page.records:
                empty_pages += 1
                if empty_pages >= MAX_EMPTY_PAGES:
                    self.log.info("Two consecutive empty pages, timeline exhausted")
                    return
            else:
                empty_pages = 0

            if not page.next_cursor:
                self.log.info("No further cursor, timeline exhausted")
                return
            if page.next_cursor == cursor:
                self.log.info("Cursor did not advance, stopping")
                return
            if bound is not None and fetched >= bound:
                return
            cursor = page.next_cursor

    async def iter_records(
        self,
        handle: str,
        expected_total: int | None,
        cursor: str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        async for page in self.iter_pages(handle, expected_total, cursor):
            for record in page.records:
                yield record

    async def fetch_full_text(self, record_id: str) -> str | None:
        """Fetch the untruncated body of a single post."""
        data = await self._get(f"/tweet/{record_id}", {})
        return parse_full_text(data)

    # ──────────────────────────────────────
    # Transport
    # ──────────────────────────────────────

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        if self._session is None:
            raise RuntimeError("ApiCollector must be used as an async context manager")

        url = f"{self.base_url}{path}"
        self.request_count += 1
        try:
            async with self._session.get(url, params=params, headers=self.headers) as resp:
                body = await resp.text()
                if resp.status == 429:
                    raise RateLimitError(_retry_after(resp.headers.get("Retry-After")))
                if resp.status >= 400:
                    raise TransportError(
                        f"API request failed with status {resp.status}: {body[:200]}",
                        status=resp.status,
                        body=body,
                    )
        except asyncio.TimeoutError as e:
            raise TransportError(f"request to {path} timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"request to {path} failed: {e}") from e

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise RemoteError(f"non-JSON response from {path}") from e
        if not isinstance(data, dict):
            raise RemoteError(f"unexpected response shape from {path}")
        if data.get("errors"):
            raise RemoteError(f"{path} returned errors: {json.dumps(data['errors'])[:300]}")
        return data


def _retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
