"""Rendered-page collector: scroll a live search view and scrape articles.

One browser session per invocation, and never two concurrent sessions on the
same credential set. Termination is graceful: the session budget, a run of
passes without unseen ids, a page that became unusable, repeated timeouts
and a mid-session login expiry all return what was collected so far.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, AsyncContextManager, Awaitable, Callable, Protocol
from urllib.parse import quote

from ..backoff import human_delay, transport_policy
from ..config import Settings
from ..constants import ARTICLE_SELECTOR, LOGIN_MARKERS, SEARCH_URL
from ..cookies import Cookie, fingerprint
from ..errors import (
    AuthExpiredError,
    CredentialsMissingError,
    NotFoundError,
    TransportError,
    is_dead_page_error,
)
from ..merge import IdentityMap
from ..models import ProgressEvent, Record, permanent_url
from ..parsers.dom import attach_thread, records_from_articles

logger = logging.getLogger(__name__)


class RenderedPageClient(Protocol):
    async def navigate(self, url: str) -> str: ...

    async def wait_for_selector(self, selector: str, timeout: float | None = None) -> bool: ...

    async def extract_records(self) -> list[dict[str, Any]]: ...

    async def scroll_step(self) -> None: ...


ClientFactory = Callable[[list[Cookie]], AsyncContextManager[RenderedPageClient]]
ProgressCallback = Callable[[ProgressEvent], Awaitable[None]]

# One lock per credential fingerprint
_session_locks: dict[str, asyncio.Lock] = {}


def _session_lock(cookies: list[Cookie]) -> asyncio.Lock:
    key = fingerprint(cookies)
    lock = _session_locks.get(key)
    if lock is None:
        lock = _session_locks[key] = asyncio.Lock()
    return lock


def search_url(query: str) -> str:
    return SEARCH_URL.format(query=quote(query))


def is_login_redirect(url: str) -> bool:
    return any(marker in (url or "") for marker in LOGIN_MARKERS)


@dataclass
class RenderedResult:
    """Outcome of one rendered-page session."""

    records: list[Record]
    passes: int = 0
    dropped: int = 0
    extraction_errors: int = 0
    stop_reason: str = ""
    error: Exception | None = None


class RenderedCollector:
    """Drives a single rendered-page session until a termination condition.

    Usage:
        collector = RenderedCollector(settings, cookies)
        result = await collector.collect("from:jack")
    """

    def __init__(
        self,
        settings: Settings,
        cookies: list[Cookie] | None,
        client_factory: ClientFactory | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.cookies = list(cookies or [])
        self.client_factory = client_factory or self._playwright_factory
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()
        self._transport_policy = transport_policy(settings, self._rng)
        self.log = log or logger

    def _playwright_factory(self, cookies: list[Cookie]) -> AsyncContextManager[RenderedPageClient]:
        from ..browser import PlaywrightPageClient

        return PlaywrightPageClient(cookies, self.settings)

    def _require_cookies(self) -> None:
        if not self.cookies:
            raise CredentialsMissingError(
                "No cookies supplied; the rendered view requires an authenticated session"
            )

    async def _open(self, client: RenderedPageClient, url: str) -> None:
        failures = 0
        while True:
            try:
                final_url = await client.navigate(url)
                break
            except TransportError as e:
                failures += 1
                if failures >= self.settings.max_attempts:
                    raise
                delay = self._transport_policy.compute_delay(failures)
                self.log.warning(
                    "Navigation to %s failed (%d/%d), retrying in %.1fs: %s",
                    url, failures, self.settings.max_attempts, delay, e,
                )
                await self._sleep(delay)
        if is_login_redirect(final_url):
            raise AuthExpiredError(f"Redirected to login ({final_url}); cookies have expired")

    async def collect(
        self,
        query: str,
        author_hint: str = "",
        on_progress: ProgressCallback | None = None,
    ) -> RenderedResult:
        """Scroll the live search view for ``query`` and return unseen records.

        Raises CredentialsMissingError without cookies and AuthExpiredError on
        a login redirect before the first pass. Anything that goes wrong once
        scrolling has started ends the session with partial results; the
        cause is kept on ``RenderedResult.error``.
        """
        self._require_cookies()
        seen = IdentityMap()
        result = RenderedResult(records=[])

        async with _session_lock(self.cookies):
            started = self._clock()
            self.log.info("Rendered collection started: %s", query)

            async with self.client_factory(self.cookies) as client:
                try:
                    await self._open(client, search_url(query))
                    if not await client.wait_for_selector(
                        ARTICLE_SELECTOR, self.settings.selector_timeout,
                    ):
                        self.log.warning("No articles rendered for %s", query)
                except AuthExpiredError:
                    raise
                except TransportError as e:
                    result.stop_reason = "transport"
                    result.error = e
                    self.log.error("Could not load %s: %s", query, e)
                    return result
                except Exception as e:
                    if not is_dead_page_error(e):
                        raise
                    result.stop_reason = "detached"
                    self.log.warning("Page unusable before first pass: %s", e)
                    return result

                try:
                    result.stop_reason = await self._scroll_loop(
                        client, seen, result, started, author_hint, on_progress,
                    )
                except AuthExpiredError as e:
                    result.stop_reason = "auth_expired"
                    result.error = e
                    self.log.error("Session expired after %d records: %s", len(seen), e)
                except Exception as e:
                    result.stop_reason = "error"
                    result.error = e
                    self.log.exception("Rendered collection failed after %d records", len(seen))

        result.records = seen.sorted_records()
        self.log.info(
            "Rendered collection finished: %d records in %d passes (%s, %.0fs)",
            len(result.records), result.passes, result.stop_reason,
            self._clock() - started,
        )
        return result

    async def _scroll_loop(
        self,
        client: RenderedPageClient,
        seen: IdentityMap,
        result: RenderedResult,
        started: float,
        author_hint: str,
        on_progress: ProgressCallback | None,
    ) -> str:
        unchanged = 0
        failures = 0
        while True:
            if self._clock() - started >= self.settings.session_budget:
                self.log.info("Session budget of %.0fs exhausted", self.settings.session_budget)
                return "budget"

            try:
                await client.scroll_step()
            except Exception as e:
                if is_dead_page_error(e):
                    self.log.warning("Page became unusable while scrolling: %s", e)
                    return "detached"
                if not isinstance(e, TransportError):
                    raise
                failures += 1
                if failures >= self.settings.max_attempts:
                    result.error = e
                    self.log.warning(
                        "Scrolling failed %d times, stopping with %d records: %s",
                        failures, len(seen), e,
                    )
                    return "transport"
                delay = self._transport_policy.compute_delay(failures)
                self.log.warning("Scroll step failed (%d), retrying in %.1fs: %s", failures, delay, e)
                await self._sleep(delay)
                continue
            failures = 0
            await self._sleep(human_delay(
                self.settings.scroll_delay_min, self.settings.scroll_delay_max, self._rng,
            ))

            new = 0
            try:
                items = await client.extract_records()
            except AuthExpiredError:
                raise
            except Exception as e:
                if is_dead_page_error(e):
                    self.log.warning("Page became unusable after %d records: %s", len(seen), e)
                    return "detached"
                result.extraction_errors += 1
                self.log.warning("Extraction pass %d failed: %s", result.passes + 1, e)
            else:
                records, dropped = records_from_articles(items or [], author_hint)
                result.dropped += dropped
                new = seen.merge(records)

            result.passes += 1
            unchanged = 0 if new else unchanged + 1
            self.log.debug(
                "Pass %d: %d new (total %d, unchanged %d/%d)",
                result.passes, new, len(seen), unchanged, self.settings.max_unchanged_passes,
            )
            if on_progress is not None and new:
                await on_progress(ProgressEvent(
                    phase="rendered",
                    collected=len(seen),
                    expected=None,
                    message=f"{len(seen)} records from rendered view",
                ))

            if unchanged >= self.settings.max_unchanged_passes:
                self.log.info("%d passes without new records, stopping", unchanged)
                return "stagnation"

    async def fetch_post(self, author: str, post_id: str) -> Record:
        """Load one status page and return the post with its thread continuation."""
        self._require_cookies()
        url = permanent_url(author, post_id)

        async with _session_lock(self.cookies):
            async with self.client_factory(self.cookies) as client:
                await self._open(client, url)
                await client.wait_for_selector(ARTICLE_SELECTOR, self.settings.selector_timeout)
                items = await client.extract_records()

        records, _ = records_from_articles(items or [], author)
        post = attach_thread(records, post_id)
        if post is None:
            raise NotFoundError(f"post {post_id} not found at {url}")
        self.log.info("Fetched post %s with %d thread replies", post_id, len(post.thread))
        return post
