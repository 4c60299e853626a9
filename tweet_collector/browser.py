"""Playwright browser session implementing the rendered-page client.

Provides an async context manager that:
1. Launches Chromium
2. Injects cookies before any navigation
3. Exposes navigate / wait_for_selector / extract_records / scroll_step

No stealth patches are applied; launch flags are the only hardening.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import Settings
from .constants import ARTICLE_SELECTOR, SCROLL_DISTANCE, USER_AGENT
from .cookies import Cookie, to_playwright
from .errors import ResourceError, TransportError, is_dead_page_error

logger = logging.getLogger(__name__)

# Snapshot of every rendered article. Counts are returned raw ("1.2K",
# "1,234 Likes. Like") and parsed on the Python side.
EXTRACT_ARTICLES_JS = r"""
(selector) => {
    const metric = (article, testid) => {
        const button = article.querySelector(`[data-testid="${testid}"]`);
        if (!button) return '';
        const label = button.getAttribute('aria-label');
        if (label && /\d/.test(label)) return label;
        const span = button.querySelector('span[data-testid$="count"]');
        return span ? span.textContent : '';
    };

    const items = [];
    document.querySelectorAll(selector).forEach(article => {
        try {
            const timeEl = article.querySelector('time[datetime]');
            const link = timeEl ? timeEl.closest('a[href*="/status/"]') : null;
            const statusLink = link || article.querySelector('a[href*="/status/"]');
            const href = statusLink ? statusLink.getAttribute('href') : '';
            const idMatch = href ? href.match(/status\/(\d+)/) : null;
            const authorMatch = href ? href.match(/^\/([^/]+)\/status\//) : null;

            const textEl = article.querySelector('[data-testid="tweetText"]') ||
                           article.querySelector('div[lang]');
            const social = article.querySelector('[data-testid="socialContext"]');
            const viewsEl = article.querySelector('a[href*="/analytics"] span, [aria-label*="View"]');

            const replyingTo = Array.from(article.querySelectorAll('div'))
                .some(d => d.childElementCount === 0 && d.textContent.startsWith('Replying to'));

            items.push({
                id: idMatch ? idMatch[1] : null,
                url: href ? 'https://x.com' + href : '',
                author: authorMatch ? authorMatch[1] : '',
                text: textEl ? textEl.innerText : '',
                time: timeEl ? timeEl.getAttribute('datetime') : null,
                replies: metric(article, 'reply'),
                reposts: metric(article, 'retweet'),
                likes: metric(article, 'like'),
                bookmarks: metric(article, 'bookmark'),
                views: viewsEl ? (viewsEl.textContent || viewsEl.getAttribute('aria-label') || '') : '',
                social_context: social ? social.textContent : '',
                replying_to: replyingTo,
                photos: Array.from(article.querySelectorAll('img[src*="media"]')).map(img => img.src),
                videos: Array.from(article.querySelectorAll('video[src], video source[src]')).map(v => v.src),
                hashtags: Array.from(article.querySelectorAll('a[href*="/hashtag/"]')).map(a => a.textContent),
                urls: Array.from(article.querySelectorAll('a[href^="http"]')).map(a => a.href),
            });
        } catch (e) {
            console.error('Error extracting article:', e);
        }
    });
    return items;
}
"""


class PlaywrightPageClient:
    """Async context manager for one Playwright page with cookies installed.

    Usage:
        async with PlaywrightPageClient(cookies, settings) as client:
            final_url = await client.navigate("https://x.com/search?q=from%3Ajack&f=live")
            items = await client.extract_records()
    """

    def __init__(self, cookies: list[Cookie], settings: Settings) -> None:
        self.cookies = cookies
        self.settings = settings

        # Set after __aenter__
        self.browser: Browser | None = None
        self.context: BrowserContext | None = None
        self.page: Page | None = None
        self._pw: Playwright | None = None

    async def __aenter__(self) -> PlaywrightPageClient:
        self._pw = await async_playwright().start()
        try:
            self.browser = await self._pw.chromium.launch(
                headless=self.settings.headless,
                args=[
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                    "--window-size=1920,1080",
                ],
            )
            self.context = await self.browser.new_context(
                viewport={"width": 1920, "height": 1080},
                user_agent=USER_AGENT,
                locale="en-US",
            )
            await self.context.add_cookies(to_playwright(self.cookies))

            self.page = await self.context.new_page()
            self.page.set_default_timeout(self.settings.selector_timeout * 1000)
            self.page.set_default_navigation_timeout(self.settings.navigation_timeout * 1000)
        except BaseException:
            await self._close()
            raise

        logger.info("Browser session opened (%d cookies)", len(self.cookies))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self._close()
        logger.info("Browser session closed")

    async def _close(self) -> None:
        # Teardown failures must not mask the original exit path
        for closer in (self.context, self.browser):
            if closer is None:
                continue
            try:
                await closer.close()
            except PlaywrightError as e:
                logger.debug("Ignoring close error: %s", e)
        if self._pw:
            await self._pw.stop()
        self.context = self.browser = self.page = None
        self._pw = None

    # ──────────────────────────────────────
    # RenderedPageClient
    # ──────────────────────────────────────

    async def navigate(self, url: str) -> str:
        """Load ``url`` and return the final URL after redirects."""
        page = self._require_page()
        try:
            await page.goto(url, wait_until="domcontentloaded")
        except PlaywrightTimeoutError as e:
            raise TransportError(f"navigation to {url} timed out") from e
        except PlaywrightError as e:
            raise _as_resource_error(e) from e
        return page.url

    async def wait_for_selector(self, selector: str, timeout: float | None = None) -> bool:
        page = self._require_page()
        timeout_ms = (timeout or self.settings.selector_timeout) * 1000
        try:
            await page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            raise _as_resource_error(e) from e
        return True

    async def extract_records(self) -> list[dict[str, Any]]:
        page = self._require_page()
        try:
            return await page.evaluate(EXTRACT_ARTICLES_JS, ARTICLE_SELECTOR)
        except PlaywrightError as e:
            if is_dead_page_error(e):
                raise ResourceError(str(e)) from e
            raise

    async def scroll_step(self) -> None:
        page = self._require_page()
        try:
            await page.evaluate(f"window.scrollBy(0, {SCROLL_DISTANCE})")
        except PlaywrightError as e:
            raise _as_resource_error(e) from e
        # Let lazy-loaded articles attach
        await asyncio.sleep(0.2)

    def _require_page(self) -> Page:
        if self.page is None or self.page.is_closed():
            raise ResourceError("browser page is closed")
        return self.page


def _as_resource_error(error: PlaywrightError) -> Exception:
    if is_dead_page_error(error):
        return ResourceError(str(error))
    return TransportError(str(error))
