"""Rendered-view constants: user agent, selectors, URL markers."""

from __future__ import annotations

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

ARTICLE_SELECTOR = 'article[data-testid="tweet"]'

SEARCH_URL = "https://x.com/search?q={query}&f=live"

# Redirect targets that mean the session is no longer authenticated
LOGIN_MARKERS = ("/login", "/i/flow/", "/flow/login")

# Error message fragments Playwright uses for a page that can no longer be driven
DEAD_PAGE_MARKERS = ("detached", "closed", "crashed", "disposed")

# Pixels per scroll step
SCROLL_DISTANCE = 500
