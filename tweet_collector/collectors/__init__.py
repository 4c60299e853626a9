"""Acquisition strategies: structured API (primary) and rendered page (fallback)."""

from .api import ApiCollector
from .rendered import RenderedCollector, RenderedPageClient, RenderedResult

__all__ = ["ApiCollector", "RenderedCollector", "RenderedPageClient", "RenderedResult"]
