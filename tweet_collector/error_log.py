"""Bounded rolling log of non-fatal failures."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


class ErrorLog:
    """Keeps the most recent ``maxlen`` failures with a stats snapshot each."""

    def __init__(self, maxlen: int = 100) -> None:
        self._entries: deque[dict[str, Any]] = deque(maxlen=maxlen)
        self.total = 0

    def __len__(self) -> int:
        return len(self._entries)

    def record(
        self,
        error: BaseException,
        stage: str,
        stats: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error_type": type(error).__name__,
            "message": str(error),
            "stage": stage,
            "stats": stats or {},
        }
        self._entries.append(entry)
        self.total += 1
        logger.warning("[%s] %s: %s", stage, entry["error_type"], entry["message"])
        return entry

    def entries(self) -> list[dict[str, Any]]:
        return list(self._entries)
