"""Deduplicating merge engine."""

from __future__ import annotations

import logging
from typing import Iterable

from .models import Record

logger = logging.getLogger(__name__)


class IdentityMap:
    """Records keyed by id. First writer wins.

    A duplicate is discarded whole rather than merged field-by-field, since
    the two sources differ in which fields they fill.
    """

    def __init__(self) -> None:
        self._records: dict[str, Record] = {}
        self.duplicates = 0

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def get(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    def add(self, record: Record) -> bool:
        """Insert ``record`` unless its id is already present."""
        if record.id in self._records:
            self.duplicates += 1
            return False
        self._records[record.id] = record
        return True

    def merge(self, records: Iterable[Record]) -> int:
        """Insert many records, returning how many were new."""
        added = 0
        for record in records:
            if self.add(record):
                added += 1
        return added

    def ids(self) -> set[str]:
        return set(self._records)

    def sorted_records(self) -> list[Record]:
        """Newest first."""
        return sorted(self._records.values(), key=lambda r: r.timestamp, reverse=True)
