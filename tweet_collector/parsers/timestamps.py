"""Timestamp normalization to epoch milliseconds."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

from ..errors import ValidationError

# Values below this are treated as epoch seconds
MILLIS_THRESHOLD = 10**12
# 9999-12-31T23:59:59.999Z, the last instant datetime can render
MAX_TIMESTAMP_MS = 253_402_300_799_999

# Legacy API format, e.g. "Wed Oct 10 20:19:24 +0000 2018"
_LEGACY_FORMAT = "%a %b %d %H:%M:%S %z %Y"


def normalize_timestamp(value: Any) -> int:
    """Convert a native timestamp into epoch milliseconds.

    Accepts epoch seconds or milliseconds (int, float or numeric string),
    ISO-8601 strings, the legacy ``created_at`` format and ``datetime``
    objects. Raises ValidationError when nothing usable is found.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError("timestamp missing")

    if isinstance(value, datetime):
        return _from_datetime(value)

    if isinstance(value, (int, float)):
        return _from_number(float(value))

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValidationError("timestamp missing")
        try:
            number = float(text)
        except ValueError:
            return _from_datetime(_parse_date_string(text))
        return _from_number(number)

    raise ValidationError(f"unsupported timestamp type: {type(value).__name__}")


def to_iso(timestamp_ms: int) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC string."""
    try:
        dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise ValidationError(f"timestamp out of range: {timestamp_ms!r}") from e
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _from_number(number: float) -> int:
    if math.isnan(number) or math.isinf(number) or number <= 0:
        raise ValidationError(f"invalid timestamp: {number!r}")
    if number < MILLIS_THRESHOLD:
        number *= 1000
    return _checked(number)


def _from_datetime(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    # Already milliseconds; dates before 2001-09-09 fall below MILLIS_THRESHOLD
    millis = dt.timestamp() * 1000
    if millis <= 0:
        raise ValidationError(f"timestamp before the epoch: {dt.isoformat()}")
    return _checked(millis)


def _checked(millis: float) -> int:
    if millis > MAX_TIMESTAMP_MS:
        raise ValidationError(f"timestamp out of range: {millis!r}")
    return int(millis)


def _parse_date_string(text: str) -> datetime:
    try:
        return datetime.strptime(text, _LEGACY_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"unparseable timestamp: {text!r}") from e
