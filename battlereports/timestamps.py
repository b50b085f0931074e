"""Timestamp normalization for battle report documents.

Report timestamps arrive as seconds, milliseconds, microseconds or
nanoseconds since the epoch, and sometimes wrapped in document-store
shapes (``{"$date": ...}``, ``{"$numberLong": "..."}``) or ISO strings.
Everything here collapses those into one canonical integer of epoch
milliseconds, or ``None`` when the input can't be trusted.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .config import MAX_CANONICAL_MILLIS

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
FALLBACK_UTC_DISPLAY = "UTC --/-- --:--"

NANOS_THRESHOLD = 1e17
MICROS_THRESHOLD = 1e14
MILLIS_THRESHOLD = 1e12


@dataclass(frozen=True)
class DateRange:
    start_ms: int
    end_ms: int  # exclusive
    year: int


def _trunc_div(value: float | int, divisor: int) -> int:
    if isinstance(value, int):
        q = abs(value) // divisor
        return q if value >= 0 else -q
    return math.trunc(value / divisor)


def normalize_epoch_millis(value: float | int) -> int:
    """Scale a bare epoch number to milliseconds by magnitude.

    Branch order matters at the boundaries: exactly ``1e12`` is taken as
    milliseconds, exactly ``1e14`` as microseconds.
    """
    magnitude = abs(value)
    if magnitude >= NANOS_THRESHOLD:
        return _trunc_div(value, 1_000_000)
    if magnitude >= MICROS_THRESHOLD:
        return _trunc_div(value, 1_000)
    if magnitude < MILLIS_THRESHOLD:
        return math.trunc(value * 1000)
    return math.trunc(value)


def is_canonical(millis: Optional[int]) -> bool:
    return millis is not None and 0 < millis <= MAX_CANONICAL_MILLIS


def _datetime_to_millis(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - EPOCH) // timedelta(milliseconds=1)


def _parse_number(text: str) -> Optional[float | int]:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _parse_iso(text: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


def _raw_to_millis(value: Any) -> Optional[int]:
    # bool is an int subclass; a flag is never a timestamp
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _datetime_to_millis(value)
    if isinstance(value, int):
        return normalize_epoch_millis(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return normalize_epoch_millis(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        number = _parse_number(text)
        if number is not None:
            return normalize_epoch_millis(number)
        dt = _parse_iso(text)
        return _datetime_to_millis(dt) if dt else None
    if isinstance(value, dict):
        if "$numberLong" in value:
            inner = value["$numberLong"]
            number = _parse_number(inner.strip()) if isinstance(inner, str) else None
            return normalize_epoch_millis(number) if number is not None else None
        if "$date" in value:
            return _raw_to_millis(value["$date"])
    return None


def to_epoch_millis(value: Any) -> Optional[int]:
    """Return canonical epoch milliseconds for ``value`` or ``None``."""
    try:
        millis = _raw_to_millis(value)
    except (OverflowError, ValueError):
        millis = None
    if not is_canonical(millis):
        logger.debug(f"Dropping invalid timestamp input: {value!r}")
        return None
    return millis


def from_epoch_millis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=millis)


def utc_month_key(millis: int) -> str:
    dt = from_epoch_millis(millis)
    return f"{dt.year:04d}-{dt.month:02d}"


def format_duration_short(start: Any, end: Any) -> str:
    start_ms = to_epoch_millis(start)
    end_ms = to_epoch_millis(end)
    if start_ms is None or end_ms is None:
        return "0s"

    remaining = max(0, (end_ms - start_ms) // 1000)
    days, remaining = divmod(remaining, 86_400)
    hours, remaining = divmod(remaining, 3600)
    minutes, seconds = divmod(remaining, 60)

    parts = []
    for amount, unit in ((days, "d"), (hours, "h"), (minutes, "m"), (seconds, "s")):
        if amount > 0:
            parts.append(f"{amount}{unit}")
    return " ".join(parts) if parts else "0s"


def format_utc_datetime(value: Any) -> str:
    millis = to_epoch_millis(value)
    if millis is None:
        return FALLBACK_UTC_DISPLAY
    dt = from_epoch_millis(millis)
    return f"UTC {dt.month:02d}/{dt.day:02d} {dt.hour:02d}:{dt.minute:02d}"


def format_utc_time(value: Any, fallback: str = "--:--:--") -> str:
    millis = to_epoch_millis(value)
    if millis is None:
        return fallback
    dt = from_epoch_millis(millis)
    return f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"


def _parse_day(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def year_range(year: int) -> DateRange:
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    return DateRange(_datetime_to_millis(start), _datetime_to_millis(end), year)


def resolve_date_range(
    start_param: Optional[str],
    end_param: Optional[str],
    fallback_year: int,
) -> DateRange:
    """Resolve ``YYYY-MM-DD`` bounds into a half-open millisecond range.

    The end day is inclusive. Missing, malformed or inverted bounds fall
    back to the whole UTC calendar year ``fallback_year``.
    """
    start_day = _parse_day(start_param)
    end_day = _parse_day(end_param)
    if start_day and end_day:
        start_ms = _datetime_to_millis(start_day)
        end_ms = _datetime_to_millis(end_day + timedelta(days=1))
        if end_ms > start_ms:
            return DateRange(start_ms, end_ms, start_day.year)
    return year_range(fallback_year)
