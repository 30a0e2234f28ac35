"""Time extraction — free text to concrete time block intervals.

Reads "from 2pm to 3pm", "2 to 3pm", "14:00-15:30" or a single "2pm" out of
a user message, in the caller's local timezone, and validates timestamps
echoed back by an AI model before they are persisted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo

from src.config import settings

logger = logging.getLogger(__name__)


_TIME_PATTERN = re.compile(r"(\d{1,2}):?(\d{0,2})\s*(am|pm)?", re.IGNORECASE)

_RANGE_PATTERN = re.compile(
    r"(?:from\s+)?(\d{1,2}):?(\d{0,2})\s*(am|pm)?"
    r"\s*(?:to|-)\s*"
    r"(\d{1,2}):?(\d{0,2})\s*(am|pm)?",
    re.IGNORECASE,
)

# Models sometimes echo the format from their instructions instead of a value
_PLACEHOLDER_PATTERN = re.compile(r"^YYYY-MM-DD")


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime


def _local_now(now: datetime | None) -> datetime:
    if now is not None:
        return now
    from src.adapters.system_clock import SystemClock

    return SystemClock().now()


def _to_24h(hours: int, period: str | None) -> int:
    if period == "pm" and hours != 12:
        return hours + 12
    if period == "am" and hours == 12:
        return 0
    return hours


def _at_time(base: datetime, hours: int, minutes: int) -> datetime | None:
    """Set the time of day on base, or None if hours/minutes are out of range."""
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        logger.debug("Ignoring out-of-range time %d:%02d", hours, minutes)
        return None
    return base.replace(hour=hours, minute=minutes, second=0, microsecond=0)


def parse_natural_language_time(
    text: str, base_date: datetime | None = None,
) -> datetime | None:
    """Parse a single time such as "2pm", "2:30 PM" or "14:00" onto base_date.

    Returns None when no time is found or it is out of range.
    """
    if not text or not isinstance(text, str):
        return None

    cleaned = re.sub(r"\s+", " ", text.strip().lower())
    match = _TIME_PATTERN.search(cleaned)
    if not match:
        return None

    hours = _to_24h(int(match.group(1)), match.group(3))
    minutes = int(match.group(2) or 0)
    return _at_time(_local_now(base_date), hours, minutes)


def extract_time_range(text: str, now: datetime | None = None) -> TimeRange | None:
    """Extract a start/end pair from a message, anchored to today.

    A meridiem given on only one side applies to both, so "2 to 3pm" is
    14:00-15:00. Returns None when no range is found; the caller falls
    back to another time source.
    """
    if not text:
        return None

    match = _RANGE_PATTERN.search(text)
    if not match:
        return None

    start_period = (match.group(3) or "").lower() or None
    end_period = (match.group(6) or "").lower() or None
    if start_period is None:
        start_period = end_period
    if end_period is None:
        end_period = start_period

    today = _local_now(now)
    start = _at_time(
        today, _to_24h(int(match.group(1)), start_period), int(match.group(2) or 0),
    )
    end = _at_time(
        today, _to_24h(int(match.group(4)), end_period), int(match.group(5) or 0),
    )
    if start is None or end is None:
        return None

    logger.info("Extracted time range %s - %s from message", start.isoformat(), end.isoformat())
    return TimeRange(start=start, end=end)


def parse_time_block_datetime(raw: object, tz: tzinfo) -> datetime | None:
    """Parse a timestamp echoed by an AI model.

    Accepts datetimes and ISO 8601 strings (a trailing "Z" means UTC).
    Placeholder strings such as "YYYY-MM-DDT14:00:00" and anything
    unparseable give None. Naive values are read as local time.
    """
    if raw is None or raw == "":
        return None

    if isinstance(raw, datetime):
        parsed = raw
    else:
        text = str(raw).strip()
        if _PLACEHOLDER_PATTERN.match(text):
            logger.warning("Detected placeholder timestamp format: %s. Ignoring it.", text)
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Failed to parse timestamp: %s", text)
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def validate_time_block_timestamps(
    start_raw: object, end_raw: object, now: datetime | None = None,
) -> TimeRange:
    """Turn raw start/end values into an interval that is always valid.

    Absent start means now, absent end means start + DEFAULT_BLOCK_MINUTES,
    and an end that is not after start is replaced the same way.
    """
    now = _local_now(now)
    tz = now.tzinfo

    start = parse_time_block_datetime(start_raw, tz) or now
    end = parse_time_block_datetime(end_raw, tz)

    if end is None or end <= start:
        end = start + timedelta(minutes=settings.DEFAULT_BLOCK_MINUTES)

    return TimeRange(start=start, end=end)
