"""
Kickoff date parsing shared by all provider adapters.

Order of attempts:
1. ISO-8601 ("2019-09-19T15:30:00Z", "2019-09-19T15:30:00+02:00", "2019-09-19")
2. Epoch-like digit strings (seconds, or milliseconds when 13+ digits)
3. Split on '.', '-' or '/' into day/month/year ("19.09.2019"), reassembled
   as UTC midnight plus the provided time of day (default 00:00)

Every result is a timezone-aware UTC datetime. No local-timezone inference:
naive ISO values are read as UTC.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

_SPLIT_RE = re.compile(r"[./-]")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_EPOCH_RE = re.compile(r"^\d{9,13}$")


def _parse_time_of_day(time_str: Optional[str]) -> Optional[timedelta]:
    """'15:30' -> 15h30m; empty or a placeholder like 'TBA' -> 00:00; bad clock value -> None."""
    text = "" if time_str is None else str(time_str).strip()
    if not any(ch.isdigit() for ch in text):
        return timedelta(0)
    m = _TIME_RE.match(text)
    if not m:
        return None
    hours, minutes = int(m.group(1)), int(m.group(2))
    seconds = int(m.group(3) or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        return None
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def _parse_iso(date_str: str, time_str: Optional[str]) -> Optional[datetime]:
    text = date_str.strip()
    if text.isdigit():
        # Epoch strings and compact YYYYMMDD belong to the other parsers
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    # Date-only ISO values take the separate time-of-day, like split dates
    if "T" not in text and " " not in text:
        offset = _parse_time_of_day(time_str)
        if offset is None:
            return None
        try:
            parsed = parsed + offset
        except OverflowError:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def _parse_epoch(date_str: str) -> Optional[datetime]:
    text = date_str.strip()
    if not _EPOCH_RE.match(text):
        return None
    value = int(text)
    if len(text) >= 13:
        value = value / 1000
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_split(date_str: str, time_str: Optional[str]) -> Optional[datetime]:
    parts = [p for p in _SPLIT_RE.split(date_str.strip()) if p]
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None

    if len(parts[0]) == 4:
        year, month, day = (int(p) for p in parts)
    else:
        day, month, year = (int(p) for p in parts)
        if len(parts[2]) == 2:
            year += 2000

    offset = _parse_time_of_day(time_str)
    if offset is None:
        return None
    try:
        return datetime(year, month, day, tzinfo=timezone.utc) + offset
    except (ValueError, OverflowError):
        return None


def parse_kickoff(date_str: Optional[str], time_str: Optional[str] = None) -> Optional[datetime]:
    """
    Parse a provider date (plus optional time of day) into a UTC instant.

    Returns None when no encoding matches; callers drop the fixture.

    Examples:
        parse_kickoff("19.09.2019", "15:30") -> 2019-09-19 15:30:00+00:00
        parse_kickoff("2019-09-19T15:30:00Z") -> 2019-09-19 15:30:00+00:00
        parse_kickoff("1568907000") -> 2019-09-19 15:30:00+00:00
    """
    if date_str is None:
        return None
    text = str(date_str).strip()
    if not text:
        return None

    return _parse_iso(text, time_str) or _parse_epoch(text) or _parse_split(text, time_str)


def to_naive_utc(value: datetime) -> datetime:
    """Strip tzinfo after converting to UTC (storage format)."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_aware_utc(value: datetime) -> datetime:
    """Attach UTC to a naive stored value."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
