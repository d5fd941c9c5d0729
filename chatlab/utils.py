"""Utility functions for ChatLab.

This module provides shared helper functions used across the package:
- format_timestamp(): Safe epoch formatting with fallback
- format_minutes(): Minutes-since-midnight as HH:MM
- classify(): Threshold-based classification
- percentage(): Rounded share of a total
- parse_timestamp(): Epoch-millisecond or ISO-8601 value to epoch seconds
- is_valid_year(): Corrupt-timestamp guard
- shifted_date(): Calendar day with a moved day boundary
- sanitize_filename(): Strip path-unsafe characters
- _compile_regex_safe(): ReDoS-protected regex compilation
"""

import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Optional

from .constants import DATETIME_FORMAT, MIN_VALID_YEAR

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\?%*:|"<>]')


def format_timestamp(
    ts: Optional[int], tz: Optional[tzinfo] = None, fmt: str = DATETIME_FORMAT
) -> str:
    """Format a Unix timestamp with a default pattern.

    Args:
        ts: Seconds since the epoch (None returns "unknown")
        tz: Zone to render in (default: UTC)
        fmt: Format string (default: "%Y-%m-%d %H:%M")

    Returns:
        Formatted string or "unknown" if ts is None

    Example:
        >>> format_timestamp(1734258600)
        '2024-12-15 10:30'
    """
    if ts is None:
        return "unknown"
    return datetime.fromtimestamp(ts, tz or timezone.utc).strftime(fmt)


def format_minutes(minutes: float) -> str:
    """Format minutes since midnight as a zero-padded clock time.

    Example:
        >>> format_minutes(125.4)
        '02:05'
    """
    hours = int(minutes // 60)
    mins = round(minutes % 60)
    if mins == 60:
        hours, mins = hours + 1, 0
    return f"{hours:02d}:{mins:02d}"


def classify(value: float, thresholds: list[tuple[float, str]], default: str) -> str:
    """Classify a value into a category based on thresholds.

    Thresholds are checked in order; the first threshold exceeded returns
    the corresponding label.

    Args:
        value: The value to classify
        thresholds: List of (threshold, label) tuples, checked in order
        default: Label to return if no threshold is exceeded

    Returns:
        The label for the matching threshold, or default

    Example:
        >>> classify(25, [(30, "high"), (20, "medium"), (10, "low")], "minimal")
        'medium'
    """
    for threshold, label in thresholds:
        if value > threshold:
            return label
    return default


def percentage(count: int, total: int) -> float:
    """Share of total as a percentage rounded to 2 decimals (0 when total is 0)."""
    if total <= 0:
        return 0.0
    return round(count / total * 100, 2)


def parse_timestamp(value: Any, tz: Optional[tzinfo] = None) -> Optional[int]:
    """Resolve an export timestamp to Unix seconds.

    Numbers are treated as epoch milliseconds. Strings are parsed as
    ISO-8601; naive strings are interpreted in tz (default: UTC).

    Args:
        value: Raw timestamp from an export record
        tz: Zone for naive ISO strings

    Returns:
        Seconds since the epoch, or None if the value cannot be parsed

    Example:
        >>> parse_timestamp(1514604276000)
        1514604276
        >>> parse_timestamp("2017-12-30T03:24:36.000Z")
        1514604276
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value // 1000)
    if isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=tz or timezone.utc)
        return int(dt.timestamp())
    return None


def is_valid_year(ts: int) -> bool:
    """Reject timestamps before MIN_VALID_YEAR (corrupted export data)."""
    try:
        return datetime.fromtimestamp(ts, timezone.utc).year >= MIN_VALID_YEAR
    except (OverflowError, OSError, ValueError):
        return False


def shifted_date(dt: datetime, boundary_hour: int) -> date:
    """Calendar day of dt when days start at boundary_hour instead of midnight.

    Example:
        >>> shifted_date(datetime(2024, 3, 2, 4, 59), 5)
        datetime.date(2024, 3, 1)
    """
    if dt.hour < boundary_hour:
        return (dt - timedelta(days=1)).date()
    return dt.date()


def sanitize_filename(name: str) -> str:
    """Replace characters that are unsafe in file names with underscores.

    Example:
        >>> sanitize_filename('a/b:c?')
        'a_b_c_'
    """
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


# ReDoS-vulnerable patterns: nested quantifiers like (a+)+, (a*)*
_REDOS_PATTERN = re.compile(r"\([^)]*[+*][^)]*\)[+*]")


def _compile_regex_safe(pattern: str, flags: int = 0) -> re.Pattern:
    """Compile a regex pattern with basic ReDoS protection.

    Checks for patterns that could cause catastrophic backtracking and
    raises a descriptive error if found. Format signatures are run against
    untrusted file heads, so every descriptor pattern goes through here.

    Args:
        pattern: Regular expression pattern to compile
        flags: Regex flags (e.g., re.IGNORECASE)

    Returns:
        Compiled regex pattern

    Raises:
        ValueError: If pattern contains ReDoS-vulnerable constructs
        re.error: If pattern is not a valid regex
    """
    # Check for nested quantifiers that can cause catastrophic backtracking
    if _REDOS_PATTERN.search(pattern):
        raise ValueError(
            f"Pattern may cause slow matching (nested quantifiers): {pattern}"
        )
    return re.compile(pattern, flags)
