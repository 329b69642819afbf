"""
General utility functions for walking Innertube responses.
traverse_obj and the *_or_none converters follow yt-dlp's utils.py.
"""

import re
from datetime import datetime
from typing import Any


def traverse_obj(obj: Any, *paths: Any, default: Any = None) -> Any:
    """
    Traverse nested dicts/lists safely.

    Usage:
        traverse_obj(data, 'key1')
        traverse_obj(data, ('key1', 'key2'), ('alt_key1', 'alt_key2'))
    """
    for path in paths:
        if isinstance(path, (list, tuple)):
            result = obj
            for key in path:
                if result is None:
                    break
                if isinstance(result, dict):
                    result = result.get(key)
                elif isinstance(result, (list, tuple)):
                    try:
                        result = result[key]
                    except (IndexError, TypeError):
                        result = None
                else:
                    result = None
            if result is not None:
                return result
        else:
            if isinstance(obj, dict) and path in obj:
                return obj[path]
    return default


def int_or_none(v: Any, scale: int = 1) -> int | None:
    """Convert value to int or return None."""
    if v is None:
        return None
    try:
        return int(v) // scale
    except (ValueError, TypeError):
        return None


def float_or_none(v: Any, scale: float = 1.0) -> float | None:
    """Convert value to float or return None."""
    if v is None:
        return None
    try:
        return float(v) / scale
    except (ValueError, TypeError):
        return None


def str_or_none(v: Any) -> str | None:
    """Convert value to string or return None."""
    if v is None:
        return None
    result = str(v).strip()
    return result if result else None


def url_or_none(v: Any) -> str | None:
    """Validate and return URL or None."""
    if not v or not isinstance(v, str):
        return None
    v = v.strip()
    if v.startswith(("http://", "https://")):
        return v
    if v.startswith("//"):
        return f"https:{v}"
    return None


def unified_timestamp(date_str: str) -> int | None:
    """Parse various date formats into Unix timestamp."""
    if not date_str:
        return None

    date_str = date_str.strip()

    for fmt in (
        "%Y-%m-%dT%H:%M:%S.%fZ",
        "%Y-%m-%dT%H:%M:%SZ",
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%dT%H:%M:%S.%f%z",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d",
        "%Y%m%d",
    ):
        try:
            dt = datetime.strptime(date_str, fmt)
            return int(dt.timestamp())
        except ValueError:
            continue

    try:
        ts = float(date_str)
        if ts > 1e12:
            ts /= 1000  # milliseconds
        return int(ts)
    except (ValueError, TypeError):
        pass

    return None


def format_date(value: int | float | str | None) -> str | None:
    """Convert a timestamp or date string to YYYY-MM-DD format."""
    if value is None:
        return None

    if isinstance(value, str):
        # Already a calendar date (microformat publishDate); keep it verbatim
        match = re.match(r"(\d{4}-\d{2}-\d{2})", value.strip())
        if match:
            return match.group(1)
        ts = unified_timestamp(value)
        if ts is None:
            return None
        value = ts

    try:
        return datetime.fromtimestamp(float(value)).strftime("%Y-%m-%d")
    except (ValueError, OSError, OverflowError):
        return None


def text_of(node: Any) -> str | None:
    """Flatten an Innertube text node ({"simpleText": ...} or {"runs": [...]})."""
    if node is None:
        return None
    if isinstance(node, str):
        return str_or_none(node)
    if not isinstance(node, dict):
        return None
    if "simpleText" in node:
        return str_or_none(node["simpleText"])
    runs = node.get("runs")
    if isinstance(runs, list):
        return str_or_none("".join(r.get("text", "") for r in runs if isinstance(r, dict)))
    return None


def parse_duration(text: str | None) -> int | None:
    """Parse "H:MM:SS" / "M:SS" / "SS" into seconds."""
    if not text:
        return None
    parts = text.strip().split(":")
    if not all(p.isdigit() for p in parts) or len(parts) > 3:
        return None
    seconds = 0
    for part in parts:
        seconds = seconds * 60 + int(part)
    return seconds


_COUNT_SUFFIXES = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}


def parse_count(text: str | None) -> int | None:
    """Parse view counts like "1,234,567 views" or "1.2M views"."""
    if not text:
        return None
    text = text.strip().lower()
    if text.startswith("no "):
        return 0
    match = re.match(r"([\d.,]+)\s*([kmb])?\b", text)
    if not match:
        return None
    number, suffix = match.groups()
    if suffix:
        try:
            return int(float(number.replace(",", "")) * _COUNT_SUFFIXES[suffix])
        except ValueError:
            return None
    return int_or_none(number.replace(",", "").replace(".", ""))
