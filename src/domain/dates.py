"""Match date labels.

Matches store a short Dutch label such as ``"12 Okt 2023"``. Older records
append a time after a ``" • "`` separator. Structured dates are preferred
wherever a match carries one.
"""

from __future__ import annotations

from datetime import date

MONTHS_SHORT = ("Jan", "Feb", "Mrt", "Apr", "Mei", "Jun", "Jul", "Aug", "Sep", "Okt", "Nov", "Dec")
LEGACY_DATE_SEPARATOR = " • "

_MONTH_LOOKUP = {
    "jan": 1,
    "feb": 2,
    "mrt": 3,
    "maa": 3,
    "apr": 4,
    "mei": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "okt": 10,
    "nov": 11,
    "dec": 12,
}


def format_match_date(value: date) -> str:
    """Render a date the way match labels are written."""
    return f"{value.day} {MONTHS_SHORT[value.month - 1]} {value.year}"


def legacy_date_label(label: str) -> str:
    """Return the date portion of a stored label, dropping any time suffix."""
    return label.split(LEGACY_DATE_SEPARATOR, 1)[0]


def parse_match_date(label: str) -> date | None:
    """Parse ``"12 Okt 2023"`` style labels; ``None`` when unreadable."""
    parts = legacy_date_label(label).strip().lower().split()
    if len(parts) < 3:
        return None

    month = _MONTH_LOOKUP.get(parts[1].replace(".", "")[:3])
    if month is None:
        return None

    try:
        return date(int(parts[2]), month, int(parts[0]))
    except ValueError:
        return None


def parse_duration_seconds(duration: str | None) -> int:
    """Seconds in an ``H:MM:SS`` duration; anything else counts as zero."""
    if not duration:
        return 0
    parts = duration.split(":")
    if len(parts) != 3:
        return 0
    try:
        hours, minutes, seconds = (int(part) for part in parts)
    except ValueError:
        return 0
    return hours * 3600 + minutes * 60 + seconds


def format_duration(total_seconds: int) -> str:
    hours, remainder = divmod(max(total_seconds, 0), 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{seconds:02d}"


__all__ = [
    "LEGACY_DATE_SEPARATOR",
    "MONTHS_SHORT",
    "format_duration",
    "format_match_date",
    "legacy_date_label",
    "parse_duration_seconds",
    "parse_match_date",
]
