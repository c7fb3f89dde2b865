"""Tests for match date labels and durations."""

from __future__ import annotations

from datetime import date

from domain.dates import (
    format_duration,
    format_match_date,
    legacy_date_label,
    parse_duration_seconds,
    parse_match_date,
)


def test_format_uses_dutch_month_abbreviations() -> None:
    assert format_match_date(date(2023, 10, 12)) == "12 Okt 2023"
    assert format_match_date(date(2024, 3, 1)) == "1 Mrt 2024"


def test_legacy_label_drops_time_suffix() -> None:
    assert legacy_date_label("12 Okt 2023 • 20:15") == "12 Okt 2023"
    assert legacy_date_label("12 Okt 2023") == "12 Okt 2023"


def test_parse_match_date() -> None:
    assert parse_match_date("12 Okt 2023 • 20:15") == date(2023, 10, 12)
    assert parse_match_date("3 maa 2024") == date(2024, 3, 3)
    assert parse_match_date("31 Feb 2024") is None
    assert parse_match_date("yesterday") is None


def test_durations() -> None:
    assert parse_duration_seconds("1:02:03") == 3723
    assert parse_duration_seconds("45:00") == 0
    assert parse_duration_seconds(None) == 0
    assert format_duration(3723) == "1:02:03"
