from __future__ import annotations

from datetime import date, datetime

import pytest

from invoice_tracker.excel.dates import (
    excel_serial_to_datetime,
    looks_like_date,
    parse_currency,
    parse_date_value,
    restore_iso_datetime,
    to_calendar_date,
)


def test_slash_dates_are_day_first():
    parsed = parse_date_value("03/04/2024")
    assert isinstance(parsed, datetime)
    assert (parsed.day, parsed.month, parsed.year) == (3, 4, 2024)


def test_dash_dates_are_day_first():
    assert parse_date_value("5-1-2024") == datetime(2024, 1, 5)


def test_year_first_dates():
    assert parse_date_value("2024-1-5") == datetime(2024, 1, 5)
    assert parse_date_value("2024/01/05") == datetime(2024, 1, 5)


def test_excel_serial_45000():
    # 1899-12-30 + 45000 days
    assert parse_date_value(45000) == datetime(2023, 3, 15)
    assert excel_serial_to_datetime(45000.5) == datetime(2023, 3, 15, 12, 0)


def test_invalid_calendar_date_is_kept_as_text():
    # 4 月は 30 日まで
    assert parse_date_value("31/04/2024") == "31/04/2024"


def test_non_date_text_kept_verbatim():
    assert parse_date_value("next tuesday") == "next tuesday"
    assert parse_date_value("") is None
    assert parse_date_value(None) is None


def test_date_objects_pass_through():
    assert parse_date_value(date(2024, 2, 29)) == datetime(2024, 2, 29)
    dt = datetime(2024, 1, 5, 9, 30)
    assert parse_date_value(dt) is dt


@pytest.mark.parametrize(
    "value,expected",
    [
        (datetime(2024, 1, 5), True),
        (45000, True),
        (0, False),
        (100001, False),
        ("05/01/2024", True),
        ("2024-01-05T10:00:00", True),
        ("Total", False),
        ("", False),
        (None, False),
        (True, False),
    ],
)
def test_looks_like_date(value, expected):
    assert looks_like_date(value) is expected


def test_restore_iso_datetime():
    assert restore_iso_datetime("2024-01-05T00:00:00") == datetime(2024, 1, 5)
    assert restore_iso_datetime("2024-01-05T00:00:00.000Z") == datetime(2024, 1, 5)
    assert restore_iso_datetime("not a date") == "not a date"


def test_to_calendar_date_ignores_time():
    assert to_calendar_date(datetime(2024, 1, 5, 17, 45)) == date(2024, 1, 5)
    assert to_calendar_date("31/04/2024") is None
    assert to_calendar_date(None) is None


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("$1,234.50", 1234.5),
        (" $ 99 ", 99.0),
        (250, 250.0),
        ("n/a", 0.0),
        (None, 0.0),
        ("", 0.0),
    ],
)
def test_parse_currency(raw, expected):
    assert parse_currency(raw) == expected
