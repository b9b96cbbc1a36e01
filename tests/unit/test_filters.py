from __future__ import annotations

from datetime import date, datetime

import pytest

from invoice_tracker.models.row_data import InvoiceRow
from invoice_tracker.services.filters import (
    KILOMETERS_COLUMN,
    FilterState,
    apply_filters,
    distinct_clients,
    distinct_dates,
    sort_rows,
)


def _row(lesson, client, amount=None, km=None) -> InvoiceRow:
    return InvoiceRow(values={"Lesson Date": lesson, "Client Name": client, "Amount": amount}, kilometers=km)


@pytest.fixture()
def rows() -> list[InvoiceRow]:
    return [
        _row(datetime(2024, 1, 5, 10), "Alice", 60, 10.0),
        _row(datetime(2024, 1, 5, 15), "Bob", 45, None),
        _row(datetime(2024, 1, 6, 9), "Alice", None, 2.5),
        _row("TBC", "Carol", 30),
    ]


def test_inactive_filter_keeps_everything(rows):
    state = FilterState()
    assert not state.active
    assert apply_filters(rows, state) == rows


def test_date_filter_ignores_time(rows):
    picked = apply_filters(rows, FilterState(lesson_date=date(2024, 1, 5)))
    assert [r.get("Client Name") for r in picked] == ["Alice", "Bob"]


def test_client_filter_is_exact(rows):
    picked = apply_filters(rows, FilterState(client_name="Alice"))
    assert len(picked) == 2
    assert apply_filters(rows, FilterState(client_name="alice")) == []


def test_filters_combine(rows):
    state = FilterState(lesson_date=date(2024, 1, 6), client_name="Alice")
    assert state.active
    assert apply_filters(rows, state) == [rows[2]]


def test_sort_numeric_with_missing_last(rows):
    ordered = sort_rows(rows, "Amount")
    assert [r.get("Amount") for r in ordered] == [30, 45, 60, None]
    ordered = sort_rows(rows, "Amount", descending=True)
    assert [r.get("Amount") for r in ordered] == [60, 45, 30, None]


def test_sort_by_kilometers(rows):
    ordered = sort_rows(rows, KILOMETERS_COLUMN, descending=True)
    assert [r.kilometers for r in ordered] == [10.0, 2.5, None, None]


def test_sort_dates_before_text(rows):
    ordered = sort_rows(rows, "Lesson Date")
    assert [r.get("Client Name") for r in ordered] == ["Alice", "Bob", "Alice", "Carol"]


def test_sort_is_stable(rows):
    ordered = sort_rows(rows, "Client Name")
    assert [r.get("Client Name") for r in ordered] == ["Alice", "Alice", "Bob", "Carol"]
    assert ordered[0] is rows[0]


def test_distinct_values(rows):
    assert distinct_clients(rows) == ["Alice", "Bob", "Carol"]
    assert distinct_dates(rows) == [date(2024, 1, 5), date(2024, 1, 6)]
