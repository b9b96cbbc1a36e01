from __future__ import annotations

import dataclasses

import pytest

from invoice_tracker.models.row_data import InvoiceRow


def test_invoice_row_is_frozen():
    row = InvoiceRow(values={"Client Name": "Alice"})
    with pytest.raises(dataclasses.FrozenInstanceError):
        row.kilometers = 3.0  # type: ignore[misc]


def test_get_handles_missing_column():
    row = InvoiceRow(values={"Client Name": "Alice"})
    assert row.get("Client Name") == "Alice"
    assert row.get("Amount") is None
    assert row.get(None, "x") == "x"


def test_has_stored_distance():
    assert not InvoiceRow().has_stored_distance
    assert not InvoiceRow(kilometers=0.0).has_stored_distance
    assert InvoiceRow(kilometers=4.2).has_stored_distance


def test_with_kilometers_returns_copy():
    row = InvoiceRow(values={"a": 1}, row_id=7)
    updated = row.with_kilometers(12.5)
    assert updated.kilometers == 12.5
    assert updated.row_id == 7
    assert row.kilometers is None


def test_project_fills_missing_columns_with_none():
    row = InvoiceRow(values={"a": 1, "b": 2}, row_id=3, kilometers=1.5)
    projected = row.project(["b", "c"])
    assert projected.values == {"b": 2, "c": None}
    assert list(projected.values) == ["b", "c"]
    assert projected.row_id == 3
    assert projected.kilometers == 1.5
