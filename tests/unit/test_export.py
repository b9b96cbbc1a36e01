from __future__ import annotations

from datetime import date, datetime

import pandas as pd

from invoice_tracker.models.row_data import InvoiceRow
from invoice_tracker.services.export import (
    SHEET_NAME,
    export_rows,
    format_day_first,
    rows_to_frame,
)

COLUMNS = ["Lesson Date", "Client Name", "Amount"]


def _rows() -> list[InvoiceRow]:
    return [
        InvoiceRow(values={"Lesson Date": datetime(2024, 1, 5, 10), "Client Name": "Alice", "Amount": 60}, kilometers=10.0),
        InvoiceRow(values={"Lesson Date": datetime(2024, 11, 25), "Client Name": "Bob", "Amount": 45}),
    ]


def test_format_day_first_has_no_padding():
    assert format_day_first(date(2024, 1, 5)) == "5/1/2024"
    assert format_day_first(datetime(2024, 11, 25, 8)) == "25/11/2024"


def test_rows_to_frame_appends_kilometers():
    df = rows_to_frame(_rows(), COLUMNS)
    assert list(df.columns) == COLUMNS + ["Kilometers"]
    assert df["Lesson Date"].tolist() == ["5/1/2024", "25/11/2024"]
    assert df["Kilometers"].tolist() == [10.0, 0]


def test_rows_to_frame_does_not_duplicate_kilometers_column():
    df = rows_to_frame(_rows(), COLUMNS + ["Kilometers"])
    assert list(df.columns).count("Kilometers") == 1


def test_export_rows_writes_readable_workbook(tmp_path):
    path = export_rows(_rows(), COLUMNS, tmp_path / "out" / "invoices.xlsx")
    assert path.exists()
    df = pd.read_excel(path, sheet_name=SHEET_NAME)
    assert list(df.columns) == COLUMNS + ["Kilometers"]
    assert df["Client Name"].tolist() == ["Alice", "Bob"]
    assert df["Kilometers"].tolist() == [10.0, 0.0]


def test_export_empty(tmp_path):
    path = export_rows([], COLUMNS, tmp_path / "empty.xlsx")
    df = pd.read_excel(path, sheet_name=SHEET_NAME)
    assert df.empty
    assert list(df.columns) == COLUMNS + ["Kilometers"]
