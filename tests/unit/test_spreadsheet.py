"""Tests for pricing_ingest.readers.spreadsheet."""

from __future__ import annotations

from io import BytesIO
from typing import TYPE_CHECKING, Any

import pytest
from openpyxl import Workbook

from pricing_ingest.errors import EmptyOrMalformedInput
from pricing_ingest.models import UploadedFile
from pricing_ingest.readers.spreadsheet import SpreadsheetReader

if TYPE_CHECKING:
    from collections.abc import Callable

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _workbook_file(data: bytes, name: str = "pricing.xlsx") -> UploadedFile:
    return UploadedFile(name=name, content_type=XLSX_TYPE, data=data)


class TestSpreadsheetReader:
    """Tests for SpreadsheetReader."""

    def test_reads_rows_with_header(
        self, build_xlsx: Callable[[list[list[Any]]], bytes]
    ) -> None:
        data = build_xlsx(
            [
                ["Product", "Price", "Billing"],
                ["Pro Plan", 29, "Monthly"],
                ["API usage", 0.01, "per call"],
            ]
        )

        records = SpreadsheetReader().read(_workbook_file(data))

        assert records == [
            {"id": "excel-0", "Product": "Pro Plan", "Price": 29, "Billing": "Monthly"},
            {"id": "excel-1", "Product": "API usage", "Price": 0.01, "Billing": "per call"},
        ]

    def test_single_data_row_not_treated_as_header(
        self, build_xlsx: Callable[[list[list[Any]]], bytes]
    ) -> None:
        data = build_xlsx([["Product", "Price"], ["Pro Plan", 29]])

        records = SpreadsheetReader().read(_workbook_file(data))

        assert [record["column_1"] for record in records] == ["Product", "Pro Plan"]

    def test_blank_rows_skipped(
        self, build_xlsx: Callable[[list[list[Any]]], bytes]
    ) -> None:
        data = build_xlsx(
            [
                ["Product", "Price"],
                ["Basic", 9],
                [None, None],
                ["Pro", 29],
                ["Team", 49],
            ]
        )

        records = SpreadsheetReader().read(_workbook_file(data))

        assert [record["Product"] for record in records] == ["Basic", "Pro", "Team"]
        assert [record["id"] for record in records] == ["excel-0", "excel-1", "excel-2"]

    def test_only_first_sheet_read(self) -> None:
        workbook = Workbook()
        first = workbook.active
        for row in (["Product", "Price"], ["Basic", 9], ["Pro", 29]):
            first.append(row)
        second = workbook.create_sheet("Archive")
        second.append(["Legacy", 1])
        buffer = BytesIO()
        workbook.save(buffer)

        records = SpreadsheetReader().read(_workbook_file(buffer.getvalue()))

        assert [record["Product"] for record in records] == ["Basic", "Pro"]

    def test_empty_workbook_raises(
        self, build_xlsx: Callable[[list[list[Any]]], bytes]
    ) -> None:
        data = build_xlsx([])

        with pytest.raises(EmptyOrMalformedInput, match="empty"):
            SpreadsheetReader().read(_workbook_file(data))

    def test_corrupt_file_raises(self) -> None:
        file = _workbook_file(b"this is not a workbook")

        with pytest.raises(EmptyOrMalformedInput, match="corrupt") as excinfo:
            SpreadsheetReader().read(file)

        assert excinfo.value.filename == "pricing.xlsx"
