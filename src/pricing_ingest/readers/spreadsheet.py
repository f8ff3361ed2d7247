"""Tabular-workbook reader for .xlsx and .xls files."""

from __future__ import annotations

import logging
from io import BytesIO
from typing import TYPE_CHECKING

import pandas as pd

from pricing_ingest.errors import EmptyOrMalformedInput
from pricing_ingest.readers.base import records_from_rows, rows_from_frame

if TYPE_CHECKING:
    from pricing_ingest.models import RawRecord, UploadedFile

logger = logging.getLogger(__name__)


class SpreadsheetReader:
    """Read the first sheet of a workbook into records.

    Other sheets are ignored. Row 0 is only taken as a header when it has
    text cells and at least two data rows follow it.
    """

    id_prefix = "excel"

    def read(self, file: UploadedFile) -> list[RawRecord]:
        """Parse the workbook and return one record per non-blank row."""
        frame = self._load_first_sheet(file)
        rows = rows_from_frame(frame)
        records = records_from_rows(rows, id_prefix=self.id_prefix, min_data_rows=2)
        if not records:
            msg = "Workbook appears to be empty (first sheet has no data rows)"
            raise EmptyOrMalformedInput(msg, filename=file.name)

        logger.debug("Read %d rows from %s", len(records), file.name)
        return records

    @staticmethod
    def _load_first_sheet(file: UploadedFile) -> pd.DataFrame:
        try:
            return pd.read_excel(
                BytesIO(file.data), sheet_name=0, header=None, dtype=object
            )
        except Exception as exc:
            # openpyxl, xlrd and zipfile all raise their own error types
            msg = f"Could not read workbook; the file may be corrupt or not a spreadsheet ({exc})"
            raise EmptyOrMalformedInput(msg, filename=file.name) from exc
