"""Delimited-text reader for comma and tab separated files."""

from __future__ import annotations

import logging
from io import StringIO
from typing import TYPE_CHECKING

import pandas as pd

from pricing_ingest.errors import EmptyOrMalformedInput
from pricing_ingest.readers.base import decode_text, records_from_rows, rows_from_frame

if TYPE_CHECKING:
    from pricing_ingest.models import RawRecord, UploadedFile

logger = logging.getLogger(__name__)


def sniff_delimiter(text: str) -> str:
    """Choose tab or comma from the first non-blank line."""
    for line in text.splitlines():
        if line.strip():
            return "\t" if line.count("\t") > line.count(",") else ","
    return ","


class DelimitedTextReader:
    """Read CSV/TSV text into records, inferring a header row.

    Rows the parser cannot split consistently are logged and skipped.
    """

    id_prefix = "csv"

    def read(self, file: UploadedFile) -> list[RawRecord]:
        """Parse the file and return one record per non-blank row."""
        text = decode_text(file.data)
        if not text.strip():
            raise EmptyOrMalformedInput("CSV file is empty", filename=file.name)

        skipped: list[list[str]] = []

        def on_bad_line(fields: list[str]) -> None:
            skipped.append(fields)
            return None

        try:
            frame = pd.read_csv(
                StringIO(text),
                sep=sniff_delimiter(text),
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                skipinitialspace=True,
                engine="python",
                on_bad_lines=on_bad_line,
            )
        except pd.errors.EmptyDataError as exc:
            raise EmptyOrMalformedInput("CSV file is empty", filename=file.name) from exc
        except (pd.errors.ParserError, ValueError) as exc:
            msg = f"CSV parsing failed ({exc})"
            raise EmptyOrMalformedInput(msg, filename=file.name) from exc

        for fields in skipped:
            logger.warning(
                "Skipping malformed CSV row in %s (%d fields): %r",
                file.name,
                len(fields),
                fields,
            )

        records = records_from_rows(
            rows_from_frame(frame), id_prefix=self.id_prefix, min_data_rows=0
        )
        if not records:
            msg = "CSV file contains no usable rows"
            raise EmptyOrMalformedInput(msg, filename=file.name)
        return records
