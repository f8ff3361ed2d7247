"""Reader protocols and helpers shared by the leaf extractors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pricing_ingest.normalizer import parse_price

if TYPE_CHECKING:
    import pandas as pd

    from pricing_ingest.models import RawRecord, UploadedFile


@dataclass(frozen=True)
class ExtractedText:
    """Text recovered from a page-described or raster document."""

    text: str
    confidence: float = 100.0
    words: list[dict[str, Any]] = field(default_factory=list)
    page_count: int = 1


@runtime_checkable
class RecordReader(Protocol):
    """Protocol for readers that yield records directly."""

    def read(self, file: UploadedFile) -> list[RawRecord]: ...


@runtime_checkable
class TextReader(Protocol):
    """Protocol for readers that yield raw text for reconstruction."""

    def read_text(self, file: UploadedFile) -> ExtractedText: ...


def decode_text(data: bytes) -> str:
    """Decode uploaded text, falling back to latin-1 for legacy exports."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def rows_from_frame(frame: pd.DataFrame) -> list[list[Any]]:
    """Turn a headerless DataFrame into rows of plain Python cell values."""
    filled = frame.astype(object).where(frame.notna(), "")
    return [
        [_plain_cell(value) for value in row]
        for row in filled.itertuples(index=False, name=None)
    ]


def is_header_row(row: list[Any]) -> bool:
    """True when at least one cell is alphabetic text rather than a number."""
    for cell in row:
        if not isinstance(cell, str) or not cell:
            continue
        if any(char.isalpha() for char in cell) and parse_price(cell) is None:
            return True
    return False


def records_from_rows(
    rows: list[list[Any]], *, id_prefix: str, min_data_rows: int = 1
) -> list[RawRecord]:
    """Build records from grid rows, using row 0 as header when it looks like one.

    Blank rows are dropped. Without a header, keys are column_1..column_n.
    """
    rows = [row for row in rows if any(cell != "" for cell in row)]
    if not rows:
        return []

    width = max(len(row) for row in rows)
    if is_header_row(rows[0]) and len(rows) - 1 >= min_data_rows:
        headers = [str(cell).strip() for cell in rows[0]]
        body = rows[1:]
    else:
        headers = [f"column_{number}" for number in range(1, width + 1)]
        body = rows

    records: list[RawRecord] = []
    for row in body:
        record: RawRecord = {"id": f"{id_prefix}-{len(records)}"}
        for header, cell in zip(headers, row, strict=False):
            if header:
                record[header] = cell
        if any(value != "" for key, value in record.items() if key != "id"):
            records.append(record)
    return records


def _plain_cell(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    # numpy scalars and pandas timestamps
    if hasattr(value, "item") and not isinstance(value, (int, float)):
        return value.item()
    return value
