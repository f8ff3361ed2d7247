"""Format detection and per-file extraction into a uniform result."""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from pricing_ingest.config import IngestConfig
from pricing_ingest.errors import (
    EmptyOrMalformedInput,
    NoExtractableText,
    UnsupportedFormat,
)
from pricing_ingest.models import ExtractionResult
from pricing_ingest.normalizer import (
    normalize_records,
    records_from_json,
    whole_document_item,
)
from pricing_ingest.readers.base import decode_text
from pricing_ingest.readers.delimited import DelimitedTextReader
from pricing_ingest.readers.ocr import OpticalTextRecognizer, thumbnail_data_uri
from pricing_ingest.readers.pdf import PortableDocumentReader
from pricing_ingest.readers.spreadsheet import SpreadsheetReader
from pricing_ingest.text_parser import parse_text, reconstruction_confidence

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pricing_ingest.models import RawRecord, UploadedFile
    from pricing_ingest.readers.base import RecordReader, TextReader

    ProgressCallback = Callable[[int], None]

logger = logging.getLogger(__name__)

SPREADSHEET_CONFIDENCE = 95
CSV_CONFIDENCE = 98
JSON_CONFIDENCE = 99
PDF_CONFIDENCE = 80
TEXT_CONFIDENCE = 85
FALLBACK_CONFIDENCE = 40

PREVIEW_EXCERPT_LENGTH = 200


class DocumentFormat(StrEnum):
    """Extraction path chosen for a file."""

    SPREADSHEET = "spreadsheet"
    CSV = "csv"
    JSON = "json"
    PDF = "pdf"
    IMAGE = "image"
    TEXT = "text"


SPREADSHEET_EXTENSIONS = frozenset({".xlsx", ".xls"})


def detect_format(file: UploadedFile) -> DocumentFormat:
    """Pick the extraction path from extension and MIME type, in priority order."""
    content_type = file.content_type.split(";")[0].strip().lower()
    extension = file.extension

    if extension in SPREADSHEET_EXTENSIONS:
        return DocumentFormat.SPREADSHEET
    if extension == ".csv" or content_type == "text/csv":
        return DocumentFormat.CSV
    if extension == ".json" or content_type == "application/json":
        return DocumentFormat.JSON
    if content_type == "application/pdf":
        return DocumentFormat.PDF
    if content_type.startswith("image/"):
        return DocumentFormat.IMAGE
    if content_type == "text/plain":
        return DocumentFormat.TEXT

    raise UnsupportedFormat(
        filename=file.name, content_type=content_type, extension=extension
    )


class DocumentExtractor:
    """Route a file to its reader and normalize what comes back.

    Readers are injectable; defaults are built from the config. Blocking
    reader work runs in a worker thread so the event loop stays free.
    """

    def __init__(
        self,
        *,
        config: IngestConfig | None = None,
        spreadsheet_reader: RecordReader | None = None,
        delimited_reader: RecordReader | None = None,
        pdf_reader: TextReader | None = None,
        recognizer: OpticalTextRecognizer | None = None,
    ) -> None:
        self.config = config or IngestConfig()
        self.spreadsheet_reader = spreadsheet_reader or SpreadsheetReader()
        self.delimited_reader = delimited_reader or DelimitedTextReader()
        self.pdf_reader = pdf_reader or PortableDocumentReader()
        self.recognizer = recognizer or OpticalTextRecognizer(config=self.config)

    async def extract(
        self, file: UploadedFile, on_progress: ProgressCallback | None = None
    ) -> ExtractionResult:
        """Extract billing items from one file.

        Progress is reported at coarse milestones between 10 and 90;
        completion is left to the caller.
        """
        report = on_progress or _ignore_progress
        document_format = detect_format(file)
        logger.info("Extracting %s as %s", file.name, document_format)
        report(10)

        handlers: dict[
            DocumentFormat,
            Callable[[UploadedFile, ProgressCallback], Awaitable[ExtractionResult]],
        ] = {
            DocumentFormat.SPREADSHEET: self._extract_spreadsheet,
            DocumentFormat.CSV: self._extract_csv,
            DocumentFormat.JSON: self._extract_json,
            DocumentFormat.PDF: self._extract_pdf,
            DocumentFormat.IMAGE: self._extract_image,
            DocumentFormat.TEXT: self._extract_text,
        }
        result = await handlers[document_format](file, report)
        report(90)

        logger.info(
            "Extracted %d items from %s (method=%s, confidence=%d)",
            len(result.items),
            file.name,
            result.method,
            result.confidence,
        )
        return result

    async def read_records(self, file: UploadedFile) -> list[RawRecord]:
        """Return the raw, unnormalized records a file would produce."""
        document_format = detect_format(file)
        min_length = self.config.min_line_length
        if document_format is DocumentFormat.SPREADSHEET:
            return await asyncio.to_thread(self.spreadsheet_reader.read, file)
        if document_format is DocumentFormat.CSV:
            return await asyncio.to_thread(self.delimited_reader.read, file)
        if document_format is DocumentFormat.JSON:
            return records_from_json(file.data, filename=file.name)
        if document_format is DocumentFormat.PDF:
            extracted = await asyncio.to_thread(self.pdf_reader.read_text, file)
            return parse_text(extracted.text, source="pdf", min_length=min_length)
        if document_format is DocumentFormat.IMAGE:
            recognized = await asyncio.to_thread(self.recognizer.recognize, file)
            return parse_text(recognized.text, source="ocr", min_length=min_length)
        return parse_text(decode_text(file.data), source="text", min_length=min_length)

    async def _extract_spreadsheet(
        self, file: UploadedFile, report: ProgressCallback
    ) -> ExtractionResult:
        records = await asyncio.to_thread(self.spreadsheet_reader.read, file)
        report(60)
        items = normalize_records(
            records, confidence=SPREADSHEET_CONFIDENCE, id_prefix="excel", source="excel"
        )
        return ExtractionResult(
            items=items, confidence=SPREADSHEET_CONFIDENCE, method="excel_extraction"
        )

    async def _extract_csv(
        self, file: UploadedFile, report: ProgressCallback
    ) -> ExtractionResult:
        records = await asyncio.to_thread(self.delimited_reader.read, file)
        report(60)
        items = normalize_records(
            records, confidence=CSV_CONFIDENCE, id_prefix="csv", source="csv"
        )
        return ExtractionResult(
            items=items, confidence=CSV_CONFIDENCE, method="csv_extraction"
        )

    async def _extract_json(
        self, file: UploadedFile, report: ProgressCallback
    ) -> ExtractionResult:
        records = records_from_json(file.data, filename=file.name)
        report(60)
        items = normalize_records(
            records, confidence=JSON_CONFIDENCE, id_prefix="json", source="json"
        )
        return ExtractionResult(
            items=items, confidence=JSON_CONFIDENCE, method="json_extraction"
        )

    async def _extract_pdf(
        self, file: UploadedFile, report: ProgressCallback
    ) -> ExtractionResult:
        extracted = await asyncio.to_thread(self.pdf_reader.read_text, file)
        report(30)
        text = extracted.text
        records = parse_text(text, source="pdf", min_length=self.config.min_line_length)
        report(60)

        if records:
            items = normalize_records(
                records, confidence=PDF_CONFIDENCE, id_prefix="pdf", source="pdf"
            )
            return ExtractionResult(
                items=items,
                confidence=PDF_CONFIDENCE,
                method="pdf_extraction",
                extracted_text=text,
                preview=_excerpt(text),
            )

        logger.info("No tabular lines in %s; returning whole-document item", file.name)
        item = whole_document_item(
            "pdf-content",
            f"PDF content from {file.name}",
            text,
            confidence=FALLBACK_CONFIDENCE,
            source="pdf_fallback",
        )
        return ExtractionResult(
            items=[item],
            confidence=FALLBACK_CONFIDENCE,
            method="pdf_text_extraction",
            extracted_text=text,
            preview=_excerpt(text),
        )

    async def _extract_image(
        self, file: UploadedFile, report: ProgressCallback
    ) -> ExtractionResult:
        loop = asyncio.get_running_loop()

        def engine_progress(percent: int) -> None:
            # Engine progress (0-100) maps onto the 10-60 window, on the loop thread.
            loop.call_soon_threadsafe(report, 10 + percent // 2)

        recognized = await asyncio.to_thread(
            self.recognizer.recognize, file, engine_progress
        )
        text = recognized.text.strip()
        if not text:
            msg = "No text was recognized in the image"
            raise NoExtractableText(msg, filename=file.name)

        preview = await asyncio.to_thread(thumbnail_data_uri, file.data)
        records = parse_text(text, source="ocr", min_length=self.config.min_line_length)
        report(60)

        if records:
            confidence = reconstruction_confidence(records)
            items = normalize_records(
                records, confidence=confidence, id_prefix="ocr", source="ocr"
            )
            return ExtractionResult(
                items=items,
                confidence=confidence,
                method="image_ocr",
                extracted_text=text,
                preview=preview,
            )

        confidence = min(100, max(0, round(recognized.confidence)))
        item = whole_document_item(
            "ocr-content",
            f"OCR text from {file.name}",
            text,
            confidence=confidence,
            source="ocr_fallback",
            excerpt_length=300,
        )
        return ExtractionResult(
            items=[item],
            confidence=confidence,
            method="image_ocr_fallback",
            extracted_text=text,
            preview=preview,
        )

    async def _extract_text(
        self, file: UploadedFile, report: ProgressCallback
    ) -> ExtractionResult:
        text = decode_text(file.data)
        if not text.strip():
            raise EmptyOrMalformedInput("Text file is empty", filename=file.name)
        records = parse_text(text, source="text", min_length=self.config.min_line_length)
        report(60)

        if records:
            items = normalize_records(
                records, confidence=TEXT_CONFIDENCE, id_prefix="text", source="text"
            )
            return ExtractionResult(
                items=items,
                confidence=TEXT_CONFIDENCE,
                method="text_extraction",
                extracted_text=text,
                preview=_excerpt(text),
            )

        item = whole_document_item(
            "text-content",
            f"Text content from {file.name}",
            text.strip(),
            confidence=FALLBACK_CONFIDENCE,
            source="text_fallback",
        )
        return ExtractionResult(
            items=[item],
            confidence=FALLBACK_CONFIDENCE,
            method="text_fallback",
            extracted_text=text,
            preview=_excerpt(text),
        )


def _excerpt(text: str) -> str:
    return text.strip()[:PREVIEW_EXCERPT_LENGTH]


def _ignore_progress(_percent: int) -> None:
    return None
