"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from io import BytesIO
from typing import Any

import pytest
from openpyxl import Workbook
from PIL import Image

from pricing_ingest.config import IngestConfig
from pricing_ingest.models import (
    MeteredItem,
    OneTimeItem,
    RecurringItem,
    UploadedFile,
    to_minor_units,
)
from pricing_ingest.readers.base import ExtractedText


class FakeEngine:
    """Recognition engine returning canned text."""

    def __init__(self, text: str, confidence: float = 88.0) -> None:
        self.text = text
        self.confidence = confidence
        self.calls: list[str] = []

    def recognize(
        self,
        image: Image.Image,
        *,
        lang: str,
        on_progress: Callable[[int], None] | None = None,
    ) -> ExtractedText:
        self.calls.append(lang)
        if on_progress is not None:
            on_progress(0)
            on_progress(50)
            on_progress(100)
        return ExtractedText(text=self.text, confidence=self.confidence)


def make_xlsx(rows: list[list[Any]]) -> bytes:
    """Build an .xlsx workbook in memory with one sheet of rows."""
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def make_png(size: tuple[int, int] = (64, 32)) -> bytes:
    """Build a small white PNG in memory."""
    buffer = BytesIO()
    Image.new("RGB", size, "white").save(buffer, format="PNG")
    return buffer.getvalue()


def make_item(
    item_type: str, price: str = "10", *, index: int = 0
) -> MeteredItem | RecurringItem | OneTimeItem:
    """Build a valid billing item of the given type."""
    amount = Decimal(price)
    common: dict[str, Any] = {
        "id": f"item-{index}",
        "product": f"Product {index}",
        "price": amount,
        "unit_amount": to_minor_units(amount),
    }
    if item_type == "metered":
        return MeteredItem(**common, event_name=f"event_{index}")
    if item_type == "recurring":
        return RecurringItem(**common)
    return OneTimeItem(**common)


@pytest.fixture
def ingest_config() -> IngestConfig:
    """Provide a test configuration with a small image bound and no timeout."""
    return IngestConfig(
        max_image_bytes=1024 * 1024,
        ocr_lang="eng",
        file_timeout=None,
        camera_device=0,
        min_line_length=3,
    )


@pytest.fixture
def png_bytes() -> bytes:
    """Provide a small PNG image."""
    return make_png()


@pytest.fixture
def png_file(png_bytes: bytes) -> UploadedFile:
    """Provide an uploaded PNG image."""
    return UploadedFile(name="price-list.png", content_type="image/png", data=png_bytes)


@pytest.fixture
def csv_file() -> UploadedFile:
    """Provide a minimal two-row price list as CSV."""
    return UploadedFile(
        name="prices.csv",
        content_type="text/csv",
        data=b"Name,Price\nAPI Calls,0.01\nStorage GB,0.05\n",
    )


@pytest.fixture
def text_file() -> UploadedFile:
    """Provide a plain-text price sheet with metered and recurring lines."""
    return UploadedFile(
        name="pricing.txt",
        content_type="text/plain",
        data=(
            b"API Requests  per request  $0.002\n"
            b"Enterprise Plan  annual subscription  $1200\n"
        ),
    )


@pytest.fixture
def docx_file() -> UploadedFile:
    """Provide a word-processor document, which no extractor accepts."""
    return UploadedFile(
        name="contract.docx",
        content_type=(
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
        ),
        data=b"PK\x03\x04 not really a docx",
    )


@pytest.fixture
def fake_engine() -> FakeEngine:
    """Provide a recognition engine that reads a two-line price table."""
    return FakeEngine("Basic Plan  monthly  $19\nAPI Usage  per call  $0.01")


@pytest.fixture
def build_xlsx() -> Callable[[list[list[Any]]], bytes]:
    """Provide the in-memory workbook builder."""
    return make_xlsx


@pytest.fixture
def build_item() -> Callable[..., MeteredItem | RecurringItem | OneTimeItem]:
    """Provide the billing item builder."""
    return make_item


@pytest.fixture
def build_engine() -> Callable[..., FakeEngine]:
    """Provide the fake recognition engine class."""
    return FakeEngine
