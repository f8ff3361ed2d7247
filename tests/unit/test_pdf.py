"""Tests for pricing_ingest.readers.pdf."""

from __future__ import annotations

import logging
from io import BytesIO
from unittest.mock import MagicMock

import pytest
from pypdf import PasswordType, PdfWriter
from pypdf.errors import PdfReadError

from pricing_ingest.errors import EmptyOrMalformedInput, NoExtractableText
from pricing_ingest.models import UploadedFile
from pricing_ingest.readers.pdf import PortableDocumentReader

PDF_HEADER = b"%PDF-1.7\n"


def _pdf(data: bytes = PDF_HEADER) -> UploadedFile:
    return UploadedFile(name="pricing.pdf", content_type="application/pdf", data=data)


def _page(text: str) -> MagicMock:
    page = MagicMock()
    page.extract_text.return_value = text
    return page


def _mock_reader(monkeypatch: pytest.MonkeyPatch, pages: list[MagicMock]) -> MagicMock:
    reader = MagicMock()
    reader.is_encrypted = False
    reader.pages = pages
    monkeypatch.setattr(
        "pricing_ingest.readers.pdf.PdfReader", MagicMock(return_value=reader)
    )
    return reader


class TestPortableDocumentReader:
    """Tests for PortableDocumentReader."""

    def test_pages_joined_in_order(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _mock_reader(monkeypatch, [_page("Basic  $10"), _page("Pro  $20")])

        extracted = PortableDocumentReader().read_text(_pdf())

        assert extracted.text == "Basic  $10\nPro  $20"
        assert extracted.page_count == 2

    def test_unreadable_page_skipped(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        broken = MagicMock()
        broken.extract_text.side_effect = KeyError("/Contents")
        _mock_reader(monkeypatch, [_page("Basic  $10"), broken, _page("Pro  $20")])

        with caplog.at_level(logging.WARNING, logger="pricing_ingest.readers.pdf"):
            extracted = PortableDocumentReader().read_text(_pdf())

        assert extracted.text == "Basic  $10\nPro  $20"
        assert "Skipping unreadable page 2" in caplog.text

    def test_all_pages_unreadable_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        broken = MagicMock()
        broken.extract_text.side_effect = ValueError("bad stream")
        _mock_reader(monkeypatch, [broken])

        with pytest.raises(NoExtractableText, match="No page"):
            PortableDocumentReader().read_text(_pdf())

    def test_blank_pdf_raises(self) -> None:
        writer = PdfWriter()
        writer.add_blank_page(width=200, height=200)
        buffer = BytesIO()
        writer.write(buffer)

        with pytest.raises(NoExtractableText, match="scanned documents"):
            PortableDocumentReader().read_text(_pdf(buffer.getvalue()))

    def test_missing_header_raises(self) -> None:
        with pytest.raises(EmptyOrMalformedInput, match="%PDF header"):
            PortableDocumentReader().read_text(_pdf(b"<html>not a pdf</html>"))

    def test_unparseable_pdf_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            "pricing_ingest.readers.pdf.PdfReader",
            MagicMock(side_effect=PdfReadError("startxref not found")),
        )

        with pytest.raises(EmptyOrMalformedInput, match="could not be opened"):
            PortableDocumentReader().read_text(_pdf())

    def test_password_protected_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        reader = _mock_reader(monkeypatch, [_page("secret")])
        reader.is_encrypted = True
        reader.decrypt.return_value = PasswordType.NOT_DECRYPTED

        with pytest.raises(EmptyOrMalformedInput, match="password protected"):
            PortableDocumentReader().read_text(_pdf())

    def test_empty_owner_password_opens(self, monkeypatch: pytest.MonkeyPatch) -> None:
        reader = _mock_reader(monkeypatch, [_page("Basic  $10")])
        reader.is_encrypted = True
        reader.decrypt.return_value = PasswordType.USER_PASSWORD

        extracted = PortableDocumentReader().read_text(_pdf())

        reader.decrypt.assert_called_once_with("")
        assert extracted.text == "Basic  $10"
