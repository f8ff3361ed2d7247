"""Portable-document reader."""

from __future__ import annotations

import logging
from io import BytesIO
from typing import TYPE_CHECKING

from pypdf import PasswordType, PdfReader
from pypdf.errors import PyPdfError

from pricing_ingest.errors import EmptyOrMalformedInput, NoExtractableText
from pricing_ingest.readers.base import ExtractedText

if TYPE_CHECKING:
    from pricing_ingest.models import UploadedFile

logger = logging.getLogger(__name__)


class PortableDocumentReader:
    """Extract page text from a PDF, in page order.

    A page that fails to extract is logged and skipped; the file only
    fails when no page could be read.
    """

    def read_text(self, file: UploadedFile) -> ExtractedText:
        """Return the newline-joined text of every readable page."""
        reader = self._open(file)
        try:
            page_count = len(reader.pages)
        except (PyPdfError, KeyError, ValueError) as exc:
            msg = f"PDF page tree is unreadable ({exc})"
            raise EmptyOrMalformedInput(msg, filename=file.name) from exc

        pages: list[str] = []
        for index in range(page_count):
            try:
                pages.append(reader.pages[index].extract_text() or "")
            except Exception:
                logger.warning(
                    "Skipping unreadable page %d of %s",
                    index + 1,
                    file.name,
                    exc_info=True,
                )

        if not pages:
            msg = "No page of the PDF could be read"
            raise NoExtractableText(msg, filename=file.name)

        text = "\n".join(pages).strip()
        if not text:
            msg = (
                "PDF contains no extractable text; scanned documents "
                "should be uploaded as images"
            )
            raise NoExtractableText(msg, filename=file.name)

        logger.debug(
            "Extracted %d of %d pages from %s", len(pages), page_count, file.name
        )
        return ExtractedText(text=text, page_count=page_count)

    @staticmethod
    def _open(file: UploadedFile) -> PdfReader:
        if not file.data.startswith(b"%PDF"):
            msg = "File does not look like a PDF (missing %PDF header)"
            raise EmptyOrMalformedInput(msg, filename=file.name)
        try:
            reader = PdfReader(BytesIO(file.data))
        except (PyPdfError, ValueError, OSError) as exc:
            msg = f"PDF could not be opened ({exc})"
            raise EmptyOrMalformedInput(msg, filename=file.name) from exc

        if reader.is_encrypted:
            try:
                decrypted = reader.decrypt("")
            except (PyPdfError, NotImplementedError) as exc:
                msg = "PDF is password protected"
                raise EmptyOrMalformedInput(msg, filename=file.name) from exc
            if decrypted == PasswordType.NOT_DECRYPTED:
                msg = "PDF is password protected"
                raise EmptyOrMalformedInput(msg, filename=file.name)
        return reader
