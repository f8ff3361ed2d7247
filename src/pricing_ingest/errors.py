"""Error taxonomy for document ingestion.

Every error raised to a caller is one of these, with a message suitable
for showing to an operator directly.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for all ingestion failures."""

    def __init__(self, message: str, *, filename: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}: {self.message}"
        return self.message


class UnsupportedFormat(IngestError):
    """No extractor accepts the file's extension or MIME type."""

    def __init__(
        self,
        *,
        filename: str | None = None,
        content_type: str = "",
        extension: str = "",
    ) -> None:
        detected = content_type or "unknown type"
        if extension:
            detected = f"{detected}, extension {extension}"
        super().__init__(
            f"Unsupported file type ({detected}); expected a spreadsheet, CSV, "
            "JSON, PDF, image or plain-text document",
            filename=filename,
        )
        self.content_type = content_type
        self.extension = extension


class EmptyOrMalformedInput(IngestError):
    """The document parsed to nothing usable."""


class FileTooLarge(EmptyOrMalformedInput):
    """The document exceeds the accepted size bound."""

    def __init__(
        self, size: int, max_size: int, *, filename: str | None = None
    ) -> None:
        super().__init__(
            f"File is too large ({size / 1024 / 1024:.1f} MB, "
            f"max {max_size / 1024 / 1024:.0f} MB)",
            filename=filename,
        )
        self.size = size
        self.max_size = max_size


class NoExtractableText(IngestError):
    """The document contains no text that could be extracted."""


class EngineInitializationFailure(IngestError):
    """The text recognition engine is not available."""


class DeviceAccessDenied(IngestError):
    """The camera could not be opened or read."""


class TimedOut(IngestError):
    """Extraction did not finish within the per-file timeout."""

    def __init__(self, timeout: float, *, filename: str | None = None) -> None:
        super().__init__(
            f"Extraction timed out after {timeout:g} seconds", filename=filename
        )
        self.timeout = timeout
