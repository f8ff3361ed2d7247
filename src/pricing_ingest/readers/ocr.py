"""Optical text recognition for uploaded images and camera frames."""

from __future__ import annotations

import base64
import logging
from io import BytesIO
from statistics import mean
from typing import TYPE_CHECKING, Any, Protocol

import pytesseract
from PIL import Image, UnidentifiedImageError

from pricing_ingest.config import IngestConfig
from pricing_ingest.errors import (
    EmptyOrMalformedInput,
    EngineInitializationFailure,
    FileTooLarge,
    UnsupportedFormat,
)
from pricing_ingest.readers.base import ExtractedText

if TYPE_CHECKING:
    from collections.abc import Callable

    from pricing_ingest.models import UploadedFile

    ProgressCallback = Callable[[int], None]

logger = logging.getLogger(__name__)

PREVIEW_SIZE = (320, 320)


class RecognitionEngine(Protocol):
    """Protocol for text recognition backends."""

    def recognize(
        self,
        image: Image.Image,
        *,
        lang: str,
        on_progress: ProgressCallback | None = None,
    ) -> ExtractedText: ...


class TesseractEngine:
    """Recognition engine backed by the tesseract binary via pytesseract."""

    def __init__(self, tesseract_cmd: str | None = None) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        try:
            self.version = pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as exc:
            msg = "Tesseract OCR engine is not installed or not on PATH (set TESSERACT_CMD)"
            raise EngineInitializationFailure(msg) from exc
        logger.debug("Using tesseract %s", self.version)

    def recognize(
        self,
        image: Image.Image,
        *,
        lang: str,
        on_progress: ProgressCallback | None = None,
    ) -> ExtractedText:
        """Run recognition and rebuild line text from word boxes."""
        _report(on_progress, 0)
        try:
            data = pytesseract.image_to_data(
                image, lang=lang, output_type=pytesseract.Output.DICT
            )
        except pytesseract.TesseractError as exc:
            msg = f"Text recognition failed ({exc.message})"
            raise EmptyOrMalformedInput(msg) from exc
        _report(on_progress, 80)

        words = words_from_data(data)
        confidences = [word["confidence"] for word in words]
        text = text_from_words(words)
        _report(on_progress, 100)

        return ExtractedText(
            text=text,
            confidence=mean(confidences) if confidences else 0.0,
            words=words,
        )


def default_engine_factory(config: IngestConfig) -> RecognitionEngine:
    """Build the tesseract engine from the configured binary path."""
    return TesseractEngine(config.tesseract_cmd)


def words_from_data(data: dict[str, list[Any]]) -> list[dict[str, Any]]:
    """Collect recognized words with their boxes from image_to_data output."""
    words: list[dict[str, Any]] = []
    for index, raw_text in enumerate(data.get("text", [])):
        text = str(raw_text).strip()
        confidence = float(data["conf"][index])
        if not text or confidence < 0:
            continue
        words.append(
            {
                "text": text,
                "confidence": confidence,
                "line": (
                    data["block_num"][index],
                    data["par_num"][index],
                    data["line_num"][index],
                ),
                "left": int(data["left"][index]),
                "width": int(data["width"][index]),
                "height": int(data["height"][index]),
            }
        )
    return words


def text_from_words(words: list[dict[str, Any]]) -> str:
    """Join words into lines, keeping wide horizontal gaps as double spaces.

    The gap survives so the free-text parser can split table columns.
    """
    lines: list[str] = []
    current_line: tuple[int, int, int] | None = None
    parts: list[str] = []
    previous: dict[str, Any] | None = None

    for word in words:
        if word["line"] != current_line:
            if parts:
                lines.append("".join(parts))
            parts = [word["text"]]
            current_line = word["line"]
        else:
            gap = word["left"] - (previous["left"] + previous["width"])  # type: ignore[index]
            parts.append("  " if gap > max(word["height"], 1) else " ")
            parts.append(word["text"])
        previous = word

    if parts:
        lines.append("".join(parts))
    return "\n".join(lines)


class OpticalTextRecognizer:
    """Validate images and hand them to a recognition engine.

    The engine is created lazily through the injected factory, so a missing
    engine only fails image extraction.
    """

    def __init__(
        self,
        engine_factory: Callable[[IngestConfig], RecognitionEngine] = default_engine_factory,
        *,
        config: IngestConfig | None = None,
    ) -> None:
        self.config = config or IngestConfig()
        self._engine_factory = engine_factory
        self._engine: RecognitionEngine | None = None

    @property
    def engine(self) -> RecognitionEngine:
        if self._engine is None:
            self._engine = self._engine_factory(self.config)
        return self._engine

    def load_image(self, file: UploadedFile) -> Image.Image:
        """Open and verify an image, failing fast on anything unusable."""
        content_type = file.content_type.lower()
        if not content_type.startswith("image/"):
            raise UnsupportedFormat(
                filename=file.name,
                content_type=file.content_type,
                extension=file.extension,
            )
        if file.size == 0:
            raise EmptyOrMalformedInput("Image file is empty", filename=file.name)
        if file.size > self.config.max_image_bytes:
            raise FileTooLarge(
                file.size, self.config.max_image_bytes, filename=file.name
            )

        try:
            with Image.open(BytesIO(file.data)) as probe:
                probe.verify()
            image = Image.open(BytesIO(file.data))
            image.load()
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            SyntaxError,
            ValueError,
        ) as exc:
            msg = "Image is corrupted or in an unreadable format"
            raise EmptyOrMalformedInput(msg, filename=file.name) from exc

        if image.width == 0 or image.height == 0:
            image.close()
            raise EmptyOrMalformedInput("Image has no pixels", filename=file.name)
        return image

    def recognize(
        self, file: UploadedFile, on_progress: ProgressCallback | None = None
    ) -> ExtractedText:
        """Recognize text in an uploaded image."""
        image = self.load_image(file)
        try:
            return self.engine.recognize(
                image, lang=self.config.ocr_lang, on_progress=on_progress
            )
        finally:
            image.close()


def thumbnail_data_uri(data: bytes, size: tuple[int, int] = PREVIEW_SIZE) -> str:
    """Render a small JPEG preview as a data: URI."""
    with Image.open(BytesIO(data)) as image:
        thumb = image.convert("RGB")
    thumb.thumbnail(size)
    buffer = BytesIO()
    thumb.save(buffer, format="JPEG", quality=80)
    b64 = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/jpeg;base64,{b64}"


def _report(on_progress: ProgressCallback | None, percent: int) -> None:
    if on_progress is not None:
        on_progress(percent)
