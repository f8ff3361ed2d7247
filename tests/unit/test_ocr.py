"""Tests for pricing_ingest.readers.ocr."""

from __future__ import annotations

import base64
from io import BytesIO
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytesseract
import pytest
from PIL import Image

from pricing_ingest.config import IngestConfig
from pricing_ingest.errors import (
    EmptyOrMalformedInput,
    EngineInitializationFailure,
    FileTooLarge,
    UnsupportedFormat,
)
from pricing_ingest.models import UploadedFile
from pricing_ingest.readers.ocr import (
    OpticalTextRecognizer,
    TesseractEngine,
    text_from_words,
    thumbnail_data_uri,
    words_from_data,
)

if TYPE_CHECKING:
    from tests.conftest import FakeEngine

TESSERACT_DATA = {
    "text": ["", "Basic", "Plan", "$10", "Pro", "$20"],
    "conf": [-1, 90, 92, 88, 95, 95],
    "block_num": [1, 1, 1, 1, 1, 1],
    "par_num": [1, 1, 1, 1, 1, 1],
    "line_num": [0, 1, 1, 1, 2, 2],
    "left": [0, 10, 60, 300, 10, 300],
    "width": [0, 45, 40, 30, 30, 30],
    "height": [0, 20, 20, 20, 20, 20],
}


class TestWordsFromData:
    """Tests for words_from_data()."""

    def test_skips_empty_and_unscored_boxes(self) -> None:
        words = words_from_data(TESSERACT_DATA)

        assert [word["text"] for word in words] == ["Basic", "Plan", "$10", "Pro", "$20"]
        assert words[0]["line"] == (1, 1, 1)


class TestTextFromWords:
    """Tests for text_from_words()."""

    def test_wide_gaps_become_column_breaks(self) -> None:
        text = text_from_words(words_from_data(TESSERACT_DATA))

        assert text == "Basic Plan  $10\nPro  $20"

    def test_no_words(self) -> None:
        assert text_from_words([]) == ""


class TestTesseractEngine:
    """Tests for TesseractEngine."""

    @pytest.fixture(autouse=True)
    def _restore_cmd(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(pytesseract.pytesseract, "tesseract_cmd", "tesseract")

    def test_missing_binary_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            pytesseract,
            "get_tesseract_version",
            MagicMock(side_effect=pytesseract.TesseractNotFoundError()),
        )

        with pytest.raises(EngineInitializationFailure, match="TESSERACT_CMD"):
            TesseractEngine()

    def test_explicit_binary_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(pytesseract, "get_tesseract_version", MagicMock(return_value="5.3.0"))

        engine = TesseractEngine("/opt/tesseract/bin/tesseract")

        assert pytesseract.pytesseract.tesseract_cmd == "/opt/tesseract/bin/tesseract"
        assert engine.version == "5.3.0"

    def test_recognize(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(pytesseract, "get_tesseract_version", MagicMock(return_value="5.3.0"))
        image_to_data = MagicMock(return_value=TESSERACT_DATA)
        monkeypatch.setattr(pytesseract, "image_to_data", image_to_data)
        progress: list[int] = []
        image = Image.new("RGB", (400, 60), "white")

        extracted = TesseractEngine().recognize(
            image, lang="deu", on_progress=progress.append
        )

        assert extracted.text == "Basic Plan  $10\nPro  $20"
        assert extracted.confidence == pytest.approx(92.0)
        assert len(extracted.words) == 5
        assert progress == [0, 80, 100]
        assert image_to_data.call_args.kwargs["lang"] == "deu"

    def test_engine_error_is_wrapped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(pytesseract, "get_tesseract_version", MagicMock(return_value="5.3.0"))
        monkeypatch.setattr(
            pytesseract,
            "image_to_data",
            MagicMock(side_effect=pytesseract.TesseractError(1, "bad image")),
        )

        with pytest.raises(EmptyOrMalformedInput, match="bad image"):
            TesseractEngine().recognize(Image.new("RGB", (10, 10)), lang="eng")


class TestOpticalTextRecognizer:
    """Tests for OpticalTextRecognizer."""

    def test_recognize_uses_engine(
        self, png_file: UploadedFile, fake_engine: FakeEngine, ingest_config: IngestConfig
    ) -> None:
        recognizer = OpticalTextRecognizer(lambda config: fake_engine, config=ingest_config)
        progress: list[int] = []

        extracted = recognizer.recognize(png_file, progress.append)

        assert extracted.text == fake_engine.text
        assert fake_engine.calls == ["eng"]
        assert progress == [0, 50, 100]

    def test_engine_created_lazily_once(
        self, png_file: UploadedFile, fake_engine: FakeEngine
    ) -> None:
        factory = MagicMock(return_value=fake_engine)
        recognizer = OpticalTextRecognizer(factory)

        factory.assert_not_called()
        recognizer.recognize(png_file)
        recognizer.recognize(png_file)

        factory.assert_called_once()

    def test_engine_failure_surfaces_on_use(self, png_file: UploadedFile) -> None:
        factory = MagicMock(side_effect=EngineInitializationFailure("no engine"))
        recognizer = OpticalTextRecognizer(factory)

        with pytest.raises(EngineInitializationFailure):
            recognizer.recognize(png_file)

    def test_rejects_non_image(self) -> None:
        file = UploadedFile(name="notes.txt", content_type="text/plain", data=b"hi")

        with pytest.raises(UnsupportedFormat, match="text/plain"):
            OpticalTextRecognizer().load_image(file)

    def test_rejects_empty_file(self) -> None:
        file = UploadedFile(name="blank.png", content_type="image/png", data=b"")

        with pytest.raises(EmptyOrMalformedInput, match="empty"):
            OpticalTextRecognizer().load_image(file)

    def test_rejects_large_file(self, png_file: UploadedFile) -> None:
        recognizer = OpticalTextRecognizer(config=IngestConfig(max_image_bytes=16))

        with pytest.raises(FileTooLarge):
            recognizer.load_image(png_file)

    def test_rejects_corrupt_image(self) -> None:
        file = UploadedFile(
            name="scan.png", content_type="image/png", data=b"\x89PNG\r\n\x1a\ngarbage"
        )

        with pytest.raises(EmptyOrMalformedInput, match="corrupted"):
            OpticalTextRecognizer().load_image(file)

    def test_loads_valid_image(self, png_file: UploadedFile) -> None:
        image = OpticalTextRecognizer().load_image(png_file)

        assert image.size == (64, 32)


class TestThumbnailDataUri:
    """Tests for thumbnail_data_uri()."""

    def test_jpeg_data_uri(self) -> None:
        buffer = BytesIO()
        Image.new("RGBA", (1000, 500), (255, 0, 0, 128)).save(buffer, format="PNG")

        uri = thumbnail_data_uri(buffer.getvalue())

        prefix = "data:image/jpeg;base64,"
        assert uri.startswith(prefix)
        with Image.open(BytesIO(base64.b64decode(uri[len(prefix):]))) as thumb:
            assert thumb.format == "JPEG"
            assert thumb.size == (320, 160)
