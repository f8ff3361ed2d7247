"""Configuration via environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class IngestConfig:
    """Limits and engine settings for the ingestion pipeline."""

    max_image_bytes: int = 10 * 1024 * 1024
    ocr_lang: str = "eng"
    file_timeout: float | None = 120.0
    camera_device: int = 0
    min_line_length: int = 3
    tesseract_cmd: str | None = None


def _int_from_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ValueError(msg) from None
    if value < minimum:
        msg = f"{name} must be >= {minimum}, got {value}"
        raise ValueError(msg)
    return value


def get_ingest_config() -> IngestConfig:
    """Build the pipeline configuration from environment variables.

    Optional: PRICING_INGEST_MAX_IMAGE_MB (default 10),
    PRICING_INGEST_OCR_LANG (default eng), PRICING_INGEST_FILE_TIMEOUT
    (seconds, default 120, 0 disables), PRICING_INGEST_CAMERA_DEVICE
    (default 0), PRICING_INGEST_MIN_LINE_LENGTH (default 3), TESSERACT_CMD
    """
    max_image_mb = _int_from_env("PRICING_INGEST_MAX_IMAGE_MB", 10, minimum=1)
    timeout = _int_from_env("PRICING_INGEST_FILE_TIMEOUT", 120)

    return IngestConfig(
        max_image_bytes=max_image_mb * 1024 * 1024,
        ocr_lang=os.environ.get("PRICING_INGEST_OCR_LANG", "eng"),
        file_timeout=float(timeout) if timeout else None,
        camera_device=_int_from_env("PRICING_INGEST_CAMERA_DEVICE", 0),
        min_line_length=_int_from_env("PRICING_INGEST_MIN_LINE_LENGTH", 3, minimum=1),
        tesseract_cmd=get_tesseract_cmd(),
    )


def get_tesseract_cmd() -> str | None:
    """Return the TESSERACT_CMD override, or None to use the binary on PATH."""
    return os.environ.get("TESSERACT_CMD") or None
