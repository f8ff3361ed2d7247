"""Single-frame camera capture feeding the OCR path."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any, ClassVar

import cv2

from pricing_ingest.errors import DeviceAccessDenied, EmptyOrMalformedInput
from pricing_ingest.models import UploadedFile

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

logger = logging.getLogger(__name__)

CAPTURE_FILENAME = "camera-capture.jpg"
JPEG_QUALITY = 80


class CameraSession:
    """Exclusive handle on a capture device.

    Only one session is open per process. Opening a session releases any
    session that is still holding a device. Use as an async context
    manager so the device is released on every exit path.
    """

    _active: ClassVar[CameraSession | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        device: int = 0,
        *,
        capture_factory: Callable[[int], Any] | None = None,
    ) -> None:
        self.device = device
        self._capture_factory = capture_factory or cv2.VideoCapture
        self._capture: Any = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> None:
        """Acquire the device, releasing any other active session first."""
        with CameraSession._lock:
            previous = CameraSession._active
            if previous is not None and previous is not self:
                logger.info("Releasing camera %d for a new session", previous.device)
                previous.release()

            capture = self._capture_factory(self.device)
            if not capture.isOpened():
                capture.release()
                msg = f"Unable to access camera {self.device}; check that it is connected and permitted"
                raise DeviceAccessDenied(msg)

            self._capture = capture
            CameraSession._active = self

    def capture_frame(self) -> bytes:
        """Grab one frame and return it JPEG-encoded."""
        if self._capture is None:
            msg = "Camera session is not open"
            raise DeviceAccessDenied(msg)

        ok, frame = self._capture.read()
        if not ok or frame is None:
            msg = f"Camera {self.device} returned no frame"
            raise DeviceAccessDenied(msg)

        encoded, buffer = cv2.imencode(
            ".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, JPEG_QUALITY]
        )
        if not encoded:
            msg = "Failed to encode captured frame"
            raise EmptyOrMalformedInput(msg, filename=CAPTURE_FILENAME)
        return bytes(buffer.tobytes())

    def release(self) -> None:
        """Stop the device. Safe to call more than once."""
        capture, self._capture = self._capture, None
        if CameraSession._active is self:
            CameraSession._active = None
        if capture is None:
            return
        try:
            capture.release()
        except Exception:
            logger.debug("Error releasing camera %d", self.device, exc_info=True)

    async def capture(self) -> UploadedFile:
        """Capture one frame as an uploaded JPEG file."""
        data = await asyncio.to_thread(self.capture_frame)
        return UploadedFile(name=CAPTURE_FILENAME, content_type="image/jpeg", data=data)

    async def __aenter__(self) -> CameraSession:
        await asyncio.to_thread(self.open)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


async def capture_image(
    device: int = 0, *, capture_factory: Callable[[int], Any] | None = None
) -> UploadedFile:
    """Open the camera, capture a single frame and release the device."""
    async with CameraSession(device, capture_factory=capture_factory) as session:
        return await session.capture()
