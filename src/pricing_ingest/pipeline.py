"""Sequential batch orchestration with per-file state tracking."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from pricing_ingest.config import IngestConfig
from pricing_ingest.errors import IngestError, TimedOut
from pricing_ingest.extraction import DocumentExtractor
from pricing_ingest.models import FileState, FileStatus
from pricing_ingest.readers.camera import CAPTURE_FILENAME, capture_image

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from pricing_ingest.models import BillingItem, ExtractionResult, UploadedFile

    ProgressHandler = Callable[[str, int], None]
    CompleteHandler = Callable[[str, ExtractionResult], None]
    FailedHandler = Callable[[str, IngestError], None]

logger = logging.getLogger(__name__)


def new_file_id() -> str:
    """Generate an identifier for a tracked file."""
    return f"file_{uuid4().hex[:12]}"


class IngestPipeline:
    """Process files one after another, reporting progress per file.

    Files run sequentially, so results keep submission order. A failure in
    one file is recorded on its state and the batch carries on.
    """

    def __init__(
        self,
        extractor: DocumentExtractor | None = None,
        *,
        config: IngestConfig | None = None,
        on_progress: ProgressHandler | None = None,
        on_complete: CompleteHandler | None = None,
        on_failed: FailedHandler | None = None,
    ) -> None:
        self.config = config or (extractor.config if extractor else IngestConfig())
        self.extractor = extractor or DocumentExtractor(config=self.config)
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._on_failed = on_failed

    async def process(self, files: Sequence[UploadedFile]) -> list[FileState]:
        """Extract every file in order and return their final states."""
        states = [FileState(file_id=new_file_id(), name=file.name) for file in files]
        for file, state in zip(files, states, strict=True):
            await self._process_one(file, state)
        return states

    async def process_capture(
        self,
        device: int | None = None,
        *,
        capture_factory: Callable[[int], Any] | None = None,
    ) -> FileState:
        """Capture one camera frame and run it through the OCR path."""
        state = FileState(file_id=new_file_id(), name=CAPTURE_FILENAME)
        if device is None:
            device = self.config.camera_device
        try:
            file = await capture_image(device, capture_factory=capture_factory)
        except IngestError as exc:
            self._fail(state, exc)
            return state
        await self._process_one(file, state)
        return state

    async def _process_one(self, file: UploadedFile, state: FileState) -> None:
        state.status = FileStatus.PROCESSING
        logger.info("Processing %s (%s)", file.name, state.file_id)

        def report(percent: int) -> None:
            self._advance(state, percent)

        try:
            result = await self._extract_with_timeout(file, report)
        except IngestError as exc:
            self._fail(state, exc)
        except Exception as exc:
            logger.exception("Unexpected error while processing %s", file.name)
            error = IngestError(
                f"Unexpected error while processing the file ({type(exc).__name__})",
                filename=file.name,
            )
            self._fail(state, error)
        else:
            state.result = result
            self._advance(state, 100)
            state.status = FileStatus.COMPLETED
            if self._on_complete is not None:
                self._on_complete(state.file_id, result)

    async def _extract_with_timeout(
        self, file: UploadedFile, report: Callable[[int], None]
    ) -> ExtractionResult:
        timeout = self.config.file_timeout
        extraction = self.extractor.extract(file, on_progress=report)
        if not timeout:
            return await extraction
        try:
            return await asyncio.wait_for(extraction, timeout)
        except TimeoutError:
            raise TimedOut(timeout, filename=file.name) from None

    def _advance(self, state: FileState, percent: int) -> None:
        """Move progress forward; late or out-of-order reports are dropped."""
        if state.is_terminal or percent <= state.progress:
            return
        state.progress = min(percent, 100)
        if self._on_progress is not None:
            self._on_progress(state.file_id, state.progress)

    def _fail(self, state: FileState, error: IngestError) -> None:
        if error.filename is None:
            error.filename = state.name
        logger.warning("Failed to process %s: %s", state.name, error.message)
        state.status = FileStatus.FAILED
        state.error = str(error)
        if self._on_failed is not None:
            self._on_failed(state.file_id, error)


def collect_items(states: Sequence[FileState]) -> list[BillingItem]:
    """Gather the items of every completed file, in submission order."""
    items: list[BillingItem] = []
    for state in states:
        if state.status is FileStatus.COMPLETED and state.result is not None:
            items.extend(state.result.items)
    return items
