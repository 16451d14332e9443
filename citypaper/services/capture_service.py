"""Capture & export pipeline.

Turns a RenderSurface into PNG files. The surface's tiles arrive
asynchronously and there is no reliable "everything is painted" signal, so
each capture first waits a fixed settle delay counted from the surface's
last mutation. The delay is a heuristic: on a slow network some tiles may
still be missing and are exported as background.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, Union

from ..errors import CaptureFailed, ExportInProgress
from ..models.export import (
    DEFAULT_FILE_NAME_TEMPLATE,
    BatchReport,
    CaptureItem,
    ExportJob,
    ExportResult,
)
from ..models.place import RESOLVING_NAME, AdminGranularity
from ..utils.image_utils import to_png_bytes, write_bytes
from .geocoding_service import PlaceNameTracker
from .surface import RenderSurface
from .tile_engine import SecurityError

logger = logging.getLogger(__name__)

# Seconds between the last surface change and the capture
DEFAULT_SETTLE_DELAY = 1.5

# Device pixels per logical pixel of the capture target
EXPORT_PIXEL_RATIO = 3

ProgressCallback = Callable[[int, int, str], None]


class CapturePipeline:
    """Exports render surfaces one capture at a time."""

    def __init__(
        self,
        output_dir: Optional[Union[str, Path]] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        pixel_ratio: float = EXPORT_PIXEL_RATIO,
        file_name_template: str = DEFAULT_FILE_NAME_TEMPLATE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            output_dir: Where PNG files are written; None keeps the bytes only
            settle_delay: Wait after the last surface change (heuristic)
            pixel_ratio: Oversampling factor of the exported raster
            file_name_template: Template with ``{name}``, ``{style}`` and ``{ratio}``
            sleep: Awaitable sleep, replaceable in tests
        """
        if settle_delay < 0:
            raise ValueError("settle_delay must not be negative")
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.settle_delay = settle_delay
        self.pixel_ratio = pixel_ratio
        self.file_name_template = file_name_template
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Concurrency guard
    # ------------------------------------------------------------------

    @staticmethod
    def claim(surface: RenderSurface) -> "ExportClaim":
        """Take the surface's export guard now, ahead of the export itself.

        Pass the claim to ``capture_one`` or ``capture_batch``; they release it
        when they finish. Callers that end up not exporting must ``release()``.

        Raises:
            ExportInProgress: another export holds the surface
        """
        if surface.export_in_progress:
            raise ExportInProgress("An export is already running on this surface")
        surface.export_in_progress = True
        return ExportClaim(surface)

    def _take(self, surface: RenderSurface, claim: Optional["ExportClaim"]) -> "ExportClaim":
        if claim is None:
            return self.claim(surface)
        if claim.surface is not surface or not claim.active:
            raise ValueError("Claim does not hold this surface")
        return claim

    # ------------------------------------------------------------------
    # Single capture
    # ------------------------------------------------------------------

    async def settle(self, surface: RenderSurface) -> float:
        """Wait until ``settle_delay`` has passed since the last mutation.

        Returns:
            Seconds actually waited.
        """
        if self.settle_delay <= 0:
            return 0.0
        remaining = self.settle_delay
        if surface.last_mutation is not None:
            elapsed = asyncio.get_running_loop().time() - surface.last_mutation
            remaining = self.settle_delay - max(0.0, elapsed)
        if remaining > 0:
            await self._sleep(remaining)
            return remaining
        return 0.0

    async def capture_one(
        self,
        surface: RenderSurface,
        file_name: Optional[str] = None,
        claim: Optional["ExportClaim"] = None,
    ) -> bytes:
        """Export the surface's current state.

        Args:
            surface: An open render surface
            file_name: Explicit file name; derived from place, style and
                ratio when omitted
            claim: Guard taken earlier with ``claim()``

        Returns:
            The PNG bytes (also written to ``output_dir`` when set).

        Raises:
            ExportInProgress: another export is running on this surface
            CaptureFailed: rasterization or writing failed
            EngineError: the surface is broken
        """
        claim = self._take(surface, claim)
        try:
            job = ExportJob(
                target=surface,
                file_name_template=self.file_name_template,
                file_name=file_name,
            )
            data, result = await self._run(job)
        finally:
            claim.release()
        logger.info("Exported %s (%dx%d)", result.file_name, *result.size)
        return data

    async def _run(self, job: ExportJob) -> tuple[bytes, ExportResult]:
        surface = job.target
        surface.raise_if_broken()
        await self.settle(surface)

        file_name = job.resolve_file_name()
        try:
            image = surface.capture_target.rasterize(self.pixel_ratio, corner_radius=0)
            data = to_png_bytes(image)
        except (SecurityError, OSError, ValueError) as e:
            raise CaptureFailed(file_name, str(e)) from e

        path = None
        if self.output_dir is not None:
            try:
                path = write_bytes(data, self.output_dir / file_name)
            except OSError as e:
                raise CaptureFailed(file_name, str(e)) from e

        return data, ExportResult(
            file_name=file_name,
            sequence_index=job.sequence_index,
            label=surface.state.label.display_name,
            path=path,
            size=image.size,
        )

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def capture_batch(
        self,
        surface: RenderSurface,
        items: Sequence[CaptureItem],
        on_progress: Optional[ProgressCallback] = None,
        name_tracker: Optional[PlaceNameTracker] = None,
        granularity: AdminGranularity = AdminGranularity.CITY,
        claim: Optional["ExportClaim"] = None,
    ) -> BatchReport:
        """Export items one after another on a shared surface.

        Each item is rendered, named, settled and captured before the next
        one starts. A failed capture is logged and recorded; the batch moves
        on. Engine errors end the batch.

        Args:
            surface: An open render surface
            items: What to export, in order
            on_progress: Called with ``(index, total, label)`` (1-based) as
                each item starts
            name_tracker: Resolves names for items flagged ``resolve_name``
            granularity: Administrative level of resolved names
            claim: Guard taken earlier with ``claim()``

        Returns:
            Per-item results.
        """
        claim = self._take(surface, claim)
        total = len(items)
        report = BatchReport(total=total)
        try:
            for index, item in enumerate(items, start=1):
                label = item.label
                needs_name = item.resolve_name and name_tracker is not None
                if needs_name:
                    label = label.with_name(RESOLVING_NAME)
                await surface.render(item.location, item.style, item.viewport, label, item.show_labels)
                if needs_name:
                    await name_tracker.refresh(item.location, granularity)

                current_label = surface.state.label.display_name
                if on_progress:
                    on_progress(index, total, current_label)

                job = ExportJob(
                    target=surface,
                    file_name_template=self.file_name_template,
                    sequence_index=index,
                    sequence_total=total,
                )
                try:
                    _, result = await self._run(job)
                except CaptureFailed as e:
                    logger.warning("Batch item %d/%d failed: %s", index, total, e)
                    result = ExportResult(
                        file_name=e.file_name,
                        sequence_index=index,
                        label=current_label,
                        error=str(e),
                    )
                else:
                    logger.info("Exported %d/%d: %s", index, total, result.file_name)
                report.results.append(result)
        finally:
            claim.release()

        logger.info("Batch finished: %d exported, %d failed", len(report.succeeded), len(report.failed))
        return report


class ExportClaim:
    """A held export guard on one surface."""

    def __init__(self, surface: RenderSurface):
        self.surface = surface
        self.active = True

    def release(self) -> None:
        if self.active:
            self.active = False
            self.surface.export_in_progress = False
