"""Wallpaper export endpoints."""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse, JSONResponse

from ...config import get_config
from ...errors import EngineError, ExportInProgress, InvalidCoordinate
from ...models.export import CaptureItem
from ...models.style import get_style
from ...services.capture_service import CapturePipeline
from ...services.geocoding_service import AdminNameResolver, PlaceNameTracker
from ..schemas import BatchRequest, ExportFailure, ExportRequest, TaskResponse
from ..session import surface_session
from ..tasks import task_manager

logger = logging.getLogger(__name__)

router = APIRouter()


def get_pipeline() -> CapturePipeline:
    config = get_config()
    return CapturePipeline(
        output_dir=config.output_dir,
        settle_delay=config.settle_delay,
        pixel_ratio=config.pixel_ratio,
    )


def get_resolver() -> AdminNameResolver:
    config = get_config()
    return AdminNameResolver(
        base_url=config.geocoder_url,
        locale=config.geocoder_locale,
        detail_level=config.geocoder_detail_level,
        user_agent=config.user_agent,
    )


async def _claim_surface(pipeline: CapturePipeline):
    """Open the shared surface and take its export guard before responding."""
    try:
        surface = await surface_session.get()
    except EngineError as e:
        raise HTTPException(status_code=503, detail=f"Tile engine unavailable: {e}")
    try:
        claim = pipeline.claim(surface)
    except ExportInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))
    return surface, claim


@router.post("/export", responses={409: {}, 422: {}, 500: {"model": ExportFailure}, 503: {}})
async def export_wallpaper(request: ExportRequest):
    """Render one wallpaper and return it as a PNG download."""
    try:
        item = CaptureItem(
            location=request.to_location(),
            style=get_style(request.style),
            viewport=request.to_viewport(),
            label=request.to_label(),
            show_labels=request.show_labels,
            resolve_name=not request.name,
        )
    except (InvalidCoordinate, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))

    pipeline = get_pipeline()
    surface, claim = await _claim_surface(pipeline)
    resolver = None
    try:
        resolver = get_resolver() if item.resolve_name else None
        tracker = PlaceNameTracker.for_surface(resolver, surface) if resolver else None
        # A one-item batch keeps the export guard held from render to capture
        report = await pipeline.capture_batch(
            surface, [item], name_tracker=tracker, granularity=request.granularity, claim=claim
        )
    except EngineError as e:
        raise HTTPException(status_code=503, detail=f"Tile engine failed: {e}")
    finally:
        claim.release()
        if resolver is not None:
            await resolver.aclose()

    result = report.results[0]
    if not result.ok:
        return JSONResponse(
            status_code=500,
            content=ExportFailure(detail=result.error).model_dump(),
        )

    return FileResponse(result.path, media_type="image/png", filename=result.file_name)


@router.post("/batch", response_model=TaskResponse, status_code=202, responses={409: {}, 503: {}})
async def start_batch(request: BatchRequest):
    """Start a background batch export. Poll ``/api/tasks/{id}`` for progress."""
    if not request.locations:
        raise HTTPException(status_code=422, detail="Batch has no locations")

    items = request.to_items()
    pipeline = get_pipeline()
    pipeline.file_name_template = request.file_name_template
    surface, claim = await _claim_surface(pipeline)

    async def run_batch(task_id: str):
        resolver = get_resolver() if any(i.resolve_name for i in items) else None
        tracker = PlaceNameTracker.for_surface(resolver, surface) if resolver else None
        try:
            report = await pipeline.capture_batch(
                surface,
                items,
                on_progress=lambda index, total, label: task_manager.update_progress(task_id, index, total, label),
                name_tracker=tracker,
                granularity=request.granularity,
                claim=claim,
            )
        finally:
            claim.release()
            if resolver is not None:
                await resolver.aclose()
        return {
            "total": report.total,
            "succeeded": [r.file_name for r in report.succeeded],
            "failed": [{"file_name": r.file_name, "error": r.error} for r in report.failed],
        }

    task_id = task_manager.generate_task_id()
    try:
        task_info = await task_manager.create_task("batch", run_batch(task_id), task_id=task_id)
    except BaseException:
        claim.release()
        raise
    logger.info("Started batch task %s with %d items", task_info.task_id, len(items))
    return task_info.to_response()
