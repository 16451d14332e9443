"""Wallpaper rendering services."""

from .surface_handle import SurfaceHandle
from .tile_engine import TileFetcher
from .engine_adapter import TileEngineAdapter, load_bundled_engine
from .overlay_service import OverlayService
from .typography_service import LabelRenderer
from .surface import CaptureTarget, RenderSurface, SurfaceState, create_surface
from .geocoding_service import AdminNameResolver, NameSlot, PlaceNameTracker, pick_admin_name
from .capture_service import CapturePipeline
from .search_service import PlaceSearchService

__all__ = [
    "SurfaceHandle",
    "TileFetcher",
    "TileEngineAdapter",
    "load_bundled_engine",
    "OverlayService",
    "LabelRenderer",
    "CaptureTarget",
    "RenderSurface",
    "SurfaceState",
    "create_surface",
    "AdminNameResolver",
    "NameSlot",
    "PlaceNameTracker",
    "pick_admin_name",
    "CapturePipeline",
    "PlaceSearchService",
]
