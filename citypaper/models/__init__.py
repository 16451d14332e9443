"""Data models for wallpaper rendering."""

from .batch import BatchLocation, BatchSpec
from .export import (
    DEFAULT_FILE_NAME_TEMPLATE,
    BatchReport,
    CaptureItem,
    ExportJob,
    ExportResult,
    build_file_name,
)
from .location import Location
from .overlay import FrameSettings, OverlaySettings
from .params import WallpaperParams
from .place import (
    FALLBACK_NAME,
    RESOLVING_NAME,
    AdminGranularity,
    PlaceLabel,
    PlaceResult,
)
from .style import MAP_STYLES, MapMode, StyleSpec, get_style
from .typography import LabelLayout, LabelTier
from .viewport import (
    MAX_ZOOM,
    MIN_ZOOM,
    AspectRatio,
    ViewportSpec,
    clamp_zoom,
)

__all__ = [
    "BatchLocation",
    "BatchSpec",
    "DEFAULT_FILE_NAME_TEMPLATE",
    "BatchReport",
    "CaptureItem",
    "ExportJob",
    "ExportResult",
    "build_file_name",
    "Location",
    "FrameSettings",
    "OverlaySettings",
    "LabelLayout",
    "LabelTier",
    "WallpaperParams",
    "FALLBACK_NAME",
    "RESOLVING_NAME",
    "AdminGranularity",
    "PlaceLabel",
    "PlaceResult",
    "MAP_STYLES",
    "MapMode",
    "StyleSpec",
    "get_style",
    "MAX_ZOOM",
    "MIN_ZOOM",
    "AspectRatio",
    "ViewportSpec",
    "clamp_zoom",
]
