"""API request/response models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..models.batch import BatchSpec
from ..models.location import Location
from ..models.place import DEFAULT_ACCENT_COLOR, AdminGranularity, PlaceLabel, PlaceResult
from ..models.style import MapMode, StyleSpec
from ..models.viewport import DEFAULT_ZOOM, AspectRatio, ViewportSpec


# =============================================================================
# Style Schemas
# =============================================================================


class StyleInfo(BaseModel):
    """A catalog style as shown to clients."""

    id: MapMode
    name: str
    text_color: str
    background_color: str
    attribution: str

    @classmethod
    def from_style(cls, style: StyleSpec) -> "StyleInfo":
        return cls(
            id=style.id,
            name=style.name,
            text_color=style.text_color,
            background_color=style.background_color,
            attribution=style.attribution,
        )


# =============================================================================
# Export Schemas
# =============================================================================


class ExportRequest(BaseModel):
    """Request to render and export one wallpaper."""

    latitude: float = Field(..., description="Latitude in degrees")
    longitude: float = Field(..., description="Longitude in degrees")
    zoom: float = Field(default=DEFAULT_ZOOM, description="Zoom level (clamped to 10-18)")
    style: MapMode = MapMode.DARK
    aspect_ratio: AspectRatio = AspectRatio.PHONE_9_19
    name: Optional[str] = Field(default=None, description="Display name; reverse geocoded when omitted")
    country: str = ""
    description: str = ""
    accent_color: str = DEFAULT_ACCENT_COLOR
    show_labels: bool = True
    granularity: AdminGranularity = AdminGranularity.CITY

    def to_location(self) -> Location:
        return Location.parse(self.latitude, self.longitude)

    def to_viewport(self) -> ViewportSpec:
        return ViewportSpec(zoom_level=self.zoom, aspect_ratio=self.aspect_ratio)

    def to_label(self) -> PlaceLabel:
        fields = {
            "country": self.country,
            "description": self.description,
            "accent_color": self.accent_color,
        }
        if self.name:
            fields["display_name"] = self.name
        return PlaceLabel(**fields)


class ExportFailure(BaseModel):
    """Body of a failed single export."""

    detail: str
    retry: bool = True


class BatchRequest(BatchSpec):
    """A batch export submitted over HTTP (same shape as the YAML file)."""


# =============================================================================
# Task Schemas
# =============================================================================


class TaskStatus(str, Enum):
    """Status of a background task."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BatchProgress(BaseModel):
    """Progress of a running batch."""

    current_index: int = 0
    total: int = 0
    current_label: str = ""


class TaskResponse(BaseModel):
    """Status of a background task."""

    task_id: str
    task_type: str
    status: TaskStatus
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: Optional[BatchProgress] = None
    error: Optional[str] = None
    result: Optional[Any] = None


# =============================================================================
# Place Schemas
# =============================================================================


class PlaceNameResponse(BaseModel):
    """Resolved administrative name of a point."""

    name: str
    latitude: float
    longitude: float
    granularity: AdminGranularity


class SearchRequest(BaseModel):
    """Free-text place search."""

    query: str = Field(..., min_length=1, description="City or landmark name")


class SearchResponse(PlaceResult):
    """Place search result plus the query string to render it."""

    params: str = ""
