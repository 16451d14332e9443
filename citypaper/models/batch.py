"""Batch export configuration (YAML)."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .export import DEFAULT_FILE_NAME_TEMPLATE, CaptureItem
from .location import Location
from .place import DEFAULT_ACCENT_COLOR, AdminGranularity, PlaceLabel
from .style import MapMode, get_style
from .viewport import DEFAULT_ZOOM, AspectRatio, ViewportSpec


class BatchLocation(BaseModel):
    """One entry of a batch. Without a name, the name is reverse geocoded."""

    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False, alias="lat")
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False, alias="lng")
    name: Optional[str] = None
    country: str = ""
    description: str = ""
    accent_color: Optional[str] = None
    style: Optional[MapMode] = None
    zoom: Optional[float] = None

    model_config = {"populate_by_name": True}

    @property
    def location(self) -> Location:
        return Location(latitude=self.latitude, longitude=self.longitude)

    def to_label(self, default_accent: str = DEFAULT_ACCENT_COLOR) -> PlaceLabel:
        fields = {
            "country": self.country,
            "description": self.description,
            "accent_color": self.accent_color or default_accent,
        }
        if self.name:
            fields["display_name"] = self.name
        return PlaceLabel(**fields)


class BatchSpec(BaseModel):
    """A list of locations exported back-to-back with shared settings."""

    style: MapMode = MapMode.DARK
    zoom: float = DEFAULT_ZOOM
    aspect_ratio: AspectRatio = AspectRatio.PHONE_9_19
    granularity: AdminGranularity = AdminGranularity.CITY
    show_labels: bool = True
    accent_color: str = DEFAULT_ACCENT_COLOR
    file_name_template: str = DEFAULT_FILE_NAME_TEMPLATE
    locations: list[BatchLocation] = Field(default_factory=list)

    @field_validator("aspect_ratio", mode="before")
    @classmethod
    def _parse_ratio(cls, value):
        # YAML 1.1 reads an unquoted 9:19 as the base-60 integer 559
        if isinstance(value, int) and not isinstance(value, bool):
            value = f"{value // 60}:{value % 60}"
        if isinstance(value, str):
            return AspectRatio.parse(value)
        return value

    @classmethod
    def from_yaml(cls, path: Path) -> "BatchSpec":
        """Load a batch from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path) -> None:
        """Save the batch to a YAML file."""
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def viewport_for(self, entry: BatchLocation) -> ViewportSpec:
        zoom = entry.zoom if entry.zoom is not None else self.zoom
        return ViewportSpec(zoom_level=zoom, aspect_ratio=self.aspect_ratio)

    def to_items(self) -> list[CaptureItem]:
        """One capture item per location, entry settings overriding the shared ones."""
        return [
            CaptureItem(
                location=entry.location,
                style=get_style(entry.style or self.style),
                viewport=self.viewport_for(entry),
                label=entry.to_label(self.accent_color),
                show_labels=self.show_labels,
                resolve_name=not entry.name,
            )
            for entry in self.locations
        ]
