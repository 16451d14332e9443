"""Query-string form of the wallpaper inputs.

Mirrors what the web front end keeps in its URL so that a shared link can be
rendered from the command line or the API.
"""

from typing import Optional
from urllib.parse import parse_qs, urlencode

from pydantic import BaseModel, Field

from .location import Location
from .place import DEFAULT_ACCENT_COLOR, PlaceLabel, normalize_hex_color
from .style import DEFAULT_STYLE, MapMode
from .viewport import DEFAULT_ZOOM, AspectRatio, ViewportSpec


class WallpaperParams(BaseModel):
    """Initial inputs of a render, as persisted key/value pairs."""

    lat: float = 35.6762
    lng: float = 139.6503
    zoom: float = DEFAULT_ZOOM
    style: MapMode = DEFAULT_STYLE.id
    accent: str = DEFAULT_ACCENT_COLOR
    ratio: AspectRatio = AspectRatio.PHONE_9_19
    name: Optional[str] = Field(default=None, description="Explicit display name")

    @classmethod
    def from_query_string(cls, query: str) -> "WallpaperParams":
        """Parse ``lat=..&lng=..``; unknown keys are ignored, invalid values raise."""
        raw = parse_qs(query.lstrip("?"), keep_blank_values=False)
        data = {key: values[-1] for key, values in raw.items() if key in cls.model_fields}
        if "ratio" in data:
            data["ratio"] = AspectRatio.parse(data["ratio"])
        if "accent" in data:
            data["accent"] = normalize_hex_color(data["accent"])
        params = cls(**data)
        # Coordinates are validated here so bad links never reach a surface
        Location.parse(params.lat, params.lng)
        return params

    def to_query_string(self) -> str:
        data = {
            "lat": f"{self.lat:.6f}".rstrip("0").rstrip("."),
            "lng": f"{self.lng:.6f}".rstrip("0").rstrip("."),
            "zoom": f"{self.zoom:g}",
            "style": self.style.value,
            "accent": self.accent,
            "ratio": self.ratio.value,
        }
        if self.name:
            data["name"] = self.name
        return urlencode(data)

    @property
    def location(self) -> Location:
        return Location.parse(self.lat, self.lng)

    @property
    def viewport(self) -> ViewportSpec:
        return ViewportSpec(zoom_level=self.zoom, aspect_ratio=self.ratio)

    def apply_to(self, label: PlaceLabel) -> PlaceLabel:
        """Overlay the persisted name and accent color on a label."""
        update = {"accent_color": self.accent}
        if self.name:
            update["display_name"] = self.name
        return label.model_copy(update=update)
