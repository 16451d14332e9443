"""Place label and search result models."""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .location import Location

# Shown while a reverse-geocoding request is in flight
RESOLVING_NAME = "…"

# Used whenever a name cannot be resolved
FALLBACK_NAME = "Custom Location"

DEFAULT_ACCENT_COLOR = "#ff0055"

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class AdminGranularity(str, Enum):
    """Administrative level of a resolved place name."""

    PROVINCE = "province"
    CITY = "city"
    DISTRICT = "district"


def normalize_hex_color(value: str) -> str:
    """Validate a CSS hex color and expand ``#abc`` to ``#aabbcc``."""
    value = value.strip()
    if not value.startswith("#"):
        value = "#" + value
    if not _HEX_COLOR.match(value):
        raise ValueError(f"Not a hex color: {value!r}")
    if len(value) == 4:
        value = "#" + "".join(c * 2 for c in value[1:])
    return value.lower()


class PlaceLabel(BaseModel):
    """Text shown on the wallpaper. Owned by the caller, read by the surface."""

    model_config = ConfigDict(frozen=True)

    display_name: str = Field(default=FALLBACK_NAME, description="Main title")
    country: str = Field(default="", description="Country or region line")
    description: str = Field(default="", description="Short poetic description")
    accent_color: str = Field(default=DEFAULT_ACCENT_COLOR, description="Accent bar color (hex)")

    @field_validator("accent_color")
    @classmethod
    def _check_color(cls, value: str) -> str:
        return normalize_hex_color(value)

    @property
    def is_resolving(self) -> bool:
        return self.display_name == RESOLVING_NAME

    def with_name(self, name: str) -> "PlaceLabel":
        """Return a copy with a different display name."""
        return self.model_copy(update={"display_name": name})


class PlaceResult(BaseModel):
    """Structured answer of the free-text place search."""

    name: str = "Unknown"
    country: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    description: str = ""
    accent_color: str = "#ffffff"
    source_urls: Optional[list[str]] = None

    def to_location(self) -> Location:
        return Location.parse(self.latitude, self.longitude)

    def to_label(self) -> PlaceLabel:
        try:
            accent = normalize_hex_color(self.accent_color)
        except ValueError:
            accent = DEFAULT_ACCENT_COLOR
        return PlaceLabel(
            display_name=self.name,
            country=self.country,
            description=self.description,
            accent_color=accent,
        )
