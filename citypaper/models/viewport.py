"""Viewport (zoom + aspect ratio) models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Practical zoom range of the wallpaper view
MIN_ZOOM = 10.0
MAX_ZOOM = 18.0
ZOOM_STEP = 0.5
DEFAULT_ZOOM = 13.0

# Logical width of the capture target (the phone screen in the preview)
CAPTURE_WIDTH = 340


def clamp_zoom(zoom: float) -> float:
    """Clamp a zoom request into [MIN_ZOOM, MAX_ZOOM]. NaN maps to the default."""
    if zoom != zoom:
        return DEFAULT_ZOOM
    return max(MIN_ZOOM, min(MAX_ZOOM, float(zoom)))


class AspectRatio(str, Enum):
    """Supported wallpaper aspect ratios (width:height)."""

    PHONE_9_19 = "9:19"
    PHONE_9_20 = "9:20"
    PHONE_9_16 = "9:16"
    TABLET_3_4 = "3:4"
    SQUARE = "1:1"

    @property
    def parts(self) -> tuple[int, int]:
        w, h = self.value.split(":")
        return int(w), int(h)

    @property
    def file_token(self) -> str:
        """File-name safe form, e.g. ``9x19``."""
        return self.value.replace(":", "x")

    def capture_size(self, width: int = CAPTURE_WIDTH) -> tuple[int, int]:
        """Logical (width, height) of the capture target."""
        w, h = self.parts
        return width, round(width * h / w)

    @classmethod
    def parse(cls, value: str) -> "AspectRatio":
        """Accept ``9:19``, ``9x19`` or ``9/19``."""
        normalized = str(value).strip().replace("x", ":").replace("/", ":")
        return cls(normalized)


class ViewportSpec(BaseModel):
    """Zoom and aspect ratio of the wallpaper.

    Zoom is stored as requested; the engine adapter clamps it.
    """

    model_config = ConfigDict(frozen=True)

    zoom_level: float = Field(default=DEFAULT_ZOOM, description="Requested zoom level")
    aspect_ratio: AspectRatio = Field(default=AspectRatio.PHONE_9_19)

    @property
    def capture_size(self) -> tuple[int, int]:
        return self.aspect_ratio.capture_size()
