"""Overlay and device-frame settings."""

from pydantic import BaseModel, Field


class OverlaySettings(BaseModel):
    """Look of the layers drawn over the map tiles."""

    grayscale: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Fraction of desaturation applied to the tiles",
    )
    contrast: float = Field(
        default=1.1,
        ge=0.5,
        le=2.0,
        description="Contrast multiplier applied to the tiles",
    )
    vignette_top_alpha: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Black overlay opacity at the top edge",
    )
    vignette_bottom_alpha: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Black overlay opacity at the bottom edge",
    )


class FrameSettings(BaseModel):
    """Decorative device frame shown around the on-screen preview only."""

    border_width: int = Field(default=8, ge=0, description="Frame thickness (logical px)")
    border_color: str = Field(default="#18181b", description="Frame color (hex)")
    ring_color: str = Field(default="#27272a", description="Hairline ring color (hex)")
    outer_radius: int = Field(default=40, ge=0, description="Outer corner radius (logical px)")
    screen_radius: int = Field(default=32, ge=0, description="Screen corner radius (logical px)")
    grid_spacing: int = Field(default=24, ge=4, description="Dot grid spacing (logical px)")
    grid_opacity: float = Field(default=0.03, ge=0.0, le=1.0, description="Dot grid opacity")
    glare_opacity: float = Field(default=0.05, ge=0.0, le=1.0, description="Screen glare opacity")
