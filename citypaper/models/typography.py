"""Label block layout models."""

from enum import Enum

from pydantic import BaseModel, Field


class LabelTier(str, Enum):
    """Text lines of the label block, top to bottom."""

    NAME = "name"
    COUNTRY = "country"
    COORDINATES = "coordinates"
    DESCRIPTION = "description"


# Font size per tier in logical px
FONT_SIZES = {
    LabelTier.NAME: 48,
    LabelTier.COUNTRY: 12,
    LabelTier.COORDINATES: 9,
    LabelTier.DESCRIPTION: 11,
}

# Letter spacing per tier as a fraction of the font size
TRACKING = {
    LabelTier.NAME: 0.1,
    LabelTier.COUNTRY: 0.5,
    LabelTier.COORDINATES: 0.1,
    LabelTier.DESCRIPTION: 0.05,
}

# Text opacity per tier
OPACITY = {
    LabelTier.NAME: 1.0,
    LabelTier.COUNTRY: 0.5,
    LabelTier.COORDINATES: 0.3,
    LabelTier.DESCRIPTION: 0.8,
}


class LabelLayout(BaseModel):
    """Fixed-height regions of the label block (logical px).

    Every region keeps its height whatever the text, so a missing or
    placeholder name never shifts the lines below it.
    """

    bottom_margin: int = Field(default=64, ge=0)
    side_padding: int = Field(default=32, ge=0)
    accent_bar_width: int = Field(default=48, ge=0)
    accent_bar_height: int = Field(default=2, ge=0)
    accent_gap: int = Field(default=20, ge=0)
    name_height: int = Field(default=48, ge=8)
    country_gap: int = Field(default=8, ge=0)
    country_height: int = Field(default=16, ge=4)
    coordinates_gap: int = Field(default=24, ge=0)
    coordinates_height: int = Field(default=14, ge=4)
    description_gap: int = Field(default=32, ge=0)
    description_padding: int = Field(default=16, ge=0)
    description_line_height: int = Field(default=18, ge=4)
    description_max_lines: int = Field(default=3, ge=1)
    description_width_ratio: float = Field(default=0.85, gt=0.0, le=1.0)
    min_name_size: int = Field(default=18, ge=6)

    @property
    def block_height(self) -> int:
        return (
            self.accent_bar_height
            + self.accent_gap
            + self.name_height
            + self.country_gap
            + self.country_height
            + self.coordinates_gap
            + self.coordinates_height
            + self.description_gap
            + 1
            + self.description_padding
            + self.description_line_height * self.description_max_lines
        )
