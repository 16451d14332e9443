"""Map style catalog."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MapMode(str, Enum):
    """Identifier of a catalog style."""

    DARK = "dark"
    LIGHT = "light"
    SILVER = "silver"
    RETRO = "retro"


class StyleSpec(BaseModel):
    """A tile source plus the text/background colors that go with it."""

    model_config = ConfigDict(frozen=True)

    id: MapMode
    name: str
    tile_url_template: str = Field(..., description="XYZ template with {s} {z} {x} {y} {r}")
    attribution: str
    text_color: str
    background_color: str


MAP_STYLES: list[StyleSpec] = [
    StyleSpec(
        id=MapMode.DARK,
        name="Midnight Dark",
        tile_url_template="https://{s}.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}{r}.png",
        attribution="© OpenStreetMap © CARTO",
        text_color="#ffffff",
        background_color="#1a1a1a",
    ),
    StyleSpec(
        id=MapMode.LIGHT,
        name="Pure Light",
        tile_url_template="https://{s}.basemaps.cartocdn.com/light_all/{z}/{x}/{y}{r}.png",
        attribution="© OpenStreetMap © CARTO",
        text_color="#000000",
        background_color="#ffffff",
    ),
    StyleSpec(
        id=MapMode.SILVER,
        name="Clean Silver",
        tile_url_template="https://{s}.basemaps.cartocdn.com/rastertiles/voyager/{z}/{x}/{y}{r}.png",
        attribution="© OpenStreetMap © CARTO",
        text_color="#333333",
        background_color="#f5f5f5",
    ),
    StyleSpec(
        id=MapMode.RETRO,
        name="Vintage Retro",
        tile_url_template="https://{s}.tile.openstreetmap.fr/hot/{z}/{x}/{y}.png",
        attribution="© OpenStreetMap contributors",
        text_color="#4a3728",
        background_color="#fffcf0",
    ),
]

DEFAULT_STYLE = MAP_STYLES[0]


def get_style(style_id) -> StyleSpec:
    """Look up a catalog style by id (enum or string)."""
    key = style_id.value if isinstance(style_id, MapMode) else str(style_id).lower()
    for style in MAP_STYLES:
        if style.id.value == key:
            return style
    valid = ", ".join(s.id.value for s in MAP_STYLES)
    raise KeyError(f"Unknown style {style_id!r}. Valid styles: {valid}")


def next_style(current: StyleSpec) -> StyleSpec:
    """Cycle to the next catalog style (the quick-switch button)."""
    index = next(i for i, s in enumerate(MAP_STYLES) if s.id == current.id)
    return MAP_STYLES[(index + 1) % len(MAP_STYLES)]
