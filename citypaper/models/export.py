"""Export job and batch result models."""

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from .location import Location
from .place import FALLBACK_NAME, RESOLVING_NAME, PlaceLabel
from .style import MapMode, StyleSpec
from .viewport import AspectRatio, ViewportSpec

if TYPE_CHECKING:
    from ..services.surface import RenderSurface

DEFAULT_FILE_NAME_TEMPLATE = "CityPaper_{name}_{style}_{ratio}.png"

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")


def safe_file_component(text: str, fallback: str = "wallpaper") -> str:
    """Make a place name usable inside a file name (unicode is kept)."""
    cleaned = _UNSAFE_CHARS.sub("", text or "")
    cleaned = _WHITESPACE.sub("_", cleaned.strip()).strip("._")
    return cleaned or fallback


def build_file_name(
    place_name: str,
    style_id: MapMode,
    aspect_ratio: AspectRatio,
    template: str = DEFAULT_FILE_NAME_TEMPLATE,
) -> str:
    """Deterministic export file name from place name, style id and ratio."""
    if place_name in ("", RESOLVING_NAME):
        place_name = FALLBACK_NAME
    name = template.format(
        name=safe_file_component(place_name),
        style=style_id.value,
        ratio=aspect_ratio.file_token,
    )
    if not name.lower().endswith(".png"):
        name += ".png"
    return name


@dataclass(frozen=True)
class CaptureItem:
    """Inputs of one batch entry."""

    location: Location
    style: StyleSpec
    viewport: ViewportSpec
    label: PlaceLabel
    show_labels: bool = True
    # No explicit name: reverse geocode before capturing
    resolve_name: bool = False


@dataclass(frozen=True)
class ExportJob:
    """One capture of one surface state. Immutable once started."""

    target: "RenderSurface"
    file_name_template: str = DEFAULT_FILE_NAME_TEMPLATE
    sequence_index: int = 1
    sequence_total: int = 1
    file_name: Optional[str] = None

    def resolve_file_name(self) -> str:
        """The explicit file name, or one derived from the surface's current state."""
        if self.file_name:
            return self.file_name
        state = self.target.state
        return build_file_name(
            state.label.display_name,
            state.style.id,
            state.viewport.aspect_ratio,
            self.file_name_template,
        )


@dataclass
class ExportResult:
    """Outcome of a single export job."""

    file_name: str
    sequence_index: int
    label: str
    path: Optional[Any] = None
    size: Optional[tuple[int, int]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchReport:
    """Per-item outcomes of a batch export. No all-or-nothing guarantee."""

    total: int
    results: list[ExportResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[ExportResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[ExportResult]:
        return [r for r in self.results if not r.ok]
