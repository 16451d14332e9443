"""The render surface: one map plus the layers drawn over it.

A RenderSurface is both what the user previews and what gets exported.
Back to front it stacks the filtered tile layer, the vignette, the label
block and (preview only) the device-frame chrome. It exclusively owns one
TileEngineAdapter; an engine failure is kept as a persistent error and the
surface has to be replaced.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from PIL import Image

from ..config import AppConfig, get_config
from ..errors import AttachFailed, EngineError
from ..models.location import Location
from ..models.place import PlaceLabel
from ..models.style import DEFAULT_STYLE, StyleSpec
from ..models.viewport import ViewportSpec
from ..utils.image_utils import apply_rounded_corners
from .engine_adapter import EngineLoader, TileEngineAdapter, load_bundled_engine
from .overlay_service import OverlayService
from .surface_handle import SurfaceHandle
from .tile_engine import TileFetcher
from .typography_service import LabelRenderer

logger = logging.getLogger(__name__)

DEFAULT_CENTER = Location(latitude=35.6762, longitude=139.6503)


@dataclass
class SurfaceState:
    """Inputs the surface was last rendered with."""

    location: Location = DEFAULT_CENTER
    style: StyleSpec = DEFAULT_STYLE
    viewport: ViewportSpec = field(default_factory=ViewportSpec)
    label: PlaceLabel = field(default_factory=PlaceLabel)
    show_labels: bool = True


class CaptureTarget:
    """The exported region: tiles, vignette and labels. Never the chrome."""

    def __init__(self, surface: "RenderSurface"):
        self._surface = surface

    @property
    def size(self) -> tuple[int, int]:
        """Logical (width, height)."""
        return self._surface.handle.size

    def rasterize(self, pixel_ratio: float = 1.0, corner_radius: int = 0) -> Image.Image:
        """Composite the capture layers at ``pixel_ratio``.

        Args:
            pixel_ratio: Device pixels per logical pixel
            corner_radius: Logical corner radius; exports pass 0 for square edges

        Returns:
            RGBA image of ``size * pixel_ratio``.

        Raises:
            SecurityError: the engine refused to export tainted tiles
            AttachFailed: the surface is not open
        """
        surface = self._surface
        surface.raise_if_broken()
        tile_map = surface.adapter.engine_map
        if tile_map is None:
            raise AttachFailed("Surface is not open")

        state = surface.state
        image = tile_map.to_image(pixel_ratio)
        image = surface.overlay.apply_tile_filter(image)
        image = surface.overlay.apply_vignette(image)
        if state.show_labels:
            labels = surface.labels.render(
                self.size, state.label, state.style, state.location, pixel_ratio
            )
            image = Image.alpha_composite(image, labels)
        if corner_radius:
            image = apply_rounded_corners(image, round(corner_radius * pixel_ratio))
        return image


class RenderSurface:
    """Map preview and capture target bound to one surface handle."""

    def __init__(
        self,
        handle: Optional[SurfaceHandle] = None,
        adapter: Optional[TileEngineAdapter] = None,
        overlay: Optional[OverlayService] = None,
        labels: Optional[LabelRenderer] = None,
        state: Optional[SurfaceState] = None,
    ):
        self._state = state or SurfaceState()
        self.handle = handle or SurfaceHandle(*self._state.viewport.capture_size)
        self.adapter = adapter or TileEngineAdapter()
        self.overlay = overlay or OverlayService()
        self.labels = labels or LabelRenderer()

        self._capture_target = CaptureTarget(self)
        self._error: Optional[EngineError] = None
        self._opened = False
        self._closed = False
        self._last_mutation: Optional[float] = None
        self._label_token = 0
        self.export_in_progress = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> "RenderSurface":
        """Wait for the engine and attach it to the handle.

        Raises:
            EngineUnavailable: the engine never became ready
            AttachFailed: the handle is unmounted or has no area
        """
        self.raise_if_broken()
        if self._closed:
            raise AttachFailed("Surface was closed; create a new one")
        if self._opened:
            return self
        try:
            await self.adapter.ensure_ready()
            self.adapter.attach(self.handle, self._state.location, self._state.viewport.zoom_level)
            self.adapter.set_style(self._state.style)
        except EngineError as exc:
            self._fail(exc)
            raise
        self._opened = True
        self._touch()
        logger.info("Render surface opened (%dx%d)", *self.handle.size)
        return self

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._opened = False
        await self.adapter.destroy()
        logger.debug("Render surface closed")

    async def __aenter__(self) -> "RenderSurface":
        try:
            return await self.open()
        except BaseException:
            await self.close()
            raise

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._opened

    @property
    def error(self) -> Optional[EngineError]:
        """The terminal engine error, if the surface is broken."""
        return self._error

    def raise_if_broken(self) -> None:
        if self._error is not None:
            raise self._error

    def _fail(self, exc: EngineError) -> None:
        logger.error("Render surface is unusable: %s", exc)
        self._error = exc

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @property
    def state(self) -> SurfaceState:
        return self._state

    @property
    def last_mutation(self) -> Optional[float]:
        """Event-loop time of the last change that affects pixels."""
        return self._last_mutation

    def _touch(self) -> None:
        self._last_mutation = asyncio.get_running_loop().time()

    async def render(
        self,
        location: Location,
        style: StyleSpec,
        viewport: ViewportSpec,
        label: PlaceLabel,
        show_labels: bool = True,
    ) -> SurfaceState:
        """Bring the surface in line with the given inputs.

        The style is applied before the view so the old layer never shows
        at the new center. Mutations are applied in call order. The label
        passed here supersedes any name resolution still in flight.

        Returns:
            The new state.
        """
        self.raise_if_broken()
        if not self._opened:
            raise AttachFailed("Surface is not open; await open() first")

        try:
            if style.id != self.adapter.style_id:
                self.adapter.set_style(style)
            width, height = viewport.capture_size
            self.handle.resize(width, height)
            applied_zoom = self.adapter.set_view(location, viewport.zoom_level)
        except EngineError as exc:
            self._fail(exc)
            raise

        self._label_token += 1
        self._state = SurfaceState(
            location=location,
            style=style,
            viewport=viewport,
            label=label,
            show_labels=show_labels,
        )
        self._touch()
        logger.debug(
            "Rendered %s at %s zoom %.1f (%s)",
            label.display_name,
            location.format_coordinates(),
            applied_zoom,
            style.id.value,
        )
        return self._state

    def set_label(self, label: PlaceLabel) -> int:
        """Replace only the label (an explicit edit).

        Name resolutions still in flight become stale.

        Returns:
            The new label token.
        """
        self._label_token += 1
        self._state = replace(self._state, label=label)
        self._touch()
        return self._label_token

    @property
    def label_token(self) -> int:
        """Sequence number of the latest render, label edit or name request."""
        return self._label_token

    def claim_label(self) -> int:
        """Start a name request; earlier requests and edits lose to it."""
        self._label_token += 1
        return self._label_token

    def apply_name(self, name: str, token: int) -> bool:
        """Set the label's name if ``token`` is still the latest.

        Returns:
            False when a newer render, edit or request has superseded ``token``.
        """
        if token != self._label_token:
            return False
        self._state = replace(self._state, label=self._state.label.with_name(name))
        self._touch()
        return True

    def on_location_picked(self, callback: Optional[Callable[[Location], None]]) -> None:
        """Forward map clicks as locations; replaces any previous callback."""
        self.raise_if_broken()
        self.adapter.on_location_picked(callback)

    @property
    def capture_target(self) -> CaptureTarget:
        return self._capture_target

    def preview(self, pixel_ratio: float = 1.0) -> Image.Image:
        """The on-screen composite: capture layers inside the device frame."""
        screen = self._capture_target.rasterize(pixel_ratio, corner_radius=0)
        return self.overlay.add_device_frame(screen, pixel_ratio)


def create_surface(
    config: Optional[AppConfig] = None,
    state: Optional[SurfaceState] = None,
    fetcher: Optional[TileFetcher] = None,
    loader: EngineLoader = load_bundled_engine,
) -> RenderSurface:
    """Build an unopened surface wired from application config.

    A fetcher created here is closed with the surface; a passed-in one is not.
    """
    config = config or get_config()
    owns_fetcher = fetcher is None
    if owns_fetcher:
        fetcher = TileFetcher(
            cache_dir=config.cache_dir / "tiles",
            timeout=config.tile_timeout,
            user_agent=config.user_agent,
        )
    adapter = TileEngineAdapter(
        loader=loader,
        fetcher=fetcher,
        poll_interval=config.engine_poll_interval,
        max_wait=config.engine_max_wait,
        owns_fetcher=owns_fetcher,
    )
    return RenderSurface(adapter=adapter, state=state)
