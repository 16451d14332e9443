"""Lifecycle wrapper around one tile engine instance.

The adapter owns exactly one map per surface. It waits (with a deadline) for
the engine library to become loadable, creates the map with controls and
animations off, and keeps the map's idea of its size in sync with the
container by observing resizes.
"""

import asyncio
import importlib
import logging
from types import ModuleType
from typing import Callable, Optional

from ..errors import AttachFailed, EngineUnavailable
from ..models.location import Location
from ..models.style import StyleSpec
from ..models.viewport import DEFAULT_ZOOM, clamp_zoom
from .surface_handle import SurfaceHandle
from .tile_engine import TileFetcher

logger = logging.getLogger(__name__)

ENGINE_MODULE = "citypaper.services.tile_engine"

# Returns the engine module once it can be used, None while it cannot
EngineLoader = Callable[[], Optional[ModuleType]]

LocationCallback = Callable[[Location], None]


def load_bundled_engine() -> Optional[ModuleType]:
    """Default loader: the tile engine shipped with this package."""
    try:
        return importlib.import_module(ENGINE_MODULE)
    except ImportError as exc:
        logger.debug("Engine module not importable yet: %s", exc)
        return None


class TileEngineAdapter:
    """Owns one engine map bound to one surface handle."""

    def __init__(
        self,
        loader: EngineLoader = load_bundled_engine,
        fetcher: Optional[TileFetcher] = None,
        poll_interval: float = 0.1,
        max_wait: float = 10.0,
        retina: bool = True,
        owns_fetcher: bool = False,
    ):
        """
        Args:
            loader: Callable resolving the engine library
            fetcher: Tile downloader handed to the map
            poll_interval: Seconds between readiness checks
            max_wait: Upper bound on the readiness wait
            retina: Request @2x tiles (exports are oversampled)
            owns_fetcher: Close ``fetcher`` on destroy
        """
        if poll_interval <= 0 or max_wait <= 0:
            raise ValueError("poll_interval and max_wait must be positive")
        self._loader = loader
        self._fetcher = fetcher
        self._owns_fetcher = owns_fetcher
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.retina = retina

        self._engine: Optional[ModuleType] = None
        self._map = None
        self._handle: Optional[SurfaceHandle] = None
        self._layer = None
        self._style_id = None
        self._click_handler: Optional[Callable] = None
        self._unobserve: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    async def ensure_ready(self) -> ModuleType:
        """Poll the loader until the engine is available.

        Raises:
            EngineUnavailable: the engine did not load within ``max_wait``
        """
        if self._engine is not None:
            return self._engine

        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.max_wait
        while True:
            engine = self._loader()
            if engine is not None:
                self._engine = engine
                logger.debug("Tile engine ready after %.2fs", loop.time() - started)
                return engine
            now = loop.time()
            if now >= deadline:
                raise EngineUnavailable(now - started)
            await asyncio.sleep(min(self.poll_interval, deadline - now))

    @property
    def ready(self) -> bool:
        return self._engine is not None

    # ------------------------------------------------------------------
    # Attach / detach
    # ------------------------------------------------------------------

    @property
    def attached(self) -> bool:
        return self._map is not None

    @property
    def engine_map(self):
        """The engine map instance (read-only use: inspection and export)."""
        return self._map

    def attach(self, handle: SurfaceHandle, center: Optional[Location] = None, zoom: float = DEFAULT_ZOOM) -> None:
        """Create the engine map on ``handle``. A second call is a no-op.

        Raises:
            AttachFailed: engine not ready, handle unmounted or zero-sized,
                or the engine refused the container
        """
        if self._map is not None:
            return
        if self._engine is None:
            raise AttachFailed("Tile engine is not ready; await ensure_ready() first")
        if handle is None or not handle.mounted:
            raise AttachFailed("Surface handle is not mounted")
        if not handle.has_area:
            raise AttachFailed(f"Surface handle has no area ({handle.size[0]}x{handle.size[1]})")

        center = center or Location(latitude=0.0, longitude=0.0)
        options = {
            "zoom_control": False,
            "attribution_control": False,
            "zoom_animation": False,
            "fade_animation": False,
            "marker_zoom_animation": False,
            "inertia": False,
        }
        if self._fetcher is not None:
            options["fetcher"] = self._fetcher
        try:
            self._map = self._engine.TileMap(handle, center.as_tuple(), clamp_zoom(zoom), **options)
        except ValueError as exc:
            raise AttachFailed(str(exc)) from exc

        self._handle = handle
        self._unobserve = handle.observe_resize(lambda _size: self.notify_resized())
        logger.debug("Engine map attached to %dx%d surface", *handle.size)

    async def destroy(self) -> None:
        """Tear down the map and release its resources."""
        if self._unobserve is not None:
            self._unobserve()
            self._unobserve = None
        if self._map is not None:
            fetcher = self._map.fetcher
            self._map.remove()
            self._map = None
            if self._fetcher is None:
                await fetcher.aclose()
        if self._fetcher is not None and self._owns_fetcher:
            await self._fetcher.aclose()
        self._layer = None
        self._style_id = None
        self._click_handler = None
        self._handle = None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _require_map(self):
        if self._map is None:
            raise AttachFailed("Adapter is not attached")
        return self._map

    def set_view(self, location: Location, zoom: float) -> float:
        """Center the map; zoom outside the supported range is clamped.

        Returns:
            The zoom actually applied.
        """
        tile_map = self._require_map()
        applied = clamp_zoom(zoom)
        tile_map.set_view(location.as_tuple(), applied, animate=False)
        return applied

    def set_style(self, style: StyleSpec) -> None:
        """Swap the tile layer, removing the old one first."""
        tile_map = self._require_map()
        if self._layer is not None:
            tile_map.remove_layer(self._layer)
            self._layer = None
        tile_map.background = style.background_color
        layer = self._engine.TileLayer(
            style.tile_url_template,
            attribution=style.attribution,
            cross_origin="anonymous",
            retina=self.retina,
        )
        tile_map.add_layer(layer)
        self._layer = layer
        self._style_id = style.id

    @property
    def style_id(self):
        return self._style_id

    @property
    def active_layer(self):
        return self._layer

    def on_location_picked(self, callback: Optional[LocationCallback]) -> None:
        """Register the click-to-location callback, replacing any previous one."""
        tile_map = self._require_map()
        if self._click_handler is not None:
            tile_map.off("click", self._click_handler)
            self._click_handler = None
        if callback is None:
            return

        def handler(event) -> None:
            lat, lng = event.latlng
            callback(Location(latitude=max(-90.0, min(90.0, lat)), longitude=lng))

        tile_map.on("click", handler)
        self._click_handler = handler

    def notify_resized(self) -> None:
        """Tell the engine its container box changed."""
        if self._map is not None:
            self._map.invalidate_size()
