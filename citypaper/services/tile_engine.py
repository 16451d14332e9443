"""Minimal XYZ raster tile engine.

A small, Leaflet-like map library: a ``TileMap`` bound to a
``SurfaceHandle`` shows ``TileLayer`` objects whose tiles load
asynchronously over HTTP. Like its browser counterparts it does not watch
its container, so ``invalidate_size()`` must be called when the box changes,
and exporting it to an image fails if a layer loaded tiles without a
cross-origin declaration.
"""

import asyncio
import hashlib
import logging
from collections import OrderedDict
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable, Optional, Union

import httpx
from PIL import Image, UnidentifiedImageError

from ..utils.geo_utils import (
    TILE_SIZE,
    latlng_to_world_pixel,
    tile_range,
    world_pixel_to_latlng,
    wrap_tile_x,
)
from ..utils.image_utils import hex_to_rgba
from .surface_handle import SurfaceHandle

logger = logging.getLogger(__name__)

ENGINE_NAME = "citypaper-tiles"

# Duration of the tile fade-in when fade animation is on
FADE_DURATION = 0.2

# Browsers open about this many connections per host
MAX_CONCURRENT_REQUESTS = 6

# Decoded tiles kept per layer; tiles in the current view are never evicted
MAX_CACHED_TILES = 256

TileKey = tuple[int, int, int]


class SecurityError(RuntimeError):
    """Raised when exporting a map whose pixels came from a non-CORS layer."""


@dataclass(frozen=True)
class MapClickEvent:
    """Payload of the ``click`` event."""

    latlng: tuple[float, float]
    container_point: tuple[float, float]


def _read_tile(path: Path) -> Image.Image:
    with Image.open(path) as image:
        return image.convert("RGBA")


class TileFetcher:
    """Downloads tile images, with an optional on-disk cache."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        cache_dir: Optional[Union[str, Path]] = None,
        timeout: float = 15.0,
        user_agent: str = ENGINE_NAME,
        max_concurrency: int = MAX_CONCURRENT_REQUESTS,
    ):
        """
        Initialize tile fetcher.

        Args:
            client: Pre-configured async client (tests pass a MockTransport one)
            cache_dir: Directory to cache downloaded tiles
            timeout: Per-request timeout in seconds
            user_agent: User-Agent header (tile providers require one)
            max_concurrency: Maximum simultaneous downloads
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent},
            follow_redirects=True,
        )
        self.cache_dir = Path(cache_dir) if cache_dir else None
        if self.cache_dir:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._semaphore = asyncio.Semaphore(max_concurrency)

    def _cache_path(self, url: str) -> Optional[Path]:
        if self.cache_dir is None:
            return None
        digest = hashlib.sha1(url.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}.png"

    async def fetch(self, url: str) -> Image.Image:
        """Download one tile.

        Raises:
            httpx.HTTPError: transport failure or non-2xx status
            UnidentifiedImageError: the body is not an image
        """
        cache_path = self._cache_path(url)
        if cache_path is not None and cache_path.exists():
            return await asyncio.to_thread(_read_tile, cache_path)

        async with self._semaphore:
            response = await self._client.get(url)
        response.raise_for_status()

        image = Image.open(BytesIO(response.content)).convert("RGBA")

        if cache_path is not None:
            await asyncio.to_thread(image.save, cache_path)

        return image

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client:
            await self._client.aclose()


class TileLayer:
    """A raster layer whose tiles come from an XYZ URL template."""

    def __init__(
        self,
        url_template: str,
        attribution: str = "",
        cross_origin: Optional[str] = None,
        subdomains: str = "abc",
        retina: bool = False,
        max_tiles: int = MAX_CACHED_TILES,
    ):
        """
        Args:
            url_template: Template with ``{s}``, ``{z}``, ``{x}``, ``{y}`` and ``{r}``
            attribution: Attribution text of the tile provider
            cross_origin: ``"anonymous"`` to load tiles CORS-clean; ``None``
                taints any image exported from the map
            subdomains: Values rotated into ``{s}``
            retina: Request ``@2x`` tiles through ``{r}``
            max_tiles: Decoded tiles kept before least recently viewed
                ones outside the current view are dropped
        """
        if max_tiles < 1:
            raise ValueError("max_tiles must be positive")
        self.url_template = url_template
        self.attribution = attribution
        self.cross_origin = cross_origin
        self.subdomains = subdomains or "a"
        self.retina = retina
        self.max_tiles = max_tiles

        self._map: Optional["TileMap"] = None
        self._tiles: OrderedDict[TileKey, Image.Image] = OrderedDict()
        self._loaded_at: dict[TileKey, float] = {}
        self._pending: dict[TileKey, asyncio.Task] = {}
        self._in_view: set[TileKey] = set()
        # Keys whose last load failed; retried on the next view request
        self.failed: set[TileKey] = set()

    def tile_url(self, z: int, x: int, y: int) -> str:
        subdomain = self.subdomains[(x + y) % len(self.subdomains)]
        return self.url_template.format(
            s=subdomain,
            z=z,
            x=x,
            y=y,
            r="@2x" if self.retina else "",
        )

    def add_to(self, tile_map: "TileMap") -> "TileLayer":
        tile_map.add_layer(self)
        return self

    @property
    def loading(self) -> bool:
        return bool(self._pending)

    @property
    def loaded_count(self) -> int:
        return len(self._tiles)

    def get_tile(self, key: TileKey) -> Optional[Image.Image]:
        return self._tiles.get(key)

    def loaded_at(self, key: TileKey) -> Optional[float]:
        return self._loaded_at.get(key)

    async def wait_loaded(self) -> None:
        """Wait for the tiles requested so far (the ``load`` event)."""
        while self._pending:
            await asyncio.gather(*list(self._pending.values()), return_exceptions=True)

    def _on_add(self, tile_map: "TileMap") -> None:
        self._map = tile_map

    def _on_remove(self) -> None:
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()
        self._map = None

    def _request(self, keys: list[TileKey]) -> None:
        """Start downloads for the tiles of a new view.

        Loaded tiles are marked recently used; tiles that failed earlier are
        tried again.
        """
        if self._map is None:
            return
        self._in_view = set(keys)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; deferring %d tile requests", len(keys))
            return
        for key in keys:
            if key in self._tiles:
                self._tiles.move_to_end(key)
                continue
            if key in self._pending:
                continue
            self.failed.discard(key)
            task = loop.create_task(self._load(key))
            self._pending[key] = task

    async def _load(self, key: TileKey) -> None:
        z, x, y = key
        url = self.tile_url(z, x, y)
        tile_map = self._map
        try:
            image = await tile_map.fetcher.fetch(url)
        except (httpx.HTTPError, UnidentifiedImageError, OSError) as exc:
            logger.warning("Tile %s failed to load: %s", url, exc)
            self.failed.add(key)
            tile_map.fire("tileerror", key)
            return
        finally:
            self._pending.pop(key, None)

        self._tiles[key] = image
        self._loaded_at[key] = asyncio.get_running_loop().time()
        self._evict()
        tile_map.fire("tileload", key)

    def _evict(self) -> None:
        """Drop least recently viewed tiles outside the view above ``max_tiles``."""
        excess = len(self._tiles) - self.max_tiles
        if excess <= 0:
            return
        stale = [key for key in self._tiles if key not in self._in_view][:excess]
        for key in stale:
            del self._tiles[key]
            self._loaded_at.pop(key, None)
        logger.debug("Evicted %d tiles (%d kept)", len(stale), len(self._tiles))


class TileMap:
    """A map view bound to one container."""

    def __init__(
        self,
        container: SurfaceHandle,
        center: tuple[float, float],
        zoom: float,
        *,
        zoom_control: bool = True,
        attribution_control: bool = True,
        zoom_animation: bool = True,
        fade_animation: bool = True,
        marker_zoom_animation: bool = True,
        inertia: bool = True,
        min_zoom: float = 0,
        max_zoom: float = 22,
        fetcher: Optional[TileFetcher] = None,
        background: str = "#dddddd",
    ):
        if container.bound_map is not None:
            raise ValueError("Map container is already initialized.")
        if not container.mounted:
            raise ValueError("Map container is not mounted.")

        self.container = container
        self.options = {
            "zoom_control": zoom_control,
            "attribution_control": attribution_control,
            "zoom_animation": zoom_animation,
            "fade_animation": fade_animation,
            "marker_zoom_animation": marker_zoom_animation,
            "inertia": inertia,
            "min_zoom": min_zoom,
            "max_zoom": max_zoom,
        }
        self.controls: list[str] = []
        if zoom_control:
            self.controls.append("zoom")
        if attribution_control:
            self.controls.append("attribution")

        self.fetcher = fetcher or TileFetcher()
        self.background = background

        self._size = container.size
        self._layers: list[TileLayer] = []
        self._handlers: dict[str, list[Callable]] = {}
        self._center = (float(center[0]), float(center[1]))
        self._zoom = float(zoom)
        self._removed = False

        container.bound_map = self
        container.add_click_listener(self._handle_container_click)
        self.set_view(center, zoom)

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def set_view(self, center: tuple[float, float], zoom: float, animate: Optional[bool] = None) -> "TileMap":
        """Center the map. Raises ``ValueError`` for a zoom outside the map's limits."""
        if not (self.options["min_zoom"] <= zoom <= self.options["max_zoom"]):
            raise ValueError(
                f"Zoom {zoom} outside [{self.options['min_zoom']}, {self.options['max_zoom']}]"
            )
        self._center = (float(center[0]), float(center[1]))
        self._zoom = float(zoom)
        self._refresh()
        return self

    def get_center(self) -> tuple[float, float]:
        return self._center

    def get_zoom(self) -> float:
        return self._zoom

    def get_size(self) -> tuple[int, int]:
        return self._size

    def invalidate_size(self) -> "TileMap":
        """Re-read the container size. The map never does this on its own."""
        self._size = self.container.size
        self._refresh()
        return self

    def _tile_zoom(self) -> int:
        return int(max(self.options["min_zoom"], min(self.options["max_zoom"], round(self._zoom))))

    def _visible_tiles(self) -> list[TileKey]:
        if self._size[0] <= 0 or self._size[1] <= 0:
            return []
        tz = self._tile_zoom()
        scale = 2 ** (self._zoom - tz)
        center_px = latlng_to_world_pixel(*self._center, self._zoom)
        return [
            (tz, wrap_tile_x(x, tz), y)
            for x, y in tile_range(center_px, self._size, tz, scale)
        ]

    def _refresh(self) -> None:
        keys = self._visible_tiles()
        for layer in self._layers:
            layer._request(keys)

    def container_point_to_latlng(self, x: float, y: float) -> tuple[float, float]:
        cx, cy = latlng_to_world_pixel(*self._center, self._zoom)
        width, height = self._size
        return world_pixel_to_latlng(cx - width / 2 + x, cy - height / 2 + y, self._zoom)

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def add_layer(self, layer: TileLayer) -> "TileMap":
        if layer in self._layers:
            return self
        self._layers.append(layer)
        layer._on_add(self)
        layer._request(self._visible_tiles())
        return self

    def remove_layer(self, layer: TileLayer) -> "TileMap":
        if layer in self._layers:
            self._layers.remove(layer)
            layer._on_remove()
        return self

    def has_layer(self, layer: TileLayer) -> bool:
        return layer in self._layers

    @property
    def layers(self) -> list[TileLayer]:
        return list(self._layers)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Callable) -> "TileMap":
        self._handlers.setdefault(event, []).append(handler)
        return self

    def off(self, event: str, handler: Optional[Callable] = None) -> "TileMap":
        if handler is None:
            self._handlers.pop(event, None)
        elif handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)
        return self

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def fire(self, event: str, payload=None) -> None:
        for handler in list(self._handlers.get(event, [])):
            handler(payload)

    def _handle_container_click(self, x: float, y: float) -> None:
        self.fire("click", MapClickEvent(latlng=self.container_point_to_latlng(x, y), container_point=(x, y)))

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def to_image(self, pixel_ratio: float = 1.0) -> Image.Image:
        """Rasterize the current view at ``pixel_ratio`` device pixels per logical pixel.

        Tiles that have not arrived yet are left as background.

        Raises:
            SecurityError: a layer without ``cross_origin`` has drawn tiles
        """
        for layer in self._layers:
            if layer.cross_origin is None and layer.loaded_count:
                raise SecurityError("The map has been tainted by cross-origin tile data")

        width, height = self._size
        out_size = (max(0, round(width * pixel_ratio)), max(0, round(height * pixel_ratio)))
        canvas = Image.new("RGBA", out_size, hex_to_rgba(self.background))
        if out_size[0] == 0 or out_size[1] == 0:
            return canvas

        tz = self._tile_zoom()
        scale = 2 ** (self._zoom - tz)
        tile_px = TILE_SIZE * scale
        cx, cy = latlng_to_world_pixel(*self._center, self._zoom)
        left = cx - width / 2
        top = cy - height / 2
        now = self._now()

        for layer in self._layers:
            for x, y in tile_range((cx, cy), (width, height), tz, scale):
                key = (tz, wrap_tile_x(x, tz), y)
                tile = layer.get_tile(key)
                if tile is None:
                    continue
                x0 = round((x * tile_px - left) * pixel_ratio)
                y0 = round((y * tile_px - top) * pixel_ratio)
                x1 = round(((x + 1) * tile_px - left) * pixel_ratio)
                y1 = round(((y + 1) * tile_px - top) * pixel_ratio)
                if x1 <= x0 or y1 <= y0:
                    continue
                resized = tile.resize((x1 - x0, y1 - y0), Image.Resampling.LANCZOS)
                opacity = self._fade_opacity(layer.loaded_at(key), now)
                if opacity < 1.0:
                    alpha = resized.split()[3].point(lambda v: int(v * opacity))
                    resized.putalpha(alpha)
                canvas.paste(resized, (x0, y0), resized)

        return canvas

    def _fade_opacity(self, loaded_at: Optional[float], now: Optional[float]) -> float:
        if not self.options["fade_animation"] or loaded_at is None or now is None:
            return 1.0
        return max(0.0, min(1.0, (now - loaded_at) / FADE_DURATION))

    @staticmethod
    def _now() -> Optional[float]:
        try:
            return asyncio.get_running_loop().time()
        except RuntimeError:
            return None

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def remove(self) -> None:
        """Detach from the container and drop all layers and handlers."""
        if self._removed:
            return
        for layer in list(self._layers):
            self.remove_layer(layer)
        self._handlers.clear()
        self.container.remove_click_listener(self._handle_container_click)
        if self.container.bound_map is self:
            self.container.bound_map = None
        self._removed = True

    @property
    def removed(self) -> bool:
        return self._removed
