"""Shared test fixtures."""

from io import BytesIO

import httpx
import pytest
from PIL import Image

from citypaper.models.location import Location
from citypaper.models.place import PlaceLabel
from citypaper.models.style import get_style
from citypaper.models.viewport import AspectRatio, ViewportSpec
from citypaper.services.engine_adapter import TileEngineAdapter, load_bundled_engine
from citypaper.services.surface import RenderSurface, SurfaceState
from citypaper.services.tile_engine import TileFetcher
from citypaper.services.typography_service import LabelRenderer


def make_png(color=(40, 120, 200, 255), size=(256, 256)) -> bytes:
    """Encode a solid-color PNG tile."""
    buf = BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


class TileServer:
    """MockTransport handler serving solid tiles and recording requested URLs."""

    def __init__(self, color=(40, 120, 200, 255), status_code=200):
        self.color = color
        self.status_code = status_code
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        if self.status_code != 200:
            return httpx.Response(self.status_code, content=b"")
        return httpx.Response(200, content=make_png(self.color), headers={"Content-Type": "image/png"})

    def fetcher(self, **kwargs) -> TileFetcher:
        """A TileFetcher whose HTTP traffic goes to this server."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(self))
        return TileFetcher(client=client, **kwargs)


@pytest.fixture
def tile_server():
    return TileServer()


@pytest.fixture(scope="session")
def label_renderer():
    """Font discovery is slow; share one renderer."""
    return LabelRenderer()


@pytest.fixture
def tokyo():
    return Location(latitude=35.6762, longitude=139.6503)


@pytest.fixture
def dark_style():
    return get_style("dark")


@pytest.fixture
def phone_viewport():
    return ViewportSpec(zoom_level=13, aspect_ratio=AspectRatio.PHONE_9_19)


@pytest.fixture
def tokyo_label():
    return PlaceLabel(display_name="Tokyo", country="Japan", description="Neon rivers under a quiet moon")


@pytest.fixture
def make_adapter():
    """Factory for adapters with fast readiness polling."""

    def _make(fetcher=None, loader=load_bundled_engine, **kwargs):
        kwargs.setdefault("poll_interval", 0.01)
        kwargs.setdefault("max_wait", 0.2)
        return TileEngineAdapter(loader=loader, fetcher=fetcher, **kwargs)

    return _make


@pytest.fixture
def make_surface(tile_server, label_renderer, make_adapter):
    """Factory for unopened surfaces served by the fake tile server.

    Must be called inside a running event loop (the fetcher owns an async client).
    """

    def _make(state=None, adapter=None, handle=None):
        adapter = adapter or make_adapter(fetcher=tile_server.fetcher())
        return RenderSurface(
            handle=handle,
            adapter=adapter,
            labels=label_renderer,
            state=state or SurfaceState(),
        )

    return _make
