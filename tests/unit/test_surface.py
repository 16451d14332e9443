"""Tests for the render surface and its capture target."""

import asyncio

import numpy as np
import pytest

from citypaper.config import AppConfig
from citypaper.errors import AttachFailed, EngineUnavailable
from citypaper.models.style import get_style
from citypaper.models.viewport import AspectRatio, ViewportSpec
from citypaper.services.engine_adapter import TileEngineAdapter
from citypaper.services.surface import SurfaceState, create_surface
from citypaper.services.surface_handle import SurfaceHandle
from citypaper.services.tile_engine import TileFetcher


class RecordingAdapter(TileEngineAdapter):
    """Adapter that logs the order of map mutations."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls: list[str] = []

    def set_style(self, style):
        self.calls.append(f"style:{style.id.value}")
        super().set_style(style)

    def set_view(self, location, zoom):
        self.calls.append("view")
        return super().set_view(location, zoom)


class TestLifecycle:
    def test_render_before_open_fails(self, make_surface, tokyo, dark_style, phone_viewport, tokyo_label):
        async def run():
            surface = make_surface()
            await surface.render(tokyo, dark_style, phone_viewport, tokyo_label)

        with pytest.raises(AttachFailed, match="not open"):
            asyncio.run(run())

    def test_context_manager_opens_and_closes(self, make_surface):
        async def run():
            surface = make_surface()
            async with surface:
                assert surface.is_open
                assert surface.handle.bound_map is surface.adapter.engine_map
            return surface

        surface = asyncio.run(run())
        assert not surface.is_open
        assert surface.handle.bound_map is None

    def test_closed_surface_cannot_reopen(self, make_surface):
        async def run():
            surface = make_surface()
            async with surface:
                pass
            await surface.open()

        with pytest.raises(AttachFailed, match="closed"):
            asyncio.run(run())

    def test_open_is_idempotent(self, make_surface):
        async def run():
            surface = make_surface()
            async with surface:
                engine_map = surface.adapter.engine_map
                await surface.open()
                return engine_map is surface.adapter.engine_map

        assert asyncio.run(run())

    def test_engine_failure_is_persistent(self, make_surface, make_adapter, tokyo, dark_style, phone_viewport, tokyo_label):
        errors = []

        async def run():
            surface = make_surface(adapter=make_adapter(loader=lambda: None, max_wait=0.05))
            for attempt in (surface.open, surface.open):
                try:
                    await attempt()
                except EngineUnavailable as exc:
                    errors.append(exc)
            try:
                await surface.render(tokyo, dark_style, phone_viewport, tokyo_label)
            except EngineUnavailable as exc:
                errors.append(exc)
            return surface

        surface = asyncio.run(run())
        assert len(errors) == 3
        assert errors[0] is errors[1] is errors[2]
        assert surface.error is errors[0]
        with pytest.raises(EngineUnavailable):
            surface.capture_target.rasterize()

    def test_zero_area_handle_breaks_surface(self, make_surface):
        async def run():
            surface = make_surface(handle=SurfaceHandle(0, 0))
            with pytest.raises(AttachFailed):
                await surface.open()
            return surface

        surface = asyncio.run(run())
        assert isinstance(surface.error, AttachFailed)


class TestRender:
    def test_style_is_applied_before_view(self, make_surface, tile_server, tokyo, phone_viewport, tokyo_label):
        adapter = RecordingAdapter(fetcher=tile_server.fetcher(), poll_interval=0.01, max_wait=0.2)

        async def run():
            async with make_surface(adapter=adapter) as surface:
                adapter.calls.clear()
                await surface.render(tokyo, get_style("light"), phone_viewport, tokyo_label)
                await surface.render(tokyo, get_style("light"), phone_viewport, tokyo_label)

        asyncio.run(run())
        assert adapter.calls == ["style:light", "view", "view"]

    def test_viewport_resizes_handle(self, make_surface, tokyo, dark_style, tokyo_label):
        square = ViewportSpec(zoom_level=14, aspect_ratio=AspectRatio.SQUARE)

        async def run():
            async with make_surface() as surface:
                await surface.render(tokyo, dark_style, square, tokyo_label)
                return surface.handle.size, surface.adapter.engine_map.get_size()

        handle_size, map_size = asyncio.run(run())
        assert handle_size == (340, 340)
        assert map_size == (340, 340)

    def test_state_and_mutation_time(self, make_surface, tokyo, dark_style, phone_viewport, tokyo_label):
        async def run():
            async with make_surface() as surface:
                state = await surface.render(tokyo, dark_style, phone_viewport, tokyo_label, show_labels=False)
                rendered_at = surface.last_mutation
                await asyncio.sleep(0.01)
                surface.set_label(tokyo_label.with_name("Shibuya"))
                return state, rendered_at, surface

        state, rendered_at, surface = asyncio.run(run())
        assert state.location == tokyo
        assert not state.show_labels
        assert surface.state.label.display_name == "Shibuya"
        assert surface.state.show_labels is False
        assert surface.last_mutation > rendered_at

    def test_location_picked_forwards_clicks(self, make_surface):
        picked = []

        async def run():
            async with make_surface() as surface:
                surface.on_location_picked(picked.append)
                surface.handle.click(170, 359)

        asyncio.run(run())
        assert len(picked) == 1
        assert picked[0].latitude == pytest.approx(SurfaceState().location.latitude, abs=1e-3)


class TestCapture:
    def test_rasterize_uses_pixel_ratio(self, make_surface, tokyo, dark_style, phone_viewport, tokyo_label):
        async def run():
            async with make_surface() as surface:
                await surface.render(tokyo, dark_style, phone_viewport, tokyo_label)
                await surface.adapter.active_layer.wait_loaded()
                return surface.capture_target.rasterize(3)

        image = asyncio.run(run())
        assert image.size == (1020, 2154)
        assert image.mode == "RGBA"

    def test_capture_has_square_corners_preview_does_not(self, make_surface):
        async def run():
            async with make_surface() as surface:
                await surface.adapter.active_layer.wait_loaded()
                return surface.capture_target.rasterize(1), surface.preview(1)

        capture, preview = asyncio.run(run())
        assert np.array(capture)[0, 0, 3] == 255
        assert preview.size == (356, 734)
        assert np.array(preview)[0, 0, 3] == 0

    def test_labels_can_be_hidden(self, make_surface, tokyo, dark_style, phone_viewport, tokyo_label):
        async def run():
            async with make_surface() as surface:
                await surface.render(tokyo, dark_style, phone_viewport, tokyo_label)
                await surface.adapter.active_layer.wait_loaded()
                with_labels = surface.capture_target.rasterize(1)
                await surface.render(tokyo, dark_style, phone_viewport, tokyo_label, show_labels=False)
                return with_labels, surface.capture_target.rasterize(1)

        with_labels, without = asyncio.run(run())
        top = slice(0, 300)
        assert np.array_equal(np.array(with_labels)[top], np.array(without)[top])
        assert not np.array_equal(np.array(with_labels), np.array(without))

    def test_rasterize_closed_surface_fails(self, make_surface):
        async def run():
            surface = make_surface()
            async with surface:
                pass
            return surface

        surface = asyncio.run(run())
        with pytest.raises(AttachFailed):
            surface.capture_target.rasterize()


class TestCreateSurface:
    def test_wired_from_config(self, tmp_path):
        config = AppConfig(cache_dir=tmp_path, engine_poll_interval=0.05, engine_max_wait=2.0)
        surface = create_surface(config)
        assert surface.adapter.poll_interval == 0.05
        assert surface.adapter.max_wait == 2.0
        assert (tmp_path / "tiles").is_dir()
        assert surface.handle.size == (340, 718)

    def test_close_releases_created_fetcher(self, tmp_path):
        config = AppConfig(cache_dir=tmp_path)

        async def run():
            surface = create_surface(config)
            fetcher = surface.adapter._fetcher
            await surface.close()
            return fetcher

        assert asyncio.run(run()).closed

    def test_failed_open_releases_created_fetcher(self, tmp_path):
        config = AppConfig(cache_dir=tmp_path, engine_poll_interval=0.01, engine_max_wait=0.05)

        async def run():
            surface = create_surface(config, loader=lambda: None)
            fetcher = surface.adapter._fetcher
            with pytest.raises(EngineUnavailable):
                async with surface:
                    pass
            return fetcher

        assert asyncio.run(run()).closed

    def test_passed_in_fetcher_left_open(self, tmp_path):
        config = AppConfig(cache_dir=tmp_path)

        async def run():
            fetcher = TileFetcher()
            surface = create_surface(config, fetcher=fetcher)
            await surface.close()
            closed = fetcher.closed
            await fetcher.aclose()
            return closed

        assert asyncio.run(run()) is False
