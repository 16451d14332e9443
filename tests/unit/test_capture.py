"""Tests for the capture and export pipeline."""

import asyncio
from io import BytesIO
from unittest.mock import patch

import pytest
from PIL import Image

from citypaper.errors import AttachFailed, CaptureFailed, ExportInProgress
from citypaper.models.export import CaptureItem
from citypaper.models.place import RESOLVING_NAME, PlaceLabel
from citypaper.models.viewport import AspectRatio, ViewportSpec
from citypaper.services.capture_service import CapturePipeline
from citypaper.services.geocoding_service import PlaceNameTracker
from citypaper.services.tile_engine import SecurityError


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeResolver:
    def __init__(self, name: str):
        self.name = name
        self.calls = []

    async def resolve(self, location, granularity):
        self.calls.append((location, granularity))
        return self.name


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def pipeline(tmp_path, fake_sleep):
    return CapturePipeline(output_dir=tmp_path, pixel_ratio=1, sleep=fake_sleep)


@pytest.fixture
def items(tokyo, dark_style, phone_viewport):
    return [
        CaptureItem(tokyo, dark_style, phone_viewport, PlaceLabel(display_name=name))
        for name in ("A", "B", "C")
    ]


def _failing_on(surface, name):
    """Make rasterization fail while ``name`` is on the surface."""
    original = surface.capture_target.rasterize

    def rasterize(*args, **kwargs):
        if surface.state.label.display_name == name:
            raise SecurityError("tainted canvas")
        return original(*args, **kwargs)

    return patch.object(surface.capture_target, "rasterize", side_effect=rasterize)


class TestSettle:
    def test_waits_remaining_delay_after_render(self, make_surface, pipeline, fake_sleep, tokyo, dark_style, phone_viewport, tokyo_label):
        async def run():
            async with make_surface() as surface:
                await surface.render(tokyo, dark_style, phone_viewport, tokyo_label)
                await pipeline.capture_one(surface)

        asyncio.run(run())
        assert len(fake_sleep.delays) == 1
        assert fake_sleep.delays[0] == pytest.approx(1.5, abs=0.2)

    def test_no_wait_when_surface_is_idle(self, make_surface, pipeline, fake_sleep):
        async def run():
            async with make_surface() as surface:
                surface._last_mutation = asyncio.get_running_loop().time() - 10
                return await pipeline.settle(surface)

        assert asyncio.run(run()) == 0.0
        assert fake_sleep.delays == []

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            CapturePipeline(settle_delay=-1)


class TestCaptureOne:
    def test_writes_png_named_after_state(self, make_surface, tmp_path, tokyo, dark_style, phone_viewport, tokyo_label):
        pipeline = CapturePipeline(output_dir=tmp_path, sleep=FakeSleep())

        async def run():
            async with make_surface() as surface:
                await surface.render(tokyo, dark_style, phone_viewport, tokyo_label)
                return await pipeline.capture_one(surface)

        data = asyncio.run(run())
        path = tmp_path / "CityPaper_Tokyo_dark_9x19.png"
        assert path.read_bytes() == data
        assert Image.open(BytesIO(data)).size == (1020, 2154)

    def test_explicit_file_name(self, make_surface, pipeline, tmp_path):
        async def run():
            async with make_surface() as surface:
                await pipeline.capture_one(surface, file_name="mine.png")

        asyncio.run(run())
        assert (tmp_path / "mine.png").exists()

    def test_unresolved_name_uses_fallback(self, make_surface, pipeline, tmp_path, tokyo, dark_style, tokyo_label):
        viewport = ViewportSpec(aspect_ratio=AspectRatio.SQUARE)

        async def run():
            async with make_surface() as surface:
                await surface.render(tokyo, dark_style, viewport, tokyo_label.with_name(RESOLVING_NAME))
                await pipeline.capture_one(surface)

        asyncio.run(run())
        assert (tmp_path / "CityPaper_Custom_Location_dark_1x1.png").exists()

    def test_without_output_dir_only_returns_bytes(self, make_surface, tmp_path):
        pipeline = CapturePipeline(pixel_ratio=1, sleep=FakeSleep())

        async def run():
            async with make_surface() as surface:
                return await pipeline.capture_one(surface)

        assert asyncio.run(run())[:4] == b"\x89PNG"
        assert list(tmp_path.iterdir()) == []

    def test_conversion_error_is_chained(self, make_surface, pipeline):
        async def run():
            async with make_surface() as surface:
                with _failing_on(surface, surface.state.label.display_name):
                    await pipeline.capture_one(surface)

        with pytest.raises(CaptureFailed) as exc_info:
            asyncio.run(run())
        assert isinstance(exc_info.value.__cause__, SecurityError)
        assert "Please try again" in str(exc_info.value)

    def test_guard_released_after_failure(self, make_surface, pipeline):
        async def run():
            async with make_surface() as surface:
                with _failing_on(surface, surface.state.label.display_name):
                    with pytest.raises(CaptureFailed):
                        await pipeline.capture_one(surface)
                return surface.export_in_progress

        assert asyncio.run(run()) is False

    def test_concurrent_export_rejected(self, make_surface, pipeline):
        async def run():
            async with make_surface() as surface:
                surface.export_in_progress = True
                await pipeline.capture_one(surface)

        with pytest.raises(ExportInProgress):
            asyncio.run(run())

    def test_export_rejected_while_batch_runs(self, make_surface, tmp_path, items):
        async def run():
            release = asyncio.Event()
            started = asyncio.Event()

            async def blocking_sleep(delay):
                started.set()
                await release.wait()

            batch_pipeline = CapturePipeline(output_dir=tmp_path, pixel_ratio=1, sleep=blocking_sleep)
            async with make_surface() as surface:
                batch = asyncio.create_task(batch_pipeline.capture_batch(surface, items[:1]))
                await started.wait()
                with pytest.raises(ExportInProgress):
                    await batch_pipeline.capture_one(surface)
                release.set()
                return await batch

        report = asyncio.run(run())
        assert len(report.succeeded) == 1

    def test_broken_surface_raises_engine_error(self, make_surface, pipeline):
        async def run():
            async with make_surface() as surface:
                surface._fail(AttachFailed("gone"))
                await pipeline.capture_one(surface)

        with pytest.raises(AttachFailed, match="gone"):
            asyncio.run(run())


class TestBatch:
    def test_exports_in_order_with_progress(self, make_surface, pipeline, tmp_path, items):
        progress = []

        async def run():
            async with make_surface() as surface:
                return await pipeline.capture_batch(
                    surface, items, on_progress=lambda i, n, label: progress.append((i, n, label))
                )

        report = asyncio.run(run())
        assert progress == [(1, 3, "A"), (2, 3, "B"), (3, 3, "C")]
        assert [r.sequence_index for r in report.results] == [1, 2, 3]
        assert [r.file_name for r in report.succeeded] == [
            "CityPaper_A_dark_9x19.png",
            "CityPaper_B_dark_9x19.png",
            "CityPaper_C_dark_9x19.png",
        ]
        assert all((tmp_path / r.file_name).exists() for r in report.results)

    def test_failed_item_does_not_stop_batch(self, make_surface, pipeline, tmp_path, items):
        async def run():
            async with make_surface() as surface:
                with _failing_on(surface, "B"):
                    report = await pipeline.capture_batch(surface, items)
                return report, surface.export_in_progress

        report, busy = asyncio.run(run())
        assert not busy
        assert report.total == 3
        assert [r.label for r in report.succeeded] == ["A", "C"]
        assert len(report.failed) == 1
        failed = report.failed[0]
        assert failed.sequence_index == 2
        assert failed.file_name == "CityPaper_B_dark_9x19.png"
        assert "tainted canvas" in failed.error
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "CityPaper_A_dark_9x19.png",
            "CityPaper_C_dark_9x19.png",
        ]

    def test_engine_error_aborts_and_releases_guard(self, make_surface, pipeline, items):
        async def run():
            async with make_surface() as surface:
                with patch.object(surface.adapter, "set_view", side_effect=AttachFailed("detached")):
                    with pytest.raises(AttachFailed):
                        await pipeline.capture_batch(surface, items)
                return surface

        surface = asyncio.run(run())
        assert not surface.export_in_progress
        assert isinstance(surface.error, AttachFailed)

    def test_items_with_styles_and_ratios(self, make_surface, pipeline, tmp_path, tokyo, tokyo_label):
        from citypaper.models.style import get_style

        mixed = [
            CaptureItem(tokyo, get_style("retro"), ViewportSpec(aspect_ratio=AspectRatio.SQUARE), tokyo_label),
            CaptureItem(tokyo, get_style("light"), ViewportSpec(aspect_ratio=AspectRatio.TABLET_3_4), tokyo_label),
        ]

        async def run():
            async with make_surface() as surface:
                return await pipeline.capture_batch(surface, mixed)

        report = asyncio.run(run())
        assert [r.file_name for r in report.results] == [
            "CityPaper_Tokyo_retro_1x1.png",
            "CityPaper_Tokyo_light_3x4.png",
        ]
        assert [r.size for r in report.results] == [(340, 340), (340, 453)]

    def test_names_resolved_before_capture(self, make_surface, pipeline, tmp_path, tokyo, dark_style, phone_viewport):
        resolver = FakeResolver("上海市")
        item = CaptureItem(tokyo, dark_style, phone_viewport, PlaceLabel(), resolve_name=True)
        progress = []

        async def run():
            async with make_surface() as surface:
                tracker = PlaceNameTracker.for_surface(resolver, surface)
                return await pipeline.capture_batch(
                    surface,
                    [item],
                    on_progress=lambda i, n, label: progress.append(label),
                    name_tracker=tracker,
                    granularity="district",
                )

        report = asyncio.run(run())
        assert progress == ["上海市"]
        assert report.results[0].file_name == "CityPaper_上海市_dark_9x19.png"
        assert resolver.calls[0][1] == "district"


class TestExportClaim:
    def test_claim_blocks_other_exports_until_used(self, make_surface, pipeline, items):
        async def run():
            async with make_surface() as surface:
                claim = pipeline.claim(surface)
                with pytest.raises(ExportInProgress):
                    pipeline.claim(surface)
                with pytest.raises(ExportInProgress):
                    await pipeline.capture_one(surface)
                report = await pipeline.capture_batch(surface, items[:1], claim=claim)
                return report, claim, surface.export_in_progress

        report, claim, busy = asyncio.run(run())
        assert len(report.succeeded) == 1
        assert claim.active is False
        assert busy is False

    def test_claim_taken_before_task_starts(self, make_surface, pipeline, items):
        async def run():
            async with make_surface() as surface:
                claim = pipeline.claim(surface)
                task = asyncio.create_task(pipeline.capture_batch(surface, items[:1], claim=claim))
                # The task has not run yet; a second batch is already refused
                with pytest.raises(ExportInProgress):
                    await pipeline.capture_batch(surface, items[:1])
                return await task

        assert len(asyncio.run(run()).succeeded) == 1

    def test_claim_for_another_surface_rejected(self, make_surface, pipeline):
        async def run():
            async with make_surface() as first, make_surface() as second:
                claim = pipeline.claim(first)
                try:
                    with pytest.raises(ValueError):
                        await pipeline.capture_one(second, claim=claim)
                finally:
                    claim.release()
                return first.export_in_progress, second.export_in_progress

        assert asyncio.run(run()) == (False, False)

    def test_released_claim_cannot_be_reused(self, make_surface, pipeline):
        async def run():
            async with make_surface() as surface:
                claim = pipeline.claim(surface)
                claim.release()
                claim.release()
                await pipeline.capture_one(surface, claim=claim)

        with pytest.raises(ValueError):
            asyncio.run(run())
