"""Tests for the tile filter, vignette and device frame."""

import numpy as np
import pytest
from PIL import Image

from citypaper.models.overlay import FrameSettings, OverlaySettings
from citypaper.services.overlay_service import OverlayService


@pytest.fixture
def overlay():
    return OverlayService()


class TestTileFilter:
    def test_red_is_desaturated_and_contrasted(self, overlay):
        result = overlay.apply_tile_filter(Image.new("RGBA", (4, 4), (255, 0, 0, 255)))
        r, g, b, a = np.array(result)[0, 0]
        # 20% grayscale pulls red toward its luma, 110% contrast pushes it back out
        assert r == 223
        assert g == 0
        assert b == 0
        assert a == 255

    def test_mid_gray_unchanged(self, overlay):
        result = overlay.apply_tile_filter(Image.new("RGBA", (2, 2), (128, 128, 128, 255)))
        assert tuple(np.array(result)[0, 0]) == (128, 128, 128, 255)

    def test_identity_settings(self):
        service = OverlayService(OverlaySettings(grayscale=0.0, contrast=1.0))
        result = service.apply_tile_filter(Image.new("RGBA", (2, 2), (10, 200, 30, 255)))
        assert tuple(np.array(result)[1, 1]) == (10, 200, 30, 255)


class TestVignette:
    def test_gradient_profile(self, overlay):
        vignette = np.array(overlay.build_vignette((3, 101)))
        assert vignette[0, 0, 3] == 51
        assert vignette[50, 0, 3] == 0
        assert vignette[100, 0, 3] == 102
        assert (vignette[:, :, :3] == 0).all()

    def test_rows_are_uniform(self, overlay):
        vignette = np.array(overlay.build_vignette((7, 20)))
        assert (vignette[:, :, 3] == vignette[:, :1, 3]).all()

    def test_apply_darkens_edges_only(self, overlay):
        white = Image.new("RGBA", (10, 101), (255, 255, 255, 255))
        arr = np.array(overlay.apply_vignette(white))
        assert arr[0, 5, 0] < 255
        assert arr[50, 5, 0] == 255
        assert arr[100, 5, 0] < arr[0, 5, 0]


class TestDeviceFrame:
    def test_frame_size_and_corners(self, overlay):
        screen = Image.new("RGBA", (340, 718), (40, 120, 200, 255))
        framed = overlay.add_device_frame(screen)
        assert framed.size == (356, 734)
        arr = np.array(framed)
        assert arr[0, 0, 3] == 0
        assert arr[733, 355, 3] == 0
        assert arr[367, 178, 3] == 255

    def test_frame_scales_with_pixel_ratio(self, overlay):
        screen = Image.new("RGBA", (102, 60), (0, 0, 0, 255))
        framed = overlay.add_device_frame(screen, pixel_ratio=3)
        assert framed.size == (102 + 48, 60 + 48)

    def test_border_color(self):
        service = OverlayService(frame=FrameSettings(border_color="#ff0000", grid_opacity=0.0))
        framed = np.array(service.add_device_frame(Image.new("RGBA", (200, 200), (0, 0, 0, 255))))
        # Middle of the left bezel
        assert tuple(framed[108, 3, :3]) == (255, 0, 0)
