"""Tile filter, vignette gradient and device-frame chrome.

The tile filter and the vignette are part of the exported wallpaper. The
device frame (bezel, rounded screen, dot grid, glare) only decorates the
on-screen preview and is never drawn into the capture target.
"""

from typing import Optional

import numpy as np
from PIL import Image, ImageDraw

from ..models.overlay import FrameSettings, OverlaySettings
from ..utils.image_utils import apply_rounded_corners, hex_to_rgba, rounded_mask

# Rec. 709 luma weights, as used by CSS grayscale()
_LUMA = np.array([0.2126, 0.7152, 0.0722], dtype=np.float64)


class OverlayService:
    """Applies the map look and the decorative chrome."""

    def __init__(
        self,
        settings: Optional[OverlaySettings] = None,
        frame: Optional[FrameSettings] = None,
    ):
        self.settings = settings or OverlaySettings()
        self.frame = frame or FrameSettings()

    # ------------------------------------------------------------------
    # Capture layers
    # ------------------------------------------------------------------

    def apply_tile_filter(self, image: Image.Image) -> Image.Image:
        """Partially desaturate and boost contrast of the tile layer."""
        rgba = np.array(image.convert("RGBA"), dtype=np.float64)
        rgb = rgba[:, :, :3]

        g = self.settings.grayscale
        if g > 0:
            luma = (rgb @ _LUMA)[:, :, np.newaxis]
            rgb = rgb * (1.0 - g) + luma * g

        c = self.settings.contrast
        if c != 1.0:
            rgb = (rgb - 127.5) * c + 127.5

        rgba[:, :, :3] = np.clip(rgb, 0, 255)
        return Image.fromarray(rgba.astype(np.uint8), "RGBA")

    def build_vignette(self, size: tuple[int, int]) -> Image.Image:
        """Black top-to-bottom gradient: dark top, clear middle, darker bottom."""
        width, height = size
        t = np.linspace(0.0, 1.0, max(height, 1))
        top = self.settings.vignette_top_alpha * np.clip(1.0 - 2.0 * t, 0.0, 1.0)
        bottom = self.settings.vignette_bottom_alpha * np.clip(2.0 * t - 1.0, 0.0, 1.0)
        alpha = np.round((top + bottom) * 255).astype(np.uint8)[:height]

        arr = np.zeros((height, width, 4), dtype=np.uint8)
        arr[:, :, 3] = alpha[:, np.newaxis]
        return Image.fromarray(arr, "RGBA")

    def apply_vignette(self, image: Image.Image) -> Image.Image:
        base = image.convert("RGBA")
        return Image.alpha_composite(base, self.build_vignette(base.size))

    # ------------------------------------------------------------------
    # Chrome (preview only)
    # ------------------------------------------------------------------

    def add_device_frame(self, screen: Image.Image, pixel_ratio: float = 1.0) -> Image.Image:
        """Wrap a rendered screen in the phone bezel.

        Args:
            screen: Composited capture layers (square corners)
            pixel_ratio: Device pixels per logical pixel of ``screen``

        Returns:
            Larger RGBA image: frame plus rounded screen, grid and glare.
        """
        f = self.frame
        border = round(f.border_width * pixel_ratio)
        screen = screen.convert("RGBA")

        decorated = Image.alpha_composite(screen, self._dot_grid(screen.size, pixel_ratio))
        decorated = Image.alpha_composite(decorated, self._glare(screen.size))
        decorated = apply_rounded_corners(decorated, round(f.screen_radius * pixel_ratio))

        size = (screen.width + 2 * border, screen.height + 2 * border)
        canvas = Image.new("RGBA", size, (0, 0, 0, 0))
        body = Image.new("RGBA", size, hex_to_rgba(f.border_color))
        canvas.paste(body, (0, 0), rounded_mask(size, round(f.outer_radius * pixel_ratio)))

        draw = ImageDraw.Draw(canvas)
        draw.rounded_rectangle(
            (0, 0, size[0] - 1, size[1] - 1),
            radius=round(f.outer_radius * pixel_ratio),
            outline=hex_to_rgba(f.ring_color),
            width=max(1, round(pixel_ratio)),
        )
        canvas.alpha_composite(decorated, (border, border))
        return canvas

    def _dot_grid(self, size: tuple[int, int], pixel_ratio: float) -> Image.Image:
        layer = Image.new("RGBA", size, (0, 0, 0, 0))
        alpha = round(255 * self.frame.grid_opacity)
        if alpha == 0:
            return layer
        step = max(1, round(self.frame.grid_spacing * pixel_ratio))
        dot = max(1, round(pixel_ratio))
        draw = ImageDraw.Draw(layer)
        for y in range(0, size[1], step):
            for x in range(0, size[0], step):
                draw.ellipse((x, y, x + dot - 1, y + dot - 1), fill=(255, 255, 255, alpha))
        return layer

    def _glare(self, size: tuple[int, int]) -> Image.Image:
        """Faint white wash from the bottom-left corner fading to the top-right."""
        width, height = size
        xs = np.linspace(0.0, 1.0, max(width, 1))[np.newaxis, :]
        ys = np.linspace(1.0, 0.0, max(height, 1))[:, np.newaxis]
        strength = np.clip(1.0 - (xs + ys) / 2.0, 0.0, 1.0)
        arr = np.zeros((height, width, 4), dtype=np.uint8)
        arr[:, :, :3] = 255
        arr[:, :, 3] = np.round(strength * self.frame.glare_opacity * 255).astype(np.uint8)
        return Image.fromarray(arr, "RGBA")
