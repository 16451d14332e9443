"""Label block rendering.

Draws the place name, country, coordinates and description at the bottom of
the wallpaper. Every line lives in a fixed-height region so that an empty or
"resolving" name never moves the rest of the block; long names shrink to fit
their region instead of wrapping.
"""

import logging
from typing import Optional

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from ..models.location import Location
from ..models.place import PlaceLabel
from ..models.style import StyleSpec
from ..models.typography import FONT_SIZES, OPACITY, TRACKING, LabelLayout, LabelTier
from ..utils.image_utils import hex_to_rgba

logger = logging.getLogger(__name__)

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont

# Candidate system font paths to try, in preference order
_SYSTEM_FONT_CANDIDATES = [
    # Linux (CJK first so Chinese place names render)
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc",
    "/usr/share/fonts/noto-cjk/NotoSansCJK-Bold.ttc",
    "/usr/share/fonts/truetype/wqy/wqy-microhei.ttc",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
    # macOS
    "/System/Library/Fonts/PingFang.ttc",
    "/System/Library/Fonts/Helvetica.ttc",
    "/Library/Fonts/Arial.ttf",
    # Windows
    "C:/Windows/Fonts/msyh.ttc",
    "C:/Windows/Fonts/arial.ttf",
    "C:/Windows/Fonts/segoeui.ttf",
]

_MONO_FONT_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationMono-Regular.ttf",
    "/System/Library/Fonts/Menlo.ttc",
    "C:/Windows/Fonts/consola.ttf",
]


class LabelRenderer:
    """Renders the text label block onto a wallpaper layer."""

    def __init__(self, layout: Optional[LabelLayout] = None):
        self.layout = layout or LabelLayout()
        self._font_cache: dict[tuple[bool, bool, int], FontType] = {}
        self._font_path = self._find_font(_SYSTEM_FONT_CANDIDATES)
        self._mono_path = self._find_font(_MONO_FONT_CANDIDATES) or self._font_path

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def block_top(self, height: int) -> int:
        """Logical y of the top of the label block for a surface of ``height``."""
        return height - self.layout.bottom_margin - self.layout.block_height

    def render(
        self,
        size: tuple[int, int],
        label: PlaceLabel,
        style: StyleSpec,
        location: Location,
        pixel_ratio: float = 1.0,
    ) -> Image.Image:
        """Render the label block on a transparent layer.

        Args:
            size: Logical (width, height) of the surface
            label: Text and accent color
            style: Provides the text color
            location: Coordinates line
            pixel_ratio: Device pixels per logical pixel

        Returns:
            RGBA layer of ``size * pixel_ratio``.
        """
        lay = self.layout
        pr = pixel_ratio
        width, height = size
        out_size = (round(width * pr), round(height * pr))
        layer = Image.new("RGBA", out_size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        center_x = out_size[0] / 2
        text_rgb = hex_to_rgba(style.text_color)[:3]
        y = self.block_top(height)

        # Accent bar
        bar_w = lay.accent_bar_width * pr
        draw.rectangle(
            (center_x - bar_w / 2, y * pr, center_x + bar_w / 2, (y + lay.accent_bar_height) * pr - 1),
            fill=hex_to_rgba(label.accent_color, round(255 * 0.5)),
        )
        y += lay.accent_bar_height + lay.accent_gap

        # Name: shrink to fit, vertically centered in its region
        name = label.display_name.strip()
        max_text_width = (width - 2 * lay.side_padding) * pr
        if name:
            font = self._fit_font(name, LabelTier.NAME, max_text_width, pr, bold=True)
            self._draw_line(layer, name, font, center_x, (y + lay.name_height / 2) * pr,
                            LabelTier.NAME, text_rgb, shadow=True)
        y += lay.name_height + lay.country_gap

        # Country
        country = label.country.strip().upper()
        if country:
            font = self._fit_font(country, LabelTier.COUNTRY, max_text_width, pr, bold=True)
            self._draw_line(layer, country, font, center_x, (y + lay.country_height / 2) * pr,
                            LabelTier.COUNTRY, text_rgb, shadow=True)
        y += lay.country_height + lay.coordinates_gap

        # Coordinates
        coords = location.format_coordinates()
        font = self._font(round(FONT_SIZES[LabelTier.COORDINATES] * pr), mono=True)
        self._draw_line(layer, coords, font, center_x, (y + lay.coordinates_height / 2) * pr,
                        LabelTier.COORDINATES, text_rgb)
        y += lay.coordinates_height + lay.description_gap

        # Description: hairline separator then up to N wrapped lines
        desc_width = width * lay.description_width_ratio * pr
        draw.line(
            (center_x - desc_width / 2, y * pr, center_x + desc_width / 2, y * pr),
            fill=(255, 255, 255, round(255 * 0.1)),
            width=max(1, round(pr)),
        )
        y += 1 + lay.description_padding
        description = label.description.strip()
        if description:
            font = self._font(round(FONT_SIZES[LabelTier.DESCRIPTION] * pr))
            lines = self._wrap(description, font, desc_width, LabelTier.DESCRIPTION, pr)
            for i, line in enumerate(lines[: lay.description_max_lines]):
                line_center = (y + lay.description_line_height * (i + 0.5)) * pr
                self._draw_line(layer, line, font, center_x, line_center, LabelTier.DESCRIPTION, text_rgb)

        return layer

    # ------------------------------------------------------------------
    # Text helpers
    # ------------------------------------------------------------------

    def _tracking(self, tier: LabelTier, font_size: float) -> float:
        return TRACKING[tier] * font_size

    def _text_width(self, text: str, font: FontType, tracking: float) -> float:
        if not text:
            return 0.0
        return font.getlength(text) + tracking * (len(text) - 1)

    def _fit_font(
        self,
        text: str,
        tier: LabelTier,
        max_width: float,
        pixel_ratio: float,
        bold: bool = False,
    ) -> FontType:
        """Largest font (down to ``min_name_size``) whose tracked text fits ``max_width``."""
        size = FONT_SIZES[tier]
        floor = min(size, self.layout.min_name_size) if tier == LabelTier.NAME else max(6, size // 2)
        while True:
            font = self._font(round(size * pixel_ratio), bold=bold)
            width = self._text_width(text, font, self._tracking(tier, size * pixel_ratio))
            if width <= max_width or size <= floor:
                return font
            size -= 2

    def _wrap(self, text: str, font: FontType, max_width: float, tier: LabelTier, pixel_ratio: float) -> list[str]:
        """Greedy wrap on spaces; CJK text without spaces wraps per character."""
        tracking = self._tracking(tier, FONT_SIZES[tier] * pixel_ratio)
        tokens = text.split(" ") if " " in text else list(text)
        joiner = " " if " " in text else ""
        lines: list[str] = []
        current = ""
        for token in tokens:
            candidate = f"{current}{joiner}{token}" if current else token
            if self._text_width(candidate, font, tracking) <= max_width or not current:
                current = candidate
            else:
                lines.append(current)
                current = token
        if current:
            lines.append(current)
        if len(lines) > self.layout.description_max_lines:
            kept = lines[: self.layout.description_max_lines]
            kept[-1] = kept[-1].rstrip(" .,") + "…"
            return kept
        return lines

    def _draw_line(
        self,
        layer: Image.Image,
        text: str,
        font: FontType,
        center_x: float,
        center_y: float,
        tier: LabelTier,
        rgb: tuple[int, int, int],
        shadow: bool = False,
    ) -> None:
        """Draw one tracked line centered on (center_x, center_y)."""
        font_size = getattr(font, "size", FONT_SIZES[tier])
        tracking = self._tracking(tier, font_size)
        total = self._text_width(text, font, tracking)
        alpha = round(255 * OPACITY[tier])

        if shadow:
            shadow_layer = Image.new("RGBA", layer.size, (0, 0, 0, 0))
            self._draw_tracked(ImageDraw.Draw(shadow_layer), text, font, center_x - total / 2,
                               center_y + font_size * 0.06, tracking, (0, 0, 0, round(alpha * 0.35)))
            shadow_layer = shadow_layer.filter(ImageFilter.GaussianBlur(radius=max(1, font_size * 0.08)))
            layer.alpha_composite(shadow_layer)

        self._draw_tracked(ImageDraw.Draw(layer), text, font, center_x - total / 2, center_y,
                           tracking, (*rgb, alpha))

    @staticmethod
    def _draw_tracked(draw, text, font, x, center_y, tracking, fill) -> None:
        for char in text:
            draw.text((x, center_y), char, font=font, fill=fill, anchor="lm")
            x += font.getlength(char) + tracking

    # ------------------------------------------------------------------
    # Fonts
    # ------------------------------------------------------------------

    def _font(self, size: int, bold: bool = False, mono: bool = False) -> FontType:
        size = max(1, size)
        cache_key = (mono, bold, size)
        if cache_key in self._font_cache:
            return self._font_cache[cache_key]

        path = self._mono_path if mono else self._font_path
        if path is not None:
            font = ImageFont.truetype(path, size)
        else:
            logger.warning("No TrueType font found; using PIL default font")
            font = ImageFont.load_default(size=size)

        self._font_cache[cache_key] = font
        return font

    @staticmethod
    def _find_font(candidates: list[str]) -> Optional[str]:
        """Probe the system for a usable TrueType font and return its path."""
        for path in candidates:
            try:
                ImageFont.truetype(path, 12)
                return path
            except OSError:
                continue

        for name in ("DejaVuSans", "DejaVu Sans", "LiberationSans", "Arial", "Helvetica"):
            try:
                ImageFont.truetype(name, 12)
                return name
            except OSError:
                continue

        return None
