"""Image processing utilities."""

from io import BytesIO
from pathlib import Path
from typing import Union

from PIL import Image, ImageDraw


def save_image(image: Image.Image, path: Union[str, Path], quality: int = 95) -> None:
    """Save an image to file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() in (".jpg", ".jpeg"):
        # Convert to RGB for JPEG
        if image.mode == "RGBA":
            background = Image.new("RGB", image.size, (255, 255, 255))
            background.paste(image, mask=image.split()[3])
            image = background
        image.save(path, quality=quality)
    else:
        image.save(path)


def write_bytes(data: bytes, path: Union[str, Path]) -> Path:
    """Write encoded image bytes, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def to_png_bytes(image: Image.Image) -> bytes:
    """Encode an image as PNG."""
    buf = BytesIO()
    image.save(buf, format="PNG", optimize=False)
    return buf.getvalue()


def hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Convert ``#rrggbb`` (or ``#rgb``) to an RGB tuple."""
    value = hex_color.lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))


def hex_to_rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    """Convert a hex color plus alpha (0-255) to RGBA."""
    return (*hex_to_rgb(hex_color), alpha)


def rounded_mask(size: tuple[int, int], radius: int) -> Image.Image:
    """L-mode mask, opaque inside a rounded rectangle covering ``size``."""
    mask = Image.new("L", size, 0)
    draw = ImageDraw.Draw(mask)
    draw.rounded_rectangle((0, 0, size[0] - 1, size[1] - 1), radius=max(0, radius), fill=255)
    return mask


def apply_rounded_corners(image: Image.Image, radius: int) -> Image.Image:
    """Make the corners outside ``radius`` transparent. Radius 0 is a no-op."""
    if radius <= 0:
        return image
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    result = image.copy()
    alpha = result.split()[3]
    mask = rounded_mask(result.size, radius)
    result.putalpha(Image.composite(alpha, mask, mask))
    return result
