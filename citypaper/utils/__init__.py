"""Utility functions for wallpaper rendering."""

from .image_utils import (
    save_image,
    write_bytes,
    to_png_bytes,
    hex_to_rgb,
    hex_to_rgba,
    apply_rounded_corners,
)
from .geo_utils import (
    latlng_to_world_pixel,
    world_pixel_to_latlng,
    tile_range,
)

__all__ = [
    "save_image",
    "write_bytes",
    "to_png_bytes",
    "hex_to_rgb",
    "hex_to_rgba",
    "apply_rounded_corners",
    "latlng_to_world_pixel",
    "world_pixel_to_latlng",
    "tile_range",
]
