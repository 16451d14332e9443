"""Web Mercator helpers for placing XYZ tiles."""

import math

# Logical size of one XYZ tile; retina tiles cover the same area at 2x pixels
TILE_SIZE = 256

# Latitude where the square Web Mercator world ends
MAX_LATITUDE = 85.0511287798


def world_size(zoom: float) -> float:
    """Width of the whole world in logical pixels at a (fractional) zoom."""
    return TILE_SIZE * (2 ** zoom)


def latlng_to_world_pixel(lat: float, lng: float, zoom: float) -> tuple[float, float]:
    """Project a point to logical world pixel coordinates at ``zoom``.

    Latitudes beyond the Mercator limit are clamped for projection only.
    """
    lat = max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))
    size = world_size(zoom)
    x = (lng + 180.0) / 360.0 * size
    lat_rad = math.radians(lat)
    y = (1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * size
    return x, y


def world_pixel_to_latlng(x: float, y: float, zoom: float) -> tuple[float, float]:
    """Inverse of :func:`latlng_to_world_pixel`. Longitude is wrapped to [-180, 180]."""
    size = world_size(zoom)
    lng = x / size * 360.0 - 180.0
    lat_rad = math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / size)))
    lat = math.degrees(lat_rad)
    lng = ((lng + 180.0) % 360.0) - 180.0
    return lat, lng


def tile_range(
    center_px: tuple[float, float],
    view_size: tuple[float, float],
    tile_zoom: int,
    scale: float,
) -> list[tuple[int, int]]:
    """XYZ tile keys covering a view.

    Args:
        center_px: View center in world pixels at the *view* zoom
        view_size: (width, height) of the view in logical pixels
        tile_zoom: Integer zoom the tiles are fetched at
        scale: Logical size of a tile at the view zoom divided by TILE_SIZE

    Returns:
        List of (x, y) tile coordinates; x may need wrapping, y is in range.
    """
    cx, cy = center_px
    width, height = view_size
    tile_px = TILE_SIZE * scale
    left = cx - width / 2
    top = cy - height / 2
    min_x = math.floor(left / tile_px)
    max_x = math.floor((left + width - 1e-9) / tile_px)
    min_y = max(0, math.floor(top / tile_px))
    max_y = min(2 ** tile_zoom - 1, math.floor((top + height - 1e-9) / tile_px))

    tiles = []
    for y in range(min_y, max_y + 1):
        for x in range(min_x, max_x + 1):
            tiles.append((x, y))
    return tiles


def wrap_tile_x(x: int, tile_zoom: int) -> int:
    """Wrap a tile column around the antimeridian."""
    return x % (2 ** tile_zoom)
