"""
Web Mercator (EPSG:3857) tile grid arithmetic.

Uses Decimal at a fixed 20 significant digits so that tile bounds render
identically regardless of float rounding, which keeps substituted SQL (and
thus the planner input) stable.
"""

from __future__ import annotations

from decimal import Decimal, localcontext
from typing import NamedTuple

from pg_querytables.errors import InvalidTileError

TILE_SIZE = 256
MAX_ZOOM = 32

# Significant digits of every intermediate result
PRECISION = 20

# Half the projected width of the world: pi * 6378137
ORIGIN_SHIFT = Decimal("20037508.342789245")
WORLD_SIZE = ORIGIN_SHIFT * 2

# Meters per pixel of a standardized 0.28mm rendering pixel
STANDARD_PIXEL_SIZE = Decimal("0.00028")


class Extent(NamedTuple):
    """Bounding box in EPSG:3857 meters."""
    xmin: Decimal
    ymin: Decimal
    xmax: Decimal
    ymax: Decimal


def _check_coordinate(name: str, value, upper: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidTileError(f"{name} must be an integer, got {value!r}")
    if value < 0 or value > upper:
        raise InvalidTileError(f"{name} must be between 0 and {upper}, got {value}")
    return value


def get_resolution(z: int) -> Decimal:
    """Meters per pixel at zoom level z."""
    _check_coordinate("z", z, MAX_ZOOM)
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return WORLD_SIZE / TILE_SIZE / (2 ** z)


def get_scale_denominator(z: int) -> Decimal:
    """Map scale denominator at zoom level z for standard rendering pixels."""
    resolution = get_resolution(z)
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return resolution / STANDARD_PIXEL_SIZE


def get_extent(x: int, y: int, z: int) -> Extent:
    """
    Bounds of tile z/x/y.

    Args:
        x: Tile column, 0 at the western edge
        y: Tile row, 0 at the northern edge
        z: Zoom level

    Returns:
        Extent of the tile
    """
    _check_coordinate("z", z, MAX_ZOOM)
    tiles = 2 ** z
    _check_coordinate("x", x, tiles - 1)
    _check_coordinate("y", y, tiles - 1)

    with localcontext() as ctx:
        ctx.prec = PRECISION
        span = WORLD_SIZE / tiles
        xmin = -ORIGIN_SHIFT + span * x
        ymax = ORIGIN_SHIFT - span * y
        return Extent(xmin=xmin, ymin=ymax - span, xmax=xmin + span, ymax=ymax)
