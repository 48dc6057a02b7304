"""
Tile substitution tokens.

Map-rendering queries carry placeholders (!bbox!, !scale_denominator!, ...)
that only become valid SQL once a tile is chosen. Analysis needs concrete SQL,
so the placeholders are replaced first, by default with the values of tile
0/0/0, which covers every geometry.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Dict, List, Optional

from pg_querytables.errors import InvalidTokenError
from pg_querytables.utils.webmercator import get_extent, get_resolution, get_scale_denominator

logger = logging.getLogger(__name__)


SUBSTITUTION_TOKENS = {
    # Declared and used by Mapnik
    "bbox": re.compile(r"!bbox!"),
    "scale_denominator": re.compile(r"!scale_denominator!"),
    "pixel_width": re.compile(r"!pixel_width!"),
    "pixel_height": re.compile(r"!pixel_height!"),
    # Analysis-style variables
    "var_zoom": re.compile(r"@zoom"),
    "var_bbox": re.compile(r"@bbox"),
    "var_x": re.compile(r"@x"),
    "var_y": re.compile(r"@y"),
    # Tile bounds without the rendering buffer
    "tile_bbox": re.compile(r"!tile_bbox!"),
}

DEFAULT_VALUES = {
    "bbox": (
        "ST_MakeEnvelope(-20037508.342789245, -20037508.342789245, "
        "20037508.342789245, 20037508.342789245, 3857)"
    ),
    "scale_denominator": "559082264.02871777343",
    "pixel_width": "156543.03392804097656",
    "pixel_height": "156543.03392804097656",
    # Left as they are unless a value is given
    "var_zoom": "@zoom",
    "var_bbox": "@bbox",
    "var_x": "@x",
    "var_y": "@y",
    "tile_bbox": "!tile_bbox!",
}


def tokens(sql: str) -> List[str]:
    """Names of the substitution tokens present in sql."""
    return [name for name, pattern in SUBSTITUTION_TOKENS.items() if pattern.search(sql)]


def has_tokens(sql: str) -> bool:
    return bool(tokens(sql))


def replace(sql: str, values: Optional[Dict[str, str]] = None) -> str:
    """
    Replace tokens with the given values, using defaults for the rest.

    Args:
        sql: SQL query with tokens
        values: Replacement per token name

    Returns:
        The SQL with tokens replaced

    Raises:
        InvalidTokenError: A value was given for an unknown token
    """
    values = values or {}
    unknown = set(values) - set(SUBSTITUTION_TOKENS)
    if unknown:
        raise InvalidTokenError(
            f"Invalid token passed: {sorted(unknown)}. Expected: {list(SUBSTITUTION_TOKENS)}"
        )

    all_values = {**DEFAULT_VALUES, **values}
    for name, pattern in SUBSTITUTION_TOKENS.items():
        # Function replacement keeps backslashes in values literal
        sql = pattern.sub(lambda _, value=all_values[name]: value, sql)
    return sql


def replace_xyz(sql: str, z: int = 0, x: int = 0, y: int = 0, **values: str) -> str:
    """
    Replace the Mapnik tokens with the values of tile z/x/y.

    Extra keyword values (e.g. bbox) take precedence over the tile values.

    Raises:
        InvalidTileError: The tile does not exist
        InvalidTokenError: A value was given for an unknown token
    """
    resolution = get_resolution(z)
    extent = get_extent(x, y, z)

    bbox = "ST_MakeEnvelope({}, {}, {}, {}, 3857)".format(
        *(_format_decimal(v) for v in extent)
    )
    tile_values = {
        "bbox": bbox,
        "scale_denominator": _format_decimal(get_scale_denominator(z)),
        "pixel_width": _format_decimal(resolution),
        "pixel_height": _format_decimal(resolution),
    }
    tile_values.update(values)

    logger.debug(f"Substituting tokens {tokens(sql)} for tile {z}/{x}/{y}")
    return replace(sql, tile_values)


def _format_decimal(value: Decimal) -> str:
    """Plain notation, trailing zeros removed."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"
