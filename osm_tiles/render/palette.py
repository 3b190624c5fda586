"""Rendering hints for tile types.

Colours and nominal heights are suggestions for consumers (2D maps,
3D block scenes). They live here, not on ``TileType``, so the tile
taxonomy stays free of presentation concerns.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from osm_tiles.models.tiles import TILE_TYPE_IDS, TileType

if TYPE_CHECKING:
    from osm_tiles.models.grid import TileGrid

RGB = tuple[int, int, int]

# RGB tuples per tile type
TILE_COLORS: dict[TileType, RGB] = {
    TileType.EMPTY:       (240, 240, 240),
    TileType.ROAD:        (128, 128, 128),
    TileType.BUILDING:    (139, 69, 19),
    TileType.WATER:       (30, 144, 255),
    TileType.GREEN_SPACE: (34, 139, 34),
    TileType.RAILWAY:     (105, 105, 105),
    TileType.PARKING:     (169, 169, 169),
    TileType.AMENITY:     (255, 165, 0),
    TileType.TOURISM:     (255, 20, 147),
    TileType.INDUSTRIAL:  (128, 0, 128),
    TileType.RESIDENTIAL: (255, 255, 0),
    TileType.COMMERCIAL:  (255, 0, 0),
    TileType.POWER:       (255, 215, 0),
    TileType.BOUNDARY:    (70, 70, 160),
    TileType.LANDUSE:     (189, 183, 107),
    TileType.CUSTOM:      (200, 200, 200),
}

# Nominal block heights in tile-size units (0 = flat)
TILE_HEIGHTS: dict[TileType, float] = {
    TileType.EMPTY:       0.0,
    TileType.ROAD:        0.1,
    TileType.BUILDING:    2.0,
    TileType.WATER:       0.05,
    TileType.GREEN_SPACE: 0.2,
    TileType.RAILWAY:     0.15,
    TileType.PARKING:     0.05,
    TileType.AMENITY:     1.0,
    TileType.TOURISM:     1.5,
    TileType.INDUSTRIAL:  3.0,
    TileType.RESIDENTIAL: 1.8,
    TileType.COMMERCIAL:  2.5,
    TileType.POWER:       0.5,
    TileType.BOUNDARY:    0.0,
    TileType.LANDUSE:     0.1,
    TileType.CUSTOM:      0.8,
}

# Lookup table indexed by tile id (matches enum order)
_COLOR_LUT = np.array([TILE_COLORS[t] for t in TILE_TYPE_IDS], dtype=np.uint8)


def tile_color(tile_type: TileType) -> RGB:
    return TILE_COLORS[tile_type]


def tile_height(tile_type: TileType) -> float:
    return TILE_HEIGHTS[tile_type]


def to_rgb_array(grid: TileGrid, colors: dict[TileType, RGB] | None = None) -> np.ndarray:
    """Map every cell to its colour.

    Args:
        grid: Grid to colour.
        colors: Optional overrides merged over ``TILE_COLORS``.

    Returns:
        A ``(height, width, 3)`` ``uint8`` array, row 0 north.
    """
    lut = _COLOR_LUT
    if colors:
        lut = _COLOR_LUT.copy()
        for tile_type, rgb in colors.items():
            lut[tile_type.id] = rgb
    return lut[grid.cells]


def to_height_array(grid: TileGrid) -> np.ndarray:
    """Map every cell to its nominal height as a ``float32`` array."""
    lut = np.array([TILE_HEIGHTS[t] for t in TILE_TYPE_IDS], dtype=np.float32)
    return lut[grid.cells]
