"""Tile-type taxonomy and overlap priorities.

``TileType`` is the closed classification every grid cell carries. It is
deliberately free of presentation data: colours and heights live in
``osm_tiles.render.palette`` and are looked up by tile type.

Each tile type has:

- a stable small integer id used for dense ``uint8`` grid storage, and
- a static priority used to resolve overlapping elements. Higher wins.
"""

from __future__ import annotations

import enum

import numpy as np


class TileType(enum.Enum):
    """Classification of a single grid cell."""

    EMPTY = "empty"
    ROAD = "road"
    BUILDING = "building"
    WATER = "water"
    GREEN_SPACE = "green_space"
    RAILWAY = "railway"
    PARKING = "parking"
    AMENITY = "amenity"
    TOURISM = "tourism"
    INDUSTRIAL = "industrial"
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    POWER = "power"
    BOUNDARY = "boundary"
    LANDUSE = "landuse"
    CUSTOM = "custom"

    @property
    def id(self) -> int:
        """Stable integer id used in ``TileGrid.cells``."""
        return TILE_TYPE_IDS[self]

    @property
    def priority(self) -> int:
        """Static overlap priority of this tile type."""
        return TILE_PRIORITY[self]

    def is_navigable(self) -> bool:
        """Whether an agent can walk or drive over this tile."""
        return self in (TileType.EMPTY, TileType.ROAD, TileType.PARKING)

    def is_structure(self) -> bool:
        """Whether this tile is a built structure."""
        return self in (TileType.BUILDING, TileType.AMENITY, TileType.TOURISM)


# Ids follow declaration order and must never be reordered: grids persisted
# by consumers depend on them.
TILE_TYPE_IDS: dict[TileType, int] = {t: i for i, t in enumerate(TileType)}
_TILE_TYPES_BY_ID: tuple[TileType, ...] = tuple(TileType)

TILE_DTYPE = np.uint8
"""Numpy dtype of ``TileGrid.cells``."""

PRIORITY_DTYPE = np.int32
"""Numpy dtype of the per-cell priority buffer."""

EMPTY_PRIORITY: int = int(np.iinfo(PRIORITY_DTYPE).min)
"""Priority of a cell nothing has claimed yet. Lower than any rule."""

MAX_PRIORITY: int = int(np.iinfo(PRIORITY_DTYPE).max)
"""Largest priority a custom query may request."""

DEFAULT_CUSTOM_PRIORITY: int = 1
"""Priority of a custom tag query with no explicit priority.

Below every built-in category so built-in classification is preferred
unless the caller explicitly raises it.
"""

TILE_PRIORITY: dict[TileType, int] = {
    TileType.EMPTY: EMPTY_PRIORITY,
    TileType.CUSTOM: DEFAULT_CUSTOM_PRIORITY,
    TileType.LANDUSE: 5,
    TileType.BOUNDARY: 8,
    TileType.GREEN_SPACE: 10,
    TileType.WATER: 20,
    TileType.RESIDENTIAL: 30,
    TileType.COMMERCIAL: 40,
    TileType.INDUSTRIAL: 50,
    TileType.PARKING: 60,
    TileType.ROAD: 70,
    TileType.POWER: 75,
    TileType.RAILWAY: 80,
    TileType.BUILDING: 90,
    TileType.AMENITY: 100,
    TileType.TOURISM: 110,
}


def tile_type_from_id(tile_id: int) -> TileType:
    """Return the ``TileType`` stored under *tile_id*.

    Raises:
        ValueError: If *tile_id* is not a known id.
    """
    if not 0 <= tile_id < len(_TILE_TYPES_BY_ID):
        msg = f"Unknown tile id: {tile_id}"
        raise ValueError(msg)
    return _TILE_TYPES_BY_ID[tile_id]


# Tag keys whose presence implies a tile type. Used for custom queries that
# do not name one explicitly.
_KEY_TILE_TYPES: dict[str, TileType] = {
    "amenity": TileType.AMENITY,
    "tourism": TileType.TOURISM,
    "shop": TileType.COMMERCIAL,
    "building": TileType.BUILDING,
    "highway": TileType.ROAD,
    "railway": TileType.RAILWAY,
    "waterway": TileType.WATER,
    "water": TileType.WATER,
    "leisure": TileType.GREEN_SPACE,
    "natural": TileType.GREEN_SPACE,
    "power": TileType.POWER,
    "boundary": TileType.BOUNDARY,
    "landuse": TileType.LANDUSE,
}


def tile_type_for_key(key: str) -> TileType:
    """Return the tile type implied by an OSM tag *key* (``CUSTOM`` if none)."""
    return _KEY_TILE_TYPES.get(key, TileType.CUSTOM)
