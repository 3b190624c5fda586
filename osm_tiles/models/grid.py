"""Tile grid: the output of one generation run.

``TileGrid`` is a dense ``height × width`` array of tile ids (row-major)
plus the region it covers and a metadata record. Row 0 is the northern
edge of the region and column 0 its western edge, so cell ``(0, height-1)``
is the south-west corner cell. Grids are immutable: the cell array is
flagged read-only and ownership passes whole to the consumer.

``GridTransform`` is the single place where WGS 84 coordinates map to
cell space. The generator and the grid accessors share it so a point
always lands in the same cell.
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from osm_tiles.models.metadata import GridMetadata
from osm_tiles.models.region import BoundingBox
from osm_tiles.models.tiles import TILE_DTYPE, TileType, tile_type_from_id

# ---------------------------------------------------------------------------
# Coordinate transform
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GridTransform:
    """Affine map from ``(lat, lon)`` to grid cell space.

    Spans are derived once per run; every coordinate then goes through the
    same arithmetic, so identical inputs always yield identical cells.

    Attributes:
        region: Validated bounding box.
        width: Number of columns.
        height: Number of rows.
    """

    region: BoundingBox
    width: int
    height: int
    lon_span: float = field(init=False)
    lat_span: float = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "lon_span", self.region.east - self.region.west)
        object.__setattr__(self, "lat_span", self.region.north - self.region.south)

    def to_continuous(self, lat: float, lon: float) -> tuple[float, float]:
        """Return unclamped ``(x, y)`` where cell ``(c, r)`` spans ``[c, c+1) × [r, r+1)``."""
        x = (lon - self.region.west) / self.lon_span * self.width
        y = (self.region.north - lat) / self.lat_span * self.height
        return (x, y)

    def to_cell(self, lat: float, lon: float) -> tuple[int, int]:
        """Return the clamped ``(col, row)`` containing ``(lat, lon)``."""
        x, y = self.to_continuous(lat, lon)
        col = min(max(math.floor(x), 0), self.width - 1)
        row = min(max(math.floor(y), 0), self.height - 1)
        return (col, row)

    def cells_to_continuous(self, coords: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Vectorised ``to_continuous`` over an ``(n, 2)`` array of ``(lat, lon)``."""
        xs = (coords[:, 1] - self.region.west) / self.lon_span * self.width
        ys = (self.region.north - coords[:, 0]) / self.lat_span * self.height
        return xs, ys

    def cell_center(self, col: int, row: int) -> tuple[float, float]:
        """Return the ``(lat, lon)`` centre of cell ``(col, row)``."""
        lat = self.region.north - (row + 0.5) / self.height * self.lat_span
        lon = self.region.west + (col + 0.5) / self.width * self.lon_span
        return (lat, lon)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GridStatistics:
    """Summary of a grid's contents.

    Attributes:
        width: Number of columns.
        height: Number of rows.
        total_cells: ``width * height``.
        non_empty_cells: Cells whose tile type is not ``EMPTY``.
        coverage_ratio: ``non_empty_cells / total_cells``.
        counts: Cell count per tile type present in the grid.
        area_km2: Geodesic area of the grid's region.
    """

    width: int
    height: int
    total_cells: int
    non_empty_cells: int
    coverage_ratio: float
    counts: dict[TileType, int]
    area_km2: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "total_cells": self.total_cells,
            "non_empty_cells": self.non_empty_cells,
            "coverage_ratio": self.coverage_ratio,
            "counts": {t.value: n for t, n in self.counts.items()},
            "area_km2": self.area_km2,
        }


# ---------------------------------------------------------------------------
# Tile grid
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class TileGrid:
    """Dense classified grid for one region.

    Attributes:
        width: Number of columns.
        height: Number of rows.
        region: The bounding box the grid covers.
        cells: Read-only ``uint8`` array of tile ids, shape ``(height, width)``.
        metadata: Generation record (timing, diagnostics, provider).
    """

    width: int
    height: int
    region: BoundingBox
    cells: np.ndarray
    metadata: GridMetadata = field(default_factory=GridMetadata)

    def __post_init__(self) -> None:
        if self.cells.shape != (self.height, self.width):
            msg = f"cells shape {self.cells.shape} does not match ({self.height}, {self.width})"
            raise ValueError(msg)
        if self.cells.dtype != TILE_DTYPE:
            object.__setattr__(self, "cells", self.cells.astype(TILE_DTYPE))
        self.cells.flags.writeable = False

    @classmethod
    def empty(cls, region: BoundingBox, width: int, height: int | None = None) -> TileGrid:
        """Return an all-``EMPTY`` grid."""
        height = width if height is None else height
        cells = np.full((height, width), TileType.EMPTY.id, dtype=TILE_DTYPE)
        return cls(width=width, height=height, region=region, cells=cells)

    # -- geometry --

    @property
    def transform(self) -> GridTransform:
        return GridTransform(self.region, self.width, self.height)

    @property
    def cell_size_degrees(self) -> tuple[float, float]:
        """``(lat degrees per row, lon degrees per column)``; may differ per axis."""
        return (
            (self.region.north - self.region.south) / self.height,
            (self.region.east - self.region.west) / self.width,
        )

    def geo_to_cell(self, lat: float, lon: float) -> tuple[int, int] | None:
        """Return ``(col, row)`` containing ``(lat, lon)``, or ``None`` outside the region."""
        if not self.region.contains(lat, lon):
            return None
        return self.transform.to_cell(lat, lon)

    def cell_center(self, col: int, row: int) -> tuple[float, float]:
        """Return the ``(lat, lon)`` centre of a cell."""
        self._check_index(col, row)
        return self.transform.cell_center(col, row)

    # -- access --

    def tile_at(self, col: int, row: int) -> TileType:
        """Return the tile type of cell ``(col, row)``.

        Raises:
            IndexError: If the cell lies outside the grid.
        """
        self._check_index(col, row)
        return tile_type_from_id(int(self.cells[row, col]))

    def row(self, row: int) -> list[TileType]:
        """Return one row (west to east) as tile types."""
        if not 0 <= row < self.height:
            msg = f"row {row} outside [0, {self.height})"
            raise IndexError(msg)
        return [tile_type_from_id(int(v)) for v in self.cells[row]]

    def window(self, col: int, row: int, width: int, height: int) -> np.ndarray | None:
        """Return a read-only ``(height, width)`` view of tile ids, or ``None`` if it overflows."""
        if col < 0 or row < 0 or col + width > self.width or row + height > self.height:
            return None
        return self.cells[row : row + height, col : col + width]

    def iter_cells(self) -> Iterator[tuple[int, int, TileType]]:
        """Yield ``(col, row, tile_type)`` in row-major order."""
        for row in range(self.height):
            for col in range(self.width):
                yield col, row, tile_type_from_id(int(self.cells[row, col]))

    def tiles_of_type(self, tile_type: TileType) -> list[tuple[int, int]]:
        """Return ``(col, row)`` of every cell of *tile_type*, row-major."""
        rows, cols = np.nonzero(self.cells == tile_type.id)
        return [(int(c), int(r)) for r, c in zip(rows, cols, strict=True)]

    def count_by_type(self) -> dict[TileType, int]:
        """Return the cell count of every tile type present."""
        counts = np.bincount(self.cells.ravel(), minlength=len(TileType))
        return {tile_type_from_id(i): int(n) for i, n in enumerate(counts) if n}

    def statistics(self) -> GridStatistics:
        counts = self.count_by_type()
        total = self.width * self.height
        non_empty = total - counts.get(TileType.EMPTY, 0)
        return GridStatistics(
            width=self.width,
            height=self.height,
            total_cells=total,
            non_empty_cells=non_empty,
            coverage_ratio=non_empty / total if total else 0.0,
            counts=counts,
            area_km2=self.region.area_km2(),
        )

    def same_cells(self, other: TileGrid) -> bool:
        """Whether *other* has identical dimensions, region and cell contents."""
        return (
            self.width == other.width
            and self.height == other.height
            and self.region == other.region
            and np.array_equal(self.cells, other.cells)
        )

    def to_dict(self) -> dict[str, Any]:
        """Summary without the cell array (for logs and transport)."""
        return {
            "width": self.width,
            "height": self.height,
            "region": self.region.to_list(),
            "cell_size_degrees": list(self.cell_size_degrees),
            "counts": {t.value: n for t, n in self.count_by_type().items()},
            "metadata": self.metadata.to_dict(),
        }

    def _check_index(self, col: int, row: int) -> None:
        if not (0 <= col < self.width and 0 <= row < self.height):
            msg = f"cell ({col}, {row}) outside [0, {self.width}) x [0, {self.height})"
            raise IndexError(msg)
