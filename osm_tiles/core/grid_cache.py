"""Bounded cache of previously generated grids.

Shared by concurrent pipeline runs. Keys are
``(region, grid_resolution, feature_set)`` exactly as the caller
configured them (see ``OsmConfig.cache_key``), so a hit is only ever
returned for an identical request. Cached grids are immutable, so
handing the same instance to several consumers is safe.

Eviction policy:
    Least-recently-used (LRU). On insert, if the cache exceeds
    ``maxsize`` the entry that was least recently read or written is
    evicted.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Hashable
from typing import TYPE_CHECKING

from osm_tiles.core.constants import DEFAULT_GRID_CACHE_SIZE

if TYPE_CHECKING:
    from osm_tiles.models.grid import TileGrid

logger = logging.getLogger(__name__)


class GridCache:
    """Thread-safe LRU mapping of request keys to ``TileGrid`` objects."""

    def __init__(self, maxsize: int = DEFAULT_GRID_CACHE_SIZE) -> None:
        if maxsize < 1:
            msg = f"maxsize must be >= 1, got {maxsize}"
            raise ValueError(msg)
        self._maxsize = maxsize
        self._data: OrderedDict[Hashable, TileGrid] = OrderedDict()
        self._eviction_count = 0
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> TileGrid | None:
        """Return the grid stored under *key* (refreshing its recency), or ``None``."""
        with self._lock:
            grid = self._data.get(key)
            if grid is None:
                self._misses += 1
                return None
            self._data.move_to_end(key)
            self._hits += 1
            return grid

    def put(self, key: Hashable, grid: TileGrid) -> None:
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
            self._data[key] = grid
            while len(self._data) > self._maxsize:
                evicted_key, _ = self._data.popitem(last=False)
                self._eviction_count += 1
                logger.debug(
                    "Grid cache eviction | key=%r | size=%d | total_evictions=%d",
                    evicted_key,
                    len(self._data),
                    self._eviction_count,
                )

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def eviction_count(self) -> int:
        """Total number of entries evicted since construction."""
        return self._eviction_count

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses
