"""Loading pipeline orchestration.

Coordinates one grid request end to end:
1. Fetch: resolve the region and load elements from the provider
2. Classify: map elements to tile types
3. Rasterize: paint the grid, cache and return it
"""

from osm_tiles.orchestrators.pipeline import (
    LoadingPipeline,
    LoadingStage,
    LoadProgress,
    LoadResult,
    create_pipeline,
)

__all__ = [
    "LoadProgress",
    "LoadResult",
    "LoadingPipeline",
    "LoadingStage",
    "create_pipeline",
]
