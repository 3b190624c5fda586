"""Data models and schemas.

Defines the data structures used throughout the engine:
- GeographicElement: Parsed point/line/area with tags
- Region: Bounding box, named place or centre/radius
- FeatureSet: Feature categories plus custom tag queries
- OsmConfig: Region, grid resolution and feature set of one request
- TileType: Closed cell classification with overlap priorities
- TileGrid: Dense classified output grid plus metadata
"""

from osm_tiles.models.config import OsmConfig, OsmConfigBuilder
from osm_tiles.models.element import ElementKind, GeographicElement
from osm_tiles.models.features import (
    CustomQuery,
    FeatureSet,
    FeatureSetBuilder,
    OsmFeature,
    TagQuery,
)
from osm_tiles.models.grid import GridStatistics, GridTransform, TileGrid
from osm_tiles.models.metadata import GridDiagnostics, GridMetadata
from osm_tiles.models.region import BoundingBox, CenterRadius, NamedPlace, Region
from osm_tiles.models.tiles import TileType

__all__ = [
    "BoundingBox",
    "CenterRadius",
    "CustomQuery",
    "ElementKind",
    "FeatureSet",
    "FeatureSetBuilder",
    "GeographicElement",
    "GridDiagnostics",
    "GridMetadata",
    "GridStatistics",
    "GridTransform",
    "NamedPlace",
    "OsmConfig",
    "OsmConfigBuilder",
    "OsmFeature",
    "Region",
    "TagQuery",
    "TileGrid",
    "TileType",
]
