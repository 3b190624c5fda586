"""Shared pytest fixtures for the OSM tile grid engine test suite."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from osm_tiles.generator.classifier import ClassifiedElement
from osm_tiles.models.config import OsmConfig
from osm_tiles.models.element import ElementKind, GeographicElement
from osm_tiles.models.features import FeatureSet
from osm_tiles.models.region import BoundingBox
from osm_tiles.models.tiles import TileType

# ---------------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------------

# Small box in central Berlin (about 2 km x 2 km)
BERLIN_BOX = BoundingBox(52.50, 13.38, 52.52, 13.41)

# Unit box: with resolution 10 each cell is exactly 0.1 degrees
UNIT_BOX = BoundingBox(0.0, 0.0, 1.0, 1.0)


@pytest.fixture()
def berlin_box() -> BoundingBox:
    return BERLIN_BOX


@pytest.fixture()
def unit_box() -> BoundingBox:
    return UNIT_BOX


@pytest.fixture()
def unit_config() -> OsmConfig:
    """10 x 10 grid over the unit box with every category enabled."""
    return OsmConfig(region=UNIT_BOX, grid_resolution=10, feature_set=FeatureSet.comprehensive())


# ---------------------------------------------------------------------------
# Element builders
# ---------------------------------------------------------------------------


def make_element(
    osm_id: int,
    kind: ElementKind,
    coordinates: list[tuple[float, float]],
    **tags: str,
) -> GeographicElement:
    """Build an element; ``osm_type`` follows the geometry kind."""
    osm_type = "node" if kind is ElementKind.POINT else "way"
    return GeographicElement(osm_id, kind, coordinates, tags, osm_type=osm_type)


def square(south: float, west: float, north: float, east: float) -> list[tuple[float, float]]:
    """Closed ring around a lat/lon rectangle."""
    return [(south, west), (south, east), (north, east), (north, west), (south, west)]


def classified(
    element: GeographicElement, tile_type: TileType | None, priority: int | None = None
) -> ClassifiedElement:
    if tile_type is None:
        return ClassifiedElement(element, None)
    return ClassifiedElement(element, tile_type, tile_type.priority if priority is None else priority)


# ---------------------------------------------------------------------------
# Overpass payloads
# ---------------------------------------------------------------------------


def sample_overpass_payload() -> dict[str, Any]:
    """Small Overpass ``out geom`` response inside ``BERLIN_BOX``."""
    return {
        "version": 0.6,
        "generator": "Overpass API",
        "elements": [
            {
                "type": "node",
                "id": 101,
                "lat": 52.51,
                "lon": 13.39,
                "tags": {"amenity": "restaurant", "name": "Zur Letzten Instanz"},
            },
            {
                "type": "way",
                "id": 201,
                "tags": {"highway": "primary", "name": "Unter den Linden"},
                "geometry": [
                    {"lat": 52.505, "lon": 13.381},
                    {"lat": 52.515, "lon": 13.405},
                ],
            },
            {
                "type": "way",
                "id": 202,
                "tags": {"building": "yes"},
                "geometry": [
                    {"lat": 52.511, "lon": 13.391},
                    {"lat": 52.511, "lon": 13.393},
                    {"lat": 52.513, "lon": 13.393},
                    {"lat": 52.513, "lon": 13.391},
                    {"lat": 52.511, "lon": 13.391},
                ],
            },
        ],
    }


@pytest.fixture()
def overpass_payload() -> dict[str, Any]:
    return sample_overpass_payload()


@pytest.fixture()
def overpass_file(tmp_path: Path, overpass_payload: dict[str, Any]) -> Path:
    """The ``overpass_payload`` fixture saved as a JSON file."""
    path = tmp_path / "berlin.json"
    path.write_text(json.dumps(overpass_payload), encoding="utf-8")
    return path
