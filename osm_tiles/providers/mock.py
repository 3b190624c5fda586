"""Deterministic offline provider for tests and demos.

``MockProvider`` never touches the network. By default it synthesises a
small plausible town for the requested bounding box. The town has
land-use zones, a lake, a river, a road lattice, a railway, buildings,
parking and points of interest. It is then filtered to the elements the
feature set's tag queries select, as Overpass would.

Determinism: the random generator is seeded with a SHA-256 digest of the
canonical bounding box and every coordinate is rounded to 7 decimals, so
identical ``(region, feature_set)`` inputs produce identical element
sequences across runs, processes and platforms.

It can also replay fixed elements or a raw Overpass payload, and simulate
any ``ProviderErrorKind`` failure (``fail_with``).
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

import numpy as np

from osm_tiles.models.element import ElementKind, GeographicElement
from osm_tiles.models.provider import ProviderCapabilities, ProviderConfig
from osm_tiles.models.region import BoundingBox, CenterRadius, NamedPlace, describe_region
from osm_tiles.providers.base import (
    InvalidRegionError,
    OsmDataProvider,
    ProviderErrorKind,
    provider_error,
)
from osm_tiles.providers.parser import parse_overpass_payload

if TYPE_CHECKING:
    from osm_tiles.models.features import FeatureSet
    from osm_tiles.models.region import Region

logger = logging.getLogger(__name__)

# Built-in "geocoder": lower-cased place name → (south, west, north, east).
KNOWN_PLACES: dict[str, tuple[float, float, float, float]] = {
    "berlin": (52.3, 13.0, 52.7, 13.8),
    "munich": (48.0, 11.3, 48.3, 11.8),
    "hamburg": (53.4, 9.7, 53.8, 10.3),
    "test": (52.4, 13.3, 52.6, 13.5),
    "testcity": (52.4, 13.3, 52.6, 13.5),
    "mock": (52.4, 13.3, 52.6, 13.5),
}

_COORD_DECIMALS = 7

_ROAD_CLASSES = ("residential", "secondary", "tertiary", "primary", "unclassified")
_BUILDING_CLASSES = ("yes", "residential", "commercial", "industrial", "retail")
_AMENITIES = ("restaurant", "cafe", "school", "pharmacy", "bank", "library")
_TOURISM = ("museum", "hotel", "viewpoint")


class MockProvider(OsmDataProvider):
    """Offline provider with reproducible synthetic data.

    Args:
        config: Provider configuration. ``extra_params["fail_with"]`` may
            name a ``ProviderErrorKind`` value to simulate.
        elements: Fixed elements returned verbatim by ``fetch``.
        payload: Raw Overpass JSON parsed and returned by ``fetch``.
        fail_with: Failure kind raised by every ``fetch`` call.
    """

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        elements: Sequence[GeographicElement] | None = None,
        payload: dict[str, Any] | None = None,
        fail_with: ProviderErrorKind | None = None,
    ) -> None:
        super().__init__(config or ProviderConfig(name="mock"))
        self._elements = tuple(elements) if elements is not None else None
        self._payload = payload
        configured = self.config.extra_params.get("fail_with")
        self._fail_with = fail_with or (ProviderErrorKind(configured) if configured else None)
        self._lock = threading.Lock()
        self._fetch_count = 0

    @classmethod
    def with_failure(cls, kind: ProviderErrorKind) -> MockProvider:
        """Return a provider whose ``fetch`` always fails with *kind*."""
        return cls(fail_with=kind)

    @property
    def fetch_count(self) -> int:
        """Number of ``fetch`` calls made so far."""
        return self._fetch_count

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_real_time=False,
            requires_network=False,
            supports_geocoding=True,
            max_area_km2=None,
            supported_formats=("synthetic", "overpass-json"),
            rate_limit_rpm=None,
            notes=f"Knows places: {', '.join(sorted(KNOWN_PLACES))}",
        )

    def resolve_region(self, region: Region) -> BoundingBox:
        if isinstance(region, BoundingBox):
            return region.validate()
        if isinstance(region, CenterRadius):
            return region.to_bbox()
        if isinstance(region, NamedPlace):
            bounds = KNOWN_PLACES.get(region.validate().name.strip().lower())
            if bounds is None:
                msg = f"Mock provider doesn't know city {region.name!r}"
                raise InvalidRegionError(self.name, msg)
            return BoundingBox(*bounds)
        msg = f"Unsupported region type: {type(region).__name__}"
        raise InvalidRegionError(self.name, msg)

    def fetch(
        self,
        region: Region,
        feature_set: FeatureSet,
        *,
        timeout_s: int | None = None,
    ) -> list[GeographicElement]:
        with self._lock:
            self._fetch_count += 1
        if self._fail_with is not None:
            msg = f"Simulated {self._fail_with.value} failure for {describe_region(region)}"
            raise provider_error(self.name, msg, self._fail_with)

        bbox = self.resolve_region(region)
        if self._elements is not None:
            elements = list(self._elements)
        elif self._payload is not None:
            elements = parse_overpass_payload(self._payload, provider=self.name)
        else:
            queries = feature_set.to_tag_queries()
            elements = [
                e
                for e in synthesize_town(bbox)
                if any(q.matches(e.tags) for q in queries)
            ]
        logger.info(
            "Mock fetch | region=%s | features=%s | elements=%d",
            describe_region(region),
            feature_set.canonical(),
            len(elements),
        )
        return elements


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------


def region_seed(bbox: BoundingBox) -> int:
    """Stable 64-bit seed derived from the canonical bbox text."""
    canonical = ",".join(f"{v:.{_COORD_DECIMALS}f}" for v in bbox.to_list())
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


class _TownBuilder:
    """Accumulates synthetic elements in unit square space ``(u, v)``.

    ``u`` runs west→east and ``v`` south→north, both in ``[0, 1]``.
    """

    def __init__(self, bbox: BoundingBox) -> None:
        self._bbox = bbox
        self._elements: list[GeographicElement] = []
        self._next_id = 1

    @property
    def elements(self) -> list[GeographicElement]:
        return self._elements

    def _coord(self, u: float, v: float) -> tuple[float, float]:
        lat = self._bbox.south + float(v) * self._bbox.height_deg
        lon = self._bbox.west + float(u) * self._bbox.width_deg
        return (round(lat, _COORD_DECIMALS), round(lon, _COORD_DECIMALS))

    def add(
        self,
        kind: ElementKind,
        points: Iterable[tuple[float, float]],
        tags: dict[str, str],
    ) -> None:
        coords = tuple(self._coord(u, v) for u, v in points)
        osm_type = "node" if kind is ElementKind.POINT else "way"
        self._elements.append(
            GeographicElement(self._next_id, kind, coords, tags, osm_type=osm_type)
        )
        self._next_id += 1

    def rect(self, u0: float, v0: float, u1: float, v1: float, tags: dict[str, str]) -> None:
        self.add(ElementKind.AREA, [(u0, v0), (u1, v0), (u1, v1), (u0, v1), (u0, v0)], tags)


def synthesize_town(bbox: BoundingBox) -> list[GeographicElement]:
    """Return the full synthetic element set for *bbox* (unfiltered)."""
    rng = np.random.default_rng(region_seed(bbox))
    town = _TownBuilder(bbox)

    # Land-use zones first so everything else sits on top in input order.
    town.rect(0.0, 0.0, 0.45, 0.35, {"landuse": "grass"})
    town.rect(0.55, 0.0, 1.0, 0.3, {"natural": "wood", "name": "Stadtwald"})
    town.rect(0.05, 0.5, 0.4, 0.95, {"landuse": "residential"})
    town.rect(0.6, 0.55, 0.95, 0.8, {"landuse": "commercial"})
    town.rect(0.6, 0.82, 0.95, 0.98, {"landuse": "industrial"})

    # Park with an irregular outline.
    cx, cy = rng.uniform(0.2, 0.3), rng.uniform(0.15, 0.25)
    angles = np.linspace(0.0, 2.0 * np.pi, 9)[:-1]
    radii = rng.uniform(0.06, 0.1, size=angles.size)
    park = [(cx + r * np.cos(a), cy + r * np.sin(a)) for a, r in zip(angles, radii, strict=True)]
    town.add(ElementKind.AREA, [*park, park[0]], {"leisure": "park", "name": "Volkspark"})

    # Lake and the river feeding it.
    lx, ly = rng.uniform(0.7, 0.8), rng.uniform(0.1, 0.2)
    town.rect(lx - 0.08, ly - 0.05, lx + 0.08, ly + 0.05, {"natural": "water", "water": "lake"})
    river_v = np.linspace(1.0, ly + 0.05, 6)
    river_u = np.clip(lx + rng.normal(0.0, 0.03, size=river_v.size), 0.0, 1.0)
    town.add(ElementKind.LINE, zip(river_u, river_v, strict=True), {"waterway": "river", "name": "Spree"})

    # Road lattice.
    for i, v in enumerate(np.linspace(0.1, 0.9, 5)):
        jitter = rng.uniform(-0.02, 0.02)
        town.add(
            ElementKind.LINE,
            [(0.0, v + jitter), (1.0, v - jitter)],
            {"highway": _ROAD_CLASSES[i % len(_ROAD_CLASSES)]},
        )
    for i, u in enumerate(np.linspace(0.15, 0.85, 4)):
        town.add(
            ElementKind.LINE,
            [(u, 0.0), (u + rng.uniform(-0.03, 0.03), 1.0)],
            {"highway": _ROAD_CLASSES[(i + 2) % len(_ROAD_CLASSES)]},
        )
    town.add(ElementKind.LINE, [(0.0, 0.0), (1.0, 1.0)], {"highway": "motorway", "ref": "A 100"})
    town.add(ElementKind.LINE, [(0.2, 0.2), (0.3, 0.25), (0.35, 0.15)], {"highway": "footway"})

    # Railway across the north.
    town.add(ElementKind.LINE, [(0.0, 0.75), (0.5, 0.7), (1.0, 0.72)], {"railway": "rail"})

    # Buildings: small rectangles in the residential and commercial zones.
    for _ in range(12):
        u = rng.uniform(0.07, 0.9)
        v = rng.uniform(0.52, 0.93)
        w, h = rng.uniform(0.01, 0.03, size=2)
        kind = _BUILDING_CLASSES[int(rng.integers(len(_BUILDING_CLASSES)))]
        town.rect(u, v, u + w, v + h, {"building": kind})

    town.rect(0.42, 0.4, 0.5, 0.46, {"amenity": "parking"})
    town.add(ElementKind.LINE, [(0.0, 0.45), (1.0, 0.4)], {"power": "line"})

    # Points of interest.
    for name in _AMENITIES:
        town.add(ElementKind.POINT, [tuple(rng.uniform(0.05, 0.95, size=2))], {"amenity": name})
    for name in _TOURISM:
        town.add(ElementKind.POINT, [tuple(rng.uniform(0.05, 0.95, size=2))], {"tourism": name})

    return town.elements
