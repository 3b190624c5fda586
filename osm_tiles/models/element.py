"""Geographic element model: one parsed OSM-like feature.

A ``GeographicElement`` is a point, line or area with WGS 84 coordinates
and a key/value tag mapping. Elements are immutable once parsed and are
handed from the data provider to the classifier unchanged.

Construction is deliberately lenient: providers must be able to pass
dirty upstream data through so that the generator can skip and count it.
``check()`` is the strict gate, raising ``PartialElementError``.
"""

from __future__ import annotations

import enum
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from osm_tiles.core.exceptions import PartialElementError

Coordinate = tuple[float, float]
"""A ``(lat, lon)`` pair in decimal degrees."""


class ElementKind(enum.Enum):
    """Geometric kind of a geographic element."""

    POINT = "point"
    LINE = "line"
    AREA = "area"

    @property
    def min_coordinates(self) -> int:
        """Minimum distinct coordinates needed for a usable footprint."""
        return _MIN_COORDINATES[self]


_MIN_COORDINATES = {
    ElementKind.POINT: 1,
    ElementKind.LINE: 2,
    ElementKind.AREA: 3,
}


@dataclass(frozen=True, slots=True)
class GeographicElement:
    """One parsed geographic feature.

    Attributes:
        osm_id: Upstream identifier (0 when synthesised without one).
        kind: Point, line or area.
        coordinates: Ordered ``(lat, lon)`` pairs. Areas are implicitly
            closed: the first coordinate may or may not be repeated.
        tags: Read-only mapping of tag key to value.
        osm_type: Upstream element type (``node``, ``way`` or ``relation``).
    """

    osm_id: int
    kind: ElementKind
    coordinates: tuple[Coordinate, ...] = ()
    tags: Mapping[str, str] = field(default_factory=dict)
    osm_type: str = "way"

    def __post_init__(self) -> None:
        # Normalise to immutable containers without validating geometry.
        object.__setattr__(
            self,
            "coordinates",
            tuple((float(lat), float(lon)) for lat, lon in self.coordinates),
        )
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def check(self) -> None:
        """Verify the geometry can be rasterized.

        Raises:
            PartialElementError: If there are too few coordinates for the
                element kind, or a coordinate is non-finite or outside
                the WGS 84 range.
        """
        for lat, lon in self.coordinates:
            if not (math.isfinite(lat) and math.isfinite(lon)):
                raise PartialElementError(self.osm_id, f"non-finite coordinate ({lat}, {lon})")
            if not -90.0 <= lat <= 90.0:
                raise PartialElementError(self.osm_id, f"latitude {lat} outside [-90, 90]")
            if not -180.0 <= lon <= 180.0:
                raise PartialElementError(self.osm_id, f"longitude {lon} outside [-180, 180]")

        points = self.coordinates
        if self.kind is ElementKind.AREA:
            points = self.open_ring()
        needed = self.kind.min_coordinates
        if len(set(points)) < needed:
            raise PartialElementError(
                self.osm_id,
                f"{self.kind.value} needs >= {needed} distinct coordinates, "
                f"got {len(set(points))}",
            )

    # ------------------------------------------------------------------
    # Geometry helpers
    # ------------------------------------------------------------------

    def open_ring(self) -> tuple[Coordinate, ...]:
        """Return the coordinates without a repeated closing vertex."""
        coords = self.coordinates
        if len(coords) > 1 and coords[0] == coords[-1]:
            return coords[:-1]
        return coords

    def ring(self) -> tuple[Coordinate, ...]:
        """Return the coordinates explicitly closed (first == last)."""
        coords = self.open_ring()
        if not coords:
            return coords
        return (*coords, coords[0])

    def bounds(self) -> tuple[float, float, float, float]:
        """Return ``(south, west, north, east)`` of the coordinates.

        Raises:
            PartialElementError: If the element has no coordinates.
        """
        if not self.coordinates:
            raise PartialElementError(self.osm_id, "no coordinates")
        lats = [lat for lat, _ in self.coordinates]
        lons = [lon for _, lon in self.coordinates]
        return (min(lats), min(lons), max(lats), max(lons))

    def center_point(self) -> Coordinate | None:
        """Return the mean coordinate, or ``None`` without coordinates."""
        coords = self.open_ring() if self.kind is ElementKind.AREA else self.coordinates
        if not coords:
            return None
        n = len(coords)
        return (sum(c[0] for c in coords) / n, sum(c[1] for c in coords) / n)

    def has_tag(self, key: str, value: str | None = None) -> bool:
        """Whether the element carries *key* (optionally with *value*)."""
        if key not in self.tags:
            return False
        return value is None or self.tags[key] == value

    @property
    def name(self) -> str:
        """The ``name`` tag, or an empty string."""
        return self.tags.get("name", "")

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict."""
        return {
            "osm_id": self.osm_id,
            "osm_type": self.osm_type,
            "kind": self.kind.value,
            "coordinates": [list(c) for c in self.coordinates],
            "tags": dict(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GeographicElement:
        """Deserialise from a plain dict produced by ``to_dict``."""
        return cls(
            osm_id=int(data.get("osm_id", 0)),
            osm_type=str(data.get("osm_type", "way")),
            kind=ElementKind(data["kind"]),
            coordinates=tuple((c[0], c[1]) for c in data.get("coordinates", [])),
            tags={str(k): str(v) for k, v in data.get("tags", {}).items()},
        )
