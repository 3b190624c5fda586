"""Region model: the geographic area a grid is generated for.

A region is one of:

- ``BoundingBox``: explicit ``(south, west, north, east)`` in degrees.
- ``NamedPlace``: a place name resolved to a bounding box by the
  data provider (geocoding).
- ``CenterRadius``: a centre point and a radius in kilometres, resolved
  geodesically.

Only a ``BoundingBox`` can be rasterized; the pipeline resolves the other
forms through the provider before generation.

Geodesic measurements use ``pyproj.Geod`` on the WGS 84 ellipsoid.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Union

from pyproj import Geod

from osm_tiles.core.exceptions import ConfigError

_GEOD = Geod(ellps="WGS84")


def _unwrap_lon(origin: float, lon: float) -> float:
    """Undo antimeridian wrapping: return *lon* within 180° of *origin*.

    ``Geod.fwd`` normalises longitudes to ±180, so a step east from 179.99
    comes back near -180. Callers clamp the unwrapped value to ±180.
    """
    return origin + (lon - origin + 180.0) % 360.0 - 180.0


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned WGS 84 bounding box.

    Attributes:
        south: Minimum latitude in degrees.
        west: Minimum longitude in degrees.
        north: Maximum latitude in degrees.
        east: Maximum longitude in degrees.
    """

    south: float
    west: float
    north: float
    east: float

    def validate(self) -> BoundingBox:
        """Check the box is usable for rasterization and return it.

        Raises:
            ConfigError: If a bound is non-finite or out of range, or the
                box is degenerate (``south >= north`` or ``west >= east``).
        """
        for name, value, limit in (
            ("south", self.south, 90.0),
            ("north", self.north, 90.0),
            ("west", self.west, 180.0),
            ("east", self.east, 180.0),
        ):
            if not math.isfinite(value) or abs(value) > limit:
                raise ConfigError(
                    f"region.{name}", value, f"must be finite and within ±{limit:g}", region=self
                )
        if self.south >= self.north:
            raise ConfigError(
                "region.south",
                self.south,
                f"must be < north ({self.north})",
                region=self,
            )
        if self.west >= self.east:
            raise ConfigError(
                "region.west",
                self.west,
                f"must be < east ({self.east})",
                region=self,
            )
        return self

    @property
    def width_deg(self) -> float:
        """Longitude span in degrees."""
        return self.east - self.west

    @property
    def height_deg(self) -> float:
        """Latitude span in degrees."""
        return self.north - self.south

    def center(self) -> tuple[float, float]:
        """Return the ``(lat, lon)`` centre of the box."""
        return ((self.south + self.north) / 2.0, (self.west + self.east) / 2.0)

    def contains(self, lat: float, lon: float) -> bool:
        """Whether ``(lat, lon)`` lies inside the box (edges inclusive)."""
        return self.south <= lat <= self.north and self.west <= lon <= self.east

    def intersects(self, bounds: tuple[float, float, float, float]) -> bool:
        """Whether ``(south, west, north, east)`` *bounds* overlap the box."""
        south, west, north, east = bounds
        return not (
            north < self.south or south > self.north or east < self.west or west > self.east
        )

    def area_km2(self) -> float:
        """Geodesic area of the box in square kilometres."""
        lons = [self.west, self.east, self.east, self.west]
        lats = [self.south, self.south, self.north, self.north]
        area_m2, _perimeter = _GEOD.polygon_area_perimeter(lons, lats)
        return abs(area_m2) / 1_000_000.0

    def expand_by_km(self, km: float) -> BoundingBox:
        """Return a box grown by *km* on every side (clamped to WGS 84)."""
        lat, lon = self.center()
        _, north, _ = _GEOD.fwd(lon, self.north, 0.0, km * 1000.0)
        _, south, _ = _GEOD.fwd(lon, self.south, 180.0, km * 1000.0)
        east, _, _ = _GEOD.fwd(self.east, lat, 90.0, km * 1000.0)
        west, _, _ = _GEOD.fwd(self.west, lat, 270.0, km * 1000.0)
        return BoundingBox(
            south=max(-90.0, south),
            west=max(-180.0, _unwrap_lon(self.west, west)),
            north=min(90.0, north),
            east=min(180.0, _unwrap_lon(self.east, east)),
        )

    def to_overpass(self) -> str:
        """Render as an Overpass QL bbox filter body ``s,w,n,e``."""
        return f"{self.south},{self.west},{self.north},{self.east}"

    def to_list(self) -> list[float]:
        """Return ``[south, west, north, east]``."""
        return [self.south, self.west, self.north, self.east]


@dataclass(frozen=True, slots=True)
class NamedPlace:
    """A place name to be geocoded by the data provider.

    Attributes:
        name: Free-form place name (e.g. ``"Berlin"``).
    """

    name: str

    def validate(self) -> NamedPlace:
        """Raise ``ConfigError`` if the name is blank."""
        if not self.name or not self.name.strip():
            raise ConfigError("region.name", self.name, "must not be empty", region=self)
        return self


@dataclass(frozen=True, slots=True)
class CenterRadius:
    """A circle given by its centre and radius.

    Attributes:
        lat: Centre latitude in degrees.
        lon: Centre longitude in degrees.
        radius_km: Radius in kilometres.
    """

    lat: float
    lon: float
    radius_km: float

    def validate(self) -> CenterRadius:
        """Raise ``ConfigError`` for an out-of-range centre or radius."""
        if not (math.isfinite(self.lat) and -90.0 <= self.lat <= 90.0):
            raise ConfigError("region.lat", self.lat, "must be within ±90", region=self)
        if not (math.isfinite(self.lon) and -180.0 <= self.lon <= 180.0):
            raise ConfigError("region.lon", self.lon, "must be within ±180", region=self)
        if not (math.isfinite(self.radius_km) and self.radius_km > 0):
            raise ConfigError("region.radius_km", self.radius_km, "must be > 0 (km)", region=self)
        return self

    def to_bbox(self) -> BoundingBox:
        """Return the geodesic bounding box enclosing the circle."""
        self.validate()
        distance_m = self.radius_km * 1000.0
        _, north, _ = _GEOD.fwd(self.lon, self.lat, 0.0, distance_m)
        _, south, _ = _GEOD.fwd(self.lon, self.lat, 180.0, distance_m)
        east, _, _ = _GEOD.fwd(self.lon, self.lat, 90.0, distance_m)
        west, _, _ = _GEOD.fwd(self.lon, self.lat, 270.0, distance_m)
        return BoundingBox(
            south=max(-90.0, south),
            west=max(-180.0, _unwrap_lon(self.lon, west)),
            north=min(90.0, north),
            east=min(180.0, _unwrap_lon(self.lon, east)),
        ).validate()


Region = Union[BoundingBox, NamedPlace, CenterRadius]
"""Any supported region form."""


def describe_region(region: Region) -> str:
    """Return a short log-friendly description of *region*."""
    if isinstance(region, BoundingBox):
        return f"bbox({region.to_overpass()})"
    if isinstance(region, NamedPlace):
        return f"place({region.name})"
    return f"circle({region.lat},{region.lon},r={region.radius_km}km)"
