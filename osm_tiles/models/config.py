"""Grid generation request: region, resolution and feature set.

``OsmConfig`` is validated on construction, so any instance that exists
is either usable or carries an unresolved region that the provider will
turn into a bounding box. ``OsmConfigBuilder`` is the fluent surface
consumed by engine glue and command-line front ends.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from osm_tiles.core.constants import (
    DEFAULT_GRID_RESOLUTION,
    DEFAULT_QUERY_TIMEOUT_S,
    MIN_GRID_RESOLUTION,
    PERFORMANCE_WARNING_RESOLUTION,
)
from osm_tiles.core.exceptions import ConfigError
from osm_tiles.models.features import FeatureSet, OsmFeature
from osm_tiles.models.region import BoundingBox, CenterRadius, NamedPlace, Region
from osm_tiles.models.tiles import TileType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OsmConfig:
    """Immutable grid generation request.

    Attributes:
        region: Area of interest (bbox, named place or centre/radius).
        grid_resolution: Cells per side of the square output grid (>= 1).
            Values above ``PERFORMANCE_WARNING_RESOLUTION`` are valid but
            performance-sensitive.
        feature_set: Categories and custom queries to classify.
        timeout_seconds: Server-side query timeout passed to providers.
    """

    region: Region
    grid_resolution: int = DEFAULT_GRID_RESOLUTION
    feature_set: FeatureSet = field(default_factory=FeatureSet.urban)
    timeout_seconds: int = DEFAULT_QUERY_TIMEOUT_S

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> OsmConfig:
        """Check every field and return ``self``.

        Raises:
            ConfigError: For a non-integer or non-positive resolution, a
                non-positive timeout, or an invalid region.
        """
        resolution = self.grid_resolution
        if isinstance(resolution, bool) or not isinstance(resolution, int):
            raise ConfigError(
                "grid_resolution",
                resolution,
                "must be an integer",
                region=self.region,
                resolution=resolution,
            )
        if resolution < MIN_GRID_RESOLUTION:
            raise ConfigError(
                "grid_resolution",
                resolution,
                f"must be >= {MIN_GRID_RESOLUTION}",
                region=self.region,
                resolution=resolution,
            )
        if self.timeout_seconds <= 0:
            raise ConfigError(
                "timeout_seconds",
                self.timeout_seconds,
                "must be > 0 (seconds)",
                region=self.region,
                resolution=resolution,
            )
        if not isinstance(self.region, (BoundingBox, NamedPlace, CenterRadius)):
            raise ConfigError(
                "region",
                self.region,
                "must be a BoundingBox, NamedPlace or CenterRadius",
                resolution=resolution,
            )
        try:
            self.region.validate()
        except ConfigError as exc:
            raise ConfigError(
                exc.field, exc.value, exc.reason, region=self.region, resolution=resolution
            ) from exc
        return self

    @property
    def is_performance_sensitive(self) -> bool:
        """Whether the resolution is above the documented comfort zone."""
        return self.grid_resolution > PERFORMANCE_WARNING_RESOLUTION

    @property
    def is_resolved(self) -> bool:
        """Whether the region is already a bounding box."""
        return isinstance(self.region, BoundingBox)

    def with_region(self, region: Region) -> OsmConfig:
        """Return a copy targeting *region* (typically the resolved bbox)."""
        return dataclasses.replace(self, region=region)

    def cache_key(self) -> tuple[Region, int, FeatureSet]:
        """Key identifying grids generated from this request."""
        return (self.region, self.grid_resolution, self.feature_set)

    @staticmethod
    def builder() -> OsmConfigBuilder:
        return OsmConfigBuilder()


class OsmConfigBuilder:
    """Fluent builder for ``OsmConfig``.

    Defaults: named place ``"Berlin"``, resolution
    ``DEFAULT_GRID_RESOLUTION`` and the ``urban`` feature preset.
    Validation happens in ``build()``.

    Example::

        config = (
            OsmConfigBuilder()
            .bbox(52.50, 13.37, 52.53, 13.42)
            .grid_resolution(250)
            .transportation_features()
            .with_custom_query("amenity", "restaurant")
            .build()
        )
    """

    def __init__(self) -> None:
        self._region: Region = NamedPlace("Berlin")
        self._resolution: int = DEFAULT_GRID_RESOLUTION
        self._features: FeatureSet = FeatureSet.urban()
        self._timeout: int = DEFAULT_QUERY_TIMEOUT_S

    # -- region --

    def region(self, region: Region) -> OsmConfigBuilder:
        self._region = region
        return self

    def bbox(self, south: float, west: float, north: float, east: float) -> OsmConfigBuilder:
        self._region = BoundingBox(south, west, north, east)
        return self

    def place(self, name: str) -> OsmConfigBuilder:
        self._region = NamedPlace(name)
        return self

    def center_radius(self, lat: float, lon: float, radius_km: float) -> OsmConfigBuilder:
        self._region = CenterRadius(lat, lon, radius_km)
        return self

    # -- scalar settings --

    def grid_resolution(self, resolution: int) -> OsmConfigBuilder:
        self._resolution = resolution
        return self

    def timeout(self, seconds: int) -> OsmConfigBuilder:
        self._timeout = seconds
        return self

    # -- features --

    def features(self, feature_set: FeatureSet) -> OsmConfigBuilder:
        self._features = feature_set
        return self

    def preset(self, name: str) -> OsmConfigBuilder:
        self._features = FeatureSet.preset(name)
        return self

    def urban_features(self) -> OsmConfigBuilder:
        return self.features(FeatureSet.urban())

    def transportation_features(self) -> OsmConfigBuilder:
        return self.features(FeatureSet.transportation())

    def natural_features(self) -> OsmConfigBuilder:
        return self.features(FeatureSet.natural())

    def comprehensive_features(self) -> OsmConfigBuilder:
        return self.features(FeatureSet.comprehensive())

    def with_feature(self, feature: OsmFeature) -> OsmConfigBuilder:
        self._features = self._features.with_feature(feature)
        return self

    def with_features(self, features: Iterable[OsmFeature]) -> OsmConfigBuilder:
        self._features = self._features.with_features(features)
        return self

    def without_feature(self, feature: OsmFeature) -> OsmConfigBuilder:
        self._features = self._features.without_feature(feature)
        return self

    def with_custom_query(
        self,
        key: str,
        value: str | None = None,
        *,
        tile_type: TileType | None = None,
        priority: int | None = None,
    ) -> OsmConfigBuilder:
        self._features = self._features.with_custom_query(
            key, value, tile_type=tile_type, priority=priority
        )
        return self

    def build(self) -> OsmConfig:
        """Validate and return the config.

        Raises:
            ConfigError: If any setting is invalid.
        """
        config = OsmConfig(
            region=self._region,
            grid_resolution=self._resolution,
            feature_set=self._features,
            timeout_seconds=self._timeout,
        )
        if config.is_performance_sensitive:
            logger.warning(
                "Performance-sensitive grid resolution | resolution=%d | cells=%d",
                config.grid_resolution,
                config.grid_resolution * config.grid_resolution,
            )
        return config

    # -- use-case profiles --

    @classmethod
    def for_gaming(cls) -> OsmConfigBuilder:
        """Urban features plus amenities and tourism, resolution 200."""
        return (
            cls()
            .urban_features()
            .with_features([OsmFeature.AMENITIES, OsmFeature.TOURISM])
            .grid_resolution(200)
        )

    @classmethod
    def for_navigation(cls) -> OsmConfigBuilder:
        """Transportation features plus buildings and amenities, resolution 150."""
        return (
            cls()
            .transportation_features()
            .with_features([OsmFeature.FOOTPATHS, OsmFeature.BUILDINGS, OsmFeature.AMENITIES])
            .grid_resolution(150)
        )

    @classmethod
    def for_urban_planning(cls) -> OsmConfigBuilder:
        """Every category, resolution 300."""
        return cls().comprehensive_features().grid_resolution(300)

    @classmethod
    def for_environment(cls) -> OsmConfigBuilder:
        """Natural features plus rivers, lakes and land use, resolution 100."""
        return (
            cls()
            .natural_features()
            .with_features([OsmFeature.RIVERS, OsmFeature.LAKES, OsmFeature.LANDUSE])
            .grid_resolution(100)
        )
