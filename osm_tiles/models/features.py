"""Feature categories, tag queries and feature sets.

Defines the filter vocabulary used by the classifier and by the data
providers when building their queries:

- ``TagQuery``:   predicate on one tag key (and optionally its value)
- ``OsmFeature``: semantic feature category with built-in tag rules
- ``CustomQuery``: a caller-supplied ``TagQuery`` with optional tile type
  and priority
- ``FeatureSet``: immutable selection of categories plus custom queries

Design notes:
- All models are frozen and hashable so a ``FeatureSet`` can be part of a
  grid cache key.
- Category order is significant: the classifier evaluates enabled
  categories in ``OsmFeature`` declaration order.
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from osm_tiles.core.exceptions import ConfigError
from osm_tiles.models.tiles import EMPTY_PRIORITY, MAX_PRIORITY, TileType

# ---------------------------------------------------------------------------
# Tag query
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TagQuery:
    """Predicate on a single OSM tag.

    Attributes:
        key: Tag key that must be present.
        value: Required tag value, or ``None`` to match any value.
    """

    key: str
    value: str | None = None

    def __post_init__(self) -> None:
        if not self.key or not self.key.strip():
            raise ConfigError("tag_query.key", self.key, "must not be empty")

    def matches(self, tags: Mapping[str, str]) -> bool:
        """Whether *tags* satisfy this predicate."""
        if self.key not in tags:
            return False
        return self.value is None or tags[self.key] == self.value

    def to_overpass_filter(self) -> str:
        """Render as an Overpass QL tag filter, e.g. ``["highway"="primary"]``."""
        if self.value is None:
            return f'["{self.key}"]'
        return f'["{self.key}"="{self.value}"]'

    def sort_key(self) -> tuple[str, str]:
        return (self.key, self.value or "")

    def __str__(self) -> str:
        return f"{self.key}={self.value}" if self.value is not None else f"{self.key}=*"


def _q(key: str, *values: str) -> tuple[TagQuery, ...]:
    if not values:
        return (TagQuery(key),)
    return tuple(TagQuery(key, v) for v in values)


# ---------------------------------------------------------------------------
# Feature categories
# ---------------------------------------------------------------------------


class OsmFeature(enum.Enum):
    """Semantic feature category.

    Declaration order is the classifier's evaluation order.
    """

    ROADS = "roads"
    HIGHWAYS = "highways"
    FOOTPATHS = "footpaths"
    RAILWAYS = "railways"
    BUILDINGS = "buildings"
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"
    WATER = "water"
    RIVERS = "rivers"
    LAKES = "lakes"
    FORESTS = "forests"
    PARKS = "parks"
    GRASSLAND = "grassland"
    PARKING = "parking"
    AMENITIES = "amenities"
    TOURISM = "tourism"
    POWER_LINES = "power_lines"
    BOUNDARIES = "boundaries"
    LANDUSE = "landuse"

    @classmethod
    def from_name(cls, name: str) -> OsmFeature:
        """Look a category up by value or member name (case-insensitive).

        Raises:
            ConfigError: If *name* is not a known category.
        """
        normalised = name.strip().lower().replace("-", "_").replace(" ", "_")
        for feature in cls:
            if feature.value == normalised:
                return feature
        known = ", ".join(f.value for f in cls)
        raise ConfigError("feature", name, f"unknown feature category (known: {known})")

    def tag_queries(self) -> tuple[TagQuery, ...]:
        """Built-in tag rules, in evaluation order."""
        return _FEATURE_RULES[self]

    @property
    def tile_type(self) -> TileType:
        """Tile type assigned to elements matched by this category."""
        return _FEATURE_TILE_TYPES[self]

    @property
    def priority(self) -> int:
        """Static overlap priority of this category."""
        return self.tile_type.priority

    @property
    def description(self) -> str:
        return _FEATURE_DESCRIPTIONS[self]


_FEATURE_RULES: dict[OsmFeature, tuple[TagQuery, ...]] = {
    OsmFeature.ROADS: _q("highway", "primary", "secondary", "tertiary", "residential", "unclassified"),
    OsmFeature.HIGHWAYS: _q("highway", "motorway", "trunk", "primary"),
    OsmFeature.FOOTPATHS: _q("highway", "footway", "path", "pedestrian", "steps"),
    OsmFeature.RAILWAYS: _q("railway"),
    OsmFeature.BUILDINGS: _q("building"),
    OsmFeature.RESIDENTIAL: (TagQuery("building", "residential"), TagQuery("landuse", "residential")),
    OsmFeature.COMMERCIAL: (
        TagQuery("building", "commercial"),
        TagQuery("landuse", "commercial"),
        TagQuery("building", "retail"),
    ),
    OsmFeature.INDUSTRIAL: (TagQuery("building", "industrial"), TagQuery("landuse", "industrial")),
    OsmFeature.WATER: (TagQuery("natural", "water"), TagQuery("waterway")),
    OsmFeature.RIVERS: _q("waterway", "river", "stream"),
    OsmFeature.LAKES: (TagQuery("natural", "water"), TagQuery("water", "lake")),
    OsmFeature.FORESTS: (TagQuery("natural", "wood"), TagQuery("landuse", "forest")),
    OsmFeature.PARKS: _q("leisure", "park", "garden"),
    OsmFeature.GRASSLAND: (TagQuery("landuse", "grass"), TagQuery("natural", "grassland")),
    OsmFeature.PARKING: (TagQuery("amenity", "parking"), TagQuery("landuse", "parking")),
    OsmFeature.AMENITIES: _q("amenity"),
    OsmFeature.TOURISM: _q("tourism"),
    OsmFeature.POWER_LINES: _q("power", "line", "tower"),
    OsmFeature.BOUNDARIES: _q("boundary"),
    OsmFeature.LANDUSE: _q("landuse"),
}

_FEATURE_TILE_TYPES: dict[OsmFeature, TileType] = {
    OsmFeature.ROADS: TileType.ROAD,
    OsmFeature.HIGHWAYS: TileType.ROAD,
    OsmFeature.FOOTPATHS: TileType.ROAD,
    OsmFeature.RAILWAYS: TileType.RAILWAY,
    OsmFeature.BUILDINGS: TileType.BUILDING,
    OsmFeature.RESIDENTIAL: TileType.RESIDENTIAL,
    OsmFeature.COMMERCIAL: TileType.COMMERCIAL,
    OsmFeature.INDUSTRIAL: TileType.INDUSTRIAL,
    OsmFeature.WATER: TileType.WATER,
    OsmFeature.RIVERS: TileType.WATER,
    OsmFeature.LAKES: TileType.WATER,
    OsmFeature.FORESTS: TileType.GREEN_SPACE,
    OsmFeature.PARKS: TileType.GREEN_SPACE,
    OsmFeature.GRASSLAND: TileType.GREEN_SPACE,
    OsmFeature.PARKING: TileType.PARKING,
    OsmFeature.AMENITIES: TileType.AMENITY,
    OsmFeature.TOURISM: TileType.TOURISM,
    OsmFeature.POWER_LINES: TileType.POWER,
    OsmFeature.BOUNDARIES: TileType.BOUNDARY,
    OsmFeature.LANDUSE: TileType.LANDUSE,
}

_FEATURE_DESCRIPTIONS: dict[OsmFeature, str] = {
    OsmFeature.ROADS: "Local roads and streets",
    OsmFeature.HIGHWAYS: "Major highways and motorways",
    OsmFeature.FOOTPATHS: "Walking paths and pedestrian areas",
    OsmFeature.RAILWAYS: "Railway lines and stations",
    OsmFeature.BUILDINGS: "All building structures",
    OsmFeature.RESIDENTIAL: "Residential buildings and areas",
    OsmFeature.COMMERCIAL: "Commercial buildings and retail areas",
    OsmFeature.INDUSTRIAL: "Industrial buildings and zones",
    OsmFeature.WATER: "All water features",
    OsmFeature.RIVERS: "Rivers and streams",
    OsmFeature.LAKES: "Lakes and ponds",
    OsmFeature.FORESTS: "Forests and wooded areas",
    OsmFeature.PARKS: "Parks and recreational areas",
    OsmFeature.GRASSLAND: "Grass and meadow areas",
    OsmFeature.PARKING: "Parking areas and lots",
    OsmFeature.AMENITIES: "Public amenities and services",
    OsmFeature.TOURISM: "Tourist attractions and facilities",
    OsmFeature.POWER_LINES: "Power lines and electrical infrastructure",
    OsmFeature.BOUNDARIES: "Administrative and other boundaries",
    OsmFeature.LANDUSE: "General land use classifications",
}


# ---------------------------------------------------------------------------
# Custom queries
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CustomQuery:
    """A caller-supplied tag query.

    Attributes:
        query: The tag predicate.
        tile_type: Tile type for matches. ``None`` infers it from the tag
            key (``amenity`` → ``AMENITY`` and so on, else ``CUSTOM``).
        priority: Explicit overlap priority. ``None`` uses
            ``DEFAULT_CUSTOM_PRIORITY``, below every built-in category.
    """

    query: TagQuery
    tile_type: TileType | None = None
    priority: int | None = None

    def __post_init__(self) -> None:
        if self.tile_type is TileType.EMPTY:
            raise ConfigError("custom_query.tile_type", self.tile_type, "must not be EMPTY")
        if self.priority is not None and not EMPTY_PRIORITY < self.priority <= MAX_PRIORITY:
            raise ConfigError(
                "custom_query.priority",
                self.priority,
                f"must be within ({EMPTY_PRIORITY}, {MAX_PRIORITY}]",
            )


# ---------------------------------------------------------------------------
# Feature set
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FeatureSet:
    """Immutable selection of feature categories and custom tag queries.

    Build one with ``FeatureSet.builder()``, a named preset
    (``FeatureSet.preset("urban")``) or the ``with_*`` methods, each of
    which returns a new value.

    Attributes:
        features: Enabled categories.
        custom_queries: Custom queries, in insertion (evaluation) order.
    """

    features: frozenset[OsmFeature] = frozenset()
    custom_queries: tuple[CustomQuery, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "features", frozenset(self.features))
        object.__setattr__(self, "custom_queries", tuple(self.custom_queries))

    # -- construction --

    @staticmethod
    def builder() -> FeatureSetBuilder:
        return FeatureSetBuilder()

    @classmethod
    def of(cls, *features: OsmFeature) -> FeatureSet:
        """Return a set with exactly *features* enabled."""
        return cls(features=frozenset(features))

    @classmethod
    def urban(cls) -> FeatureSet:
        """Roads, buildings, parks and water."""
        return cls.of(OsmFeature.ROADS, OsmFeature.BUILDINGS, OsmFeature.PARKS, OsmFeature.WATER)

    @classmethod
    def transportation(cls) -> FeatureSet:
        """Roads, highways, railways and parking."""
        return cls.of(
            OsmFeature.ROADS,
            OsmFeature.HIGHWAYS,
            OsmFeature.RAILWAYS,
            OsmFeature.PARKING,
        )

    @classmethod
    def natural(cls) -> FeatureSet:
        """Water, forests, parks and grassland."""
        return cls.of(OsmFeature.WATER, OsmFeature.FORESTS, OsmFeature.PARKS, OsmFeature.GRASSLAND)

    @classmethod
    def comprehensive(cls) -> FeatureSet:
        """Every known category."""
        return cls.of(*OsmFeature)

    @classmethod
    def preset(cls, name: str) -> FeatureSet:
        """Return the named preset.

        Raises:
            ConfigError: If *name* is not a known preset.
        """
        factory = _PRESETS.get(name.strip().lower())
        if factory is None:
            raise ConfigError(
                "feature_set.preset",
                name,
                f"unknown preset (known: {', '.join(sorted(_PRESETS))})",
            )
        return factory()

    # -- derivation --

    def with_feature(self, feature: OsmFeature) -> FeatureSet:
        return dataclasses.replace(self, features=self.features | {feature})

    def with_features(self, features: Iterable[OsmFeature]) -> FeatureSet:
        return dataclasses.replace(self, features=self.features | frozenset(features))

    def without_feature(self, feature: OsmFeature) -> FeatureSet:
        return dataclasses.replace(self, features=self.features - {feature})

    def with_custom_query(
        self,
        key: str,
        value: str | None = None,
        *,
        tile_type: TileType | None = None,
        priority: int | None = None,
    ) -> FeatureSet:
        custom = CustomQuery(TagQuery(key, value), tile_type=tile_type, priority=priority)
        return dataclasses.replace(self, custom_queries=(*self.custom_queries, custom))

    def union(self, other: FeatureSet) -> FeatureSet:
        """Combine two sets; custom queries keep *self*'s first."""
        extra = tuple(q for q in other.custom_queries if q not in self.custom_queries)
        return FeatureSet(
            features=self.features | other.features,
            custom_queries=(*self.custom_queries, *extra),
        )

    # -- inspection --

    def enabled_features(self) -> list[OsmFeature]:
        """Enabled categories in classifier evaluation order."""
        return [f for f in OsmFeature if f in self.features]

    def is_empty(self) -> bool:
        return not self.features and not self.custom_queries

    def to_tag_queries(self) -> list[TagQuery]:
        """Return every tag query, deduplicated and sorted by ``(key, value)``.

        This is the set of predicates a data provider must request so that
        every element the classifier could match is fetched.
        """
        queries: set[TagQuery] = set()
        for feature in self.features:
            queries.update(feature.tag_queries())
        queries.update(custom.query for custom in self.custom_queries)
        return sorted(queries, key=TagQuery.sort_key)

    def canonical(self) -> str:
        """Stable textual form, used for seeding and logging."""
        parts = [f.value for f in self.enabled_features()]
        parts.extend(
            f"custom:{c.query}:{c.tile_type.value if c.tile_type else '-'}:"
            f"{c.priority if c.priority is not None else '-'}"
            for c in self.custom_queries
        )
        return ",".join(parts)


class FeatureSetBuilder:
    """Fluent builder for ``FeatureSet``.

    Example::

        features = (
            FeatureSet.builder()
            .with_features([OsmFeature.ROADS, OsmFeature.WATER])
            .with_custom_query("amenity", "restaurant")
            .build()
        )
    """

    def __init__(self) -> None:
        self._features: set[OsmFeature] = set()
        self._custom: list[CustomQuery] = []

    def with_feature(self, feature: OsmFeature) -> FeatureSetBuilder:
        self._features.add(feature)
        return self

    def with_features(self, features: Iterable[OsmFeature]) -> FeatureSetBuilder:
        self._features.update(features)
        return self

    def without_feature(self, feature: OsmFeature) -> FeatureSetBuilder:
        self._features.discard(feature)
        return self

    def with_preset(self, name: str) -> FeatureSetBuilder:
        preset = FeatureSet.preset(name)
        self._features.update(preset.features)
        return self

    def with_custom_query(
        self,
        key: str,
        value: str | None = None,
        *,
        tile_type: TileType | None = None,
        priority: int | None = None,
    ) -> FeatureSetBuilder:
        self._custom.append(CustomQuery(TagQuery(key, value), tile_type=tile_type, priority=priority))
        return self

    def build(self) -> FeatureSet:
        return FeatureSet(features=frozenset(self._features), custom_queries=tuple(self._custom))


_PRESETS = {
    "urban": FeatureSet.urban,
    "transportation": FeatureSet.transportation,
    "natural": FeatureSet.natural,
    "comprehensive": FeatureSet.comprehensive,
}

PRESET_NAMES: tuple[str, ...] = tuple(_PRESETS)
"""Names accepted by ``FeatureSet.preset``."""
