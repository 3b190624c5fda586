"""Feature classifier: tag sets to tile types and priorities.

Evaluation order is fixed so that classification is deterministic:

1. Enabled categories, in ``OsmFeature`` declaration order. Within a
   category, its tag rules in declaration order. The first matching rule
   wins with the category's tile type and static priority.
2. Custom queries, in insertion order. With no category match, the first
   matching custom query wins. After a category match, a custom query
   only takes over when its explicit priority is strictly greater.

The classifier is pure: no I/O and no side effects.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from osm_tiles.models.element import GeographicElement
from osm_tiles.models.features import CustomQuery, FeatureSet
from osm_tiles.models.tiles import DEFAULT_CUSTOM_PRIORITY, EMPTY_PRIORITY, TileType, tile_type_for_key


@dataclass(frozen=True, slots=True)
class Classification:
    """Result of classifying one element.

    Attributes:
        tile_type: Tile type the element's footprint is painted with.
        priority: Overlap priority of the winning rule.
    """

    tile_type: TileType
    priority: int


@dataclass(frozen=True, slots=True)
class ClassifiedElement:
    """An element paired with its classification.

    Attributes:
        element: The geographic element.
        tile_type: Winning tile type, or ``None`` when nothing matched.
        priority: Winning priority (``EMPTY_PRIORITY`` when unclassified).
    """

    element: GeographicElement
    tile_type: TileType | None
    priority: int = EMPTY_PRIORITY

    @property
    def is_classified(self) -> bool:
        return self.tile_type is not None


def custom_classification(custom: CustomQuery) -> Classification:
    """Return the tile type and priority a custom query assigns."""
    tile_type = custom.tile_type or tile_type_for_key(custom.query.key)
    priority = DEFAULT_CUSTOM_PRIORITY if custom.priority is None else custom.priority
    return Classification(tile_type, priority)


def classify(element: GeographicElement, feature_set: FeatureSet) -> Classification | None:
    """Classify *element* against *feature_set*.

    Returns:
        The winning ``Classification``, or ``None`` when no enabled rule
        matches (the element is excluded from the grid).
    """
    tags = element.tags
    best: Classification | None = None

    for feature in feature_set.enabled_features():
        if any(rule.matches(tags) for rule in feature.tag_queries()):
            best = Classification(feature.tile_type, feature.priority)
            break

    for custom in feature_set.custom_queries:
        if not custom.query.matches(tags):
            continue
        candidate = custom_classification(custom)
        if best is None:
            best = candidate
        elif custom.priority is not None and candidate.priority > best.priority:
            best = candidate

    return best


def classify_elements(
    elements: Sequence[GeographicElement],
    feature_set: FeatureSet,
    *,
    on_progress: Callable[[int, int], None] | None = None,
    progress_every: int = 1_000,
) -> list[ClassifiedElement]:
    """Classify every element, preserving input order.

    Unmatched elements are kept with ``tile_type=None`` so the generator
    can count them.

    Args:
        elements: Elements in provider order.
        feature_set: Categories and custom queries to apply.
        on_progress: Optional ``(processed, total)`` callback, invoked every
            *progress_every* elements and once at the end.
        progress_every: Callback interval in elements.
    """
    total = len(elements)
    results: list[ClassifiedElement] = []
    for index, element in enumerate(elements, start=1):
        match = classify(element, feature_set)
        if match is None:
            results.append(ClassifiedElement(element, None))
        else:
            results.append(ClassifiedElement(element, match.tile_type, match.priority))
        if on_progress is not None and index % progress_every == 0 and index != total:
            on_progress(index, total)
    if on_progress is not None:
        on_progress(total, total)
    return results
