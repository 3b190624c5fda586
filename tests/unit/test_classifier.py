"""Tests for the feature classifier.

Covers:
- Category evaluation order and first-match-wins
- Custom query tile type inference and priority override rules
- Unmatched elements and order preservation in ``classify_elements``
"""

from __future__ import annotations

from unittest.mock import MagicMock

from osm_tiles.generator.classifier import (
    Classification,
    classify,
    classify_elements,
    custom_classification,
)
from osm_tiles.models.element import ElementKind, GeographicElement
from osm_tiles.models.features import CustomQuery, FeatureSet, OsmFeature, TagQuery
from osm_tiles.models.tiles import DEFAULT_CUSTOM_PRIORITY, EMPTY_PRIORITY, TileType


def _element(**tags: str) -> GeographicElement:
    return GeographicElement(1, ElementKind.POINT, [(0.5, 0.5)], tags, osm_type="node")


class TestCategoryClassification:
    def test_building_with_urban_preset(self) -> None:
        result = classify(_element(building="yes"), FeatureSet.urban())
        assert result == Classification(TileType.BUILDING, TileType.BUILDING.priority)

    def test_disabled_category_does_not_match(self) -> None:
        assert classify(_element(railway="rail"), FeatureSet.urban()) is None

    def test_unmatched_value(self) -> None:
        assert classify(_element(highway="motorway"), FeatureSet.of(OsmFeature.ROADS)) is None
        assert classify(_element(highway="motorway"), FeatureSet.of(OsmFeature.HIGHWAYS)) is not None

    def test_declaration_order_wins(self) -> None:
        # building=residential matches BUILDINGS and RESIDENTIAL; BUILDINGS is declared first.
        fs = FeatureSet.of(OsmFeature.RESIDENTIAL, OsmFeature.BUILDINGS)
        result = classify(_element(building="residential"), fs)
        assert result is not None
        assert result.tile_type is TileType.BUILDING

    def test_later_category_used_when_earlier_disabled(self) -> None:
        result = classify(_element(building="residential"), FeatureSet.of(OsmFeature.RESIDENTIAL))
        assert result is not None
        assert result.tile_type is TileType.RESIDENTIAL

    def test_multiple_tags_first_enabled_category(self) -> None:
        # A parking lot with an amenity tag: PARKING precedes AMENITIES.
        fs = FeatureSet.of(OsmFeature.AMENITIES, OsmFeature.PARKING)
        result = classify(_element(amenity="parking"), fs)
        assert result is not None
        assert result.tile_type is TileType.PARKING

    def test_empty_feature_set_matches_nothing(self) -> None:
        assert classify(_element(building="yes"), FeatureSet()) is None


class TestCustomQueries:
    def test_key_implies_tile_type(self) -> None:
        fs = FeatureSet.urban().with_custom_query("amenity", "restaurant")
        result = classify(_element(amenity="restaurant"), fs)
        assert result == Classification(TileType.AMENITY, DEFAULT_CUSTOM_PRIORITY)

    def test_unknown_key_is_custom(self) -> None:
        result = classify(_element(craft="brewery"), FeatureSet().with_custom_query("craft"))
        assert result is not None
        assert result.tile_type is TileType.CUSTOM

    def test_explicit_tile_type(self) -> None:
        fs = FeatureSet().with_custom_query("shop", "bakery", tile_type=TileType.AMENITY)
        result = classify(_element(shop="bakery"), fs)
        assert result is not None
        assert result.tile_type is TileType.AMENITY

    def test_default_priority_does_not_override_category(self) -> None:
        fs = FeatureSet.urban().with_custom_query("building", tile_type=TileType.CUSTOM)
        result = classify(_element(building="yes"), fs)
        assert result is not None
        assert result.tile_type is TileType.BUILDING

    def test_higher_explicit_priority_overrides_category(self) -> None:
        fs = FeatureSet.urban().with_custom_query("building", "church", tile_type=TileType.TOURISM, priority=500)
        result = classify(_element(building="church"), fs)
        assert result == Classification(TileType.TOURISM, 500)

    def test_equal_explicit_priority_does_not_override(self) -> None:
        fs = FeatureSet.urban().with_custom_query(
            "building", tile_type=TileType.CUSTOM, priority=TileType.BUILDING.priority
        )
        result = classify(_element(building="yes"), fs)
        assert result is not None
        assert result.tile_type is TileType.BUILDING

    def test_first_matching_custom_wins_without_category(self) -> None:
        fs = (
            FeatureSet()
            .with_custom_query("amenity", tile_type=TileType.AMENITY)
            .with_custom_query("amenity", "cafe", tile_type=TileType.COMMERCIAL)
        )
        result = classify(_element(amenity="cafe"), fs)
        assert result is not None
        assert result.tile_type is TileType.AMENITY

    def test_custom_classification_defaults(self) -> None:
        result = custom_classification(CustomQuery(TagQuery("railway")))
        assert result == Classification(TileType.RAILWAY, DEFAULT_CUSTOM_PRIORITY)


class TestClassifyElements:
    def test_preserves_order_and_keeps_unmatched(self) -> None:
        elements = [_element(building="yes"), _element(shop="kiosk"), _element(natural="water")]
        results = classify_elements(elements, FeatureSet.urban())
        assert [r.element for r in results] == elements
        assert [r.tile_type for r in results] == [TileType.BUILDING, None, TileType.WATER]
        assert results[1].priority == EMPTY_PRIORITY
        assert not results[1].is_classified

    def test_progress_reports_final_count(self) -> None:
        elements = [_element(building="yes") for _ in range(5)]
        on_progress = MagicMock()
        classify_elements(elements, FeatureSet.urban(), on_progress=on_progress, progress_every=2)
        assert [c.args for c in on_progress.call_args_list] == [(2, 5), (4, 5), (5, 5)]

    def test_empty_input(self) -> None:
        on_progress = MagicMock()
        assert classify_elements([], FeatureSet.urban(), on_progress=on_progress) == []
        on_progress.assert_called_once_with(0, 0)

    def test_deterministic(self) -> None:
        elements = [_element(highway="primary"), _element(leisure="park")]
        a = classify_elements(elements, FeatureSet.comprehensive())
        b = classify_elements(elements, FeatureSet.comprehensive())
        assert a == b
