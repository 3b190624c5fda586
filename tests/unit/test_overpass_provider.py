"""Tests for the Overpass provider over ``httpx.MockTransport``.

Covers:
- Overpass QL rendering and category batching
- HTTP status / remark → ProviderErrorKind mapping
- Nominatim geocoding of named places
- Area limit enforcement and the large-region warning
- Deduplication of elements returned by several batches
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest

from osm_tiles.core.constants import DEFAULT_OVERPASS_URL
from osm_tiles.models.config import OsmConfigBuilder
from osm_tiles.models.features import FeatureSet, OsmFeature, TagQuery
from osm_tiles.models.provider import ProviderConfig
from osm_tiles.models.region import BoundingBox, NamedPlace
from osm_tiles.orchestrators.pipeline import LoadingPipeline
from osm_tiles.providers.base import (
    InvalidRegionError,
    ProviderError,
    ProviderErrorKind,
    ProviderNetworkError,
    ProviderParseError,
    ProviderTimeoutError,
    RateLimitedError,
)
from osm_tiles.providers.overpass import OverpassProvider, batch_queries, build_overpass_query
from tests.conftest import BERLIN_BOX, sample_overpass_payload

_NOMINATIM = "https://geocoder.example/search"


class _Recorder:
    """``httpx.MockTransport`` handler that records requests."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []
        self._respond = respond

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)

    def queries(self) -> list[str]:
        return [parse_qs(r.content.decode())["data"][0] for r in self.requests if r.method == "POST"]


def _provider(respond: Callable[[httpx.Request], httpx.Response], **extra: str) -> tuple[OverpassProvider, _Recorder]:
    recorder = _Recorder(respond)
    config = ProviderConfig(
        name="overpass",
        geocoder_url=_NOMINATIM,
        user_agent="osm-tiles-tests/1.0",
        extra_params=dict(extra),
    )
    return OverpassProvider(config, transport=httpx.MockTransport(recorder)), recorder


def _json(payload: Any, status: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    return lambda _request: httpx.Response(status, json=payload)


# ---------------------------------------------------------------------------
# Query building
# ---------------------------------------------------------------------------


class TestQueryBuilding:
    def test_query_format(self) -> None:
        query = build_overpass_query(
            [TagQuery("highway", "primary"), TagQuery("amenity")],
            BoundingBox(52.5, 13.3, 52.6, 13.5),
            timeout_s=30,
        )
        assert query.splitlines() == [
            "[out:json][timeout:30];",
            "(",
            '  way["highway"="primary"](52.5,13.3,52.6,13.5);',
            '  way["amenity"](52.5,13.3,52.6,13.5);',
            '  node["amenity"](52.5,13.3,52.6,13.5);',
            ");",
            "out geom;",
        ]

    def test_relation_keys_select_relations(self) -> None:
        query = build_overpass_query([TagQuery("natural", "water")], BERLIN_BOX)
        assert 'relation["natural"="water"]' in query
        assert "node[" not in query

    def test_include_nodes_for_every_key(self) -> None:
        query = build_overpass_query([TagQuery("craft")], BERLIN_BOX, include_nodes=True)
        assert 'node["craft"]' in query

    def test_batches_follow_category_order(self) -> None:
        batches = batch_queries(FeatureSet.comprehensive(), 4)
        assert len(batches) == 5
        assert all(include_nodes is False for _, include_nodes in batches)
        first_batch = {q.key for q in batches[0][0]}
        assert first_batch == {"highway", "railway"}

    def test_custom_queries_form_last_batch(self) -> None:
        fs = FeatureSet.of(OsmFeature.ROADS).with_custom_query("shop").with_custom_query("craft", "brewery")
        batches = batch_queries(fs, 4)
        assert len(batches) == 2
        queries, include_nodes = batches[-1]
        assert include_nodes is True
        assert queries == [TagQuery("craft", "brewery"), TagQuery("shop")]

    def test_empty_feature_set_has_no_batches(self) -> None:
        assert batch_queries(FeatureSet(), 4) == []


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


class TestFetch:
    def test_posts_query_to_interpreter(self) -> None:
        provider, recorder = _provider(_json(sample_overpass_payload()))
        elements = provider.fetch(BERLIN_BOX, FeatureSet.urban())

        assert [e.osm_id for e in elements] == [101, 201, 202]
        [request] = recorder.requests
        assert request.method == "POST"
        assert str(request.url) == DEFAULT_OVERPASS_URL
        assert request.headers["User-Agent"] == "osm-tiles-tests/1.0"
        assert "(52.5,13.38,52.52,13.41)" in recorder.queries()[0]

    def test_batches_are_deduplicated(self) -> None:
        provider, recorder = _provider(_json(sample_overpass_payload()), categories_per_query="4")
        elements = provider.fetch(BERLIN_BOX, FeatureSet.comprehensive())

        assert len(recorder.queries()) == 5
        assert [e.osm_id for e in elements] == [101, 201, 202]

    def test_categories_per_query_setting(self) -> None:
        provider, recorder = _provider(_json({"elements": []}), categories_per_query="10")
        provider.fetch(BERLIN_BOX, FeatureSet.comprehensive())
        assert len(recorder.queries()) == 2

    def test_empty_feature_set_makes_no_request(self) -> None:
        provider, recorder = _provider(_json(sample_overpass_payload()))
        assert provider.fetch(BERLIN_BOX, FeatureSet()) == []
        assert recorder.requests == []

    def test_non_list_elements_is_parse_error(self) -> None:
        provider, _ = _provider(_json({"elements": {"oops": 1}}))
        with pytest.raises(ProviderParseError):
            provider.fetch(BERLIN_BOX, FeatureSet.urban())

    def test_invalid_json_is_parse_error(self) -> None:
        provider, _ = _provider(lambda _r: httpx.Response(200, text="<html>busy</html>"))
        with pytest.raises(ProviderParseError) as exc_info:
            provider.fetch(BERLIN_BOX, FeatureSet.urban())
        assert "busy" in exc_info.value.message

    def test_non_object_payload_is_parse_error(self) -> None:
        provider, _ = _provider(_json([1, 2, 3]))
        with pytest.raises(ProviderParseError):
            provider.fetch(BERLIN_BOX, FeatureSet.urban())


class TestQueryTimeout:
    def test_default_header(self) -> None:
        provider, recorder = _provider(_json({"elements": []}))
        provider.fetch(BERLIN_BOX, FeatureSet.urban())
        assert recorder.queries()[0].startswith("[out:json][timeout:30];")

    def test_extra_param_sets_default(self) -> None:
        provider, recorder = _provider(_json({"elements": []}), query_timeout_s="45")
        provider.fetch(BERLIN_BOX, FeatureSet.urban())
        assert recorder.queries()[0].startswith("[out:json][timeout:45];")

    def test_fetch_argument_wins(self) -> None:
        provider, recorder = _provider(_json({"elements": []}), query_timeout_s="45")
        provider.fetch(BERLIN_BOX, FeatureSet.comprehensive(), timeout_s=90)
        assert recorder.queries()
        assert all(q.startswith("[out:json][timeout:90];") for q in recorder.queries())

    def test_config_timeout_reaches_query(self) -> None:
        """``OsmConfigBuilder.timeout`` ends up in every Overpass header."""
        provider, recorder = _provider(_json(sample_overpass_payload()))
        config = OsmConfigBuilder().region(BERLIN_BOX).grid_resolution(16).timeout(120).build()

        result = LoadingPipeline(provider).load(config)

        assert result.ok
        assert recorder.queries()
        for query in recorder.queries():
            assert query.startswith("[out:json][timeout:120];")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (429, ProviderErrorKind.RATE_LIMITED),
            (408, ProviderErrorKind.TIMEOUT),
            (504, ProviderErrorKind.TIMEOUT),
            (500, ProviderErrorKind.NETWORK),
            (502, ProviderErrorKind.NETWORK),
            (400, ProviderErrorKind.INVALID_REGION),
        ],
    )
    def test_status_codes(self, status: int, kind: ProviderErrorKind) -> None:
        provider, _ = _provider(lambda _r: httpx.Response(status, text="nope"))
        with pytest.raises(ProviderError) as exc_info:
            provider.fetch(BERLIN_BOX, FeatureSet.urban())
        assert exc_info.value.kind is kind
        assert f"HTTP {status}" in exc_info.value.message

    def test_rate_limit_is_retryable(self) -> None:
        provider, _ = _provider(lambda _r: httpx.Response(429))
        with pytest.raises(RateLimitedError) as exc_info:
            provider.fetch(BERLIN_BOX, FeatureSet.urban())
        assert exc_info.value.retryable is True

    def test_client_timeout(self) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        provider, _ = _provider(respond)
        with pytest.raises(ProviderTimeoutError):
            provider.fetch(BERLIN_BOX, FeatureSet.urban())

    def test_connection_failure(self) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider, _ = _provider(respond)
        with pytest.raises(ProviderNetworkError):
            provider.fetch(BERLIN_BOX, FeatureSet.urban())

    def test_runtime_timeout_remark(self) -> None:
        payload = {"elements": [], "remark": 'runtime error: Query timed out in "query" at line 3'}
        provider, _ = _provider(_json(payload))
        with pytest.raises(ProviderTimeoutError):
            provider.fetch(BERLIN_BOX, FeatureSet.urban())

    def test_runtime_memory_remark(self) -> None:
        payload = {"elements": [], "remark": "runtime error: Query ran out of memory"}
        provider, _ = _provider(_json(payload))
        with pytest.raises(ProviderNetworkError):
            provider.fetch(BERLIN_BOX, FeatureSet.urban())

    def test_harmless_remark_is_ignored(self) -> None:
        payload = {**sample_overpass_payload(), "remark": "note: partial results"}
        provider, _ = _provider(_json(payload))
        assert len(provider.fetch(BERLIN_BOX, FeatureSet.urban())) == 3


# ---------------------------------------------------------------------------
# Region resolution
# ---------------------------------------------------------------------------


class TestResolveRegion:
    def test_geocodes_named_place(self) -> None:
        results = [{"display_name": "Berlin", "boundingbox": ["52.50", "52.52", "13.38", "13.41"]}]
        provider, recorder = _provider(_json(results))

        bbox = provider.resolve_region(NamedPlace("Berlin"))

        assert bbox == BoundingBox(52.50, 13.38, 52.52, 13.41)
        [request] = recorder.requests
        assert request.method == "GET"
        assert request.url.host == "geocoder.example"
        assert request.url.params["q"] == "Berlin"
        assert request.url.params["format"] == "json"
        assert request.url.params["limit"] == "1"

    def test_unknown_place(self) -> None:
        provider, _ = _provider(_json([]))
        with pytest.raises(InvalidRegionError, match="Place not found"):
            provider.resolve_region(NamedPlace("Atlantis"))

    def test_result_without_bbox_is_parse_error(self) -> None:
        provider, _ = _provider(_json([{"display_name": "Nowhere"}]))
        with pytest.raises(ProviderParseError):
            provider.resolve_region(NamedPlace("Nowhere"))

    def test_degenerate_geocoder_bbox(self) -> None:
        provider, _ = _provider(_json([{"boundingbox": ["52.5", "52.5", "13.4", "13.4"]}]))
        with pytest.raises(InvalidRegionError, match="degenerate"):
            provider.resolve_region(NamedPlace("Point"))

    def test_area_limit(self) -> None:
        provider, _ = _provider(_json({}))
        with pytest.raises(InvalidRegionError, match="limit"):
            provider.resolve_region(BoundingBox(0.0, 0.0, 1.0, 1.0))

    def test_configured_area_limit(self) -> None:
        config = ProviderConfig(name="overpass", max_area_km2=1.0)
        provider = OverpassProvider(config, transport=httpx.MockTransport(_json({})))
        with pytest.raises(InvalidRegionError):
            provider.resolve_region(BERLIN_BOX)

    def test_large_region_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        provider, _ = _provider(_json({}))
        with caplog.at_level(logging.WARNING, logger="osm_tiles.providers.overpass"):
            provider.resolve_region(BoundingBox(52.0, 13.0, 52.3, 13.5))
        assert "Large Overpass region" in caplog.text


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


class TestAvailability:
    def test_status_endpoint_ok(self) -> None:
        provider, recorder = _provider(lambda _r: httpx.Response(200, text="Connected"))
        assert provider.test_availability() is True
        assert recorder.requests[0].url.path == "/api/status"

    def test_status_endpoint_down(self) -> None:
        provider, _ = _provider(lambda _r: httpx.Response(503))
        assert provider.test_availability() is False

    def test_capabilities_advertise_limits(self) -> None:
        provider, _ = _provider(_json({}))
        caps = provider.capabilities()
        assert caps.requires_network is True
        assert caps.max_area_km2 == 5000.0
