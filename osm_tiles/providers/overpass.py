"""Overpass API provider (network-backed).

Concrete ``OsmDataProvider`` that queries the public (or a self-hosted)
Overpass API and geocodes named places through Nominatim.

Query strategy:
    Enabled categories are split into batches of ``categories_per_query``
    (in ``OsmFeature`` order) and custom queries form one final batch, so
    no single Overpass request grows unbounded. Each batch is one POST.
    Results are deduplicated by ``(type, id)`` in first-seen order before
    parsing, so the element order is deterministic for a given upstream
    database state.

Error mapping (no retries happen here):
    ========================  ===================
    Condition                 ``ProviderErrorKind``
    ========================  ===================
    HTTP 429                  RATE_LIMITED
    HTTP 408 / 504, timeouts  TIMEOUT
    other HTTP 5xx, transport NETWORK
    other HTTP 4xx            INVALID_REGION
    undecodable JSON          PARSE_ERROR
    ========================  ===================

Configuration:
    ``ProviderConfig.api_base_url`` overrides the interpreter URL and
    ``ProviderConfig.geocoder_url`` the Nominatim search URL.
    ``extra_params`` accepts ``categories_per_query`` and
    ``query_timeout_s``, the latter used when ``fetch`` gets no
    ``timeout_s`` (the pipeline passes ``OsmConfig.timeout_seconds``).

References:
    https://wiki.openstreetmap.org/wiki/Overpass_API
    https://nominatim.org/release-docs/latest/api/Search/
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx

from osm_tiles.core.constants import (
    AREA_WARNING_KM2,
    DEFAULT_CATEGORIES_PER_QUERY,
    DEFAULT_MAX_AREA_KM2,
    DEFAULT_NOMINATIM_URL,
    DEFAULT_OVERPASS_URL,
    DEFAULT_QUERY_TIMEOUT_S,
    DEFAULT_USER_AGENT,
    OVERPASS_RATE_LIMIT_RPM,
)
from osm_tiles.models.features import FeatureSet, TagQuery
from osm_tiles.models.provider import ProviderCapabilities
from osm_tiles.models.region import BoundingBox, CenterRadius, NamedPlace, describe_region
from osm_tiles.providers.base import (
    InvalidRegionError,
    OsmDataProvider,
    ProviderError,
    ProviderNetworkError,
    ProviderParseError,
    ProviderTimeoutError,
    RateLimitedError,
)
from osm_tiles.providers.parser import parse_overpass_payload

if TYPE_CHECKING:
    from osm_tiles.models.element import GeographicElement
    from osm_tiles.models.provider import ProviderConfig
    from osm_tiles.models.region import Region

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Keys whose features are commonly mapped as relations (multipolygons).
_RELATION_KEYS = frozenset({"building", "natural", "landuse", "leisure", "boundary", "waterway"})

# Keys whose features are commonly mapped as single nodes.
_NODE_KEYS = frozenset({"amenity", "tourism", "power"})

# Response body characters quoted in error messages.
_ERROR_BODY_CHARS = 200


# ---------------------------------------------------------------------------
# Query building
# ---------------------------------------------------------------------------


def build_overpass_query(
    queries: Sequence[TagQuery],
    bbox: BoundingBox,
    *,
    timeout_s: int = DEFAULT_QUERY_TIMEOUT_S,
    include_nodes: bool = False,
) -> str:
    """Render an Overpass QL union query for *queries* inside *bbox*.

    Every query selects ways. Keys usually mapped as multipolygons also
    select relations, and keys usually mapped as points select nodes
    (all keys do when *include_nodes* is set).

    Example output::

        [out:json][timeout:30];
        (
          way["highway"="primary"](52.5,13.3,52.6,13.5);
          way["amenity"](52.5,13.3,52.6,13.5);
          node["amenity"](52.5,13.3,52.6,13.5);
        );
        out geom;
    """
    area = bbox.to_overpass()
    lines = [f"[out:json][timeout:{timeout_s}];", "("]
    for query in queries:
        tag_filter = query.to_overpass_filter()
        lines.append(f"  way{tag_filter}({area});")
        if query.key in _RELATION_KEYS:
            lines.append(f"  relation{tag_filter}({area});")
        if include_nodes or query.key in _NODE_KEYS:
            lines.append(f"  node{tag_filter}({area});")
    lines.append(");")
    lines.append("out geom;")
    return "\n".join(lines)


def batch_queries(feature_set: FeatureSet, categories_per_query: int) -> list[tuple[list[TagQuery], bool]]:
    """Split a feature set into ``(queries, include_nodes)`` request batches."""
    batches: list[tuple[list[TagQuery], bool]] = []
    features = feature_set.enabled_features()
    for start in range(0, len(features), categories_per_query):
        subset = FeatureSet.of(*features[start : start + categories_per_query])
        batches.append((subset.to_tag_queries(), False))
    if feature_set.custom_queries:
        custom = sorted({c.query for c in feature_set.custom_queries}, key=TagQuery.sort_key)
        batches.append((custom, True))
    return batches


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class OverpassProvider(OsmDataProvider):
    """Overpass API provider with Nominatim geocoding.

    Args:
        config: Provider configuration.
        transport: Optional ``httpx`` transport (tests inject
            ``httpx.MockTransport`` here).
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(config)
        self._overpass_url = config.api_base_url or DEFAULT_OVERPASS_URL
        self._nominatim_url = config.geocoder_url or DEFAULT_NOMINATIM_URL
        self._user_agent = config.user_agent or DEFAULT_USER_AGENT
        self._max_area_km2 = config.max_area_km2 or DEFAULT_MAX_AREA_KM2
        self._categories_per_query = int(
            config.extra_params.get("categories_per_query", DEFAULT_CATEGORIES_PER_QUERY)
        )
        self._query_timeout_s = int(
            config.extra_params.get("query_timeout_s", DEFAULT_QUERY_TIMEOUT_S)
        )
        self._transport = transport

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_real_time=True,
            requires_network=True,
            supports_geocoding=True,
            max_area_km2=self._max_area_km2,
            supported_formats=("overpass-json",),
            rate_limit_rpm=OVERPASS_RATE_LIMIT_RPM,
            notes="Public Overpass instances throttle heavy use; prefer small regions.",
        )

    def resolve_region(self, region: Region) -> BoundingBox:
        """Resolve *region* and enforce the provider's area limit.

        Raises:
            ConfigError: If an explicit box is degenerate or out of range.
            InvalidRegionError: If the place is unknown or the area exceeds
                ``max_area_km2``.
            ProviderError: On geocoder failures.
        """
        if isinstance(region, BoundingBox):
            bbox = region.validate()
        elif isinstance(region, CenterRadius):
            bbox = region.to_bbox()
        elif isinstance(region, NamedPlace):
            bbox = self._geocode(region.validate().name)
        else:
            msg = f"Unsupported region type: {type(region).__name__}"
            raise InvalidRegionError(self.name, msg)

        area = bbox.area_km2()
        if area > self._max_area_km2:
            msg = (
                f"Region {describe_region(region)} covers {area:.1f} km², "
                f"above the {self._max_area_km2:.0f} km² limit"
            )
            raise InvalidRegionError(self.name, msg)
        if area > AREA_WARNING_KM2:
            logger.warning(
                "Large Overpass region | region=%s | area_km2=%.1f | warn_km2=%.0f",
                describe_region(region),
                area,
                AREA_WARNING_KM2,
            )
        return bbox

    def fetch(
        self,
        region: Region,
        feature_set: FeatureSet,
        *,
        timeout_s: int | None = None,
    ) -> list[GeographicElement]:
        """Query Overpass for every batch and return the parsed elements.

        Raises:
            ProviderError: On any HTTP, timeout or payload failure.
        """
        bbox = self.resolve_region(region)
        batches = batch_queries(feature_set, self._categories_per_query)
        if not batches:
            logger.info("Empty feature set | provider=%s | region=%s", self.name, describe_region(region))
            return []

        query_timeout_s = timeout_s if timeout_s is not None else self._query_timeout_s
        seen: set[tuple[str, int]] = set()
        raw_elements: list[Any] = []
        with self._client() as client:
            for index, (queries, include_nodes) in enumerate(batches, start=1):
                query = build_overpass_query(
                    queries, bbox, timeout_s=query_timeout_s, include_nodes=include_nodes
                )
                payload = self._post_query(client, query)
                batch_elements = payload.get("elements", [])
                if not isinstance(batch_elements, list):
                    msg = "Overpass payload has no 'elements' list"
                    raise ProviderParseError(self.name, msg)
                added = 0
                for raw in batch_elements:
                    key = _identity(raw)
                    if key is not None:
                        if key in seen:
                            continue
                        seen.add(key)
                    raw_elements.append(raw)
                    added += 1
                logger.info(
                    "Overpass batch fetched | batch=%d/%d | queries=%d | elements=%d | new=%d",
                    index,
                    len(batches),
                    len(queries),
                    len(batch_elements),
                    added,
                )

        elements = parse_overpass_payload({"elements": raw_elements}, provider=self.name)
        logger.info(
            "Overpass fetch complete | region=%s | batches=%d | elements=%d",
            describe_region(region),
            len(batches),
            len(elements),
        )
        return elements

    def test_availability(self) -> bool:
        """Probe the Overpass ``/status`` endpoint."""
        status_url = self._overpass_url.rsplit("/", 1)[0] + "/status"
        try:
            with self._client() as client:
                self._send(client, "GET", status_url)
        except ProviderError as exc:
            logger.warning("Overpass unavailable | url=%s | error=%s", status_url, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.config.timeout_s,
            follow_redirects=True,
            headers={"User-Agent": self._user_agent},
            transport=self._transport,
        )

    def _post_query(self, client: httpx.Client, query: str) -> dict[str, Any]:
        response = self._send(client, "POST", self._overpass_url, data={"data": query})
        payload = self._decode_json(response)
        if not isinstance(payload, dict):
            msg = f"Overpass returned {type(payload).__name__}, expected an object"
            raise ProviderParseError(self.name, msg)
        _raise_for_remark(self.name, payload)
        return payload

    def _geocode(self, place: str) -> BoundingBox:
        with self._client() as client:
            response = self._send(
                client,
                "GET",
                self._nominatim_url,
                params={"q": place, "format": "json", "limit": 1},
            )
        results = self._decode_json(response)
        if not isinstance(results, list):
            msg = f"Nominatim returned {type(results).__name__}, expected a list"
            raise ProviderParseError(self.name, msg)
        if not results:
            msg = f"Place not found: {place!r}"
            raise InvalidRegionError(self.name, msg)
        bbox = _nominatim_bbox(self.name, results[0])
        logger.info("Geocoded place | place=%s | bbox=%s", place, bbox.to_overpass())
        return bbox

    def _send(self, client: httpx.Client, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            msg = f"{method} {url} timed out: {exc}"
            raise ProviderTimeoutError(self.name, msg) from exc
        except httpx.TransportError as exc:
            msg = f"{method} {url} failed: {exc}"
            raise ProviderNetworkError(self.name, msg) from exc
        _raise_for_status(self.name, response)
        return response

    def _decode_json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            snippet = response.text[:_ERROR_BODY_CHARS]
            msg = f"Invalid JSON from {response.request.url}: {snippet!r}"
            raise ProviderParseError(self.name, msg) from exc


# ---------------------------------------------------------------------------
# Module-private helpers
# ---------------------------------------------------------------------------


def _raise_for_status(provider: str, response: httpx.Response) -> None:
    status = response.status_code
    if status < 400:
        return
    snippet = response.text[:_ERROR_BODY_CHARS]
    msg = f"HTTP {status} from {response.request.url}: {snippet}"
    if status == 429:
        raise RateLimitedError(provider, msg)
    if status in (408, 504):
        raise ProviderTimeoutError(provider, msg)
    if status >= 500:
        raise ProviderNetworkError(provider, msg)
    raise InvalidRegionError(provider, msg)


def _raise_for_remark(provider: str, payload: dict[str, Any]) -> None:
    """Overpass reports runtime errors with HTTP 200 and a ``remark``."""
    remark = payload.get("remark")
    if not isinstance(remark, str) or "runtime error" not in remark:
        return
    if "timed out" in remark:
        raise ProviderTimeoutError(provider, remark)
    raise ProviderNetworkError(provider, remark)


def _nominatim_bbox(provider: str, result: Any) -> BoundingBox:
    """Convert a Nominatim ``boundingbox`` (``[south, north, west, east]``)."""
    try:
        south, north, west, east = (float(v) for v in result["boundingbox"])
    except (KeyError, TypeError, ValueError) as exc:
        msg = f"Nominatim result has no usable boundingbox: {result!r}"[:_ERROR_BODY_CHARS]
        raise ProviderParseError(provider, msg) from exc
    bbox = BoundingBox(south=south, west=west, north=north, east=east)
    if south >= north or west >= east:
        msg = f"Nominatim returned a degenerate boundingbox: {bbox.to_overpass()}"
        raise InvalidRegionError(provider, msg)
    return bbox


def _identity(raw: Any) -> tuple[str, int] | None:
    if not isinstance(raw, dict):
        return None
    osm_type, osm_id = raw.get("type"), raw.get("id")
    if not isinstance(osm_type, str) or not isinstance(osm_id, int):
        return None
    return (osm_type, osm_id)
