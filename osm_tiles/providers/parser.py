"""Overpass JSON parser.

Converts an Overpass API ``[out:json]`` response produced with
``out geom`` into ``GeographicElement`` objects:

- ``node``     → POINT.
- ``way``      → AREA when the way is closed and its tags describe an
  area, otherwise LINE. ``area=yes`` and ``area=no`` override the tag
  heuristics.
- ``relation`` → multipolygon and boundary relations contribute one AREA
  per outer ring, stitched from their member ways and carrying the
  relation's tags. Inner rings are dropped. Other relations contribute
  one LINE per member way.

Entries with missing or broken coordinates are kept with empty
coordinates so the generator can count them as malformed. Entries that
are not objects, or have an unknown type, are skipped.

References:
    https://wiki.openstreetmap.org/wiki/Overpass_API/Overpass_QL#out
    https://wiki.openstreetmap.org/wiki/Key:area
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from osm_tiles.models.element import Coordinate, ElementKind, GeographicElement
from osm_tiles.providers.base import ProviderParseError

logger = logging.getLogger(__name__)

# Closed ways carrying one of these keys are lines unless tagged area=yes.
_LINEAR_KEYS = frozenset({"highway", "railway", "waterway", "barrier", "boundary"})
_LINEAR_TAGS = frozenset({("power", "line"), ("natural", "coastline"), ("power", "minor_line")})

_AREA_RELATION_TYPES = frozenset({"multipolygon", "boundary"})


def parse_overpass_payload(
    payload: Any,
    *,
    provider: str = "overpass",
) -> list[GeographicElement]:
    """Parse an Overpass JSON document into elements, preserving order.

    Args:
        payload: Decoded JSON (a mapping with an ``elements`` list).
        provider: Provider name used in error messages.

    Returns:
        Parsed elements in payload order.

    Raises:
        ProviderParseError: If the document is not an Overpass response.
    """
    if not isinstance(payload, Mapping):
        msg = f"Overpass payload must be an object, got {type(payload).__name__}"
        raise ProviderParseError(provider, msg)
    raw_elements = payload.get("elements")
    if not isinstance(raw_elements, list):
        msg = "Overpass payload has no 'elements' list"
        raise ProviderParseError(provider, msg)

    elements: list[GeographicElement] = []
    skipped = 0
    for raw in raw_elements:
        parsed = parse_element(raw)
        if parsed is None:
            skipped += 1
            continue
        elements.extend(parsed)

    logger.debug(
        "Parsed Overpass payload | provider=%s | raw=%d | elements=%d | skipped=%d",
        provider,
        len(raw_elements),
        len(elements),
        skipped,
    )
    return elements


def parse_element(raw: Any) -> list[GeographicElement] | None:
    """Parse one Overpass element (``None`` when it must be skipped)."""
    if not isinstance(raw, Mapping):
        logger.debug("Skipping non-object Overpass entry | type=%s", type(raw).__name__)
        return None
    osm_type = raw.get("type")
    osm_id = _as_int(raw.get("id"))
    tags = _parse_tags(raw.get("tags"))

    if osm_type == "node":
        coords = _parse_point(raw)
        return [GeographicElement(osm_id, ElementKind.POINT, coords, tags, osm_type="node")]
    if osm_type == "way":
        coords = _parse_geometry(raw.get("geometry"))
        kind = ElementKind.AREA if is_area_way(tags, coords) else ElementKind.LINE
        return [GeographicElement(osm_id, kind, coords, tags, osm_type="way")]
    if osm_type == "relation":
        return _parse_relation(osm_id, tags, raw.get("members"))

    logger.debug("Skipping unknown Overpass element | type=%s | id=%s", osm_type, raw.get("id"))
    return None


def is_area_way(tags: Mapping[str, str], coords: Sequence[Coordinate]) -> bool:
    """Whether a way with *tags* and *coords* describes an area."""
    closed = len(coords) >= 4 and coords[0] == coords[-1]
    if not closed:
        return False
    area = tags.get("area")
    if area == "no":
        return False
    if area == "yes":
        return True
    if any(key in tags for key in _LINEAR_KEYS):
        return False
    return not any(tags.get(key) == value for key, value in _LINEAR_TAGS)


# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------


def _parse_relation(
    osm_id: int,
    tags: dict[str, str],
    members: Any,
) -> list[GeographicElement]:
    if not isinstance(members, list):
        # A relation without member geometry is kept so it is counted.
        return [GeographicElement(osm_id, ElementKind.AREA, (), tags, osm_type="relation")]

    way_members = [
        m for m in members if isinstance(m, Mapping) and m.get("type") == "way"
    ]
    if tags.get("type") in _AREA_RELATION_TYPES:
        outer = [
            _parse_geometry(m.get("geometry"))
            for m in way_members
            if m.get("role", "outer") in ("outer", "")
        ]
        rings = stitch_rings([seg for seg in outer if seg])
        if not rings:
            return [GeographicElement(osm_id, ElementKind.AREA, (), tags, osm_type="relation")]
        return [
            GeographicElement(osm_id, ElementKind.AREA, ring, tags, osm_type="relation")
            for ring in rings
        ]

    return [
        GeographicElement(
            osm_id,
            ElementKind.LINE,
            _parse_geometry(m.get("geometry")),
            tags,
            osm_type="relation",
        )
        for m in way_members
    ]


def stitch_rings(segments: Sequence[tuple[Coordinate, ...]]) -> list[tuple[Coordinate, ...]]:
    """Join member way segments that share endpoints into rings.

    Segments that never close are returned as they were joined; areas are
    closed implicitly downstream.
    """
    pending = [tuple(s) for s in segments]
    rings: list[tuple[Coordinate, ...]] = []
    while pending:
        ring = list(pending.pop(0))
        while ring[0] != ring[-1]:
            tail = ring[-1]
            for i, seg in enumerate(pending):
                if seg[0] == tail:
                    ring.extend(seg[1:])
                elif seg[-1] == tail:
                    ring.extend(reversed(seg[:-1]))
                else:
                    continue
                pending.pop(i)
                break
            else:
                break
        rings.append(tuple(ring))
    return rings


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _parse_point(raw: Mapping[str, Any]) -> tuple[Coordinate, ...]:
    lat, lon = raw.get("lat"), raw.get("lon")
    if _is_number(lat) and _is_number(lon):
        return ((float(lat), float(lon)),)
    return ()


def _parse_geometry(geometry: Any) -> tuple[Coordinate, ...]:
    """Parse an ``out geom`` coordinate list. Any broken vertex empties it."""
    if not isinstance(geometry, list):
        return ()
    coords: list[Coordinate] = []
    for vertex in geometry:
        if not isinstance(vertex, Mapping):
            return ()
        lat, lon = vertex.get("lat"), vertex.get("lon")
        if not (_is_number(lat) and _is_number(lon)):
            return ()
        coords.append((float(lat), float(lon)))
    return tuple(coords)


def _parse_tags(raw_tags: Any) -> dict[str, str]:
    if not isinstance(raw_tags, Mapping):
        return {}
    return {str(k): str(v) for k, v in raw_tags.items()}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
