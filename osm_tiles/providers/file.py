"""File provider: replays a saved Overpass JSON response.

Useful for offline work against real data. The file is read once and
cached. ``fetch`` returns the elements whose bounds overlap the requested
box (plus geometry-less ones, so the generator still counts them).

A named place resolves to ``known_bbox`` when configured, otherwise to
the bounds of the data in the file.

Configuration:
    ``ProviderConfig.extra_params["path"]`` is the JSON file path and the
    optional ``extra_params["known_bbox"]`` is ``"south,west,north,east"``.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from osm_tiles.models.provider import ProviderCapabilities
from osm_tiles.models.region import BoundingBox, CenterRadius, NamedPlace, describe_region
from osm_tiles.providers.base import InvalidRegionError, OsmDataProvider, ProviderParseError
from osm_tiles.providers.parser import parse_overpass_payload

if TYPE_CHECKING:
    from osm_tiles.models.element import GeographicElement
    from osm_tiles.models.features import FeatureSet
    from osm_tiles.models.provider import ProviderConfig
    from osm_tiles.models.region import Region

logger = logging.getLogger(__name__)


class FileProvider(OsmDataProvider):
    """Provider backed by an Overpass JSON file on disk.

    Args:
        config: Provider configuration.
        path: JSON file path (overrides ``extra_params["path"]``).
        known_bbox: Box returned for named places (overrides
            ``extra_params["known_bbox"]``).
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        path: str | Path | None = None,
        known_bbox: BoundingBox | None = None,
    ) -> None:
        super().__init__(config)
        raw_path = path if path is not None else config.extra_params.get("path", "")
        self._path = Path(raw_path) if raw_path else None
        self._known_bbox = known_bbox or _parse_bbox_param(config.extra_params.get("known_bbox", ""))
        self._lock = threading.Lock()
        self._elements: list[GeographicElement] | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_real_time=False,
            requires_network=False,
            supports_geocoding=False,
            supported_formats=("overpass-json",),
            notes=f"Replays {self._path}" if self._path else "No file configured",
        )

    def test_availability(self) -> bool:
        return self._path is not None and self._path.is_file()

    def resolve_region(self, region: Region) -> BoundingBox:
        if isinstance(region, BoundingBox):
            return region.validate()
        if isinstance(region, CenterRadius):
            return region.to_bbox()
        if isinstance(region, NamedPlace):
            region.validate()
            if self._known_bbox is not None:
                return self._known_bbox
            return self.data_bounds()
        msg = f"Unsupported region type: {type(region).__name__}"
        raise InvalidRegionError(self.name, msg)

    def fetch(
        self,
        region: Region,
        feature_set: FeatureSet,
        *,
        timeout_s: int | None = None,
    ) -> list[GeographicElement]:
        bbox = self.resolve_region(region)
        selected = [
            e
            for e in self._load()
            if not e.coordinates or bbox.intersects(e.bounds())
        ]
        logger.info(
            "File fetch | path=%s | region=%s | features=%s | elements=%d",
            self._path,
            describe_region(region),
            feature_set.canonical(),
            len(selected),
        )
        return selected

    def data_bounds(self) -> BoundingBox:
        """Bounding box of every coordinate in the file.

        Raises:
            InvalidRegionError: If the file holds no coordinates.
        """
        coords = [c for e in self._load() for c in e.coordinates]
        if not coords:
            msg = f"No coordinates in {self._path}; cannot derive a region"
            raise InvalidRegionError(self.name, msg)
        lats = [lat for lat, _ in coords]
        lons = [lon for _, lon in coords]
        bbox = BoundingBox(min(lats), min(lons), max(lats), max(lons))
        if bbox.south >= bbox.north or bbox.west >= bbox.east:
            msg = f"Data in {self._path} spans a degenerate box {bbox.to_overpass()}"
            raise InvalidRegionError(self.name, msg)
        return bbox

    def _load(self) -> list[GeographicElement]:
        with self._lock:
            if self._elements is None:
                self._elements = self._read()
            return self._elements

    def _read(self) -> list[GeographicElement]:
        if self._path is None:
            msg = "No file path configured (set extra_params['path'])"
            raise InvalidRegionError(self.name, msg)
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            msg = f"Data file not found: {self._path}"
            raise InvalidRegionError(self.name, msg) from exc
        except UnicodeDecodeError as exc:
            msg = f"Data file is not valid UTF-8: {self._path}: {exc.reason}"
            raise ProviderParseError(self.name, msg) from exc
        except OSError as exc:
            msg = f"Cannot read data file {self._path}: {exc.strerror or exc}"
            raise InvalidRegionError(self.name, msg) from exc
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            msg = f"Invalid JSON in {self._path}: {exc}"
            raise ProviderParseError(self.name, msg) from exc
        elements = parse_overpass_payload(payload, provider=self.name)
        logger.info("Loaded data file | path=%s | elements=%d", self._path, len(elements))
        return elements


def _parse_bbox_param(value: str) -> BoundingBox | None:
    if not value:
        return None
    south, west, north, east = (float(v) for v in value.split(","))
    return BoundingBox(south, west, north, east).validate()
