"""Engine settings loaded from environment variables.

All settings have sensible defaults for the public OpenStreetMap
services. Deployments override them through the environment.

Fail-fast validation:
    ``from_env()`` raises ``ConfigError`` if any numeric value is out of
    its valid range, so bad settings are caught when the pipeline is
    created rather than halfway through a load.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from osm_tiles.core.constants import (
    DEFAULT_CATEGORIES_PER_QUERY,
    DEFAULT_GRID_CACHE_SIZE,
    DEFAULT_HTTP_TIMEOUT_S,
    DEFAULT_MAX_AREA_KM2,
    DEFAULT_NOMINATIM_URL,
    DEFAULT_OVERPASS_URL,
    DEFAULT_USER_AGENT,
)
from osm_tiles.core.exceptions import ConfigError


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """Immutable engine settings.

    Loaded once when a pipeline is created and threaded through the
    provider, generator and cache.

    Attributes:
        provider: Active data provider (``overpass``, ``mock`` or ``file``).
        overpass_url: Overpass API interpreter endpoint.
        nominatim_url: Nominatim search endpoint for named places.
        user_agent: User-Agent header sent to OSM services.
        http_timeout_s: Client-side HTTP timeout in seconds.
        max_area_km2: Largest region the Overpass provider accepts.
        categories_per_query: Feature categories batched per Overpass request.
        workers: Rasterizer worker threads (1 = sequential).
        grid_cache_size: Grids kept by the shared cache (0 disables it).
        fetch_timeout_s: Pipeline-level fetch timeout in seconds (0 = none).
        data_file: Overpass JSON file replayed by the ``file`` provider.
    """

    provider: str = "overpass"
    overpass_url: str = DEFAULT_OVERPASS_URL
    nominatim_url: str = DEFAULT_NOMINATIM_URL
    user_agent: str = DEFAULT_USER_AGENT
    http_timeout_s: float = DEFAULT_HTTP_TIMEOUT_S
    max_area_km2: float = DEFAULT_MAX_AREA_KM2
    categories_per_query: int = DEFAULT_CATEGORIES_PER_QUERY
    workers: int = 1
    grid_cache_size: int = DEFAULT_GRID_CACHE_SIZE
    fetch_timeout_s: float = 0.0
    data_file: str = ""

    def validate(self) -> EngineSettings:
        """Check every range and return ``self``.  Raises ``ConfigError``."""
        _validate(self)
        return self

    @classmethod
    def from_env(cls) -> EngineSettings:
        """Load and validate settings from environment variables.

        Raises:
            ConfigError: If a numeric value is out of range or a required
                string value is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``OSM_TILES_WORKERS=abc``).
        """
        settings = cls(
            provider=os.getenv("OSM_TILES_PROVIDER", "overpass"),
            overpass_url=os.getenv("OVERPASS_URL", DEFAULT_OVERPASS_URL),
            nominatim_url=os.getenv("NOMINATIM_URL", DEFAULT_NOMINATIM_URL),
            user_agent=os.getenv("OSM_TILES_USER_AGENT", DEFAULT_USER_AGENT),
            http_timeout_s=float(os.getenv("OSM_TILES_HTTP_TIMEOUT_S", str(DEFAULT_HTTP_TIMEOUT_S))),
            max_area_km2=float(os.getenv("OSM_TILES_MAX_AREA_KM2", str(DEFAULT_MAX_AREA_KM2))),
            categories_per_query=int(
                os.getenv("OSM_TILES_CATEGORIES_PER_QUERY", str(DEFAULT_CATEGORIES_PER_QUERY))
            ),
            workers=int(os.getenv("OSM_TILES_WORKERS", "1")),
            grid_cache_size=int(os.getenv("OSM_TILES_GRID_CACHE_SIZE", str(DEFAULT_GRID_CACHE_SIZE))),
            fetch_timeout_s=float(os.getenv("OSM_TILES_FETCH_TIMEOUT_S", "0")),
            data_file=os.getenv("OSM_TILES_DATA_FILE", ""),
        )
        return settings.validate()


def _validate(settings: EngineSettings) -> None:
    """Validate settings ranges.  Raises ``ConfigError``."""
    if not settings.provider:
        raise ConfigError("OSM_TILES_PROVIDER", settings.provider, "must not be empty")

    if not settings.overpass_url:
        raise ConfigError("OVERPASS_URL", settings.overpass_url, "must not be empty")

    if settings.http_timeout_s <= 0:
        raise ConfigError(
            "OSM_TILES_HTTP_TIMEOUT_S",
            settings.http_timeout_s,
            "must be > 0 (seconds)",
        )

    if settings.max_area_km2 <= 0:
        raise ConfigError(
            "OSM_TILES_MAX_AREA_KM2",
            settings.max_area_km2,
            "must be > 0 (square kilometres)",
        )

    if settings.categories_per_query < 1:
        raise ConfigError(
            "OSM_TILES_CATEGORIES_PER_QUERY",
            settings.categories_per_query,
            "must be >= 1",
        )

    if settings.workers < 1:
        raise ConfigError("OSM_TILES_WORKERS", settings.workers, "must be >= 1")

    if settings.grid_cache_size < 0:
        raise ConfigError(
            "OSM_TILES_GRID_CACHE_SIZE",
            settings.grid_cache_size,
            "must be >= 0 (0 disables the cache)",
        )

    if settings.fetch_timeout_s < 0:
        raise ConfigError(
            "OSM_TILES_FETCH_TIMEOUT_S",
            settings.fetch_timeout_s,
            "must be >= 0 (seconds, 0 = no timeout)",
        )
