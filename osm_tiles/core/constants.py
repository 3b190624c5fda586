"""Shared engine constants, the single source of truth.

Centralises service URLs, limits and tuning values that are otherwise
duplicated across providers, the generator and the pipeline.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# External services
# ---------------------------------------------------------------------------

DEFAULT_OVERPASS_URL: str = "https://overpass-api.de/api/interpreter"
"""Public Overpass API interpreter endpoint."""

DEFAULT_NOMINATIM_URL: str = "https://nominatim.openstreetmap.org/search"
"""Public Nominatim search endpoint used to resolve named places."""

DEFAULT_USER_AGENT: str = "osm-tiles/0.1 (+https://wiki.openstreetmap.org/wiki/Overpass_API)"
"""User-Agent sent to public OSM services (required by their usage policy)."""

# ---------------------------------------------------------------------------
# Query limits
# ---------------------------------------------------------------------------

DEFAULT_QUERY_TIMEOUT_S: int = 30
"""Server-side Overpass ``[timeout:N]`` in seconds."""

DEFAULT_HTTP_TIMEOUT_S: float = 60.0
"""Client-side HTTP timeout in seconds."""

AREA_WARNING_KM2: float = 1_000.0
"""Regions larger than this produce a warning (slow Overpass queries)."""

DEFAULT_MAX_AREA_KM2: float = 5_000.0
"""Regions larger than this are rejected by the Overpass provider."""

DEFAULT_CATEGORIES_PER_QUERY: int = 4
"""Feature categories combined into one Overpass request."""

OVERPASS_RATE_LIMIT_RPM: int = 60
"""Advertised request budget for the public Overpass instance."""

# ---------------------------------------------------------------------------
# Grid generation
# ---------------------------------------------------------------------------

MIN_GRID_RESOLUTION: int = 1
"""Smallest valid number of cells per side."""

SAFE_RESOLUTION_RANGE: tuple[int, int] = (100, 10_000)
"""Documented safe range for ``grid_resolution``."""

PERFORMANCE_WARNING_RESOLUTION: int = 4_096
"""Resolutions above this are valid but flagged as performance-sensitive."""

DEFAULT_GRID_RESOLUTION: int = 100
"""Resolution used by ``OsmConfigBuilder`` when none is given."""

DEFAULT_CHUNK_SIZE: int = 2_048
"""Elements per chunk when rasterizing with more than one worker."""

MAX_MALFORMED_REASONS: int = 20
"""Malformed-element messages kept in grid diagnostics."""

# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

DEFAULT_GRID_CACHE_SIZE: int = 16
"""Generated grids kept by the shared ``GridCache``."""
