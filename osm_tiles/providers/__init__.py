"""Geographic data providers.

Implements the provider-agnostic adapter pattern (Strategy pattern):
- OsmDataProvider: Abstract base class defining the interface
- OverpassProvider: Overpass API + Nominatim (network)
- MockProvider: Deterministic synthetic data (offline, tests and demos)
- FileProvider: Saved Overpass JSON responses (offline)

The active provider is selected via configuration, so switching needs no
code change.
"""

from osm_tiles.providers.base import (
    InvalidRegionError,
    OsmDataProvider,
    ProviderError,
    ProviderErrorKind,
    ProviderNetworkError,
    ProviderParseError,
    ProviderTimeoutError,
    RateLimitedError,
)
from osm_tiles.providers.factory import (
    FILE,
    MOCK,
    OVERPASS,
    get_provider,
    list_providers,
    register_provider,
)

__all__ = [
    "FILE",
    "MOCK",
    "OVERPASS",
    "InvalidRegionError",
    "OsmDataProvider",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderNetworkError",
    "ProviderParseError",
    "ProviderTimeoutError",
    "RateLimitedError",
    "get_provider",
    "list_providers",
    "register_provider",
]
