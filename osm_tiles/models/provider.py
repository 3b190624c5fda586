"""Typed models for the data provider layer.

- ``ProviderConfig``: configuration for a specific data provider
- ``ProviderCapabilities``: what a provider can do (geocoding, network, limits)

All models are frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from osm_tiles.core.exceptions import ConfigError


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Configuration for a specific data provider.

    Attributes:
        name: Provider identifier (must match the factory registry key).
        api_base_url: Base URL of the provider's query API (empty = default).
        geocoder_url: Geocoding endpoint for named places (empty = default).
        user_agent: User-Agent header for outgoing requests.
        timeout_s: Client-side request timeout in seconds.
        max_area_km2: Largest region the provider accepts (0 = unlimited).
        extra_params: Provider-specific configuration parameters.
    """

    name: str
    api_base_url: str = ""
    geocoder_url: str = ""
    user_agent: str = ""
    timeout_s: float = 60.0
    max_area_km2: float = 0.0
    extra_params: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigError("provider.name", self.name, "must not be empty")
        if self.timeout_s <= 0:
            raise ConfigError("provider.timeout_s", self.timeout_s, "must be > 0 (seconds)")
        if self.max_area_km2 < 0:
            raise ConfigError("provider.max_area_km2", self.max_area_km2, "must be >= 0")


@dataclass(frozen=True, slots=True)
class ProviderCapabilities:
    """Static description of what a provider supports.

    Attributes:
        supports_real_time: Data reflects the live upstream database.
        requires_network: ``fetch`` performs network I/O.
        supports_geocoding: Named places can be resolved.
        max_area_km2: Largest accepted region (``None`` = unlimited).
        supported_formats: Upstream payload formats understood.
        rate_limit_rpm: Advertised request budget per minute, if any.
        notes: Free-form remarks for operators.
    """

    supports_real_time: bool
    requires_network: bool
    supports_geocoding: bool
    max_area_km2: float | None = None
    supported_formats: tuple[str, ...] = ("overpass-json",)
    rate_limit_rpm: int | None = None
    notes: str = ""
