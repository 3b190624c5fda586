"""OsmDataProvider abstract base class.

Defines the contract every data provider must implement. The pipeline
interacts exclusively with this interface and never knows which
concrete provider is behind it. Nothing here depends on rendering or
engine code.

Lifecycle:
    1. ``resolve_region(region)``: turn any region form into a bbox.
    2. ``fetch(region, feature_set)``: return the elements for that bbox.

Providers never retry. Each failure is a ``ProviderError`` whose
``kind`` tells the caller whether a retry could help.
"""

from __future__ import annotations

import abc
import enum
from typing import TYPE_CHECKING

from osm_tiles.core.exceptions import PermanentError, PipelineError, TransientError

if TYPE_CHECKING:
    from osm_tiles.models.element import GeographicElement
    from osm_tiles.models.features import FeatureSet
    from osm_tiles.models.provider import ProviderCapabilities, ProviderConfig
    from osm_tiles.models.region import BoundingBox, Region


class OsmDataProvider(abc.ABC):
    """Abstract base class for geographic data providers.

    Concrete implementations must override ``fetch``, ``resolve_region``
    and ``capabilities``. The constructor receives a ``ProviderConfig``
    carrying endpoints, limits and provider-specific parameters.

    Example usage::

        provider = get_provider("overpass")
        bbox = provider.resolve_region(NamedPlace("Berlin"))
        elements = provider.fetch(bbox, FeatureSet.urban())
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config

    @property
    def name(self) -> str:
        """Return the provider name from configuration."""
        return self._config.name

    @property
    def config(self) -> ProviderConfig:
        """Return the provider configuration (read-only)."""
        return self._config

    # ------------------------------------------------------------------
    # Abstract methods. Every provider must implement these
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def fetch(
        self,
        region: Region,
        feature_set: FeatureSet,
        *,
        timeout_s: int | None = None,
    ) -> list[GeographicElement]:
        """Return the elements inside *region* that *feature_set* may match.

        Args:
            region: Area of interest. Unresolved forms are resolved first.
            feature_set: Categories and custom queries to request.
            timeout_s: Server-side query timeout in seconds. Providers
                without a remote query ignore it; ``None`` keeps the
                provider default.

        Returns:
            Elements in a deterministic order. Empty when nothing matches.

        Raises:
            ProviderError: On any upstream failure.
        """

    @abc.abstractmethod
    def resolve_region(self, region: Region) -> BoundingBox:
        """Resolve *region* to a validated bounding box.

        Raises:
            InvalidRegionError: If the region cannot be resolved or is
                not acceptable to this provider.
            ProviderError: On upstream failures while geocoding.
        """

    @abc.abstractmethod
    def capabilities(self) -> ProviderCapabilities:
        """Describe what this provider supports."""

    # ------------------------------------------------------------------
    # Optional hooks
    # ------------------------------------------------------------------

    def test_availability(self) -> bool:
        """Return whether the provider can currently serve requests."""
        return True

    def describe(self) -> str:
        """One-line human-readable description."""
        caps = self.capabilities()
        network = "network" if caps.requires_network else "offline"
        return f"{self.name} ({network})"


# ---------------------------------------------------------------------------
# Provider exceptions
# ---------------------------------------------------------------------------


class ProviderErrorKind(enum.Enum):
    """Failure category of a ``ProviderError``."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    INVALID_REGION = "invalid_region"
    RATE_LIMITED = "rate_limited"
    PARSE_ERROR = "parse_error"

    @property
    def retryable(self) -> bool:
        """Whether a caller may reasonably retry after this failure."""
        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS = frozenset(
    {ProviderErrorKind.NETWORK, ProviderErrorKind.TIMEOUT, ProviderErrorKind.RATE_LIMITED}
)


class ProviderError(PipelineError):
    """Base exception for data provider errors.

    Attributes:
        provider: Name of the provider that raised the error.
        message: Human-readable error description.
        kind: Failure category.
        retryable: Derived from *kind*: true for network, timeout and
            rate-limit failures.
    """

    default_stage = "fetching"
    default_code = "PROVIDER_ERROR"
    default_kind = ProviderErrorKind.NETWORK

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        kind: ProviderErrorKind | None = None,
    ) -> None:
        self.provider = provider
        self.kind = kind or self.default_kind
        super().__init__(
            message,
            retryable=self.kind.retryable,
            code=self.default_code,
            stage=self.default_stage,
        )

    def __str__(self) -> str:
        return f"[{self.provider}] {self.message}"

    def to_error_dict(self) -> dict[str, object]:
        payload = super().to_error_dict()
        payload["provider"] = self.provider
        payload["kind"] = self.kind.value
        return payload


class ProviderNetworkError(ProviderError, TransientError):
    """Connection failure or server error. Retryable."""

    default_code = "PROVIDER_NETWORK"
    default_kind = ProviderErrorKind.NETWORK


class ProviderTimeoutError(ProviderError, TransientError):
    """The request or the server-side query timed out. Retryable."""

    default_code = "PROVIDER_TIMEOUT"
    default_kind = ProviderErrorKind.TIMEOUT


class InvalidRegionError(ProviderError, PermanentError):
    """The region cannot be resolved or is not acceptable. Not retryable."""

    default_code = "PROVIDER_INVALID_REGION"
    default_kind = ProviderErrorKind.INVALID_REGION


class RateLimitedError(ProviderError, TransientError):
    """The upstream service throttled the request. Retryable."""

    default_code = "PROVIDER_RATE_LIMITED"
    default_kind = ProviderErrorKind.RATE_LIMITED


class ProviderParseError(ProviderError, PermanentError):
    """The upstream payload could not be parsed. Not retryable."""

    default_code = "PROVIDER_PARSE_ERROR"
    default_kind = ProviderErrorKind.PARSE_ERROR


_ERRORS_BY_KIND: dict[ProviderErrorKind, type[ProviderError]] = {
    ProviderErrorKind.NETWORK: ProviderNetworkError,
    ProviderErrorKind.TIMEOUT: ProviderTimeoutError,
    ProviderErrorKind.INVALID_REGION: InvalidRegionError,
    ProviderErrorKind.RATE_LIMITED: RateLimitedError,
    ProviderErrorKind.PARSE_ERROR: ProviderParseError,
}


def provider_error(provider: str, message: str, kind: ProviderErrorKind) -> ProviderError:
    """Build the ``ProviderError`` subclass matching *kind*."""
    return _ERRORS_BY_KIND[kind](provider, message)
