"""Provider factory. Selects the active data provider by name.

The factory maintains a registry of known providers. New providers are
registered with ``register_provider`` without touching the generator or
the pipeline.

Usage::

    from osm_tiles.providers.factory import get_provider

    provider = get_provider("overpass")
    elements = provider.fetch(bbox, FeatureSet.urban())

The provider name is normally read from ``EngineSettings.provider``
(``OSM_TILES_PROVIDER``).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from osm_tiles.core.exceptions import ConfigError
from osm_tiles.models.provider import ProviderConfig
from osm_tiles.providers.base import OsmDataProvider

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Provider name constants
# ---------------------------------------------------------------------------

OVERPASS = "overpass"
MOCK = "mock"
FILE = "file"

# ---------------------------------------------------------------------------
# Lazy-import provider registry
# ---------------------------------------------------------------------------

# Each entry maps a provider name to a callable that returns the provider
# *class*. Imports are lazy so the HTTP client stack is only loaded when the
# network provider is selected.

_PROVIDER_REGISTRY: dict[str, Callable[[], type[OsmDataProvider]]] = {}


def _register_builtin_providers() -> None:
    """Register the built-in providers (lazy import thunks)."""

    def _overpass() -> type[OsmDataProvider]:
        from osm_tiles.providers.overpass import OverpassProvider

        return OverpassProvider

    def _mock() -> type[OsmDataProvider]:
        from osm_tiles.providers.mock import MockProvider

        return MockProvider

    def _file() -> type[OsmDataProvider]:
        from osm_tiles.providers.file import FileProvider

        return FileProvider

    _PROVIDER_REGISTRY[OVERPASS] = _overpass
    _PROVIDER_REGISTRY[MOCK] = _mock
    _PROVIDER_REGISTRY[FILE] = _file


def _ensure_registry() -> None:
    """Initialise the provider registry once (idempotent)."""
    if not _PROVIDER_REGISTRY:
        _register_builtin_providers()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def register_provider(
    name: str,
    loader: Callable[[], type[OsmDataProvider]],
) -> None:
    """Register a custom provider.

    Args:
        name: Provider name (e.g. ``"my_tile_server"``).
        loader: A zero-argument callable that returns the provider class.

    Raises:
        ValueError: If the name is empty.
    """
    if not name:
        msg = "Provider name must be non-empty"
        raise ValueError(msg)
    _ensure_registry()
    _PROVIDER_REGISTRY[name] = loader
    logger.debug("Registered data provider: %s", name)


def get_provider(
    name: str,
    config: ProviderConfig | None = None,
) -> OsmDataProvider:
    """Create and return a data provider instance.

    Args:
        name: Provider identifier (e.g. ``"overpass"``, ``"mock"``).
        config: Optional ``ProviderConfig``. If ``None``, a default config
                with just the provider name is used.

    Returns:
        A configured ``OsmDataProvider`` instance.

    Raises:
        ConfigError: If the name is not registered or the config belongs
            to a different provider.
    """
    _ensure_registry()

    loader = _PROVIDER_REGISTRY.get(name)
    if loader is None:
        available = ", ".join(sorted(_PROVIDER_REGISTRY))
        raise ConfigError("provider", name, f"unknown data provider (available: {available})")

    provider_cls = loader()

    if config is None:
        config = ProviderConfig(name=name)
    elif config.name != name:
        raise ConfigError(
            "provider.name",
            config.name,
            f"does not match requested provider {name!r}",
        )

    logger.info("Creating data provider: %s", name)
    return provider_cls(config)


def list_providers() -> list[str]:
    """Return the names of all registered providers."""
    _ensure_registry()
    return sorted(_PROVIDER_REGISTRY)
