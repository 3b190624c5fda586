"""Tests for the data provider factory.

Covers: get_provider, list_providers, register_provider, error handling
and config-driven switching.
"""

from __future__ import annotations

import unittest
from unittest.mock import patch

from osm_tiles.core.config import EngineSettings
from osm_tiles.core.exceptions import ConfigError
from osm_tiles.models.provider import ProviderConfig
from osm_tiles.providers.base import OsmDataProvider
from osm_tiles.providers.factory import (
    _PROVIDER_REGISTRY,
    FILE,
    MOCK,
    OVERPASS,
    _ensure_registry,
    get_provider,
    list_providers,
    register_provider,
)
from osm_tiles.providers.file import FileProvider
from osm_tiles.providers.mock import MockProvider
from osm_tiles.providers.overpass import OverpassProvider


class TestListProviders(unittest.TestCase):
    """list_providers returns the built-in providers."""

    def test_includes_builtin_providers(self) -> None:
        providers = list_providers()
        assert {OVERPASS, MOCK, FILE} <= set(providers)

    def test_returns_sorted(self) -> None:
        providers = list_providers()
        assert providers == sorted(providers)


class TestGetProvider(unittest.TestCase):
    """get_provider creates the correct provider instance."""

    def test_overpass(self) -> None:
        provider = get_provider(OVERPASS)
        assert isinstance(provider, OverpassProvider)
        assert provider.name == OVERPASS

    def test_mock(self) -> None:
        assert isinstance(get_provider(MOCK), MockProvider)

    def test_file(self) -> None:
        cfg = ProviderConfig(name=FILE, extra_params={"path": "/tmp/none.json"})
        provider = get_provider(FILE, cfg)
        assert isinstance(provider, FileProvider)
        assert str(provider.path) == "/tmp/none.json"

    def test_unknown_provider_raises(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            get_provider("nonexistent_provider")
        assert ctx.exception.field == "provider"
        assert "nonexistent_provider" in str(ctx.exception)
        assert "available:" in str(ctx.exception)

    def test_custom_config_passed(self) -> None:
        cfg = ProviderConfig(name=OVERPASS, api_base_url="https://overpass.example/api/interpreter")
        provider = get_provider(OVERPASS, config=cfg)
        assert provider.config.api_base_url == "https://overpass.example/api/interpreter"

    def test_default_config_when_none(self) -> None:
        provider = get_provider(MOCK)
        assert provider.config == ProviderConfig(name=MOCK)

    def test_config_name_mismatch_raises(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            get_provider(OVERPASS, config=ProviderConfig(name=MOCK))
        assert "does not match" in str(ctx.exception)

    def test_instances_are_not_shared(self) -> None:
        assert get_provider(MOCK) is not get_provider(MOCK)


class TestRegisterProvider(unittest.TestCase):
    """register_provider adds custom providers."""

    def setUp(self) -> None:
        _ensure_registry()
        _PROVIDER_REGISTRY.pop("test_custom", None)

    def tearDown(self) -> None:
        _PROVIDER_REGISTRY.pop("test_custom", None)

    def test_register_and_get(self) -> None:
        class _TestProvider(MockProvider):
            pass

        register_provider("test_custom", lambda: _TestProvider)
        assert "test_custom" in list_providers()

        provider = get_provider("test_custom")
        assert isinstance(provider, _TestProvider)
        assert isinstance(provider, OsmDataProvider)
        assert provider.name == "test_custom"

    def test_register_empty_name_raises(self) -> None:
        with self.assertRaises(ValueError):
            register_provider("", lambda: MockProvider)


class TestProviderSwitching(unittest.TestCase):
    """Provider selection driven by settings."""

    @patch.dict("os.environ", {"OSM_TILES_PROVIDER": MOCK})
    def test_env_driven_selection(self) -> None:
        settings = EngineSettings.from_env()
        assert settings.provider == MOCK
        assert isinstance(get_provider(settings.provider), MockProvider)

    def test_overpass_is_lazily_imported(self) -> None:
        """Built-in loaders return classes only when called."""
        _ensure_registry()
        loader = _PROVIDER_REGISTRY[OVERPASS]
        assert loader() is OverpassProvider
