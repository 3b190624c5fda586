"""Contract test suite for data provider adapters.

This module defines ``ProviderContractTests``, an abstract test mixin
that any concrete provider must pass. It verifies the resolve → fetch
contract without depending on a specific provider implementation.

Usage in an adapter test module::

    class TestMyProvider(ProviderContractTests, unittest.TestCase):
        def create_provider(self):
            return MyProvider(ProviderConfig(name="my_provider"))

        def create_test_region(self):
            return BoundingBox(52.50, 13.38, 52.52, 13.41)

The mixin is run here against the mock, file and Overpass providers
(the latter over an ``httpx.MockTransport``).
"""

from __future__ import annotations

import abc
import json
import tempfile
import unittest
from pathlib import Path

import httpx

from osm_tiles.core.exceptions import ConfigError
from osm_tiles.models.element import GeographicElement
from osm_tiles.models.features import FeatureSet
from osm_tiles.models.provider import ProviderCapabilities, ProviderConfig
from osm_tiles.models.region import BoundingBox, CenterRadius
from osm_tiles.providers.base import OsmDataProvider
from osm_tiles.providers.file import FileProvider
from osm_tiles.providers.mock import MockProvider
from osm_tiles.providers.overpass import OverpassProvider
from tests.conftest import BERLIN_BOX, sample_overpass_payload

# ---------------------------------------------------------------------------
# Contract mixin
# ---------------------------------------------------------------------------


class ProviderContractTests(abc.ABC):
    """Abstract mixin verifying the OsmDataProvider contract.

    Subclasses must implement ``create_provider()`` and
    ``create_test_region()`` and mix this with ``unittest.TestCase``.
    """

    @abc.abstractmethod
    def create_provider(self) -> OsmDataProvider:
        """Return a configured provider instance (real or faked)."""

    @abc.abstractmethod
    def create_test_region(self) -> BoundingBox:
        """Return a bounding box suitable for the provider's test data."""

    # -- identity --

    def test_name_is_non_empty(self) -> None:
        self.assertTrue(self.create_provider().name)  # type: ignore[attr-defined]

    def test_capabilities(self) -> None:
        caps = self.create_provider().capabilities()
        self.assertIsInstance(caps, ProviderCapabilities)  # type: ignore[attr-defined]
        self.assertIsInstance(caps.requires_network, bool)  # type: ignore[attr-defined]

    def test_describe_mentions_name(self) -> None:
        provider = self.create_provider()
        self.assertIn(provider.name, provider.describe())  # type: ignore[attr-defined]

    def test_availability_is_bool(self) -> None:
        self.assertIsInstance(self.create_provider().test_availability(), bool)  # type: ignore[attr-defined]

    # -- region resolution --

    def test_resolve_bbox_is_identity(self) -> None:
        region = self.create_test_region()
        self.assertEqual(self.create_provider().resolve_region(region), region)  # type: ignore[attr-defined]

    def test_resolve_degenerate_bbox_raises(self) -> None:
        with self.assertRaises(ConfigError):  # type: ignore[attr-defined]
            self.create_provider().resolve_region(BoundingBox(52.5, 13.4, 52.5, 13.5))

    def test_resolve_center_radius_contains_center(self) -> None:
        bbox = self.create_provider().resolve_region(CenterRadius(52.51, 13.395, 1.0))
        self.assertTrue(bbox.contains(52.51, 13.395))  # type: ignore[attr-defined]

    # -- fetch --

    def test_fetch_returns_list_of_elements(self) -> None:
        elements = self.create_provider().fetch(self.create_test_region(), FeatureSet.urban())
        self.assertIsInstance(elements, list)  # type: ignore[attr-defined]
        for element in elements:
            self.assertIsInstance(element, GeographicElement)  # type: ignore[attr-defined]

    def test_fetch_returns_data_for_urban_preset(self) -> None:
        elements = self.create_provider().fetch(self.create_test_region(), FeatureSet.urban())
        self.assertTrue(elements, "expected at least one element")  # type: ignore[attr-defined]

    def test_fetch_is_deterministic(self) -> None:
        provider = self.create_provider()
        region = self.create_test_region()
        first = [e.to_dict() for e in provider.fetch(region, FeatureSet.urban())]
        second = [e.to_dict() for e in provider.fetch(region, FeatureSet.urban())]
        self.assertEqual(first, second)  # type: ignore[attr-defined]

    def test_fetch_accepts_empty_feature_set(self) -> None:
        elements = self.create_provider().fetch(self.create_test_region(), FeatureSet())
        self.assertIsInstance(elements, list)  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# Concrete providers
# ---------------------------------------------------------------------------


class TestMockProviderContract(ProviderContractTests, unittest.TestCase):
    """Synthetic town provider satisfies the contract."""

    def create_provider(self) -> OsmDataProvider:
        return MockProvider()

    def create_test_region(self) -> BoundingBox:
        return BERLIN_BOX


class TestFileProviderContract(ProviderContractTests, unittest.TestCase):
    """Saved Overpass JSON provider satisfies the contract."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self._path = Path(self._tmp.name) / "berlin.json"
        self._path.write_text(json.dumps(sample_overpass_payload()), encoding="utf-8")

    def create_provider(self) -> OsmDataProvider:
        return FileProvider(ProviderConfig(name="file", extra_params={"path": str(self._path)}))

    def create_test_region(self) -> BoundingBox:
        return BERLIN_BOX


def _overpass_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/status"):
        return httpx.Response(200, text="Connected as: 1\nRate limit: 2\n")
    return httpx.Response(200, json=sample_overpass_payload())


class TestOverpassProviderContract(ProviderContractTests, unittest.TestCase):
    """Overpass provider over a mocked transport satisfies the contract."""

    def create_provider(self) -> OsmDataProvider:
        return OverpassProvider(
            ProviderConfig(name="overpass"),
            transport=httpx.MockTransport(_overpass_handler),
        )

    def create_test_region(self) -> BoundingBox:
        return BERLIN_BOX
