"""Tests for the engine exception taxonomy.

Validates:
- PipelineError hierarchy and structured attributes
- Category classification (validation, transient, permanent, contract)
- ``to_error_dict()`` produces stable payload keys
- Provider error kinds drive retry semantics
"""

from __future__ import annotations

from typing import ClassVar

import pytest

from osm_tiles.core.exceptions import (
    ConfigError,
    ContractError,
    PartialElementError,
    PermanentError,
    PipelineError,
    TransientError,
    ValidationError,
)
from osm_tiles.providers.base import (
    InvalidRegionError,
    ProviderError,
    ProviderErrorKind,
    ProviderNetworkError,
    ProviderParseError,
    ProviderTimeoutError,
    RateLimitedError,
    provider_error,
)


class TestPipelineErrorBase:
    """PipelineError base class behavior."""

    def test_default_attributes(self) -> None:
        err = PipelineError("boom")
        assert err.message == "boom"
        assert err.stage == ""
        assert err.code == ""
        assert err.retryable is False
        assert err.correlation_id == ""

    def test_custom_attributes(self) -> None:
        err = PipelineError(
            "fail",
            stage="rasterizing",
            code="RASTER_FAILED",
            retryable=True,
            correlation_id="abc-123",
        )
        assert err.stage == "rasterizing"
        assert err.code == "RASTER_FAILED"
        assert err.retryable is True
        assert err.correlation_id == "abc-123"

    def test_str_is_message(self) -> None:
        assert str(PipelineError("human-readable error")) == "human-readable error"

    def test_to_error_dict_keys(self) -> None:
        err = PipelineError("x", stage="s", code="C", retryable=True, correlation_id="id")
        assert set(err.to_error_dict()) == {
            "category",
            "code",
            "stage",
            "message",
            "retryable",
            "correlation_id",
        }


class TestCategoryBases:
    """Category base classes set retryability and category."""

    def test_validation_error_not_retryable(self) -> None:
        err = ValidationError("bad")
        assert err.retryable is False
        assert err.category == "validation"

    def test_transient_error_retryable(self) -> None:
        err = TransientError("blip")
        assert err.retryable is True
        assert err.category == "transient"

    def test_permanent_error_not_retryable(self) -> None:
        err = PermanentError("gone")
        assert err.retryable is False
        assert err.category == "permanent"

    def test_contract_error_not_retryable(self) -> None:
        err = ContractError("drift")
        assert err.retryable is False
        assert err.category == "contract"

    def test_dynamic_category_from_retryable(self) -> None:
        assert PipelineError("x", retryable=True).category == "transient"
        assert PipelineError("x", retryable=False).category == "permanent"


class TestConfigError:
    """ConfigError carries enough context to reproduce the failure."""

    def test_message_includes_field_value_and_context(self) -> None:
        err = ConfigError("grid_resolution", 0, "must be >= 1", region="place(Berlin)", resolution=0)
        assert "grid_resolution=0" in err.message
        assert "must be >= 1" in err.message
        assert "region='place(Berlin)'" in err.message
        assert "resolution=0" in err.message

    def test_is_validation_error(self) -> None:
        err = ConfigError("preset", "nope", "unknown preset")
        assert isinstance(err, ValidationError)
        assert err.retryable is False
        assert err.stage == "config"
        assert err.code == "CONFIG_INVALID"

    def test_error_dict_has_config_fields(self) -> None:
        err = ConfigError("timeout_seconds", -1, "must be > 0", resolution=100)
        d = err.to_error_dict()
        assert d["field"] == "timeout_seconds"
        assert d["value"] == "-1"
        assert d["region"] == ""
        assert d["resolution"] == 100
        assert d["category"] == "validation"


class TestPartialElementError:
    def test_attributes(self) -> None:
        err = PartialElementError(42, "coordinate out of range")
        assert err.osm_id == 42
        assert err.reason == "coordinate out of range"
        assert str(err) == "Element 42: coordinate out of range"
        assert err.stage == "rasterizing"
        assert err.code == "ELEMENT_MALFORMED"
        assert err.retryable is False


class TestProviderExceptionTaxonomy:
    """Provider errors expose provider, kind and kind-driven retryability."""

    SUBCLASSES: ClassVar[dict[ProviderErrorKind, type[ProviderError]]] = {
        ProviderErrorKind.NETWORK: ProviderNetworkError,
        ProviderErrorKind.TIMEOUT: ProviderTimeoutError,
        ProviderErrorKind.INVALID_REGION: InvalidRegionError,
        ProviderErrorKind.RATE_LIMITED: RateLimitedError,
        ProviderErrorKind.PARSE_ERROR: ProviderParseError,
    }

    def test_provider_error_defaults_to_network(self) -> None:
        err = ProviderError("overpass", "connection reset")
        assert err.kind is ProviderErrorKind.NETWORK
        assert err.retryable is True
        assert err.stage == "fetching"
        assert str(err) == "[overpass] connection reset"

    def test_is_pipeline_error(self) -> None:
        assert issubclass(ProviderError, PipelineError)

    @pytest.mark.parametrize("kind", list(ProviderErrorKind))
    def test_factory_returns_matching_subclass(self, kind: ProviderErrorKind) -> None:
        err = provider_error("mock", "simulated", kind)
        assert type(err) is self.SUBCLASSES[kind]
        assert err.kind is kind
        assert err.retryable is kind.retryable

    def test_retryable_kinds(self) -> None:
        assert ProviderErrorKind.NETWORK.retryable
        assert ProviderErrorKind.TIMEOUT.retryable
        assert ProviderErrorKind.RATE_LIMITED.retryable
        assert not ProviderErrorKind.INVALID_REGION.retryable
        assert not ProviderErrorKind.PARSE_ERROR.retryable

    def test_retryable_errors_report_transient_category(self) -> None:
        assert RateLimitedError("overpass", "429").category == "transient"
        assert ProviderTimeoutError("overpass", "slow").category == "transient"

    def test_non_retryable_errors_report_permanent_category(self) -> None:
        assert InvalidRegionError("mock", "unknown city").category == "permanent"
        assert ProviderParseError("file", "bad json").category == "permanent"

    @pytest.mark.parametrize("kind", list(ProviderErrorKind))
    def test_kind_selects_category_base(self, kind: ProviderErrorKind) -> None:
        """Callers can catch ``TransientError`` to retry provider failures."""
        err = provider_error("mock", "simulated", kind)
        base = TransientError if kind.retryable else PermanentError
        other = PermanentError if kind.retryable else TransientError
        assert isinstance(err, base)
        assert not isinstance(err, other)
        assert isinstance(err, ProviderError)
        assert err.retryable is kind.retryable


class TestErrorDictStability:
    """Structured payloads keep stable keys and propagate correlation ids."""

    def test_provider_error_dict(self) -> None:
        d = InvalidRegionError("mock", "Mock provider doesn't know city 'Atlantis'").to_error_dict()
        assert d["provider"] == "mock"
        assert d["kind"] == "invalid_region"
        assert d["code"] == "PROVIDER_INVALID_REGION"
        assert d["retryable"] is False

    def test_correlation_id_propagated(self) -> None:
        err = ProviderNetworkError("overpass", "down")
        err.correlation_id = "req-1"
        assert err.to_error_dict()["correlation_id"] == "req-1"
