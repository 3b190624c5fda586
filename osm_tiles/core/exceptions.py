"""Unified engine exception taxonomy.

Provides a shared base exception hierarchy for the grid engine, its
providers and the loading pipeline. Every domain exception inherits from
``PipelineError`` and carries structured context fields that enable
consistent retry decisions and operator diagnostics.

Taxonomy categories
-------------------
- ``ValidationError``: input/configuration violations, never retryable.
- ``TransientError``: temporary failures (network, throttle), retryable.
- ``PermanentError``: unrecoverable domain failures, not retryable.
- ``ContractError``: payload/schema drift between stages, never retryable.

Domain exceptions
-----------------
- ``ConfigError``: invalid resolution, degenerate region, bad
  preset name. Fatal, surfaced before any provider call.
- ``PartialElementError``: one malformed geographic element. Recovered
  locally by the generator (skipped and counted), never fatal.

Provider failures live in ``osm_tiles.providers.base`` next to the
provider contract. Retryable kinds derive from ``TransientError`` and the
others from ``PermanentError``.

Every exception exposes ``to_error_dict()`` for a stable structured
error payload suitable for pipeline results and logging.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all engine-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage where the error occurred
            (e.g. ``"config"``, ``"fetching"``, ``"rasterizing"``).
        code: Machine-readable error code (e.g. ``"CONFIG_INVALID"``).
        retryable: Whether the caller may retry the operation.
        correlation_id: Load request correlation identifier.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        correlation_id: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.correlation_id = correlation_id
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ContractError):
            return "contract"
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "correlation_id": self.correlation_id,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(PipelineError):
    """Input or domain-model validation failure. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(PipelineError):
    """Temporary failure that may succeed on retry."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(PipelineError):
    """Unrecoverable domain failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class ContractError(PipelineError):
    """Payload or schema drift between pipeline stages. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValidationError):
    """Raised when an engine configuration value is invalid.

    The formatted message carries the offending field and value plus the
    region and resolution being configured, so the failure can be
    reproduced without re-running a network fetch.

    Attributes:
        field: Name of the configuration field that failed validation.
        value: The invalid value.
        reason: Human-readable description of the valid range.
        region: Region being configured, if known.
        resolution: Grid resolution being configured, if known.
    """

    default_stage = "config"
    default_code = "CONFIG_INVALID"

    def __init__(
        self,
        field: str,
        value: object,
        reason: str,
        *,
        region: object = None,
        resolution: object = None,
    ) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        self.region = region
        self.resolution = resolution
        parts = [f"Invalid configuration {field}={value!r}: {reason}"]
        if region is not None:
            parts.append(f"region={region!r}")
        if resolution is not None:
            parts.append(f"resolution={resolution!r}")
        super().__init__(" | ".join(parts))

    def to_error_dict(self) -> dict[str, object]:
        """Return the structured payload plus the configuration context."""
        payload = super().to_error_dict()
        payload["field"] = self.field
        payload["value"] = repr(self.value)
        payload["region"] = repr(self.region) if self.region is not None else ""
        payload["resolution"] = self.resolution
        return payload


class PartialElementError(ValidationError):
    """A single geographic element has unusable geometry or tags.

    Attributes:
        osm_id: Identifier of the offending element.
        reason: Why the element cannot be rasterized.
    """

    default_stage = "rasterizing"
    default_code = "ELEMENT_MALFORMED"

    def __init__(self, osm_id: int, reason: str) -> None:
        self.osm_id = osm_id
        self.reason = reason
        super().__init__(f"Element {osm_id}: {reason}")
