"""Pydantic metadata model attached to every generated grid.

This is the "flight recorder" of one generation run: what was asked for,
how long it took, and what happened to each input element. Elements
that contributed no cells are not errors; they are counted here.

The record is split into two sections:
- **diagnostics**: per-element outcome counters and malformed reasons
- top level: schema, timing, resolution, provider and algorithm
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

# Schema version for forward compatibility.
SCHEMA_VERSION = "tile-grid-metadata-v1"

ALGORITHM = "supercover-lines/center-sample-areas/priority-gte"
"""Identifier of the rasterization rules used by ``GridGenerator``."""


class GridDiagnostics(BaseModel):
    """Per-element outcome counters for one generation run.

    Every input element lands in exactly one of ``elements_rasterized``,
    ``elements_unclassified``, ``elements_malformed``,
    ``elements_out_of_bounds`` and ``elements_empty_footprint``.

    Attributes:
        elements_total: Classified elements handed to the generator.
        elements_rasterized: Elements that claimed at least one candidate cell.
        elements_unclassified: Elements the classifier did not match.
        elements_malformed: Elements skipped for unusable geometry.
        elements_out_of_bounds: Elements entirely outside the region.
        elements_empty_footprint: Elements overlapping the region that
            cover no cell (e.g. an area smaller than one cell that holds
            no cell centre).
        footprint_cells: Candidate cells summed over all rasterized
            elements, before overlap resolution.
        malformed_reasons: First few malformed-element messages.
    """

    elements_total: int = 0
    elements_rasterized: int = 0
    elements_unclassified: int = 0
    elements_malformed: int = 0
    elements_out_of_bounds: int = 0
    elements_empty_footprint: int = 0
    footprint_cells: int = 0
    malformed_reasons: list[str] = Field(default_factory=list)

    def merged(self, other: GridDiagnostics, *, max_reasons: int) -> GridDiagnostics:
        """Return the sum of two counter sets (used by the parallel merge)."""
        return GridDiagnostics(
            elements_total=self.elements_total + other.elements_total,
            elements_rasterized=self.elements_rasterized + other.elements_rasterized,
            elements_unclassified=self.elements_unclassified + other.elements_unclassified,
            elements_malformed=self.elements_malformed + other.elements_malformed,
            elements_out_of_bounds=self.elements_out_of_bounds + other.elements_out_of_bounds,
            elements_empty_footprint=self.elements_empty_footprint + other.elements_empty_footprint,
            footprint_cells=self.footprint_cells + other.footprint_cells,
            malformed_reasons=(self.malformed_reasons + other.malformed_reasons)[:max_reasons],
        )


class GridMetadata(BaseModel):
    """Top-level metadata record of a ``TileGrid``.

    Attributes:
        schema_version: Schema identifier for forward compatibility.
        generated_at: Generation timestamp (ISO 8601, UTC).
        algorithm: Rasterization rule identifier.
        grid_resolution: Cells per side.
        generation_time_ms: Wall-clock rasterization time.
        provider: Name of the data provider that supplied the elements.
        feature_set: Canonical form of the feature set used.
        workers: Rasterizer worker threads.
        diagnostics: Per-element outcome counters.
    """

    schema_version: str = Field(default=SCHEMA_VERSION, alias="$schema")
    generated_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    algorithm: str = ALGORITHM
    grid_resolution: int = 0
    generation_time_ms: float = 0.0
    provider: str = ""
    feature_set: str = ""
    workers: int = 1
    diagnostics: GridDiagnostics = Field(default_factory=GridDiagnostics)

    model_config = {"populate_by_name": True}

    def to_json(self, *, indent: int = 2) -> str:
        """Serialise to a JSON string using the ``$schema`` alias."""
        return self.model_dump_json(indent=indent, by_alias=True)

    def to_dict(self) -> dict[str, object]:
        """Serialise to a plain dict."""
        return self.model_dump(by_alias=True)  # type: ignore[return-value]
