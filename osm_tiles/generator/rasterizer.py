"""Grid generator: rasterizes classified elements into a ``TileGrid``.

Algorithm
---------
1. Allocate ``resolution × resolution`` tile ids (``EMPTY``) and a
   parallel priority buffer initialised to ``EMPTY_PRIORITY``.
2. Map coordinates into continuous cell space with ``GridTransform``:
   cell ``(c, r)`` covers ``[c, c+1) × [r, r+1)``, row 0 is the north edge.
3. Compute each element's footprint:

   - Point: the cell containing the coordinate (skipped outside the region).
   - Line: every cell a segment passes through. Segments are clipped to
     the region (Liang–Barsky) and walked cell by cell (Amanatides–Woo).
     When a segment crosses exactly through a cell corner both side
     cells are included, so diagonal lines never leave gaps.
   - Area: every cell whose centre is inside the ring, found by an
     even–odd scanline over the ring's row range.

4. Write a cell only when the element's priority is ``>=`` the cell's
   current priority. The later element in input order wins ties.

Malformed, unclassified and out-of-region elements contribute nothing
and are counted in ``GridDiagnostics``.

Parallel mode
-------------
With ``workers > 1`` the classified elements are split into contiguous
chunks rasterized on private buffers in a thread pool. Chunks are merged
in input order with the same ``>=`` rule, which reproduces the
sequential result exactly: per cell the final owner is the highest
priority, ties going to the latest element.

References:
    Amanatides & Woo, "A Fast Voxel Traversal Algorithm for Ray Tracing" (1987)
    Liang & Barsky, "A New Concept and Method for Line Clipping" (1984)
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import numpy as np

from osm_tiles.core.constants import DEFAULT_CHUNK_SIZE, MAX_MALFORMED_REASONS
from osm_tiles.core.exceptions import ConfigError, PartialElementError
from osm_tiles.generator.classifier import ClassifiedElement
from osm_tiles.models.config import OsmConfig
from osm_tiles.models.element import ElementKind, GeographicElement
from osm_tiles.models.grid import GridTransform, TileGrid
from osm_tiles.models.metadata import GridDiagnostics, GridMetadata
from osm_tiles.models.region import BoundingBox
from osm_tiles.models.tiles import EMPTY_PRIORITY, PRIORITY_DTYPE, TILE_DTYPE, TileType

logger = logging.getLogger(__name__)

# Two crossing parameters closer than this are treated as one corner crossing.
_CORNER_EPS = 1e-9

ProgressCallback = Callable[[int, int], None]
"""``(elements_processed, elements_total)`` progress callback."""


# ---------------------------------------------------------------------------
# Footprints
# ---------------------------------------------------------------------------


def point_footprint(transform: GridTransform, lat: float, lon: float) -> np.ndarray:
    """Flat index of the cell containing ``(lat, lon)``; empty outside the region."""
    if not transform.region.contains(lat, lon):
        return np.empty(0, dtype=np.int64)
    col, row = transform.to_cell(lat, lon)
    return np.array([row * transform.width + col], dtype=np.int64)


def clip_segment(
    x0: float,
    y0: float,
    x1: float,
    y1: float,
    width: float,
    height: float,
) -> tuple[float, float, float, float] | None:
    """Clip a segment to ``[0, width] × [0, height]`` (Liang–Barsky).

    Unclipped endpoints are returned bit-for-bit unchanged.

    Returns:
        The clipped segment, or ``None`` if it lies entirely outside.
    """
    dx = x1 - x0
    dy = y1 - y0
    t0, t1 = 0.0, 1.0
    for p, q in ((-dx, x0), (dx, width - x0), (-dy, y0), (dy, height - y0)):
        if p == 0:
            if q < 0:
                return None
            continue
        r = q / p
        if p < 0:
            if r > t1:
                return None
            t0 = max(t0, r)
        else:
            if r < t0:
                return None
            t1 = min(t1, r)
    if t0 > t1:
        return None
    cx0, cy0 = (x0, y0) if t0 == 0.0 else (x0 + t0 * dx, y0 + t0 * dy)
    cx1, cy1 = (x1, y1) if t1 == 1.0 else (x0 + t1 * dx, y0 + t1 * dy)
    return (cx0, cy0, cx1, cy1)


def walk_segment(
    x0: float,
    y0: float,
    x1: float,
    y1: float,
    width: int,
    height: int,
) -> list[tuple[int, int]]:
    """Return every ``(col, row)`` a clipped segment passes through.

    Both endpoints must lie in ``[0, width] × [0, height]``. Coordinates on
    the far edge map to the last column or row.
    """
    col = min(max(math.floor(x0), 0), width - 1)
    row = min(max(math.floor(y0), 0), height - 1)
    end_col = min(max(math.floor(x1), 0), width - 1)
    end_row = min(max(math.floor(y1), 0), height - 1)
    cells = [(col, row)]

    dx = x1 - x0
    dy = y1 - y0
    step_x = 1 if dx > 0 else -1 if dx < 0 else 0
    step_y = 1 if dy > 0 else -1 if dy < 0 else 0
    t_delta_x = abs(1.0 / dx) if dx else math.inf
    t_delta_y = abs(1.0 / dy) if dy else math.inf
    if dx > 0:
        t_max_x = (col + 1 - x0) / dx
    elif dx < 0:
        t_max_x = (x0 - col) / -dx
    else:
        t_max_x = math.inf
    if dy > 0:
        t_max_y = (row + 1 - y0) / dy
    elif dy < 0:
        t_max_y = (y0 - row) / -dy
    else:
        t_max_y = math.inf

    # Each iteration moves at least one cell toward the end cell.
    max_steps = abs(end_col - col) + abs(end_row - row) + 2
    for _ in range(max_steps):
        if (col, row) == (end_col, end_row):
            break
        if min(t_max_x, t_max_y) > 1.0 + _CORNER_EPS:
            break
        if abs(t_max_x - t_max_y) <= _CORNER_EPS:
            # Exact corner crossing: the segment touches both side cells.
            side_a = (col + step_x, row)
            side_b = (col, row + step_y)
            for c, r in (side_a, side_b):
                if 0 <= c < width and 0 <= r < height:
                    cells.append((c, r))
            col += step_x
            row += step_y
            t_max_x += t_delta_x
            t_max_y += t_delta_y
        elif t_max_x < t_max_y:
            col += step_x
            t_max_x += t_delta_x
        else:
            row += step_y
            t_max_y += t_delta_y
        if not (0 <= col < width and 0 <= row < height):
            break
        cells.append((col, row))
    return cells


def line_footprint(transform: GridTransform, coordinates: Sequence[tuple[float, float]]) -> np.ndarray:
    """Sorted unique flat indices of every cell the polyline passes through."""
    coords = np.asarray(coordinates, dtype=np.float64)
    xs, ys = transform.cells_to_continuous(coords)
    width, height = transform.width, transform.height
    cells: list[tuple[int, int]] = []
    for i in range(len(coords) - 1):
        clipped = clip_segment(
            float(xs[i]), float(ys[i]), float(xs[i + 1]), float(ys[i + 1]), width, height
        )
        if clipped is None:
            continue
        cells.extend(walk_segment(*clipped, width, height))
    if not cells:
        return np.empty(0, dtype=np.int64)
    arr = np.asarray(cells, dtype=np.int64)
    return np.unique(arr[:, 1] * width + arr[:, 0])


def area_footprint(transform: GridTransform, ring: Sequence[tuple[float, float]]) -> np.ndarray:
    """Row-major flat indices of every cell whose centre lies inside *ring*.

    Uses the even–odd rule: a centre ``(c + 0.5, r + 0.5)`` is inside when
    an odd number of ring edges cross the scanline strictly to its right.
    This is the same predicate as a per-cell ray-casting test, evaluated
    one row at a time over the ring's bounding rows.
    """
    coords = np.asarray(ring, dtype=np.float64)
    if len(coords) and not np.array_equal(coords[0], coords[-1]):
        coords = np.vstack([coords, coords[:1]])
    xs, ys = transform.cells_to_continuous(coords)
    width, height = transform.width, transform.height

    row_lo = max(0, math.ceil(float(ys.min()) - 0.5))
    row_hi = min(height - 1, math.floor(float(ys.max()) - 0.5))
    if row_lo > row_hi:
        return np.empty(0, dtype=np.int64)

    xa, ya = xs[:-1], ys[:-1]
    xb, yb = xs[1:], ys[1:]
    spans: list[np.ndarray] = []
    for row in range(row_lo, row_hi + 1):
        yc = row + 0.5
        crossing = (ya > yc) != (yb > yc)
        if not crossing.any():
            continue
        xca, yca = xa[crossing], ya[crossing]
        xi = xca + (yc - yca) * (xb[crossing] - xca) / (yb[crossing] - yca)
        xi.sort()
        starts = np.ceil(xi[0::2] - 0.5)
        stops = np.ceil(xi[1::2] - 0.5)
        for start, stop in zip(starts, stops, strict=True):
            c0 = max(0, int(start))
            c1 = min(width, int(stop))
            if c0 < c1:
                spans.append(np.arange(row * width + c0, row * width + c1, dtype=np.int64))
    if not spans:
        return np.empty(0, dtype=np.int64)
    return np.concatenate(spans)


def element_footprint(transform: GridTransform, element: GeographicElement) -> np.ndarray:
    """Flat cell indices covered by *element* (which must pass ``check()``)."""
    if element.kind is ElementKind.POINT:
        lat, lon = element.coordinates[0]
        return point_footprint(transform, lat, lon)
    if element.kind is ElementKind.LINE:
        return line_footprint(transform, element.coordinates)
    return area_footprint(transform, element.ring())


# ---------------------------------------------------------------------------
# Rasterization buffers
# ---------------------------------------------------------------------------


@dataclass
class _Tally:
    """Mutable per-run counters, frozen into ``GridDiagnostics`` at the end."""

    total: int = 0
    rasterized: int = 0
    unclassified: int = 0
    malformed: int = 0
    out_of_bounds: int = 0
    empty_footprint: int = 0
    footprint_cells: int = 0
    reasons: list[str] = field(default_factory=list)

    def to_diagnostics(self) -> GridDiagnostics:
        return GridDiagnostics(
            elements_total=self.total,
            elements_rasterized=self.rasterized,
            elements_unclassified=self.unclassified,
            elements_malformed=self.malformed,
            elements_out_of_bounds=self.out_of_bounds,
            elements_empty_footprint=self.empty_footprint,
            footprint_cells=self.footprint_cells,
            malformed_reasons=list(self.reasons),
        )


class _Canvas:
    """Tile-id and priority buffers for one grid (or one parallel chunk)."""

    def __init__(self, width: int, height: int) -> None:
        self.tiles = np.full(width * height, TileType.EMPTY.id, dtype=TILE_DTYPE)
        self.priority = np.full(width * height, EMPTY_PRIORITY, dtype=PRIORITY_DTYPE)

    def paint(self, cells: np.ndarray, tile_type: TileType, priority: int) -> None:
        """Claim *cells* where ``priority >= current priority``."""
        winners = cells[priority >= self.priority[cells]]
        self.tiles[winners] = tile_type.id
        self.priority[winners] = priority

    def merge(self, later: _Canvas) -> None:
        """Overlay a canvas holding later elements, with the same ``>=`` rule."""
        mask = (later.priority > EMPTY_PRIORITY) & (later.priority >= self.priority)
        self.tiles[mask] = later.tiles[mask]
        self.priority[mask] = later.priority[mask]


def _rasterize_into(
    canvas: _Canvas,
    transform: GridTransform,
    classified: Sequence[ClassifiedElement],
    tally: _Tally,
    on_element: Callable[[int], None] | None = None,
) -> None:
    region = transform.region
    for index, item in enumerate(classified, start=1):
        tally.total += 1
        if item.tile_type is None:
            tally.unclassified += 1
        else:
            _rasterize_one(canvas, transform, region, item, tally)
        if on_element is not None:
            on_element(index)


def _rasterize_one(
    canvas: _Canvas,
    transform: GridTransform,
    region: BoundingBox,
    item: ClassifiedElement,
    tally: _Tally,
) -> None:
    element = item.element
    try:
        element.check()
    except PartialElementError as exc:
        tally.malformed += 1
        if len(tally.reasons) < MAX_MALFORMED_REASONS:
            tally.reasons.append(exc.message)
        logger.debug("Skipping malformed element | osm_id=%d | reason=%s", exc.osm_id, exc.reason)
        return

    if not region.intersects(element.bounds()):
        tally.out_of_bounds += 1
        return

    cells = element_footprint(transform, element)
    if cells.size == 0:
        tally.empty_footprint += 1
        return

    assert item.tile_type is not None
    canvas.paint(cells, item.tile_type, item.priority)
    tally.rasterized += 1
    tally.footprint_cells += int(cells.size)


def _rasterize_chunk(
    transform: GridTransform,
    chunk: Sequence[ClassifiedElement],
) -> tuple[_Canvas, _Tally]:
    canvas = _Canvas(transform.width, transform.height)
    tally = _Tally()
    _rasterize_into(canvas, transform, chunk, tally)
    return canvas, tally


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class GridGenerator:
    """Rasterizes classified elements into a square ``TileGrid``.

    Args:
        workers: Worker threads. ``1`` rasterizes sequentially on the
            calling thread.
        chunk_size: Elements per parallel chunk.
    """

    def __init__(self, *, workers: int = 1, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if workers < 1:
            msg = f"workers must be >= 1, got {workers}"
            raise ValueError(msg)
        if chunk_size < 1:
            msg = f"chunk_size must be >= 1, got {chunk_size}"
            raise ValueError(msg)
        self._workers = workers
        self._chunk_size = chunk_size

    @property
    def workers(self) -> int:
        return self._workers

    def generate(
        self,
        classified: Sequence[ClassifiedElement],
        config: OsmConfig,
        *,
        provider: str = "",
        on_progress: ProgressCallback | None = None,
    ) -> TileGrid:
        """Rasterize *classified* (in input order) for *config*.

        Args:
            classified: Classifier output, in provider order.
            config: Request whose region must already be a ``BoundingBox``.
            provider: Provider name recorded in the grid metadata.
            on_progress: Optional ``(processed, total)`` callback.

        Returns:
            A new immutable ``TileGrid``.

        Raises:
            ConfigError: If the config is invalid or its region is not a
                resolved, non-degenerate bounding box. Malformed elements
                never raise.
        """
        config.validate()
        region = config.region
        if not isinstance(region, BoundingBox):
            raise ConfigError(
                "region",
                region,
                "must be resolved to a BoundingBox before generation",
                resolution=config.grid_resolution,
            )
        if config.is_performance_sensitive:
            logger.warning(
                "Performance-sensitive grid resolution | resolution=%d | elements=%d",
                config.grid_resolution,
                len(classified),
            )

        size = config.grid_resolution
        transform = GridTransform(region, size, size)
        total = len(classified)
        started = time.perf_counter()

        if self._workers == 1 or total <= self._chunk_size:
            canvas, tally = self._run_sequential(transform, classified, on_progress)
        else:
            canvas, tally = self._run_parallel(transform, classified, on_progress)

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        diagnostics = tally.to_diagnostics()
        metadata = GridMetadata(
            grid_resolution=size,
            generation_time_ms=round(elapsed_ms, 3),
            provider=provider,
            feature_set=config.feature_set.canonical(),
            workers=self._workers,
            diagnostics=diagnostics,
        )
        grid = TileGrid(
            width=size,
            height=size,
            region=region,
            cells=canvas.tiles.reshape(size, size),
            metadata=metadata,
        )
        logger.info(
            "Grid generated | resolution=%d | elements=%d | rasterized=%d | "
            "unclassified=%d | malformed=%d | out_of_bounds=%d | ms=%.1f",
            size,
            diagnostics.elements_total,
            diagnostics.elements_rasterized,
            diagnostics.elements_unclassified,
            diagnostics.elements_malformed,
            diagnostics.elements_out_of_bounds,
            elapsed_ms,
        )
        return grid

    def _run_sequential(
        self,
        transform: GridTransform,
        classified: Sequence[ClassifiedElement],
        on_progress: ProgressCallback | None,
    ) -> tuple[_Canvas, _Tally]:
        canvas = _Canvas(transform.width, transform.height)
        tally = _Tally()
        total = len(classified)
        interval = max(1, self._chunk_size)

        def _report(index: int) -> None:
            if on_progress is not None and (index % interval == 0 or index == total):
                on_progress(index, total)

        _rasterize_into(canvas, transform, classified, tally, _report)
        if on_progress is not None and total == 0:
            on_progress(0, 0)
        return canvas, tally

    def _run_parallel(
        self,
        transform: GridTransform,
        classified: Sequence[ClassifiedElement],
        on_progress: ProgressCallback | None,
    ) -> tuple[_Canvas, _Tally]:
        total = len(classified)
        chunks = [
            classified[start : start + self._chunk_size]
            for start in range(0, total, self._chunk_size)
        ]
        logger.debug(
            "Parallel rasterization | elements=%d | chunks=%d | workers=%d",
            total,
            len(chunks),
            self._workers,
        )
        merged = _Canvas(transform.width, transform.height)
        diagnostics = GridDiagnostics()
        done = 0
        with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="rasterize") as pool:
            # Submit one wave per worker count so at most `workers` private
            # canvases are alive at once.
            for wave_start in range(0, len(chunks), self._workers):
                wave = chunks[wave_start : wave_start + self._workers]
                futures = [pool.submit(_rasterize_chunk, transform, chunk) for chunk in wave]
                for chunk, future in zip(wave, futures, strict=True):
                    canvas, tally = future.result()
                    merged.merge(canvas)
                    diagnostics = diagnostics.merged(
                        tally.to_diagnostics(), max_reasons=MAX_MALFORMED_REASONS
                    )
                    done += len(chunk)
                    if on_progress is not None:
                        on_progress(done, total)

        tally = _Tally(
            total=diagnostics.elements_total,
            rasterized=diagnostics.elements_rasterized,
            unclassified=diagnostics.elements_unclassified,
            malformed=diagnostics.elements_malformed,
            out_of_bounds=diagnostics.elements_out_of_bounds,
            empty_footprint=diagnostics.elements_empty_footprint,
            footprint_cells=diagnostics.footprint_cells,
            reasons=diagnostics.malformed_reasons,
        )
        return merged, tally


def generate(
    classified: Sequence[ClassifiedElement],
    config: OsmConfig,
    **kwargs: object,
) -> TileGrid:
    """Rasterize sequentially with a default ``GridGenerator``."""
    return GridGenerator().generate(classified, config, **kwargs)  # type: ignore[arg-type]
