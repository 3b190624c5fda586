"""Staged loading pipeline: region → elements → classified → TileGrid.

One ``LoadingPipeline.load`` call serves one request and walks a small
state machine:

1. **IDLE**: validate the configuration, consult the grid cache.
2. **FETCHING**: resolve the region and fetch elements on a worker
   thread (progress is indeterminate, then 1.0).
3. **CLASSIFYING**: map elements to tile types (per-element fraction).
4. **RASTERIZING**: paint the grid (per-chunk fraction).
5. **READY**: the grid is cached and returned.

``FAILED`` is reachable from every non-terminal stage and carries the
error. ``CANCELLED`` is reached when the caller's cancel event is
observed at a stage boundary or while waiting for the fetch. Neither
is raised: both come back as a ``LoadResult``.

Concurrent ``load`` calls on one pipeline are independent. They share
only the optional ``GridCache``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypedDict

from osm_tiles.core.config import EngineSettings
from osm_tiles.core.exceptions import ContractError, PipelineError
from osm_tiles.core.grid_cache import GridCache
from osm_tiles.generator.classifier import classify_elements
from osm_tiles.generator.rasterizer import GridGenerator
from osm_tiles.models.region import describe_region
from osm_tiles.providers.base import ProviderTimeoutError
from osm_tiles.providers.factory import get_provider
from osm_tiles.utils.helpers import build_provider_config

if TYPE_CHECKING:
    from collections.abc import Callable

    from osm_tiles.models.config import OsmConfig
    from osm_tiles.models.element import GeographicElement
    from osm_tiles.models.grid import TileGrid
    from osm_tiles.models.region import BoundingBox
    from osm_tiles.providers.base import OsmDataProvider

logger = logging.getLogger("osm_tiles.orchestrators.pipeline")

#: Seconds between checks of the cancel event while the fetch runs.
DEFAULT_POLL_INTERVAL_S = 0.05


# ---------------------------------------------------------------------------
# Stages and progress
# ---------------------------------------------------------------------------


class LoadingStage(enum.Enum):
    """Lifecycle of one load request."""

    IDLE = "idle"
    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    RASTERIZING = "rasterizing"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STAGES


_TERMINAL_STAGES = frozenset({LoadingStage.READY, LoadingStage.FAILED, LoadingStage.CANCELLED})

_ALLOWED_TRANSITIONS: dict[LoadingStage, frozenset[LoadingStage]] = {
    LoadingStage.IDLE: frozenset(
        {LoadingStage.FETCHING, LoadingStage.READY, LoadingStage.FAILED, LoadingStage.CANCELLED}
    ),
    LoadingStage.FETCHING: frozenset(
        {LoadingStage.CLASSIFYING, LoadingStage.FAILED, LoadingStage.CANCELLED}
    ),
    LoadingStage.CLASSIFYING: frozenset(
        {LoadingStage.RASTERIZING, LoadingStage.FAILED, LoadingStage.CANCELLED}
    ),
    LoadingStage.RASTERIZING: frozenset(
        {LoadingStage.READY, LoadingStage.FAILED, LoadingStage.CANCELLED}
    ),
    LoadingStage.READY: frozenset(),
    LoadingStage.FAILED: frozenset(),
    LoadingStage.CANCELLED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class LoadProgress:
    """Progress event delivered to ``on_progress`` listeners.

    Attributes:
        request_id: Identifier of the load request.
        stage: Stage the event belongs to.
        fraction: Completion of the stage in ``[0, 1]``, or ``None`` while
            indeterminate (the fetch).
        processed: Items handled so far in this stage.
        total: Items expected in this stage, when known.
    """

    request_id: str
    stage: LoadingStage
    fraction: float | None
    processed: int = 0
    total: int | None = None


# ---------------------------------------------------------------------------
# Result contract
# ---------------------------------------------------------------------------


class LoadSummary(TypedDict):
    """Serialisable summary of a ``LoadResult``."""

    request_id: str
    stage: str
    from_cache: bool
    elapsed_ms: float
    stages: list[str]
    grid_resolution: int | None
    error: dict[str, object] | None


@dataclass(frozen=True, slots=True)
class LoadResult:
    """Outcome of one ``LoadingPipeline.load`` call.

    Attributes:
        request_id: Identifier used in logs and as the error correlation id.
        stage: Terminal stage (``READY``, ``FAILED`` or ``CANCELLED``).
        grid: Generated (or cached) grid when ``READY``.
        error: Failure cause when ``FAILED``.
        from_cache: Whether the grid came from the cache.
        stages: Every stage visited, in order.
        elapsed_ms: Wall-clock duration of the load.
    """

    request_id: str
    stage: LoadingStage
    grid: TileGrid | None = None
    error: PipelineError | None = None
    from_cache: bool = False
    stages: tuple[LoadingStage, ...] = ()
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.stage is LoadingStage.READY

    @property
    def cancelled(self) -> bool:
        return self.stage is LoadingStage.CANCELLED

    def raise_for_failure(self) -> TileGrid | None:
        """Return the grid, re-raising the error of a failed load.

        A cancelled load returns ``None``.

        Raises:
            PipelineError: The error that ended a ``FAILED`` load.
        """
        if self.stage is LoadingStage.FAILED and self.error is not None:
            raise self.error
        return self.grid

    def summary(self) -> LoadSummary:
        return LoadSummary(
            request_id=self.request_id,
            stage=self.stage.value,
            from_cache=self.from_cache,
            elapsed_ms=round(self.elapsed_ms, 3),
            stages=[s.value for s in self.stages],
            grid_resolution=self.grid.width if self.grid is not None else None,
            error=self.error.to_error_dict() if self.error is not None else None,
        )


# ---------------------------------------------------------------------------
# Per-request state
# ---------------------------------------------------------------------------


class _Cancelled(Exception):  # noqa: N818
    """Internal signal: the cancel event was observed."""


class _LoadRun:
    """Mutable state of one load: current stage, history and listeners."""

    def __init__(
        self,
        request_id: str,
        cancel_event: threading.Event | None,
        on_progress: Callable[[LoadProgress], None] | None,
    ) -> None:
        self.request_id = request_id
        self.stage = LoadingStage.IDLE
        self.history: list[LoadingStage] = [LoadingStage.IDLE]
        self._cancel_event = cancel_event
        self._on_progress = on_progress
        self._started = time.perf_counter()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def check_cancelled(self) -> None:
        if self.cancel_requested:
            raise _Cancelled

    def advance(self, stage: LoadingStage) -> None:
        if stage not in _ALLOWED_TRANSITIONS[self.stage]:
            msg = f"Illegal stage transition {self.stage.value} -> {stage.value}"
            raise ContractError(msg, stage=self.stage.value, code="STAGE_TRANSITION")
        logger.debug(
            "Stage transition | request_id=%s | from=%s | to=%s",
            self.request_id,
            self.stage.value,
            stage.value,
        )
        self.stage = stage
        self.history.append(stage)

    def report(self, fraction: float | None, processed: int = 0, total: int | None = None) -> None:
        if self._on_progress is not None:
            self._on_progress(LoadProgress(self.request_id, self.stage, fraction, processed, total))

    def report_counts(self, processed: int, total: int) -> None:
        self.report(processed / total if total else 1.0, processed, total)

    def finish(
        self,
        stage: LoadingStage,
        *,
        grid: TileGrid | None = None,
        error: PipelineError | None = None,
        from_cache: bool = False,
    ) -> LoadResult:
        self.advance(stage)
        return LoadResult(
            request_id=self.request_id,
            stage=stage,
            grid=grid,
            error=error,
            from_cache=from_cache,
            stages=tuple(self.history),
            elapsed_ms=(time.perf_counter() - self._started) * 1000.0,
        )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


@dataclass
class LoadingPipeline:
    """Coordinates provider, classifier and generator for load requests.

    Attributes:
        provider: Source of geographic elements.
        generator: Rasterizer (a sequential ``GridGenerator`` by default).
        cache: Optional shared grid cache.
        fetch_timeout_s: Upper bound on the fetch stage, ``None`` for none.
        poll_interval_s: Cancel-check interval while the fetch runs.
    """

    provider: OsmDataProvider
    generator: GridGenerator = field(default_factory=GridGenerator)
    cache: GridCache | None = None
    fetch_timeout_s: float | None = None
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S

    def load(
        self,
        config: OsmConfig,
        *,
        cancel_event: threading.Event | None = None,
        on_progress: Callable[[LoadProgress], None] | None = None,
        request_id: str = "",
    ) -> LoadResult:
        """Run one request to a terminal stage.

        Args:
            config: Grid request.
            cancel_event: Set by the caller to abandon the load.
            on_progress: Receives a ``LoadProgress`` at every stage change
                and as each stage advances.
            request_id: Correlation id (a fresh uuid4 when empty).

        Returns:
            A ``LoadResult`` in ``READY``, ``FAILED`` or ``CANCELLED``.
            Provider and configuration errors never propagate.
        """
        run = _LoadRun(request_id or str(uuid.uuid4()), cancel_event, on_progress)
        logger.info(
            "Load started | request_id=%s | provider=%s | region=%s | resolution=%s | features=%s",
            run.request_id,
            self.provider.name,
            describe_region(config.region),
            config.grid_resolution,
            config.feature_set.canonical(),
        )
        try:
            result = self._run(run, config)
        except _Cancelled:
            result = run.finish(LoadingStage.CANCELLED)
        except PipelineError as exc:
            if not exc.correlation_id:
                exc.correlation_id = run.request_id
            logger.error(
                "Load failed | request_id=%s | stage=%s | code=%s | error=%s",
                run.request_id,
                run.stage.value,
                exc.code,
                exc,
            )
            result = run.finish(LoadingStage.FAILED, error=exc)

        logger.info(
            "Load finished | request_id=%s | stage=%s | from_cache=%s | ms=%.1f",
            result.request_id,
            result.stage.value,
            result.from_cache,
            result.elapsed_ms,
        )
        return result

    async def load_async(
        self,
        config: OsmConfig,
        *,
        cancel_event: threading.Event | None = None,
        on_progress: Callable[[LoadProgress], None] | None = None,
        request_id: str = "",
    ) -> LoadResult:
        """Run ``load`` on a worker thread.

        Cancelling the awaiting task sets the cancel event, so the worker
        stops at its next stage boundary.
        """
        event = cancel_event if cancel_event is not None else threading.Event()
        try:
            return await asyncio.to_thread(
                self.load,
                config,
                cancel_event=event,
                on_progress=on_progress,
                request_id=request_id,
            )
        except asyncio.CancelledError:
            event.set()
            raise

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run(self, run: _LoadRun, config: OsmConfig) -> LoadResult:
        config.validate()
        run.check_cancelled()

        if self.cache is not None:
            cached = self.cache.get(config.cache_key())
            if cached is not None:
                logger.info("Grid cache hit | request_id=%s", run.request_id)
                result = run.finish(LoadingStage.READY, grid=cached, from_cache=True)
                run.report(1.0)
                return result

        run.advance(LoadingStage.FETCHING)
        run.report(None)
        bbox, elements = self._fetch(run, config)
        run.report(1.0, len(elements), len(elements))
        logger.info(
            "Fetch complete | request_id=%s | bbox=%s | elements=%d",
            run.request_id,
            bbox.to_overpass(),
            len(elements),
        )
        run.check_cancelled()

        run.advance(LoadingStage.CLASSIFYING)
        run.report(0.0, 0, len(elements))
        classified = classify_elements(elements, config.feature_set, on_progress=run.report_counts)
        run.check_cancelled()

        run.advance(LoadingStage.RASTERIZING)
        run.report(0.0, 0, len(classified))
        resolved = config.with_region(bbox)
        grid = self.generator.generate(
            classified,
            resolved,
            provider=self.provider.name,
            on_progress=run.report_counts,
        )

        if self.cache is not None:
            self.cache.put(config.cache_key(), grid)
            if resolved.cache_key() != config.cache_key():
                self.cache.put(resolved.cache_key(), grid)

        result = run.finish(LoadingStage.READY, grid=grid)
        run.report(1.0)
        return result

    def _fetch(
        self, run: _LoadRun, config: OsmConfig
    ) -> tuple[BoundingBox, list[GeographicElement]]:
        """Resolve and fetch on a worker thread, honouring cancel and timeout.

        The worker is not interrupted when the caller stops waiting; its
        result is discarded once it returns.

        Raises:
            ProviderError: From the provider, or ``ProviderTimeoutError``
                when ``fetch_timeout_s`` elapses.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="osm-fetch")
        try:
            future = executor.submit(self._resolve_and_fetch, config)
            return self._wait(run, future)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _resolve_and_fetch(self, config: OsmConfig) -> tuple[BoundingBox, list[GeographicElement]]:
        bbox = self.provider.resolve_region(config.region)
        elements = self.provider.fetch(bbox, config.feature_set, timeout_s=config.timeout_seconds)
        return bbox, elements

    def _wait(
        self,
        run: _LoadRun,
        future: Future[tuple[BoundingBox, list[GeographicElement]]],
    ) -> tuple[BoundingBox, list[GeographicElement]]:
        timeout = self.fetch_timeout_s or None
        deadline = time.monotonic() + timeout if timeout is not None else None
        while True:
            run.check_cancelled()
            wait = self.poll_interval_s
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    msg = f"Fetch did not finish within {timeout:g}s"
                    raise ProviderTimeoutError(self.provider.name, msg)
                wait = min(wait, remaining)
            try:
                return future.result(timeout=wait)
            except FuturesTimeoutError:
                if future.done():
                    raise


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_pipeline(
    settings: EngineSettings | None = None,
    *,
    provider: OsmDataProvider | None = None,
    overrides: dict[str, Any] | None = None,
) -> LoadingPipeline:
    """Wire a ``LoadingPipeline`` from engine settings.

    Args:
        settings: Engine settings (loaded from the environment when ``None``).
        provider: Ready-made provider, bypassing the factory.
        overrides: ``ProviderConfig`` overrides for the factory-built provider.

    Raises:
        ConfigError: For invalid settings or an unknown provider name.
    """
    settings = settings.validate() if settings is not None else EngineSettings.from_env()
    if provider is None:
        provider_config = build_provider_config(settings.provider, settings, overrides)
        provider = get_provider(settings.provider, provider_config)
    cache = GridCache(settings.grid_cache_size) if settings.grid_cache_size > 0 else None
    logger.info(
        "Pipeline created | provider=%s | workers=%d | cache_size=%d | fetch_timeout_s=%s",
        provider.name,
        settings.workers,
        settings.grid_cache_size,
        settings.fetch_timeout_s or "none",
    )
    return LoadingPipeline(
        provider,
        generator=GridGenerator(workers=settings.workers),
        cache=cache,
        fetch_timeout_s=settings.fetch_timeout_s or None,
    )
