"""Shared helper functions used by the pipeline factory and front ends."""

from __future__ import annotations

from typing import Any

from osm_tiles.core.config import EngineSettings
from osm_tiles.models.provider import ProviderConfig


def build_provider_config(
    provider_name: str,
    settings: EngineSettings | None = None,
    overrides: dict[str, Any] | None = None,
) -> ProviderConfig:
    """Build a ``ProviderConfig`` from engine settings and optional overrides.

    Args:
        provider_name: Name of the data provider.
        settings: Engine settings supplying endpoints and limits. If
            ``None``, provider defaults apply.
        overrides: Optional dict of configuration overrides (same keys as
            ``ProviderConfig``); ``extra_params`` values are stringified.

    Returns:
        A populated ``ProviderConfig`` instance.
    """
    fields: dict[str, Any] = {}
    extra: dict[str, str] = {}
    if settings is not None:
        fields = {
            "api_base_url": settings.overpass_url,
            "geocoder_url": settings.nominatim_url,
            "user_agent": settings.user_agent,
            "timeout_s": settings.http_timeout_s,
            "max_area_km2": settings.max_area_km2,
        }
        extra["categories_per_query"] = str(settings.categories_per_query)
        if settings.data_file:
            extra["path"] = settings.data_file

    if overrides:
        for key in ("api_base_url", "geocoder_url", "user_agent"):
            if key in overrides:
                fields[key] = str(overrides[key])
        for key in ("timeout_s", "max_area_km2"):
            if key in overrides:
                fields[key] = float(overrides[key])
        extra.update({str(k): str(v) for k, v in overrides.get("extra_params", {}).items()})

    return ProviderConfig(name=provider_name, extra_params=extra, **fields)
