"""STAC client utilities for Sentinel-1 GRD data access.

Scenes are restricted to Interferometric Wide swath acquisitions carrying
both VV and VH. The stacked series always holds VV and VH in decibels plus an
``angle`` band of incidence angles in degrees, whatever the catalog delivers:

- ``value_scale="linear"`` catalogs are converted to dB on load.
- Without a per-pixel angle asset, a constant angle is broadcast.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

import xarray as xr
from pystac import Item
from pystac_client import Client
from shapely.geometry.base import BaseGeometry

from ..catalog import search_items, stack_assets
from ..config.models import RadarConfig
from ..stacking import StackGrid, copy_georeference
from .calibration import ANGLE_BAND, POLARIZATIONS, linear_to_db

LOGGER = logging.getLogger(__name__)

RADAR_COLLECTION = "sentinel-1-grd"
RADAR_BANDS = (*POLARIZATIONS, ANGLE_BAND)


def filter_radar_items(
    items: Iterable[Item],
    instrument_mode: str = "IW",
    polarizations: Sequence[str] = POLARIZATIONS,
) -> List[Item]:
    """Keep items in ``instrument_mode`` whose polarizations include all requested ones."""
    required = {p.upper() for p in polarizations}
    kept = []
    for item in items:
        mode = str(item.properties.get("sar:instrument_mode", "")).upper()
        available = {str(p).upper() for p in item.properties.get("sar:polarizations", [])}
        if mode == instrument_mode.upper() and required <= available:
            kept.append(item)
    return kept


def fetch_radar_items(
    client: Client,
    geometry: BaseGeometry,
    datetime_range: str,
    collection: str = RADAR_COLLECTION,
    instrument_mode: str = "IW",
    polarizations: Sequence[str] = POLARIZATIONS,
) -> List[Item]:
    """Fetch Sentinel-1 scenes over the AOI and keep IW dual-pol acquisitions."""
    items = search_items(
        client,
        collection,
        geometry,
        datetime=datetime_range,
        query={"sar:instrument_mode": {"eq": instrument_mode}},
    )
    kept = filter_radar_items(items, instrument_mode, polarizations)
    if len(kept) < len(items):
        LOGGER.info(
            "Sentinel-1: dropped %d scene(s) lacking %s %s",
            len(items) - len(kept),
            instrument_mode,
            "+".join(polarizations),
        )
    LOGGER.info("Sentinel-1: %d scene(s) between %s", len(kept), datetime_range.replace("/", " and "))
    return kept


def stack_radar(
    items: Sequence[Item],
    grid: StackGrid,
    config: Optional[RadarConfig] = None,
    chunks: Optional[int] = 1024,
) -> xr.DataArray:
    """Stack VV, VH (dB), and incidence angle onto the stack grid.

    Returns:
        4D DataArray (time, band, y, x) with bands VV, VH, and angle.
    """
    config = config or RadarConfig()
    assets = [pol.lower() for pol in POLARIZATIONS]
    backscatter = stack_assets(items, assets, POLARIZATIONS, grid, chunks=chunks, resampling="bilinear")
    if config.value_scale == "linear":
        backscatter = copy_georeference(linear_to_db(backscatter), backscatter)

    if config.angle_asset:
        angle = stack_assets(items, [config.angle_asset], [ANGLE_BAND], grid, chunks=chunks, resampling="bilinear")
    else:
        LOGGER.warning(
            "Sentinel-1: no incidence-angle asset configured; using a constant %.1f degrees",
            config.incidence_angle,
        )
        template = backscatter.sel(band=[POLARIZATIONS[0]])
        angle = xr.full_like(template, config.incidence_angle, dtype="float32")
        angle = angle.assign_coords(band=[ANGLE_BAND])

    series = xr.concat([backscatter, angle], dim="band", coords="minimal", compat="override")
    series = series.astype("float32")
    return copy_georeference(series, backscatter)


__all__ = [
    "RADAR_COLLECTION",
    "RADAR_BANDS",
    "filter_radar_items",
    "fetch_radar_items",
    "stack_radar",
]
