"""Temporal statistics of the smoothed radar bands."""

from __future__ import annotations

from typing import Sequence, Tuple

import xarray as xr

from ..sentinel2.temporal import temporal_statistics
from .speckle import SMOOTHED_BANDS

RADAR_STATS: Tuple[str, ...] = ("median", "stdDev")


def radar_statistics(
    series: xr.DataArray,
    percentiles: Sequence[int] = (10, 50, 90),
) -> xr.DataArray:
    """Median, stdDev, and percentiles of VV_g0_lee, VH_g0_lee, and VH_VV_ratio_lee."""
    stats = (*RADAR_STATS, *(f"p{int(p)}" for p in percentiles))
    return temporal_statistics(series, stats, bands=SMOOTHED_BANDS)


__all__ = ["RADAR_STATS", "radar_statistics"]
