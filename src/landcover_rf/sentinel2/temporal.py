"""Per-pixel temporal statistics over image series.

Reducers run over the ``time`` dimension and skip NaN, so observations
masked upstream simply drop out of each pixel's sample. A pixel with no valid
observation yields NaN for every statistic.

Output bands are named ``<band>_<stat>`` and grouped band by band, e.g.
``B2_median, B2_max, B2_min, B2_stdDev, B3_median, ...``.

Statistic names
---------------
- ``median``, ``max``, ``min``
- ``stdDev``: population standard deviation (ddof=0)
- ``pNN``: NN-th percentile with linear interpolation (e.g. ``p10``)
"""

from __future__ import annotations

import logging
import warnings
from typing import Sequence, Tuple

import xarray as xr

from ..stacking import copy_georeference

LOGGER = logging.getLogger(__name__)

OPTICAL_STAT_BANDS: Tuple[str, ...] = (
    "B2", "B3", "B4", "B8", "B11", "B12", "NDVI", "NDWI", "NBR2",
)
OPTICAL_STATS: Tuple[str, ...] = ("median", "max", "min", "stdDev")


def _reduce(series: xr.DataArray, stat: str) -> xr.DataArray:
    if stat == "median":
        return series.median(dim="time", skipna=True)
    if stat == "max":
        return series.max(dim="time", skipna=True)
    if stat == "min":
        return series.min(dim="time", skipna=True)
    if stat == "stdDev":
        return series.std(dim="time", ddof=0, skipna=True)
    if stat.startswith("p") and stat[1:].isdigit():
        q = int(stat[1:]) / 100.0
        reduced = series.quantile(q, dim="time", method="linear", skipna=True)
        return reduced.drop_vars("quantile")
    raise ValueError(f"Unknown temporal statistic '{stat}'")


def temporal_statistics(
    series: xr.DataArray,
    stats: Sequence[str],
    bands: Sequence[str] = (),
) -> xr.DataArray:
    """Reduce a (time, band, y, x) series to (band, y, x) statistics.

    Args:
        series: Image series with a ``band`` coordinate of band names.
        stats: Statistic names (see module docstring).
        bands: Bands to reduce. Defaults to every band of the series.

    Returns:
        Float32 DataArray with bands ``<band>_<stat>`` in band-major order.
    """
    if bands:
        series = series.sel(band=list(bands))
    band_names = [str(b) for b in series.coords["band"].values]
    if series.chunks is not None:
        series = series.chunk({"time": -1})

    reduced = []
    # All-NaN pixels are expected after masking and should stay NaN quietly.
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", message="All-NaN slice encountered")
        warnings.filterwarnings("ignore", message="Degrees of freedom <= 0")
        for stat in stats:
            # quantile drops spatial_ref while the other reducers keep it
            layer = _reduce(series, stat).reset_coords(drop=True)
            layer = layer.assign_coords(band=[f"{name}_{stat}" for name in band_names])
            reduced.append(layer)

    order = [f"{name}_{stat}" for name in band_names for stat in stats]
    result = xr.concat(reduced, dim="band", coords="minimal", compat="override")
    result = result.sel(band=order).transpose("band", "y", "x")
    return copy_georeference(result.astype("float32"), series)


def optical_statistics(series: xr.DataArray) -> xr.DataArray:
    """Median, max, min, and stdDev of the reflectance and index bands."""
    return temporal_statistics(series, OPTICAL_STATS, bands=OPTICAL_STAT_BANDS)


def ndvi_range(series: xr.DataArray) -> xr.DataArray:
    """Seasonal NDVI amplitude (max - min) as a single band ``NDVI_range``."""
    stats = temporal_statistics(series, ("max", "min"), bands=("NDVI",))
    amplitude = stats.sel(band="NDVI_max", drop=True) - stats.sel(band="NDVI_min", drop=True)
    amplitude = amplitude.expand_dims(band=["NDVI_range"]).transpose("band", "y", "x")
    return copy_georeference(amplitude.astype("float32"), series)


def median_composite(series: xr.DataArray, bands: Sequence[str]) -> xr.DataArray:
    """Per-band temporal median keeping the original band names."""
    stats = temporal_statistics(series, ("median",), bands=bands)
    return stats.assign_coords(band=list(bands))


__all__ = [
    "OPTICAL_STAT_BANDS",
    "OPTICAL_STATS",
    "temporal_statistics",
    "optical_statistics",
    "ndvi_range",
    "median_composite",
]
