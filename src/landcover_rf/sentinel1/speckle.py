"""Lee speckle filter for linear-power SAR backscatter.

For each pixel, over a (2r+1) x (2r+1) window of valid in-bounds neighbours:

    ci  = var / (mean**2 + epsilon)
    w   = 1 / (1 + ci)
    out = w * center + (1 - w) * mean

Flat areas (zero local variance) keep their value; heterogeneous areas are
pulled towards the local mean. NaN centers stay NaN.
"""

from __future__ import annotations

import logging
from functools import partial

import numpy as np
import xarray as xr
from scipy.ndimage import uniform_filter

from ..stacking import copy_georeference

LOGGER = logging.getLogger(__name__)

SMOOTHED_BANDS = ("VV_g0_lee", "VH_g0_lee", "VH_VV_ratio_lee")
RATIO_EPSILON = 1e-12


def _lee(values: np.ndarray, radius: int, epsilon: float) -> np.ndarray:
    """Lee filter over the last two axes of ``values``."""
    data = np.asarray(values, dtype="float64")
    valid = np.isfinite(data)
    size = [1] * (data.ndim - 2) + [2 * radius + 1, 2 * radius + 1]

    filled = np.where(valid, data, 0.0)
    weight = uniform_filter(valid.astype("float64"), size=size, mode="constant", cval=0.0)
    sum_x = uniform_filter(filled, size=size, mode="constant", cval=0.0)
    sum_x2 = uniform_filter(filled * filled, size=size, mode="constant", cval=0.0)

    with np.errstate(divide="ignore", invalid="ignore"):
        mean = sum_x / weight
        var = np.maximum(sum_x2 / weight - mean * mean, 0.0)
        ci = var / (mean * mean + epsilon)
        w = 1.0 / (1.0 + ci)
        out = w * data + (1.0 - w) * mean
    out[~valid] = np.nan
    return out.astype("float32")


def lee_filter(
    image: xr.DataArray,
    radius: int = 1,
    epsilon: float = 1e-12,
) -> xr.DataArray:
    """Apply the Lee filter to every (y, x) plane of ``image``.

    Dask-backed inputs are filtered chunk by chunk with a ``radius``-pixel
    halo; pixels beyond the array edge count as invalid.
    """
    if radius < 1:
        raise ValueError(f"radius must be at least 1, got {radius}")
    func = partial(_lee, radius=radius, epsilon=epsilon)
    image = image.transpose(..., "y", "x")
    if image.chunks is not None:
        ndim = image.ndim
        data = image.data.astype("float32").map_overlap(
            func,
            depth={ndim - 2: radius, ndim - 1: radius},
            boundary=np.nan,
            dtype="float32",
        )
    else:
        data = func(image.values)
    return image.copy(data=data)


def speckle_filter_series(
    series: xr.DataArray,
    radius: int = 1,
    epsilon: float = 1e-12,
) -> xr.DataArray:
    """Add Lee-smoothed gamma0 bands and their cross-pol ratio.

    Args:
        series: (time, band, y, x) with bands ``VV_g0`` and ``VH_g0`` in linear power.

    Returns:
        The input series plus ``VV_g0_lee``, ``VH_g0_lee``, and
        ``VH_VV_ratio_lee`` (NaN where the smoothed VV is ~0).
    """
    vv = lee_filter(series.sel(band="VV_g0", drop=True), radius=radius, epsilon=epsilon)
    vh = lee_filter(series.sel(band="VH_g0", drop=True), radius=radius, epsilon=epsilon)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = vh / vv.where(abs(vv) > RATIO_EPSILON)

    layers = [
        layer.expand_dims(band=[name]).transpose(*series.dims)
        for name, layer in zip(SMOOTHED_BANDS, (vv, vh, ratio))
    ]
    combined = xr.concat([series, *layers], dim="band").astype("float32")
    return copy_georeference(combined, series)


__all__ = [
    "SMOOTHED_BANDS",
    "lee_filter",
    "speckle_filter_series",
]
