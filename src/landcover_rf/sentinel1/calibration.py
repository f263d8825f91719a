"""Backscatter unit conversion and incidence-angle normalization to gamma0.

Catalog backscatter arrives in decibels. Gamma0 is computed in linear power as
``sigma0 / cos(incidence angle)``. The cosine is not clamped, so values near
grazing incidence blow up; ``count_near_grazing`` reports how many pixels are
affected so the run log can flag them.
"""

from __future__ import annotations

import logging

import numpy as np
import xarray as xr

from ..stacking import copy_georeference

LOGGER = logging.getLogger(__name__)

POLARIZATIONS = ("VV", "VH")
ANGLE_BAND = "angle"
NEAR_GRAZING_DEGREES = 80.0


def db_to_linear(values):
    """10 ** (dB / 10)."""
    return 10.0 ** (values / 10.0)


def linear_to_db(values):
    """10 * log10(linear); non-positive power becomes NaN."""
    if isinstance(values, xr.DataArray):
        values = values.where(values > 0)
    else:
        values = np.where(np.asarray(values) > 0, values, np.nan)
    with np.errstate(divide="ignore", invalid="ignore"):
        return 10.0 * np.log10(values)


def to_gamma0(series: xr.DataArray) -> xr.DataArray:
    """Convert dB VV/VH plus an ``angle`` band into linear gamma0 bands.

    Args:
        series: (time, band, y, x) with bands VV and VH in dB and ``angle`` in degrees.

    Returns:
        Float32 series with bands ``VV_g0`` and ``VH_g0``.
    """
    cos_angle = np.cos(np.deg2rad(series.sel(band=ANGLE_BAND, drop=True)))
    layers = []
    for pol in POLARIZATIONS:
        linear = db_to_linear(series.sel(band=pol, drop=True))
        with np.errstate(divide="ignore", invalid="ignore"):
            gamma0 = linear / cos_angle
        layers.append(gamma0.expand_dims(band=[f"{pol}_g0"]))
    result = xr.concat(layers, dim="band").transpose(*series.dims).astype("float32")
    return copy_georeference(result, series)


def count_near_grazing(
    series: xr.DataArray,
    threshold: float = NEAR_GRAZING_DEGREES,
) -> xr.DataArray:
    """Lazy count of observations whose incidence angle is at or above ``threshold``."""
    angle = series.sel(band=ANGLE_BAND, drop=True)
    return (angle >= threshold).sum()


__all__ = [
    "POLARIZATIONS",
    "ANGLE_BAND",
    "db_to_linear",
    "linear_to_db",
    "to_gamma0",
    "count_near_grazing",
]
