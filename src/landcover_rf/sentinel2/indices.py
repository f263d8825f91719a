"""Normalized-difference spectral indices for Sentinel-2 series."""

from __future__ import annotations

from typing import Dict, Tuple

import numpy as np
import xarray as xr

from ..stacking import copy_georeference

# Index name -> (first band, second band) of (a - b) / (a + b)
INDEX_BANDS: Dict[str, Tuple[str, str]] = {
    "NDVI": ("B8", "B4"),
    "NDWI": ("B3", "B8"),  # McFeeters water index
    "NBR2": ("B12", "B11"),
}


def normalized_difference(a: xr.DataArray, b: xr.DataArray) -> xr.DataArray:
    """Return (a - b) / (a + b); pixels where a + b == 0 become NaN."""
    total = a + b
    with np.errstate(divide="ignore", invalid="ignore"):
        return ((a - b) / total.where(total != 0)).astype("float32")


def add_indices(series: xr.DataArray) -> xr.DataArray:
    """Append NDVI, NDWI, and NBR2 bands to a (time, band, y, x) reflectance series.

    Existing bands are kept unchanged.
    """
    layers = []
    for name, (first, second) in INDEX_BANDS.items():
        index = normalized_difference(
            series.sel(band=first, drop=True),
            series.sel(band=second, drop=True),
        )
        layers.append(index.expand_dims(band=[name]).transpose(*series.dims))
    combined = xr.concat([series, *layers], dim="band")
    return copy_georeference(combined, series)


__all__ = [
    "INDEX_BANDS",
    "normalized_difference",
    "add_indices",
]
