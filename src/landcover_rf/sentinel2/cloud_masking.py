"""Cloud and quality masking utilities for Sentinel-2 imagery.

Masks are built from the Sentinel-2 Scene Classification Layer (SCL).
Masked observations are set to NaN rather than removed, so later temporal
statistics skip them pixel by pixel.

SCL Values Reference
--------------------

| Value | Class Description              | Masked? |
|-------|--------------------------------|---------|
| 0     | No data                        | No      |
| 1     | Saturated or defective         | Yes     |
| 2     | Dark area pixels               | Yes     |
| 3     | Cloud shadows                  | Yes     |
| 4     | Vegetation                     | No      |
| 5     | Not vegetated                  | No      |
| 6     | Water                          | No      |
| 7     | Unclassified                   | No      |
| 8     | Cloud medium probability       | Yes     |
| 9     | Cloud high probability         | Yes     |
| 10    | Thin cirrus                    | Yes     |
| 11    | Snow                           | Yes     |

SCL 0 is not listed; no-data pixels already arrive as zero reflectance or
NaN from the catalog and are handled by the reflectance stack itself.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Optional, Set

import numpy as np
import xarray as xr
from skimage.morphology import binary_dilation

from ..stacking import copy_georeference
from .stac_client import SENTINEL_SCALE_FACTOR

LOGGER = logging.getLogger(__name__)

SCL_MASK_VALUES: Set[int] = {1, 2, 3, 8, 9, 10, 11}


def _dilate(cloudy: np.ndarray, dilation: int) -> np.ndarray:
    # grow masked pixels within each (y, x) plane only
    size = 2 * dilation + 1
    footprint = np.ones((1,) * (cloudy.ndim - 2) + (size, size), dtype=bool)
    return binary_dilation(cloudy, footprint)


def build_mask(
    scl: xr.DataArray,
    dilation: int = 0,
    mask_values: Optional[Set[int]] = None,
) -> xr.DataArray:
    """Build binary clear-sky mask from Scene Classification Layer.

    Creates a boolean mask where True indicates clear (usable) pixels
    and False indicates cloudy, shadowed, or defective pixels.

    Args:
        scl: Scene Classification Layer DataArray with dimensions (time, y, x).
        dilation: Number of pixels to dilate the masked areas. Default 0.
        mask_values: Set of SCL values to mask. Defaults to SCL_MASK_VALUES.

    Returns:
        Boolean DataArray where True = clear pixel, False = masked pixel.
        Same dimensions as input SCL.
    """
    if mask_values is None:
        mask_values = SCL_MASK_VALUES

    mask = ~scl.isin(sorted(mask_values))

    if dilation > 0:
        cloudy = (~mask).transpose(..., "y", "x")
        func = partial(_dilate, dilation=dilation)
        if cloudy.chunks is not None:
            ndim = cloudy.ndim
            data = cloudy.data.map_overlap(
                func,
                depth={ndim - 2: dilation, ndim - 1: dilation},
                boundary=False,
                dtype=bool,
            )
        else:
            data = func(cloudy.values)
        mask = mask & ~cloudy.copy(data=data)

    return mask


def mask_and_scale(
    bands: xr.DataArray,
    scl: xr.DataArray,
    scale_factor: float = SENTINEL_SCALE_FACTOR,
    dilation: int = 0,
) -> xr.DataArray:
    """Mask non-clear observations and convert digital numbers to reflectance.

    Args:
        bands: 4D DataArray (time, band, y, x) of raw digital numbers.
        scl: 3D DataArray (time, y, x) aligned with ``bands``.
        scale_factor: Multiplier from DN to surface reflectance.
        dilation: Pixels to dilate the masked areas by.

    Returns:
        Float32 DataArray like ``bands`` with masked pixels set to NaN.
        Scenes with no clear pixel come back all-NaN.
    """
    mask = build_mask(scl, dilation=dilation)
    mask4d = mask.expand_dims(band=bands.coords["band"]).transpose(*bands.dims)
    scaled = (bands.where(mask4d) * scale_factor).astype("float32")
    return copy_georeference(scaled, bands)


__all__ = [
    "SCL_MASK_VALUES",
    "build_mask",
    "mask_and_scale",
]
