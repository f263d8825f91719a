"""DEM mosaicking and terrain derivative helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Union

import numpy as np
import rasterio
import xarray as xr
from rasterio import warp
from rasterio.enums import Resampling
from rasterio.merge import merge
from rasterio.vrt import WarpedVRT

from ..stacking import StackAlignmentError, StackGrid, check_alignment

LOGGER = logging.getLogger(__name__)

TERRAIN_BANDS = ("elev", "slope")


def mosaic_dem(paths: Iterable[Path], grid: StackGrid) -> np.ndarray:
    """Mosaic DEM tiles and resample them bilinearly onto ``grid``.

    Source nodata and uncovered pixels are NaN in the result.
    """
    datasets = [rasterio.open(path) for path in paths]
    if not datasets:
        raise ValueError("No DEM tiles provided")
    vrt_datasets: list[WarpedVRT] = []
    try:
        merge_sources = datasets
        if any(ds.crs != grid.crs for ds in datasets):
            vrt_datasets = [
                WarpedVRT(ds, crs=grid.crs, resampling=Resampling.bilinear) for ds in datasets
            ]
            merge_sources = vrt_datasets
        mosaicked, transform = merge(merge_sources, nodata=np.nan, dtype="float32")
    finally:
        for vrt in vrt_datasets:
            vrt.close()
        for dataset in datasets:
            dataset.close()

    result = np.full((grid.height, grid.width), np.nan, dtype="float32")
    warp.reproject(
        source=mosaicked[0],
        destination=result,
        src_transform=transform,
        src_crs=grid.crs,
        src_nodata=np.nan,
        dst_transform=grid.transform,
        dst_crs=grid.crs,
        dst_nodata=np.nan,
        resampling=Resampling.bilinear,
    )
    return result


def compute_slope(dem: Union[np.ndarray, xr.DataArray], pixel_size: float) -> np.ndarray:
    """Slope in degrees from central differences; NaN elevation gives NaN slope."""
    values = np.asarray(dem, dtype="float64")
    dz_dy, dz_dx = np.gradient(values, pixel_size)
    slope = np.degrees(np.arctan(np.hypot(dz_dx, dz_dy)))
    slope[~np.isfinite(values)] = np.nan
    return slope.astype("float32")


def terrain_layers(dem: xr.DataArray, grid: StackGrid) -> xr.DataArray:
    """Align a 2D DEM to ``grid`` and return (band, y, x) with ``elev`` and ``slope``.

    DEMs on another grid are resampled bilinearly with ``rio.reproject_match``.
    """
    template = grid.empty(["elev"]).sel(band="elev", drop=True)
    try:
        check_alignment([template, dem])
    except StackAlignmentError:
        LOGGER.info("Resampling DEM onto the stack grid (bilinear)")
        dem = dem.rio.write_nodata(np.nan, encoded=False)
        dem = dem.rio.reproject_match(template, resampling=Resampling.bilinear)

    elevation = np.asarray(dem.values, dtype="float32")
    slope = compute_slope(elevation, grid.resolution)
    layers = grid.empty(TERRAIN_BANDS)
    layers.values[0] = elevation
    layers.values[1] = slope
    return layers


__all__ = [
    "TERRAIN_BANDS",
    "mosaic_dem",
    "compute_slope",
    "terrain_layers",
]
