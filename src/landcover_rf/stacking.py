"""Feature-stack grid utilities: target grid, alignment checks, assembly, writing.

Every per-pixel layer that reaches the classifier lives on one grid: the AOI
bounds in the working CRS, snapped outward to the stack resolution. Layers
are concatenated only after ``check_alignment`` has confirmed they share CRS,
transform, and shape; mismatches raise rather than resample implicitly.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np
import rasterio
import rioxarray  # noqa: F401  (registers the .rio accessor)
import xarray as xr
from affine import Affine
from dask import compute as dask_compute
from rasterio.crs import CRS
from rasterio.warp import transform_bounds
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

FLOAT_NODATA = -9999.0
LOGGER = logging.getLogger(__name__)


class StackAlignmentError(ValueError):
    """Raised when feature layers do not share the same grid."""


@dataclass(frozen=True)
class StackGrid:
    crs: CRS
    transform: Affine
    width: int
    height: int

    @property
    def resolution(self) -> float:
        return float(self.transform.a)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        minx = self.transform.c
        maxy = self.transform.f
        return (
            minx,
            maxy - self.height * self.resolution,
            minx + self.width * self.resolution,
            maxy,
        )

    @property
    def epsg(self) -> int:
        epsg = self.crs.to_epsg()
        if epsg is None:
            raise ValueError(f"Grid CRS {self.crs} has no EPSG code")
        return int(epsg)

    def coords(self) -> dict:
        """Pixel-center coordinates matching the grid."""
        res = self.resolution
        minx, _, _, maxy = self.bounds
        return {
            "y": maxy - res * (np.arange(self.height) + 0.5),
            "x": minx + res * (np.arange(self.width) + 0.5),
        }

    def empty(self, band_labels: Sequence[str], time: Optional[Sequence] = None) -> xr.DataArray:
        """All-NaN array on this grid, used when a catalog query returns nothing."""
        coords = self.coords()
        if time is None:
            data = np.full((len(band_labels), self.height, self.width), np.nan, dtype="float32")
            array = xr.DataArray(
                data,
                dims=["band", "y", "x"],
                coords={"band": list(band_labels), **coords},
            )
        else:
            data = np.full(
                (len(time), len(band_labels), self.height, self.width), np.nan, dtype="float32"
            )
            array = xr.DataArray(
                data,
                dims=["time", "band", "y", "x"],
                coords={"time": list(time), "band": list(band_labels), **coords},
            )
        array.rio.write_crs(self.crs, inplace=True)
        array.rio.write_transform(self.transform, inplace=True)
        return array


def grid_from_aoi(aoi: BaseGeometry, crs: str, resolution: float) -> StackGrid:
    """Build the stack grid covering ``aoi`` (EPSG:4326) in ``crs``.

    Bounds are snapped outward to multiples of ``resolution`` so independent
    catalog stacks requested with the same grid land on identical pixels.
    """
    dst_crs = CRS.from_user_input(crs)
    minx, miny, maxx, maxy = transform_bounds("EPSG:4326", dst_crs, *aoi.bounds)
    minx = math.floor(minx / resolution) * resolution
    miny = math.floor(miny / resolution) * resolution
    maxx = math.ceil(maxx / resolution) * resolution
    maxy = math.ceil(maxy / resolution) * resolution
    width = max(int(round((maxx - minx) / resolution)), 1)
    height = max(int(round((maxy - miny) / resolution)), 1)
    transform = Affine(resolution, 0.0, minx, 0.0, -resolution, maxy)
    LOGGER.info(
        "Stack grid: %d x %d pixels at %.1f m in %s",
        width,
        height,
        resolution,
        dst_crs.to_string(),
    )
    return StackGrid(crs=dst_crs, transform=transform, width=width, height=height)


def copy_georeference(target: xr.DataArray, source: xr.DataArray) -> xr.DataArray:
    """Carry CRS and transform from ``source`` over to a derived array."""
    crs = source.rio.crs
    if crs is None:
        return target
    target = target.rio.write_crs(crs)
    return target.rio.write_transform(source.rio.transform())


def _grid_signature(layer: xr.DataArray) -> Tuple[Optional[CRS], Affine, Tuple[int, int]]:
    return layer.rio.crs, layer.rio.transform(), (layer.sizes["y"], layer.sizes["x"])


def check_alignment(layers: Sequence[xr.DataArray], tolerance: float = 1e-6) -> None:
    """Raise StackAlignmentError unless every layer shares CRS, transform, and shape."""
    if not layers:
        raise ValueError("No layers provided for alignment check")
    ref_crs, ref_transform, ref_shape = _grid_signature(layers[0])
    for index, layer in enumerate(layers[1:], start=1):
        crs, transform, shape = _grid_signature(layer)
        name = layer.name or f"layer {index}"
        if crs != ref_crs:
            raise StackAlignmentError(f"{name}: CRS {crs} does not match {ref_crs}")
        if shape != ref_shape:
            raise StackAlignmentError(f"{name}: shape {shape} does not match {ref_shape}")
        if not transform.almost_equals(ref_transform, precision=tolerance):
            raise StackAlignmentError(
                f"{name}: transform {tuple(transform)[:6]} does not match {tuple(ref_transform)[:6]}"
            )


def clip_to_aoi(array: xr.DataArray, aoi: BaseGeometry) -> xr.DataArray:
    """Set pixels outside ``aoi`` (EPSG:4326) to NaN, keeping the full grid."""
    crs = array.rio.crs
    transform = array.rio.transform()
    array = array.rio.write_nodata(np.nan, encoded=False)
    clipped = array.rio.clip([mapping(aoi)], crs="EPSG:4326", all_touched=False, drop=False)
    clipped.rio.write_crs(crs, inplace=True)
    clipped.rio.write_transform(transform, inplace=True)
    return clipped


def compute_with_logging(label: str, *arrays):
    """Materialize lazy arrays with the threaded scheduler, logging elapsed time."""
    LOGGER.info("%s: computing...", label)
    start = time.perf_counter()
    results = dask_compute(*arrays, scheduler="threads")
    LOGGER.info("%s: computed in %.1f s", label, time.perf_counter() - start)
    return results


def assemble_stack(
    layers: Sequence[xr.DataArray],
    aoi: Optional[BaseGeometry] = None,
) -> xr.DataArray:
    """Concatenate aligned (band, y, x) layers into one float32 feature stack.

    Args:
        layers: Per-pixel layers with a ``band`` coordinate of band names.
        aoi: Optional AOI in EPSG:4326; pixels outside become NaN.

    Returns:
        3D DataArray (band, y, x) with CRS and transform of the first layer.

    Raises:
        StackAlignmentError: If layers disagree on CRS, transform, or shape.
        ValueError: If band names repeat across layers.
    """
    check_alignment(layers)
    names = [str(name) for layer in layers for name in layer.coords["band"].values]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate band names in stack: {duplicates}")

    crs = layers[0].rio.crs
    transform = layers[0].rio.transform()
    stack = xr.concat(
        [layer.reset_coords(drop=True) for layer in layers],
        dim="band",
        join="override",
        coords="minimal",
        compat="override",
    ).astype("float32")
    stack.name = "features"
    stack.rio.write_crs(crs, inplace=True)
    stack.rio.write_transform(transform, inplace=True)
    if aoi is not None:
        stack = clip_to_aoi(stack, aoi)
    return stack


def write_dataarray(
    array: xr.DataArray,
    path: Path,
    band_labels: Sequence[str],
    nodata: float = FLOAT_NODATA,
) -> None:
    """Write an xarray DataArray to a GeoTIFF file.

    Writes a multi-band raster with compression and tiling, and sets
    band descriptions from the provided labels. NaN pixels are written as
    ``nodata``.

    Args:
        array: 3D DataArray (band, y, x) to write.
        path: Output file path. Parent directories are created if needed.
        band_labels: List of band description strings, one per band.
        nodata: Nodata value to set in the output file.

    Raises:
        ValueError: If number of band labels doesn't match array bands.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    if array.sizes["band"] != len(band_labels):
        raise ValueError("Band label count does not match array bands")

    LOGGER.info("Writing raster to %s", path.name)
    crs = array.rio.crs
    transform = array.rio.transform()
    array = array.fillna(nodata).astype("float32")
    array = array.assign_coords({"band": np.arange(1, array.sizes["band"] + 1)})
    array.rio.write_crs(crs, inplace=True)
    array.rio.write_transform(transform, inplace=True)
    array.rio.write_nodata(nodata, inplace=True)
    array.rio.to_raster(
        path,
        dtype="float32",
        compress="deflate",
        tiled=True,
        BIGTIFF="IF_SAFER",
    )

    with rasterio.open(path, "r+") as dst:
        for idx, label in enumerate(band_labels, start=1):
            dst.set_band_description(idx, label)


__all__ = [
    "FLOAT_NODATA",
    "StackAlignmentError",
    "StackGrid",
    "grid_from_aoi",
    "copy_georeference",
    "check_alignment",
    "clip_to_aoi",
    "compute_with_logging",
    "assemble_stack",
    "write_dataarray",
]
