"""Shared test fixtures for landcover_rf tests."""

from pathlib import Path
from typing import Callable, Optional, Sequence

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
import rasterio
import rioxarray  # noqa: F401
import xarray as xr
from affine import Affine
from rasterio.crs import CRS
from rasterio.warp import transform_bounds
from shapely.geometry import Point, box

from landcover_rf.stacking import StackGrid

# UTM zone 19S, 10 m pixels, central Chile
GRID_CRS = CRS.from_epsg(32719)
GRID_TRANSFORM = Affine(10.0, 0.0, 300000.0, 0.0, -10.0, 6180000.0)
GRID_SIZE = 20


@pytest.fixture
def grid() -> StackGrid:
    """A 20x20 pixel, 10 m grid in EPSG:32719."""
    return StackGrid(crs=GRID_CRS, transform=GRID_TRANSFORM, width=GRID_SIZE, height=GRID_SIZE)


@pytest.fixture
def aoi_geometry(grid: StackGrid):
    """AOI polygon in EPSG:4326 slightly inside the grid extent."""
    minx, miny, maxx, maxy = grid.bounds
    inner = (minx + 15.0, miny + 15.0, maxx - 15.0, maxy - 15.0)
    return box(*transform_bounds(GRID_CRS, "EPSG:4326", *inner))


@pytest.fixture
def make_series(grid: StackGrid) -> Callable[..., xr.DataArray]:
    """Factory for (time, band, y, x) series on the test grid."""

    def _make(
        bands: Sequence[str],
        data: Optional[np.ndarray] = None,
        n_time: int = 3,
        fill: float = 0.0,
    ) -> xr.DataArray:
        if data is None:
            data = np.full((n_time, len(bands), grid.height, grid.width), fill, dtype="float32")
        times = pd.date_range("2023-09-01", periods=data.shape[0], freq="30D")
        series = xr.DataArray(
            data.astype("float32"),
            dims=["time", "band", "y", "x"],
            coords={"time": times, "band": list(bands), **grid.coords()},
        )
        series.rio.write_crs(grid.crs, inplace=True)
        series.rio.write_transform(grid.transform, inplace=True)
        return series

    return _make


@pytest.fixture
def make_layer(grid: StackGrid) -> Callable[..., xr.DataArray]:
    """Factory for (band, y, x) layers on the test grid."""

    def _make(bands: Sequence[str], data: Optional[np.ndarray] = None, fill: float = 1.0) -> xr.DataArray:
        layer = grid.empty(bands)
        if data is None:
            layer.values[:] = fill
        else:
            layer.values[:] = data
        return layer

    return _make


@pytest.fixture
def dem_path(tmp_path: Path, grid: StackGrid) -> Path:
    """A tilted-plane DEM GeoTIFF on the test grid (rises 1 m per 10 m eastward)."""
    path = tmp_path / "dem.tif"
    cols = np.arange(grid.width, dtype="float32")
    elevation = np.tile(100.0 + cols, (grid.height, 1)).astype("float32")
    profile = {
        "driver": "GTiff",
        "dtype": "float32",
        "width": grid.width,
        "height": grid.height,
        "count": 1,
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": -9999.0,
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(elevation, 1)
    return path


@pytest.fixture
def pixel_center(grid: StackGrid) -> Callable[[int, int], Point]:
    """Return the projected point at the center of pixel (row, col)."""

    def _center(row: int, col: int) -> Point:
        x, y = grid.transform * (col + 0.5, row + 0.5)
        return Point(x, y)

    return _center


@pytest.fixture
def labels_gpkg(tmp_path: Path, grid: StackGrid, pixel_center) -> Path:
    """Point labels with a 'clase' attribute: classes 1 and 2, 10 points each."""
    rows = []
    for i in range(10):
        rows.append({"clase": 1, "geometry": pixel_center(i, 2)})
        rows.append({"clase": 2, "geometry": pixel_center(i, 15)})
    gdf = gpd.GeoDataFrame(rows, crs=grid.crs)
    path = tmp_path / "labels.gpkg"
    gdf.to_file(path, driver="GPKG")
    return path
