"""Orchestrates DEM acquisition and terrain band computation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Set

import numpy as np
import stackstac
import xarray as xr
from shapely.geometry.base import BaseGeometry

from ..catalog import open_client, search_items, stack_assets
from ..config.models import DEFAULT_STAC_URL, TerrainConfig
from ..stacking import StackGrid
from .processing import mosaic_dem, terrain_layers

LOGGER = logging.getLogger(__name__)

DEM_ASSET_ID = "data"


def _resolve_local_dem_paths(dem_paths: Sequence[Path]) -> List[Path]:
    unique: List[Path] = []
    seen: Set[Path] = set()
    for raw_path in dem_paths:
        path = Path(raw_path).expanduser().resolve()
        if not path.exists():
            raise FileNotFoundError(f"Configured DEM path not found: {path}")
        if not path.is_file():
            raise ValueError(f"Configured DEM path is not a file: {path}")
        if path in seen:
            continue
        seen.add(path)
        unique.append(path)
    return unique


def load_local_dem(dem_paths: Sequence[Path], grid: StackGrid) -> xr.DataArray:
    """Mosaic local DEM GeoTIFFs onto ``grid`` as a 2D DataArray."""
    paths = _resolve_local_dem_paths(dem_paths)
    LOGGER.info("Mosaicking %d local DEM tile(s) onto the stack grid", len(paths))
    elevation = mosaic_dem(paths, grid)
    dem = grid.empty(["elev"]).sel(band="elev", drop=True)
    dem.values[:] = elevation
    return dem


def fetch_stac_dem(
    geometry: BaseGeometry,
    grid: StackGrid,
    collection: str,
    stac_url: str = DEFAULT_STAC_URL,
    chunks: Optional[int] = 1024,
) -> xr.DataArray:
    """Mosaic DEM tiles from a STAC collection onto ``grid`` as a 2D DataArray.

    An AOI without tiles gives an all-NaN DEM.
    """
    client = open_client(stac_url)
    items = search_items(client, collection, geometry)
    if not items:
        LOGGER.warning("DEM: no tiles in %s intersect the AOI; elevation will be NaN", collection)
        return grid.empty(["elev"]).sel(band="elev", drop=True)
    LOGGER.info("DEM: %d tile(s) from %s", len(items), collection)
    tiles = stack_assets(items, [DEM_ASSET_ID], ["elev"], grid, chunks=chunks, resampling="bilinear")
    dem = stackstac.mosaic(tiles, dim="time", nodata=np.nan).sel(band="elev", drop=True)
    dem.rio.write_crs(grid.crs, inplace=True)
    dem.rio.write_transform(grid.transform, inplace=True)
    return dem


def prepare_terrain(
    config: TerrainConfig,
    geometry: BaseGeometry,
    grid: StackGrid,
    stac_url: str = DEFAULT_STAC_URL,
) -> xr.DataArray:
    """Build the ``elev`` and ``slope`` bands on the stack grid.

    Local DEM paths take precedence over the STAC collection.
    """
    if config.dem_paths:
        dem = load_local_dem(config.dem_paths, grid)
    else:
        dem = fetch_stac_dem(geometry, grid, config.collection, config.stac_url or stac_url)
    LOGGER.info("Computing elevation and slope layers")
    return terrain_layers(dem, grid)


__all__ = [
    "load_local_dem",
    "fetch_stac_dem",
    "prepare_terrain",
]
