"""STAC catalog access shared by the optical, radar, and DEM stages.

Items are searched with ``pystac_client`` and stacked lazily with
``stackstac`` directly onto the feature-stack grid, so every sensor lands on
identical pixels without a later resampling step.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import stackstac
import xarray as xr
from pystac import Item
from pystac_client import Client
from rasterio.enums import Resampling
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from .stacking import StackGrid

LOGGER = logging.getLogger(__name__)

_CLIENTS: Dict[str, Client] = {}


def open_client(url: str) -> Client:
    """Open (and cache) a STAC API client for ``url``."""
    client = _CLIENTS.get(url)
    if client is None:
        LOGGER.info("Opening STAC API %s", url)
        client = Client.open(url)
        _CLIENTS[url] = client
    return client


def search_items(
    client: Client,
    collection: str,
    geometry: BaseGeometry,
    datetime: Optional[str] = None,
    query: Optional[Mapping[str, Any]] = None,
) -> List[Item]:
    """Search one collection and return unique items ordered by acquisition time.

    Args:
        client: PySTAC client connected to a STAC API.
        collection: Collection identifier.
        geometry: Search geometry in EPSG:4326.
        datetime: Optional "start/end" date range.
        query: Optional STAC query-extension filter.

    Returns:
        List of STAC Items, deduplicated by ID and sorted by datetime.
    """
    search = client.search(
        collections=[collection],
        intersects=mapping(geometry),
        datetime=datetime,
        query=dict(query) if query else None,
    )
    items: Dict[str, Item] = {}
    for item in search.items():
        items[item.id] = item
    ordered = sorted(items.values(), key=lambda item: item.datetime or item.properties.get("start_datetime", ""))
    LOGGER.debug("Collection %s returned %d item(s)", collection, len(ordered))
    return ordered


def stack_assets(
    items: Sequence[Item],
    assets: Sequence[str],
    band_names: Sequence[str],
    grid: StackGrid,
    chunks: Optional[int] = 1024,
    resampling: str = "nearest",
) -> xr.DataArray:
    """Stack item assets onto ``grid`` as a lazy (time, band, y, x) DataArray.

    Raw values are returned unscaled as float32; missing data is NaN.

    Raises:
        ValueError: If items is empty or the first item lacks an asset.
    """
    if not items:
        raise ValueError("No items available for stacking.")
    if len(assets) != len(band_names):
        raise ValueError("Asset count does not match band name count")
    for asset_id in assets:
        if asset_id not in items[0].assets:
            raise ValueError(f"Missing asset '{asset_id}' on item {items[0].id}.")

    data = stackstac.stack(
        list(items),
        assets=list(assets),
        epsg=grid.epsg,
        resolution=grid.resolution,
        bounds=grid.bounds,
        xy_coords="center",
        chunksize={"x": chunks, "y": chunks} if chunks else 1024,
        dtype="float32",
        fill_value=np.float32(np.nan),
        rescale=False,
        properties=False,
        resampling=Resampling[resampling],
    )
    data = data.reset_coords(drop=True)
    data = data.assign_coords({"band": list(band_names)})
    data.rio.write_crs(grid.crs, inplace=True)
    data.rio.write_transform(grid.transform, inplace=True)
    return data


__all__ = [
    "open_client",
    "search_items",
    "stack_assets",
]
