"""STAC client utilities for Sentinel-2 data access.

This module queries Sentinel-2 L2A scenes for the study period and stacks
the reflectance bands plus the Scene Classification Layer onto the feature
stack grid.

STAC Query Workflow
-------------------
1. Query the catalog over the AOI and date window using `fetch_items()`
2. Stack reflectance bands and SCL into a DataArray using `stack_bands()`
3. Mask and scale with `cloud_masking.mask_and_scale()`
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import xarray as xr
from pystac import Item
from pystac_client import Client
from shapely.geometry.base import BaseGeometry

from ..catalog import search_items, stack_assets
from ..stacking import StackGrid

LOGGER = logging.getLogger(__name__)

# =============================================================================
# STAC and Sentinel-2 Constants
# =============================================================================

# STAC collection identifier for Sentinel-2 Level-2A data
SENTINEL_COLLECTION = "sentinel-2-l2a"

# Reflectance bands used for the optical features (10 m and 20 m bands)
# These are resampled to the 10 m stack grid during stacking
OPTICAL_BANDS: Tuple[str, ...] = ("B2", "B3", "B4", "B8", "B11", "B12")

# Mapping from Sentinel-2 band names to STAC asset IDs
BAND_TO_ASSET = {
    "B2": "blue",
    "B3": "green",
    "B4": "red",
    "B8": "nir",
    "B11": "swir16",
    "B12": "swir22",
}

# SCL asset identifier in STAC items
SCL_ASSET_ID = "scl"
SCL_BAND = "SCL"

# Scale factor to convert Sentinel-2 DN values to reflectance [0, 1]
# Sentinel-2 L2A products store reflectance * 10000
SENTINEL_SCALE_FACTOR = 1 / 10000


def fetch_items(
    client: Client,
    geometry: BaseGeometry,
    datetime_range: str,
    collection: str = SENTINEL_COLLECTION,
    max_cloud_cover: Optional[float] = None,
) -> List[Item]:
    """Fetch Sentinel-2 items intersecting the AOI within the date window.

    No scene-level cloud filter is applied unless ``max_cloud_cover`` is set;
    per-pixel SCL masking handles clouds.

    Args:
        client: PySTAC client connected to a STAC API.
        geometry: AOI geometry in EPSG:4326.
        datetime_range: "start/end" date range.
        collection: Sentinel-2 L2A collection identifier.
        max_cloud_cover: Optional eo:cloud_cover ceiling (percent).

    Returns:
        List of STAC Items, sorted by acquisition time.
    """
    query = None
    if max_cloud_cover is not None:
        query = {"eo:cloud_cover": {"lt": max_cloud_cover}}
    items = search_items(client, collection, geometry, datetime=datetime_range, query=query)
    LOGGER.info("Sentinel-2: %d scene(s) between %s", len(items), datetime_range.replace("/", " and "))
    return items


def stack_bands(
    items: Sequence[Item],
    grid: StackGrid,
    chunks: Optional[int] = 1024,
) -> Tuple[xr.DataArray, xr.DataArray]:
    """Stack Sentinel-2 reflectance bands and SCL onto the stack grid.

    Reflectance bands are bilinearly resampled; the SCL is categorical and
    uses nearest neighbour.

    Args:
        items: Sentinel-2 STAC items to stack.
        grid: Target grid of the feature stack.
        chunks: Dask chunk size for x/y dimensions.

    Returns:
        Tuple of:
        - bands: 4D DataArray (time, band, y, x) of raw digital numbers
        - scl: 3D DataArray (time, y, x) of Scene Classification values

    Raises:
        ValueError: If items is empty or an asset is missing.
    """
    assets = [BAND_TO_ASSET[band] for band in OPTICAL_BANDS]
    bands = stack_assets(items, assets, OPTICAL_BANDS, grid, chunks=chunks, resampling="bilinear")
    scl = stack_assets(items, [SCL_ASSET_ID], [SCL_BAND], grid, chunks=chunks)
    scl = scl.sel(band=SCL_BAND, drop=True)
    return bands, scl


__all__ = [
    "SENTINEL_COLLECTION",
    "OPTICAL_BANDS",
    "BAND_TO_ASSET",
    "SCL_ASSET_ID",
    "SENTINEL_SCALE_FACTOR",
    "fetch_items",
    "stack_bands",
]
