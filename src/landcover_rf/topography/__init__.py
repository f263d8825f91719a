"""Terrain bands (elevation and slope) on the feature-stack grid."""

from .pipeline import fetch_stac_dem, load_local_dem, prepare_terrain
from .processing import TERRAIN_BANDS, compute_slope, mosaic_dem, terrain_layers

__all__ = [
    "TERRAIN_BANDS",
    "compute_slope",
    "mosaic_dem",
    "terrain_layers",
    "load_local_dem",
    "fetch_stac_dem",
    "prepare_terrain",
]
