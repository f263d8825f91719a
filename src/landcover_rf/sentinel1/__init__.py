"""Sentinel-1 radar features: catalog access, gamma0, Lee filtering, and statistics."""

from .calibration import count_near_grazing, db_to_linear, linear_to_db, to_gamma0
from .speckle import SMOOTHED_BANDS, lee_filter, speckle_filter_series
from .stac_client import RADAR_BANDS, fetch_radar_items, filter_radar_items, stack_radar
from .temporal import radar_statistics

__all__ = [
    "RADAR_BANDS",
    "SMOOTHED_BANDS",
    "db_to_linear",
    "linear_to_db",
    "to_gamma0",
    "count_near_grazing",
    "lee_filter",
    "speckle_filter_series",
    "filter_radar_items",
    "fetch_radar_items",
    "stack_radar",
    "radar_statistics",
]
