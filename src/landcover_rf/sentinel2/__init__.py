"""Sentinel-2 optical features: catalog access, SCL masking, indices, and statistics."""

from .cloud_masking import SCL_MASK_VALUES, build_mask, mask_and_scale
from .indices import add_indices, normalized_difference
from .stac_client import OPTICAL_BANDS, fetch_items, stack_bands
from .temporal import median_composite, ndvi_range, optical_statistics, temporal_statistics

__all__ = [
    "SCL_MASK_VALUES",
    "OPTICAL_BANDS",
    "build_mask",
    "mask_and_scale",
    "normalized_difference",
    "add_indices",
    "fetch_items",
    "stack_bands",
    "temporal_statistics",
    "optical_statistics",
    "ndvi_range",
    "median_composite",
]
