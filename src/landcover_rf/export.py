"""GeoTIFF export jobs for the RGB composite and the classified map.

Each export is an independent job: it reprojects one lazily built image to
its destination CRS, checks the pixel budget, and writes a (cloud-optimized)
GeoTIFF. A failed job is recorded in its ``ExportResult`` and never stops the
remaining jobs. ``retry_failed`` re-runs only failed jobs against the same
images.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import rasterio
import rasterio.shutil
import xarray as xr
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.warp import calculate_default_transform

from .config.models import ExportConfig, LandCoverClass
from .stacking import FLOAT_NODATA
from .training.classifier import MAP_NODATA

LOGGER = logging.getLogger(__name__)

RGB_SOURCE_BANDS = ("B4", "B3", "B2")
RGB_BANDS = ("R", "G", "B")
METERS_PER_DEGREE = 111_320.0


@dataclass
class ExportJob:
    """One image destined for one GeoTIFF.

    Attributes:
        name: Short job name ('rgb', 'map').
        image: (band, y, x) DataArray with CRS and transform.
        path: Destination file.
        crs: Destination CRS.
        scale: Destination pixel size in meters (converted for geographic CRSs).
        dtype: Output data type.
        nodata: Output nodata value.
        band_labels: Band descriptions written to the file.
        colormap: Optional {value: (r, g, b)} palette for single-band byte maps.
        resampling: Resampling used for reprojection.
    """
    name: str
    image: xr.DataArray
    path: Path
    crs: str
    scale: float
    dtype: str = "float32"
    nodata: float = FLOAT_NODATA
    band_labels: Sequence[str] = ()
    colormap: Optional[Dict[int, Tuple[int, int, int]]] = None
    resampling: Resampling = Resampling.nearest


@dataclass
class ExportResult:
    name: str
    status: str
    path: Optional[Path] = None
    error: Optional[str] = None
    seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "status": self.status,
            "path": str(self.path) if self.path else None,
            "error": self.error,
            "seconds": round(self.seconds, 2),
        }


def _destination_resolution(crs: CRS, scale: float) -> float:
    return scale / METERS_PER_DEGREE if crs.is_geographic else scale


def estimate_pixels(job: ExportJob) -> int:
    """Pixel count (bands x rows x cols) of the job's output raster."""
    src_crs = job.image.rio.crs
    dst_crs = CRS.from_user_input(job.crs)
    left, bottom, right, top = job.image.rio.bounds()
    _, width, height = calculate_default_transform(
        src_crs,
        dst_crs,
        job.image.sizes["x"],
        job.image.sizes["y"],
        left=left,
        bottom=bottom,
        right=right,
        top=top,
        resolution=_destination_resolution(dst_crs, job.scale),
    )
    bands = job.image.sizes.get("band", 1)
    return int(width) * int(height) * int(bands)


def _prepare(job: ExportJob) -> xr.DataArray:
    image = job.image
    if "band" not in image.dims:
        image = image.expand_dims(band=[job.name])
    dst_crs = CRS.from_user_input(job.crs)
    if np.issubdtype(np.dtype(job.dtype), np.floating):
        image = image.astype("float32").rio.write_nodata(np.nan, encoded=False)
    else:
        image = image.astype(job.dtype).rio.write_nodata(job.nodata, encoded=False)

    same_grid = image.rio.crs == dst_crs and abs(image.rio.resolution()[0]) == job.scale
    if not same_grid:
        image = image.rio.reproject(
            dst_crs,
            resolution=_destination_resolution(dst_crs, job.scale),
            resampling=job.resampling,
        )
    if np.issubdtype(np.dtype(job.dtype), np.floating):
        image = image.fillna(job.nodata)
    return image.astype(job.dtype).rio.write_nodata(job.nodata)


def _write(image: xr.DataArray, job: ExportJob, cloud_optimized: bool) -> None:
    job.path.parent.mkdir(parents=True, exist_ok=True)
    staging = job.path.with_suffix(".staging.tif")
    image.rio.to_raster(
        staging,
        dtype=job.dtype,
        compress="deflate",
        tiled=True,
        BIGTIFF="IF_SAFER",
    )
    try:
        with rasterio.open(staging, "r+") as dst:
            for idx, label in enumerate(job.band_labels, start=1):
                dst.set_band_description(idx, label)
            if job.colormap:
                dst.write_colormap(1, job.colormap)
        if cloud_optimized:
            rasterio.shutil.copy(staging, job.path, driver="COG", compress="DEFLATE")
        else:
            rasterio.shutil.copy(staging, job.path, driver="GTiff", compress="deflate", tiled=True)
    finally:
        staging.unlink(missing_ok=True)


def run_export(
    job: ExportJob,
    max_pixels: float = 1e13,
    cloud_optimized: bool = True,
) -> ExportResult:
    """Run one export; failures are captured in the result instead of raised."""
    start = time.perf_counter()
    try:
        pixels = estimate_pixels(job)
        if pixels > max_pixels:
            raise ValueError(f"Export needs {pixels} pixels, above the {max_pixels:.0f} limit")
        LOGGER.info("Export %s: writing %s (%d pixels, %s)", job.name, job.path.name, pixels, job.crs)
        image = _prepare(job)
        _write(image, job, cloud_optimized)
    except Exception as e:
        LOGGER.error("Export %s failed: %s", job.name, e)
        return ExportResult(job.name, "failed", job.path, str(e), time.perf_counter() - start)
    elapsed = time.perf_counter() - start
    LOGGER.info("Export %s completed in %.1f s", job.name, elapsed)
    return ExportResult(job.name, "completed", job.path, None, elapsed)


def write_export_manifest(results: Sequence[ExportResult], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([r.to_dict() for r in results], indent=2), encoding="utf-8")
    return path


def run_exports(
    jobs: Sequence[ExportJob],
    config: Optional[ExportConfig] = None,
    manifest_path: Optional[Path] = None,
) -> List[ExportResult]:
    """Run every job in order; one failing job does not affect the others."""
    config = config or ExportConfig()
    results = [run_export(job, config.max_pixels, config.cloud_optimized) for job in jobs]
    if manifest_path is not None:
        write_export_manifest(results, manifest_path)
    failed = [r.name for r in results if not r.ok]
    if failed:
        LOGGER.warning("Failed exports: %s (use retry_failed to re-run them)", failed)
    return results


def retry_failed(
    jobs: Sequence[ExportJob],
    results: Sequence[ExportResult],
    config: Optional[ExportConfig] = None,
    manifest_path: Optional[Path] = None,
) -> List[ExportResult]:
    """Re-run only the jobs whose previous result failed; returns the merged results."""
    config = config or ExportConfig()
    by_name = {job.name: job for job in jobs}
    merged: List[ExportResult] = []
    for result in results:
        job = by_name.get(result.name)
        if result.ok or job is None:
            merged.append(result)
            continue
        LOGGER.info("Retrying export %s", result.name)
        merged.append(run_export(job, config.max_pixels, config.cloud_optimized))
    if manifest_path is not None:
        write_export_manifest(merged, manifest_path)
    return merged


def build_export_jobs(
    config: ExportConfig,
    output_dir: Path,
    scale: float,
    rgb_composite: Optional[xr.DataArray] = None,
    classified: Optional[xr.DataArray] = None,
    classes: Sequence[LandCoverClass] = (),
) -> List[ExportJob]:
    """Build the enabled export jobs.

    Args:
        config: Export destinations and limits.
        output_dir: Run output directory; files go to ``output_dir / config.folder``.
        scale: Export pixel size in meters.
        rgb_composite: Median composite holding bands B4, B3, B2.
        classified: uint8 (y, x) classification.
        classes: Legend used for the map colormap.
    """
    folder = Path(output_dir) / config.folder
    jobs: List[ExportJob] = []
    if "rgb" in config.enabled and rgb_composite is not None:
        rgb = rgb_composite.sel(band=list(RGB_SOURCE_BANDS)).assign_coords(band=list(RGB_BANDS))
        jobs.append(
            ExportJob(
                name="rgb",
                image=rgb,
                path=folder / f"{config.rgb_prefix}.tif",
                crs=config.rgb_crs,
                scale=scale,
                dtype="float32",
                nodata=FLOAT_NODATA,
                band_labels=RGB_BANDS,
            )
        )
    if "map" in config.enabled and classified is not None:
        jobs.append(
            ExportJob(
                name="map",
                image=classified,
                path=folder / f"{config.map_prefix}.tif",
                crs=config.map_crs,
                scale=scale,
                dtype="uint8",
                nodata=MAP_NODATA,
                band_labels=("classification",),
                colormap={item.value: item.rgb for item in classes} or None,
            )
        )
    return jobs


__all__ = [
    "RGB_SOURCE_BANDS",
    "RGB_BANDS",
    "ExportJob",
    "ExportResult",
    "estimate_pixels",
    "run_export",
    "run_exports",
    "retry_failed",
    "build_export_jobs",
    "write_export_manifest",
]
