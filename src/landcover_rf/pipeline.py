"""End-to-end land-cover classification run.

Stages
------
1. Parse the AOI and derive the 10 m stack grid.
2. Build optical, radar, and terrain features (lazy) and assemble the stack.
3. Sample the stack at labeled points, balance classes, split train/test.
4. Train the random forest, validate on held-out rows, classify the stack.
5. Export the RGB composite and the classified map; write the run report.

Every stage logs its diagnostics; the report, model, and export manifest are
written to the output directory.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
import xarray as xr
from shapely.geometry.base import BaseGeometry

from .aoi import parse_aoi
from .catalog import open_client
from .config.models import ClassificationConfig
from .export import RGB_SOURCE_BANDS, ExportJob, ExportResult, build_export_jobs, run_exports
from .sentinel1 import (
    RADAR_BANDS,
    count_near_grazing,
    fetch_radar_items,
    radar_statistics,
    speckle_filter_series,
    stack_radar,
    to_gamma0,
)
from .sentinel2 import (
    OPTICAL_BANDS,
    add_indices,
    fetch_items,
    mask_and_scale,
    median_composite,
    ndvi_range,
    optical_statistics,
    stack_bands,
)
from .stacking import (
    StackGrid,
    assemble_stack,
    clip_to_aoi,
    compute_with_logging,
    grid_from_aoi,
    write_dataarray,
)
from .topography import prepare_terrain
from .training import (
    cap_per_class,
    class_histogram,
    classify_stack,
    feature_importances,
    load_labels,
    predict_rows,
    sample_stack,
    save_model,
    split_train_test,
    train_random_forest,
)
from .validation import ConfusionMatrix, error_matrix

LOGGER = logging.getLogger(__name__)

MODEL_FILENAME = "model.joblib"
REPORT_FILENAME = "report.json"
STACK_FILENAME = "feature_stack.tif"
EXPORT_MANIFEST = "exports.json"


@dataclass
class FeatureStack:
    """Assembled features plus the images and counts reported alongside them."""
    stack: xr.DataArray
    rgb_composite: xr.DataArray
    scene_counts: Dict[str, int] = field(default_factory=dict)
    near_grazing: Optional[xr.DataArray] = None

    @property
    def band_names(self) -> List[str]:
        return [str(b) for b in self.stack.coords["band"].values]


@dataclass
class TrainingOutcome:
    model: object
    feature_bands: List[str]
    pool_size: int
    train_size: int
    test_size: int
    label_histogram: Dict[int, int]
    pool_histogram: Dict[int, int]
    matrix: ConfusionMatrix
    importances: pd.Series


@dataclass
class PipelineResult:
    features: FeatureStack
    training: TrainingOutcome
    classified: xr.DataArray
    model_path: Path
    report_path: Path
    exports: List[ExportResult] = field(default_factory=list)
    export_jobs: List[ExportJob] = field(default_factory=list)
    stack_path: Optional[Path] = None


def _empty_series(grid: StackGrid, bands, config: ClassificationConfig) -> xr.DataArray:
    start = np.datetime64(config.study_area.start_date)
    return grid.empty(bands, time=[start])


def build_optical_features(
    config: ClassificationConfig,
    aoi: BaseGeometry,
    grid: StackGrid,
) -> Tuple[xr.DataArray, xr.DataArray, int]:
    """Masked Sentinel-2 statistics, NDVI range, and the median RGB composite."""
    optical = config.optical
    client = open_client(optical.stac_url)
    items = fetch_items(
        client,
        aoi,
        config.study_area.datetime_range,
        collection=optical.collection,
        max_cloud_cover=optical.max_cloud_cover,
    )
    if items:
        bands, scl = stack_bands(items, grid, chunks=optical.chunk_size)
        series = mask_and_scale(bands, scl, dilation=optical.mask_dilation)
    else:
        LOGGER.warning("Sentinel-2: no scenes found; optical features will be empty")
        series = _empty_series(grid, OPTICAL_BANDS, config)
    series = add_indices(series)
    statistics = xr.concat([optical_statistics(series), ndvi_range(series)], dim="band")
    rgb = median_composite(series, RGB_SOURCE_BANDS)
    return statistics, rgb, len(items)


def build_radar_features(
    config: ClassificationConfig,
    aoi: BaseGeometry,
    grid: StackGrid,
) -> Tuple[xr.DataArray, xr.DataArray, int]:
    """Gamma0, Lee-filtered radar statistics, and the lazy near-grazing count."""
    radar = config.radar
    client = open_client(radar.stac_url or config.optical.stac_url)
    items = fetch_radar_items(
        client,
        aoi,
        config.study_area.datetime_range,
        collection=radar.collection,
        instrument_mode=radar.instrument_mode,
        polarizations=radar.polarizations,
    )
    if items:
        raw = stack_radar(items, grid, radar, chunks=config.optical.chunk_size)
    else:
        LOGGER.warning("Sentinel-1: no scenes found; radar features will be empty")
        raw = _empty_series(grid, RADAR_BANDS, config)
    gamma0 = to_gamma0(raw)
    smoothed = speckle_filter_series(gamma0, radius=radar.speckle_radius, epsilon=radar.speckle_epsilon)
    statistics = radar_statistics(smoothed, percentiles=radar.percentiles)
    return statistics, count_near_grazing(raw), len(items)


def build_feature_stack(
    config: ClassificationConfig,
    aoi: BaseGeometry,
    grid: StackGrid,
) -> FeatureStack:
    """Assemble optical, radar, and terrain bands into one clipped stack."""
    optical, rgb, n_optical = build_optical_features(config, aoi, grid)
    radar, near_grazing, n_radar = build_radar_features(config, aoi, grid)
    terrain = prepare_terrain(config.terrain, aoi, grid, stac_url=config.optical.stac_url)

    stack = assemble_stack([optical, radar, terrain], aoi=aoi)
    features = FeatureStack(
        stack=stack,
        rgb_composite=clip_to_aoi(rgb, aoi),
        scene_counts={"sentinel2": n_optical, "sentinel1": n_radar},
        near_grazing=near_grazing,
    )
    LOGGER.info("Feature stack: %d bands", len(features.band_names))
    LOGGER.info("Bands: %s", ", ".join(features.band_names))
    return features


def train_and_evaluate(
    stack: xr.DataArray,
    labels: gpd.GeoDataFrame,
    config: ClassificationConfig,
) -> TrainingOutcome:
    """Sample, balance, split, train, and validate against held-out rows."""
    sampling = config.sampling
    attribute = sampling.class_attribute
    feature_bands = [str(b) for b in stack.coords["band"].values]

    known = labels[attribute].isin(config.class_values)
    if not known.all():
        LOGGER.warning(
            "Ignoring %d label(s) with classes outside %s",
            int((~known).sum()),
            list(config.class_values),
        )
        labels = labels[known]
    label_histogram = class_histogram(labels[attribute])
    LOGGER.info("Labels per class: %s", label_histogram)

    samples = sample_stack(stack, labels, attribute)
    if samples.empty:
        raise ValueError("No labeled point yielded a valid feature sample")
    LOGGER.info("Sample preview:\n%s", samples.head(5).to_string())

    pool = cap_per_class(samples, attribute, target=sampling.target_per_class, seed=sampling.balance_seed)
    pool_histogram = class_histogram(pool[attribute])
    LOGGER.info("Balanced pool: %d rows %s", len(pool), pool_histogram)

    train, test = split_train_test(pool, seed=sampling.split_seed, threshold=sampling.train_fraction)
    LOGGER.info("Train: %d rows, test: %d rows", len(train), len(test))

    model = train_random_forest(train, feature_bands, attribute, config.forest)
    predicted = predict_rows(model, test, feature_bands)
    matrix = error_matrix(test[attribute].to_numpy(), predicted, config.class_values)

    LOGGER.info("Confusion matrix (rows = reference, columns = predicted):\n%s", matrix.format_matrix())
    LOGGER.info("Overall accuracy: %.4f", matrix.accuracy)
    LOGGER.info("Kappa: %.4f", matrix.kappa)
    for label, pa, ua in zip(matrix.labels, matrix.producers_accuracy, matrix.consumers_accuracy):
        LOGGER.info("Class %d: producer's %.4f, user's %.4f", label, pa, ua)

    importances = feature_importances(model, feature_bands)
    LOGGER.debug("Top feature importances:\n%s", importances.head(10).to_string())

    return TrainingOutcome(
        model=model,
        feature_bands=feature_bands,
        pool_size=len(pool),
        train_size=len(train),
        test_size=len(test),
        label_histogram=label_histogram,
        pool_histogram=pool_histogram,
        matrix=matrix,
        importances=importances,
    )


def write_report(
    path: Path,
    config: ClassificationConfig,
    features: FeatureStack,
    training: TrainingOutcome,
    exports: List[ExportResult],
    near_grazing: Optional[int] = None,
) -> Path:
    report = {
        "study_area": {
            "aoi": str(config.study_area.aoi),
            "start_date": config.study_area.start_date,
            "end_date": config.study_area.end_date,
            "crs": config.study_area.target_crs,
            "scale": config.study_area.scale,
        },
        "scenes": features.scene_counts,
        "near_grazing_observations": near_grazing,
        "bands": features.band_names,
        "band_count": len(features.band_names),
        "classes": [
            {"value": c.value, "name": c.name, "color": c.color} for c in config.classes
        ],
        "samples": {
            "labels_per_class": {str(k): v for k, v in training.label_histogram.items()},
            "pool_per_class": {str(k): v for k, v in training.pool_histogram.items()},
            "pool": training.pool_size,
            "train": training.train_size,
            "test": training.test_size,
        },
        "validation": training.matrix.to_dict(),
        "feature_importances": {k: round(float(v), 6) for k, v in training.importances.items()},
        "exports": [r.to_dict() for r in exports],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2), encoding="utf-8")
    LOGGER.info("Wrote run report to %s", path)
    return path


def run_pipeline(config: ClassificationConfig) -> PipelineResult:
    """Run the full classification workflow described by ``config``."""
    config.validate()
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    aoi = parse_aoi(config.study_area.aoi)
    grid = grid_from_aoi(aoi, config.study_area.target_crs, config.study_area.scale)

    features = build_feature_stack(config, aoi, grid)
    labels = load_labels(config.sampling.label_paths, config.sampling.class_attribute)
    training = train_and_evaluate(features.stack, labels, config)
    model_path = save_model(training.model, training.feature_bands, output_dir / MODEL_FILENAME)

    near_grazing = None
    if features.near_grazing is not None:
        (count,) = compute_with_logging("Near-grazing count", features.near_grazing)
        near_grazing = int(count)
        if near_grazing:
            LOGGER.warning(
                "%d radar observation(s) at near-grazing incidence; gamma0 there is unreliable",
                near_grazing,
            )

    classified = classify_stack(features.stack, training.model)

    stack_path = None
    if config.write_stack:
        stack_path = output_dir / STACK_FILENAME
        (stack,) = compute_with_logging("Feature stack", features.stack)
        write_dataarray(stack, stack_path, features.band_names)

    jobs = build_export_jobs(
        config.export,
        output_dir,
        config.study_area.scale,
        rgb_composite=features.rgb_composite,
        classified=classified,
        classes=config.classes,
    )
    exports = run_exports(jobs, config.export, manifest_path=output_dir / config.export.folder / EXPORT_MANIFEST)

    report_path = write_report(
        output_dir / REPORT_FILENAME, config, features, training, exports, near_grazing
    )
    return PipelineResult(
        features=features,
        training=training,
        classified=classified,
        model_path=model_path,
        report_path=report_path,
        exports=exports,
        export_jobs=jobs,
        stack_path=stack_path,
    )


__all__ = [
    "FeatureStack",
    "TrainingOutcome",
    "PipelineResult",
    "build_optical_features",
    "build_radar_features",
    "build_feature_stack",
    "train_and_evaluate",
    "write_report",
    "run_pipeline",
]
