"""CLI argument parsing and configuration building for landcover_rf."""

import argparse
import os
from pathlib import Path
from typing import Optional

from .models import (
    DEFAULT_CLASS_ATTRIBUTE,
    DEFAULT_END_DATE,
    DEFAULT_N_TREES,
    DEFAULT_RADAR_VALUE_SCALE,
    DEFAULT_START_DATE,
    DEFAULT_TARGET_CRS,
    DEFAULT_TARGET_PER_CLASS,
    DEFAULT_TRAIN_FRACTION,
    ClassificationConfig,
    ExportConfig,
    ForestConfig,
    OpticalConfig,
    RadarConfig,
    SamplingConfig,
    StudyAreaConfig,
    TerrainConfig,
)
from .yaml_loader import ConfigurationError, load_classification_config


def strtobool(value: str) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "y"}


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value is not None else None


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value is not None else None


def _env_bool(name: str) -> Optional[bool]:
    value = os.getenv(name)
    return strtobool(value) if value is not None else None


def _env_paths(name: str) -> Optional[list]:
    value = os.getenv(name)
    if not value:
        return None
    return [part for part in value.split(os.pathsep) if part]


def add_classification_args(parser: argparse.ArgumentParser) -> None:
    """Add classification-run arguments to an ArgumentParser.

    Arguments left unset keep the YAML value (when --config is given) or the
    package default.
    """
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML configuration file. CLI arguments override YAML values.",
    )
    parser.add_argument(
        "--aoi",
        default=os.getenv("LANDCOVER_AOI"),
        help=(
            "AOI path or geometry (GeoPackage, Shapefile, GeoJSON, WKT, or bbox). "
            "Pass a bbox with negative coordinates as --aoi=minx,miny,maxx,maxy."
        ),
    )
    parser.add_argument(
        "--labels",
        nargs="+",
        default=_env_paths("LANDCOVER_LABELS"),
        help="Labeled point layers (one per class or a single merged layer).",
    )
    parser.add_argument(
        "--output-dir",
        default=os.getenv("LANDCOVER_OUTPUT_DIR"),
        help="Directory for the model, reports, and exports.",
    )
    parser.add_argument(
        "--start-date",
        default=os.getenv("LANDCOVER_START_DATE"),
        help=f"First acquisition date (default: {DEFAULT_START_DATE}).",
    )
    parser.add_argument(
        "--end-date",
        default=os.getenv("LANDCOVER_END_DATE"),
        help=f"Last acquisition date (default: {DEFAULT_END_DATE}).",
    )
    parser.add_argument(
        "--target-crs",
        default=os.getenv("LANDCOVER_TARGET_CRS"),
        help=f"Working CRS of the 10 m feature stack (default: {DEFAULT_TARGET_CRS}).",
    )
    parser.add_argument(
        "--stac-url",
        default=os.getenv("LANDCOVER_STAC_URL"),
        help="STAC API endpoint for Sentinel-2, Sentinel-1, and DEM catalogs.",
    )
    parser.add_argument(
        "--dem-path",
        nargs="+",
        default=_env_paths("LANDCOVER_DEM_PATHS"),
        help="Local DEM GeoTIFF(s) to use instead of the STAC DEM collection.",
    )
    parser.add_argument(
        "--radar-value-scale",
        choices=["db", "linear"],
        default=os.getenv("LANDCOVER_RADAR_VALUE_SCALE"),
        help=f"Scale of the Sentinel-1 catalog values (default: {DEFAULT_RADAR_VALUE_SCALE}).",
    )
    parser.add_argument(
        "--angle-asset",
        default=os.getenv("LANDCOVER_ANGLE_ASSET"),
        help="Sentinel-1 asset with per-pixel incidence angles (default: constant angle).",
    )
    parser.add_argument(
        "--class-attribute",
        default=os.getenv("LANDCOVER_CLASS_ATTRIBUTE"),
        help=f"Integer attribute holding the class label (default: {DEFAULT_CLASS_ATTRIBUTE}).",
    )
    parser.add_argument(
        "--target-per-class",
        type=int,
        default=_env_int("LANDCOVER_TARGET_PER_CLASS"),
        help=f"Maximum samples kept per class (default: {DEFAULT_TARGET_PER_CLASS}).",
    )
    parser.add_argument(
        "--train-fraction",
        type=float,
        default=_env_float("LANDCOVER_TRAIN_FRACTION"),
        help=f"Approximate training fraction of the balanced pool (default: {DEFAULT_TRAIN_FRACTION}).",
    )
    parser.add_argument(
        "--n-trees",
        type=int,
        default=_env_int("LANDCOVER_N_TREES"),
        help=f"Number of random forest trees (default: {DEFAULT_N_TREES}).",
    )
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=_env_int("LANDCOVER_N_JOBS"),
        help="Parallel jobs for random forest fitting and prediction.",
    )
    parser.add_argument(
        "--exports",
        nargs="*",
        choices=["rgb", "map"],
        default=None,
        help="Exports to run (default: rgb map). Pass no value to skip exports.",
    )
    parser.add_argument(
        "--write-stack",
        dest="write_stack",
        action="store_true",
        default=_env_bool("LANDCOVER_WRITE_STACK"),
        help="Also write the full feature stack GeoTIFF.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity level.",
    )


def _resolve(value: str) -> Path:
    return Path(value).expanduser().resolve()


def _apply_overrides(config: ClassificationConfig, args: argparse.Namespace) -> None:
    if args.aoi:
        config.study_area.aoi = args.aoi
    if args.output_dir:
        config.output_dir = _resolve(args.output_dir)
    if args.start_date:
        config.study_area.start_date = args.start_date
    if args.end_date:
        config.study_area.end_date = args.end_date
    if args.target_crs:
        config.study_area.target_crs = args.target_crs
    if args.stac_url:
        config.optical.stac_url = args.stac_url
    if args.labels:
        config.sampling.label_paths = tuple(_resolve(p) for p in args.labels)
    if args.dem_path:
        config.terrain.dem_paths = tuple(_resolve(p) for p in args.dem_path)
    if args.radar_value_scale:
        config.radar.value_scale = args.radar_value_scale
    if args.angle_asset:
        config.radar.angle_asset = args.angle_asset
    if args.class_attribute:
        config.sampling.class_attribute = args.class_attribute
    if args.target_per_class is not None:
        config.sampling.target_per_class = args.target_per_class
    if args.train_fraction is not None:
        config.sampling.train_fraction = args.train_fraction
    if args.n_trees is not None:
        config.forest.n_trees = args.n_trees
    if args.n_jobs is not None:
        config.forest.n_jobs = args.n_jobs
    if args.exports is not None:
        config.export.enabled = tuple(args.exports)
    if args.write_stack is not None:
        config.write_stack = args.write_stack


def build_classification_config(args: argparse.Namespace) -> ClassificationConfig:
    """Build a ClassificationConfig from parsed CLI arguments and optional YAML config."""
    if args.config is not None:
        try:
            config = load_classification_config(args.config, validate=False)
        except (ConfigurationError, FileNotFoundError) as e:
            raise ValueError(f"Failed to load config from {args.config}: {e}")
    else:
        if not args.aoi:
            raise ValueError("--aoi (or LANDCOVER_AOI) must be supplied without --config.")
        if not args.output_dir:
            raise ValueError("--output-dir (or LANDCOVER_OUTPUT_DIR) must be supplied without --config.")
        config = ClassificationConfig(
            study_area=StudyAreaConfig(aoi=args.aoi),
            output_dir=_resolve(args.output_dir),
            optical=OpticalConfig(),
            radar=RadarConfig(),
            terrain=TerrainConfig(),
            sampling=SamplingConfig(),
            forest=ForestConfig(),
            export=ExportConfig(),
        )

    _apply_overrides(config, args)
    config.validate()
    return config


__all__ = [
    "strtobool",
    "add_classification_args",
    "build_classification_config",
]
