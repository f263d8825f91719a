"""YAML configuration file loading for landcover_rf.

This module provides a function to load a ClassificationConfig from a YAML
file, with validation and sensible error messages.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from .models import (
    DEFAULT_CLASSES,
    ClassificationConfig,
    ExportConfig,
    ForestConfig,
    LandCoverClass,
    OpticalConfig,
    RadarConfig,
    SamplingConfig,
    StudyAreaConfig,
    TerrainConfig,
)


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


def _resolve_path(base_dir: Path, path_str: Optional[str]) -> Optional[Path]:
    """Resolve a path string relative to the config file's directory.

    If the path is absolute, it's returned as-is.
    If the path is relative, it's resolved relative to base_dir.
    """
    if path_str is None:
        return None
    path = Path(path_str)
    if path.is_absolute():
        return path
    return base_dir / path


def _resolve_paths(base_dir: Path, value: Any, name: str) -> Tuple[Path, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"{name} must be a path or a list of paths, got {value!r}")
    return tuple(_resolve_path(base_dir, str(item)) for item in value)


def _resolve_aoi(base_dir: Path, aoi: str) -> str:
    """Resolve AOI file references; inline geometries pass through unchanged."""
    candidate = str(aoi).strip()
    if Path(candidate).suffix.lower() in {".gpkg", ".shp", ".geojson", ".json", ".wkt"}:
        return str(_resolve_path(base_dir, candidate))
    return candidate


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Section '{name}' must be a mapping, got {type(section).__name__}")
    return section


def _parse_study_area(data: Dict[str, Any], base_dir: Path) -> StudyAreaConfig:
    area = _section(data, "study_area")
    if "aoi" not in area:
        raise ConfigurationError("Missing required field: study_area.aoi")
    return StudyAreaConfig(
        aoi=_resolve_aoi(base_dir, area["aoi"]),
        start_date=str(area.get("start_date", StudyAreaConfig.start_date)),
        end_date=str(area.get("end_date", StudyAreaConfig.end_date)),
        scale=float(area.get("scale", StudyAreaConfig.scale)),
        target_crs=area.get("target_crs", StudyAreaConfig.target_crs),
    )


def _parse_optical(data: Dict[str, Any]) -> OpticalConfig:
    optical = _section(data, "optical")
    return OpticalConfig(
        stac_url=optical.get("stac_url", OpticalConfig.stac_url),
        collection=optical.get("collection", OpticalConfig.collection),
        max_cloud_cover=optical.get("max_cloud_cover", OpticalConfig.max_cloud_cover),
        mask_dilation=int(optical.get("mask_dilation", OpticalConfig.mask_dilation)),
        chunk_size=optical.get("chunk_size", OpticalConfig.chunk_size),
    )


def _parse_radar(data: Dict[str, Any]) -> RadarConfig:
    radar = _section(data, "radar")
    return RadarConfig(
        stac_url=radar.get("stac_url", RadarConfig.stac_url),
        collection=radar.get("collection", RadarConfig.collection),
        instrument_mode=radar.get("instrument_mode", RadarConfig.instrument_mode),
        polarizations=tuple(radar.get("polarizations", RadarConfig.polarizations)),
        value_scale=radar.get("value_scale", RadarConfig.value_scale),
        angle_asset=radar.get("angle_asset", RadarConfig.angle_asset),
        incidence_angle=float(radar.get("incidence_angle", RadarConfig.incidence_angle)),
        speckle_radius=int(radar.get("speckle_radius", RadarConfig.speckle_radius)),
        speckle_epsilon=float(radar.get("speckle_epsilon", RadarConfig.speckle_epsilon)),
        percentiles=tuple(int(p) for p in radar.get("percentiles", RadarConfig.percentiles)),
    )


def _parse_terrain(data: Dict[str, Any], base_dir: Path) -> TerrainConfig:
    terrain = _section(data, "terrain")
    return TerrainConfig(
        dem_paths=_resolve_paths(base_dir, terrain.get("dem_paths"), "terrain.dem_paths"),
        stac_url=terrain.get("stac_url", TerrainConfig.stac_url),
        collection=terrain.get("collection", TerrainConfig.collection),
    )


def _parse_sampling(data: Dict[str, Any], base_dir: Path) -> SamplingConfig:
    sampling = _section(data, "sampling")
    return SamplingConfig(
        label_paths=_resolve_paths(base_dir, sampling.get("label_paths"), "sampling.label_paths"),
        class_attribute=sampling.get("class_attribute", SamplingConfig.class_attribute),
        target_per_class=int(sampling.get("target_per_class", SamplingConfig.target_per_class)),
        balance_seed=int(sampling.get("balance_seed", SamplingConfig.balance_seed)),
        split_seed=int(sampling.get("split_seed", SamplingConfig.split_seed)),
        train_fraction=float(sampling.get("train_fraction", SamplingConfig.train_fraction)),
    )


def _parse_forest(data: Dict[str, Any]) -> ForestConfig:
    forest = _section(data, "forest")
    return ForestConfig(
        n_trees=int(forest.get("n_trees", ForestConfig.n_trees)),
        max_features=forest.get("max_features", ForestConfig.max_features),
        random_state=forest.get("random_state", ForestConfig.random_state),
        n_jobs=forest.get("n_jobs", ForestConfig.n_jobs),
    )


def _parse_export(data: Dict[str, Any]) -> ExportConfig:
    export = _section(data, "export")
    return ExportConfig(
        folder=export.get("folder", ExportConfig.folder),
        rgb_prefix=export.get("rgb_prefix", ExportConfig.rgb_prefix),
        map_prefix=export.get("map_prefix", ExportConfig.map_prefix),
        rgb_crs=export.get("rgb_crs", ExportConfig.rgb_crs),
        map_crs=export.get("map_crs", ExportConfig.map_crs),
        max_pixels=float(export.get("max_pixels", ExportConfig.max_pixels)),
        cloud_optimized=bool(export.get("cloud_optimized", ExportConfig.cloud_optimized)),
        enabled=tuple(export.get("enabled", ExportConfig.enabled)),
    )


def _parse_classes(data: Dict[str, Any]) -> Tuple[LandCoverClass, ...]:
    raw = data.get("classes")
    if raw is None:
        return DEFAULT_CLASSES
    if not isinstance(raw, list):
        raise ConfigurationError("classes must be a list of {value, name, color} mappings")
    classes: List[LandCoverClass] = []
    for entry in raw:
        try:
            classes.append(
                LandCoverClass(
                    value=int(entry["value"]),
                    name=str(entry["name"]),
                    color=str(entry["color"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid class entry {entry!r}: {e}")
    return tuple(classes)


def load_classification_config(
    config_path: Union[str, Path],
    validate: bool = True,
) -> ClassificationConfig:
    """Load a ClassificationConfig from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.
        validate: Whether to validate the configuration (default: True).

    Returns:
        A ClassificationConfig instance.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
        FileNotFoundError: If config_path doesn't exist.
        ValueError: If validate=True and the configuration is invalid.

    Example YAML structure:
        ```yaml
        output_dir: ./run
        study_area:
          aoi: ./area_estudio.gpkg
          start_date: "2023-09-01"
          end_date: "2024-08-31"
          target_crs: EPSG:32719
        sampling:
          label_paths: [./C1.gpkg, ./C2.gpkg, ./C3.gpkg]
          class_attribute: clase
          target_per_class: 300
        forest:
          n_trees: 300
        export:
          folder: GEE_Exports
        ```
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    base_dir = config_path.parent

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML: {e}")

    if data is None:
        raise ConfigurationError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a YAML mapping (dict)")

    if "output_dir" not in data:
        raise ConfigurationError("Missing required field: output_dir")

    config = ClassificationConfig(
        study_area=_parse_study_area(data, base_dir),
        output_dir=_resolve_path(base_dir, data["output_dir"]),
        optical=_parse_optical(data),
        radar=_parse_radar(data),
        terrain=_parse_terrain(data, base_dir),
        sampling=_parse_sampling(data, base_dir),
        forest=_parse_forest(data),
        export=_parse_export(data),
        classes=_parse_classes(data),
        write_stack=bool(data.get("write_stack", False)),
    )

    if validate:
        config.validate()

    return config


__all__ = [
    "ConfigurationError",
    "load_classification_config",
]
