"""Configuration dataclasses for landcover_rf workflows.

These dataclasses provide validated, type-safe configuration for the
feature-stack and classification pipeline. They can be instantiated from CLI
arguments, environment variables, or YAML files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional, Sequence, Tuple


# =============================================================================
# Default Values (matching existing CLI defaults)
# =============================================================================

DEFAULT_START_DATE = "2023-09-01"
DEFAULT_END_DATE = "2024-08-31"
DEFAULT_SCALE = 10.0
DEFAULT_TARGET_CRS = "EPSG:32719"

DEFAULT_STAC_URL = "https://earth-search.aws.element84.com/v1"
DEFAULT_OPTICAL_COLLECTION = "sentinel-2-l2a"
DEFAULT_RADAR_COLLECTION = "sentinel-1-grd"
DEFAULT_RADAR_VALUE_SCALE = "linear"
DEFAULT_DEM_COLLECTION = "cop-dem-glo-30"

DEFAULT_INSTRUMENT_MODE = "IW"
DEFAULT_POLARIZATIONS: Tuple[str, ...] = ("VV", "VH")
DEFAULT_INCIDENCE_ANGLE = 39.0
DEFAULT_SPECKLE_RADIUS = 1
DEFAULT_SPECKLE_EPSILON = 1e-12
DEFAULT_PERCENTILES: Tuple[int, ...] = (10, 50, 90)

DEFAULT_CLASS_ATTRIBUTE = "clase"
DEFAULT_TARGET_PER_CLASS = 300
DEFAULT_BALANCE_SEED = 1
DEFAULT_SPLIT_SEED = 2
DEFAULT_TRAIN_FRACTION = 0.7

DEFAULT_N_TREES = 300
DEFAULT_MAX_FEATURES = "sqrt"
DEFAULT_RANDOM_STATE = 42

DEFAULT_EXPORT_FOLDER = "GEE_Exports"
DEFAULT_RGB_PREFIX = "S2_RGB_median_2023-09_2024-08"
DEFAULT_MAP_PREFIX = "LULC_Colchagua_LCCS_10m_2023-09_2024-08"
DEFAULT_RGB_CRS = "EPSG:4326"
DEFAULT_MAP_CRS = "EPSG:32719"
DEFAULT_MAX_PIXELS = 1e13


# =============================================================================
# Land-cover legend
# =============================================================================

@dataclass(frozen=True)
class LandCoverClass:
    """One entry of the classification legend.

    Attributes:
        value: Integer label stored in the point layers and the output map.
        name: Human-readable class name.
        color: Hex color used for the map colormap.
    """
    value: int
    name: str
    color: str

    @property
    def rgb(self) -> Tuple[int, int, int]:
        text = self.color.lstrip("#")
        return int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16)


DEFAULT_CLASSES: Tuple[LandCoverClass, ...] = (
    LandCoverClass(1, "C1 Irrigated perennial crops", "#f2c74b"),
    LandCoverClass(2, "C2 Irrigated deciduous crops", "#e67e22"),
    LandCoverClass(3, "C3 Sclerophyll forest", "#1b5e20"),
    LandCoverClass(4, "C4 Shrubland or espinal", "#b8860b"),
    LandCoverClass(5, "C5 Deciduous forest", "#66bb6a"),
    LandCoverClass(6, "C6 Urban / bare soil", "#9e9e9e"),
    LandCoverClass(7, "C7 Water", "#1f78b4"),
)


def _parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an ISO date (YYYY-MM-DD), got {value!r}")


# =============================================================================
# Component Configurations
# =============================================================================

@dataclass
class StudyAreaConfig:
    """Area, period, and output grid of the analysis.

    Attributes:
        aoi: AOI specification (file path, GeoJSON, WKT, or bbox string).
        start_date: First acquisition date (inclusive, ISO format).
        end_date: Last acquisition date (inclusive, ISO format).
        scale: Pixel size of the feature stack in meters.
        target_crs: Projected CRS for the feature stack.
    """
    aoi: str
    start_date: str = DEFAULT_START_DATE
    end_date: str = DEFAULT_END_DATE
    scale: float = DEFAULT_SCALE
    target_crs: str = DEFAULT_TARGET_CRS

    @property
    def datetime_range(self) -> str:
        return f"{self.start_date}/{self.end_date}"

    def validate(self) -> None:
        """Validate study-area configuration.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.aoi or not str(self.aoi).strip():
            raise ValueError("aoi must be specified")
        start = _parse_date(self.start_date, "start_date")
        end = _parse_date(self.end_date, "end_date")
        if end < start:
            raise ValueError(
                f"end_date ({self.end_date}) cannot precede start_date ({self.start_date})"
            )
        if self.scale <= 0:
            raise ValueError(f"scale must be positive, got {self.scale}")
        if not self.target_crs:
            raise ValueError("target_crs must be specified")


@dataclass
class OpticalConfig:
    """Sentinel-2 catalog query and masking parameters.

    Attributes:
        stac_url: STAC API endpoint.
        collection: Sentinel-2 L2A collection identifier.
        max_cloud_cover: Optional scene-level eo:cloud_cover ceiling (None = no filter).
        mask_dilation: Pixels to grow the SCL mask by (0 = exact SCL mask).
        chunk_size: Dask chunk size for x/y dimensions.
    """
    stac_url: str = DEFAULT_STAC_URL
    collection: str = DEFAULT_OPTICAL_COLLECTION
    max_cloud_cover: Optional[float] = None
    mask_dilation: int = 0
    chunk_size: Optional[int] = 1024

    def validate(self) -> None:
        if not self.collection:
            raise ValueError("optical collection must be specified")
        if self.max_cloud_cover is not None and not 0 <= self.max_cloud_cover <= 100:
            raise ValueError(
                f"max_cloud_cover must be in [0, 100], got {self.max_cloud_cover}"
            )
        if self.mask_dilation < 0:
            raise ValueError(f"mask_dilation must be non-negative, got {self.mask_dilation}")
        if self.chunk_size is not None and self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")


@dataclass
class RadarConfig:
    """Sentinel-1 catalog query, calibration, and speckle-filter parameters.

    Attributes:
        stac_url: STAC API endpoint (None = same as optical).
        collection: Sentinel-1 collection identifier.
        instrument_mode: Required sar:instrument_mode value.
        polarizations: Polarizations every scene must carry.
        value_scale: Scale of the catalog backscatter values ('db' or 'linear').
        angle_asset: Asset holding the per-pixel incidence angle in degrees.
        incidence_angle: Constant angle (degrees) used when angle_asset is None.
        speckle_radius: Neighborhood radius in pixels (1 = 3x3 window).
        speckle_epsilon: Stabilizer added to mean**2 in the coefficient of variation.
        percentiles: Temporal percentiles computed for each smoothed band.
    """
    stac_url: Optional[str] = None
    collection: str = DEFAULT_RADAR_COLLECTION
    instrument_mode: str = DEFAULT_INSTRUMENT_MODE
    polarizations: Tuple[str, ...] = DEFAULT_POLARIZATIONS
    value_scale: str = DEFAULT_RADAR_VALUE_SCALE
    angle_asset: Optional[str] = None
    incidence_angle: float = DEFAULT_INCIDENCE_ANGLE
    speckle_radius: int = DEFAULT_SPECKLE_RADIUS
    speckle_epsilon: float = DEFAULT_SPECKLE_EPSILON
    percentiles: Tuple[int, ...] = DEFAULT_PERCENTILES

    def validate(self) -> None:
        if not self.collection:
            raise ValueError("radar collection must be specified")
        if self.value_scale not in ("db", "linear"):
            raise ValueError(f"value_scale must be 'db' or 'linear', got '{self.value_scale}'")
        missing = {"VV", "VH"} - {p.upper() for p in self.polarizations}
        if missing:
            raise ValueError(f"polarizations must include VV and VH, missing {sorted(missing)}")
        if not 0 <= self.incidence_angle < 90:
            raise ValueError(f"incidence_angle must be in [0, 90), got {self.incidence_angle}")
        if self.speckle_radius < 1:
            raise ValueError(f"speckle_radius must be at least 1, got {self.speckle_radius}")
        if self.speckle_epsilon <= 0:
            raise ValueError(f"speckle_epsilon must be positive, got {self.speckle_epsilon}")
        for value in self.percentiles:
            if not 0 <= value <= 100:
                raise ValueError(f"percentiles must be in [0, 100], got {value}")


@dataclass
class TerrainConfig:
    """Elevation source for the terrain bands.

    Attributes:
        dem_paths: Local DEM GeoTIFFs (mosaicked). Takes precedence over STAC.
        stac_url: STAC endpoint for the DEM collection (None = same as optical).
        collection: Global DEM collection queried when dem_paths is empty.
    """
    dem_paths: Sequence[Path] = ()
    stac_url: Optional[str] = None
    collection: str = DEFAULT_DEM_COLLECTION

    def validate(self) -> None:
        for path in self.dem_paths:
            if not Path(path).exists():
                raise FileNotFoundError(f"DEM file not found: {path}")
        if not self.dem_paths and not self.collection:
            raise ValueError("Either dem_paths or a DEM collection must be provided")


@dataclass
class SamplingConfig:
    """Labeled-point loading, class balancing, and split parameters.

    Attributes:
        label_paths: Point layers (one per class or a single merged layer).
        class_attribute: Integer attribute holding the class label.
        target_per_class: Maximum rows kept per class in the balanced pool.
        balance_seed: Seed of the random column used for per-class capping.
        split_seed: Seed of the random column used for the train/test split.
        train_fraction: Rows with split value below this go to training.
    """
    label_paths: Sequence[Path] = ()
    class_attribute: str = DEFAULT_CLASS_ATTRIBUTE
    target_per_class: int = DEFAULT_TARGET_PER_CLASS
    balance_seed: int = DEFAULT_BALANCE_SEED
    split_seed: int = DEFAULT_SPLIT_SEED
    train_fraction: float = DEFAULT_TRAIN_FRACTION

    def validate(self) -> None:
        if not self.label_paths:
            raise ValueError("At least one label layer must be provided")
        for path in self.label_paths:
            if not Path(path).exists():
                raise FileNotFoundError(f"Labels file not found: {path}")
        if not self.class_attribute:
            raise ValueError("class_attribute must be specified")
        if self.target_per_class <= 0:
            raise ValueError(f"target_per_class must be positive, got {self.target_per_class}")
        if not 0 < self.train_fraction < 1:
            raise ValueError(f"train_fraction must be in (0, 1), got {self.train_fraction}")


@dataclass
class ForestConfig:
    """Random forest hyperparameters.

    Attributes:
        n_trees: Number of trees in the ensemble.
        max_features: Features considered per split ('sqrt' = library default).
        random_state: Seed for bootstrap and feature sampling.
        n_jobs: Parallel jobs for fitting and prediction (None = 1).
    """
    n_trees: int = DEFAULT_N_TREES
    max_features: Optional[str] = DEFAULT_MAX_FEATURES
    random_state: Optional[int] = DEFAULT_RANDOM_STATE
    n_jobs: Optional[int] = None

    def validate(self) -> None:
        if self.n_trees <= 0:
            raise ValueError(f"n_trees must be positive, got {self.n_trees}")
        if self.max_features not in (None, "sqrt", "log2"):
            raise ValueError(
                f"max_features must be 'sqrt', 'log2' or None, got '{self.max_features}'"
            )


@dataclass
class ExportConfig:
    """GeoTIFF export destinations.

    Attributes:
        folder: Directory name (under the output dir) receiving exports.
        rgb_prefix: File name prefix of the RGB median composite.
        map_prefix: File name prefix of the classified map.
        rgb_crs: CRS of the RGB composite export.
        map_crs: CRS of the classified map export.
        max_pixels: Largest pixel count a single export may write.
        cloud_optimized: Write COGs instead of tiled GeoTIFFs.
        enabled: Names of the exports to run ('rgb', 'map').
    """
    folder: str = DEFAULT_EXPORT_FOLDER
    rgb_prefix: str = DEFAULT_RGB_PREFIX
    map_prefix: str = DEFAULT_MAP_PREFIX
    rgb_crs: str = DEFAULT_RGB_CRS
    map_crs: str = DEFAULT_MAP_CRS
    max_pixels: float = DEFAULT_MAX_PIXELS
    cloud_optimized: bool = True
    enabled: Tuple[str, ...] = ("rgb", "map")

    def validate(self) -> None:
        if not self.folder:
            raise ValueError("export folder must be specified")
        if not self.rgb_prefix or not self.map_prefix:
            raise ValueError("export file name prefixes must be specified")
        if self.max_pixels <= 0:
            raise ValueError(f"max_pixels must be positive, got {self.max_pixels}")
        unknown = set(self.enabled) - {"rgb", "map"}
        if unknown:
            raise ValueError(f"Unknown export names: {sorted(unknown)}")


# =============================================================================
# Workflow Configuration
# =============================================================================

@dataclass
class ClassificationConfig:
    """Complete configuration for a classification run.

    Attributes:
        study_area: AOI, period, and output grid.
        output_dir: Directory for the model, reports, and exports.
        optical: Sentinel-2 parameters.
        radar: Sentinel-1 parameters.
        terrain: DEM source.
        sampling: Label loading and balancing parameters.
        forest: Random forest hyperparameters.
        export: Export destinations.
        classes: Land-cover legend (label set of the confusion matrix).
        write_stack: Also write the full feature stack GeoTIFF.
    """
    study_area: StudyAreaConfig
    output_dir: Path
    optical: OpticalConfig = field(default_factory=OpticalConfig)
    radar: RadarConfig = field(default_factory=RadarConfig)
    terrain: TerrainConfig = field(default_factory=TerrainConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    forest: ForestConfig = field(default_factory=ForestConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    classes: Tuple[LandCoverClass, ...] = DEFAULT_CLASSES
    write_stack: bool = False

    @property
    def class_values(self) -> Tuple[int, ...]:
        return tuple(item.value for item in self.classes)

    def validate(self) -> None:
        """Validate the run configuration.

        Raises:
            ValueError: If configuration is invalid.
            FileNotFoundError: If required files don't exist.
        """
        if not self.classes:
            raise ValueError("At least one land-cover class must be defined")
        values = self.class_values
        if len(set(values)) != len(values):
            raise ValueError(f"Class values must be unique, got {list(values)}")
        if any(value <= 0 or value > 255 for value in values):
            raise ValueError("Class values must be in [1, 255] (0 is the map nodata value)")

        self.study_area.validate()
        self.optical.validate()
        self.radar.validate()
        self.terrain.validate()
        self.sampling.validate()
        self.forest.validate()
        self.export.validate()


__all__ = [
    "LandCoverClass",
    "DEFAULT_CLASSES",
    "StudyAreaConfig",
    "OpticalConfig",
    "RadarConfig",
    "TerrainConfig",
    "SamplingConfig",
    "ForestConfig",
    "ExportConfig",
    "ClassificationConfig",
    # Default values for reference
    "DEFAULT_START_DATE",
    "DEFAULT_END_DATE",
    "DEFAULT_SCALE",
    "DEFAULT_TARGET_CRS",
    "DEFAULT_STAC_URL",
    "DEFAULT_OPTICAL_COLLECTION",
    "DEFAULT_RADAR_COLLECTION",
    "DEFAULT_RADAR_VALUE_SCALE",
    "DEFAULT_DEM_COLLECTION",
    "DEFAULT_INSTRUMENT_MODE",
    "DEFAULT_POLARIZATIONS",
    "DEFAULT_INCIDENCE_ANGLE",
    "DEFAULT_SPECKLE_RADIUS",
    "DEFAULT_SPECKLE_EPSILON",
    "DEFAULT_PERCENTILES",
    "DEFAULT_CLASS_ATTRIBUTE",
    "DEFAULT_TARGET_PER_CLASS",
    "DEFAULT_BALANCE_SEED",
    "DEFAULT_SPLIT_SEED",
    "DEFAULT_TRAIN_FRACTION",
    "DEFAULT_N_TREES",
    "DEFAULT_MAX_FEATURES",
    "DEFAULT_RANDOM_STATE",
    "DEFAULT_EXPORT_FOLDER",
    "DEFAULT_RGB_PREFIX",
    "DEFAULT_MAP_PREFIX",
    "DEFAULT_RGB_CRS",
    "DEFAULT_MAP_CRS",
    "DEFAULT_MAX_PIXELS",
]
