"""Configuration management for landcover_rf.

This module provides dataclass-based configuration objects for the
classification workflow, with support for validation and YAML-based
configuration files.
"""

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
from .yaml_loader import (
    ConfigurationError,
    load_classification_config,
)

__all__ = [
    # Dataclasses
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
    # YAML loading
    "ConfigurationError",
    "load_classification_config",
]
