"""Random forest training, prediction, and full-stack classification."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import joblib
import numpy as np
import pandas as pd
import xarray as xr
from sklearn.ensemble import RandomForestClassifier

from ..config.models import ForestConfig
from ..stacking import copy_georeference

LOGGER = logging.getLogger(__name__)

MAP_NODATA = 0


def _feature_matrix(df: pd.DataFrame, feature_bands: Sequence[str]) -> np.ndarray:
    missing = [band for band in feature_bands if band not in df.columns]
    if missing:
        raise ValueError(f"Sample table lacks feature columns: {missing}")
    return df[list(feature_bands)].to_numpy(dtype="float32")


def train_random_forest(
    train_df: pd.DataFrame,
    feature_bands: Sequence[str],
    class_attribute: str,
    config: Optional[ForestConfig] = None,
) -> RandomForestClassifier:
    """Fit a random forest on the training rows.

    NaN feature values are passed through; scikit-learn's trees route them
    natively.

    Raises:
        ValueError: If the table is empty or lacks a feature column.
    """
    config = config or ForestConfig()
    if train_df.empty:
        raise ValueError("Training table is empty")
    features = _feature_matrix(train_df, feature_bands)
    labels = train_df[class_attribute].to_numpy(dtype=int)

    model = RandomForestClassifier(
        n_estimators=config.n_trees,
        max_features=config.max_features,
        random_state=config.random_state,
        n_jobs=config.n_jobs,
    )
    LOGGER.info(
        "Training random forest: %d trees, %d rows, %d features",
        config.n_trees,
        len(labels),
        features.shape[1],
    )
    model.fit(features, labels)
    return model


def predict_rows(
    model: RandomForestClassifier,
    df: pd.DataFrame,
    feature_bands: Sequence[str],
) -> np.ndarray:
    """Predict class labels for sample rows."""
    if df.empty:
        return np.empty(0, dtype=int)
    return model.predict(_feature_matrix(df, feature_bands))


def feature_importances(model: RandomForestClassifier, feature_bands: Sequence[str]) -> pd.Series:
    """Mean impurity decrease per band, largest first."""
    return pd.Series(model.feature_importances_, index=list(feature_bands)).sort_values(ascending=False)


def _classify_block(block: np.ndarray, model: RandomForestClassifier) -> np.ndarray:
    # block is (..., band); pixels with every band invalid stay nodata
    shape = block.shape[:-1]
    features = block.reshape(-1, block.shape[-1]).astype("float32")
    valid = np.isfinite(features).any(axis=1)
    labels = np.full(features.shape[0], MAP_NODATA, dtype="uint8")
    if valid.any():
        labels[valid] = model.predict(features[valid]).astype("uint8")
    return labels.reshape(shape)


def classify_stack(stack: xr.DataArray, model: RandomForestClassifier) -> xr.DataArray:
    """Classify every pixel of a (band, y, x) stack.

    Evaluation stays lazy for dask-backed stacks; blocks are predicted when
    the result is computed or written.

    Returns:
        uint8 DataArray (y, x) named ``classification``; 0 marks nodata.
    """
    if stack.chunks is not None:
        stack = stack.chunk({"band": -1})
    classified = xr.apply_ufunc(
        _classify_block,
        stack,
        kwargs={"model": model},
        input_core_dims=[["band"]],
        dask="parallelized",
        output_dtypes=["uint8"],
    )
    classified.name = "classification"
    return copy_georeference(classified, stack)


def save_model(model: RandomForestClassifier, feature_bands: Sequence[str], path: Path) -> Path:
    """Persist the model with its band order via joblib."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump({"model": model, "feature_bands": list(feature_bands)}, path)
    LOGGER.info("Saved model to %s", path)
    return path


def load_model(path: Path) -> Tuple[RandomForestClassifier, List[str]]:
    """Load a model saved by ``save_model``; returns (model, feature_bands)."""
    package = joblib.load(Path(path))
    return package["model"], list(package["feature_bands"])


__all__ = [
    "MAP_NODATA",
    "train_random_forest",
    "predict_rows",
    "feature_importances",
    "classify_stack",
    "save_model",
    "load_model",
]
