"""
Labeled-point sampling, class balancing, and train/test splitting.

Labels are point layers carrying an integer class attribute. Each point takes
the feature values of the stack pixel containing it. The balanced pool caps
abundant classes at a fixed count and keeps scarce classes whole; nothing is
upsampled. Both the cap and the split draw uniform random columns from
seeded generators, so a fixed input order and seed always reproduce the same
pool and split.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple, Union

import geopandas as gpd
import numpy as np
import pandas as pd
import xarray as xr

LOGGER = logging.getLogger(__name__)

RANDOM_COLUMN = "rand"
SPLIT_COLUMN = "split"


def load_labels(
    paths: Sequence[Union[str, Path]],
    class_attribute: str,
) -> gpd.GeoDataFrame:
    """
    Merge labeled point layers into one GeoDataFrame in EPSG:4326.

    Args:
        paths: Vector files, either one per class or a single merged layer.
        class_attribute: Column holding the integer class label.

    Returns:
        GeoDataFrame with ``class_attribute`` as int and point geometries.

    Raises:
        FileNotFoundError: If a layer does not exist.
        ValueError: If the attribute is missing, holds non-integer values,
            or a feature is not a point. MultiPoints are split into points.
    """
    frames: List[gpd.GeoDataFrame] = []
    for raw_path in paths:
        path = Path(raw_path)
        if not path.exists():
            raise FileNotFoundError(f"Labels file not found: {path}")
        gdf = gpd.read_file(path)
        if class_attribute not in gdf.columns:
            raise ValueError(f"Labels file '{path}' has no '{class_attribute}' attribute")
        if gdf.crs is None:
            LOGGER.warning("Labels %s lack CRS. Assuming EPSG:4326.", path)
            gdf = gdf.set_crs("EPSG:4326")
        frames.append(gdf[[class_attribute, "geometry"]].to_crs("EPSG:4326"))

    if not frames:
        raise ValueError("No label layers provided")
    labels = gpd.GeoDataFrame(pd.concat(frames, ignore_index=True), crs="EPSG:4326")
    labels = labels[labels.geometry.notna() & ~labels.geometry.is_empty]
    labels = labels.explode(index_parts=False).reset_index(drop=True)
    not_points = labels.geom_type != "Point"
    if not_points.any():
        kinds = sorted(set(labels.geom_type[not_points]))
        raise ValueError(f"Labels must be point features; found {', '.join(kinds)}")

    values = pd.to_numeric(labels[class_attribute], errors="coerce")
    bad = values.isna() | (values != np.round(values))
    if bad.any():
        raise ValueError(
            f"'{class_attribute}' must hold integer class values; "
            f"{int(bad.sum())} row(s) do not"
        )
    labels[class_attribute] = values.astype(int)
    return labels.reset_index(drop=True)


def class_histogram(values: Iterable) -> Dict[int, int]:
    """Count rows per class, ordered by class value."""
    counts = pd.Series(list(values), dtype="int64").value_counts().sort_index()
    return {int(k): int(v) for k, v in counts.items()}


def sample_stack(
    stack: xr.DataArray,
    points: gpd.GeoDataFrame,
    class_attribute: str,
) -> pd.DataFrame:
    """
    Extract stack band values at each labeled point.

    Points outside the stack extent and points whose bands are all invalid
    produce no row. Rows with only some invalid bands are kept with NaN.

    Returns:
        DataFrame with ``class_attribute`` followed by one column per band.
    """
    band_names = [str(b) for b in stack.coords["band"].values]
    points = points.to_crs(stack.rio.crs)
    transform = stack.rio.transform()
    height, width = stack.sizes["y"], stack.sizes["x"]

    cols_f, rows_f = ~transform * (points.geometry.x.to_numpy(), points.geometry.y.to_numpy())
    cols = np.floor(np.asarray(cols_f)).astype(int)
    rows = np.floor(np.asarray(rows_f)).astype(int)
    inside = (rows >= 0) & (rows < height) & (cols >= 0) & (cols < width)
    if (~inside).any():
        LOGGER.warning("%d labeled point(s) fall outside the stack extent", int((~inside).sum()))

    rows, cols = rows[inside], cols[inside]
    classes = points[class_attribute].to_numpy()[inside]
    values = stack.transpose("band", "y", "x").isel(
        y=xr.DataArray(rows, dims="point"),
        x=xr.DataArray(cols, dims="point"),
    )
    values = np.asarray(values.values, dtype="float32").T

    samples = pd.DataFrame(values, columns=band_names)
    samples.insert(0, class_attribute, classes.astype(int))
    all_invalid = samples[band_names].isna().all(axis=1)
    if all_invalid.any():
        LOGGER.warning("Dropping %d sample(s) with no valid band value", int(all_invalid.sum()))
    return samples[~all_invalid].reset_index(drop=True)


def add_random_column(df: pd.DataFrame, column: str, seed: int) -> pd.DataFrame:
    """Return a copy of ``df`` with a uniform [0, 1) column drawn from ``seed``."""
    rng = np.random.default_rng(seed)
    out = df.copy()
    out[column] = rng.random(len(out))
    return out


def cap_per_class(
    df: pd.DataFrame,
    class_attribute: str,
    target: int = 300,
    seed: int = 1,
) -> pd.DataFrame:
    """
    Keep at most ``target`` rows per class, chosen by the smallest random values.

    Classes with fewer than ``target`` rows are kept whole.
    """
    ranked = add_random_column(df, RANDOM_COLUMN, seed)
    kept = []
    for value, group in ranked.groupby(class_attribute, sort=True):
        subset = group.sort_values(RANDOM_COLUMN, kind="mergesort").head(target)
        if len(group) < target:
            LOGGER.info("Class %s: %d sample(s), below target %d; kept all", value, len(group), target)
        kept.append(subset)
    if not kept:
        return ranked.iloc[0:0]
    return pd.concat(kept, ignore_index=True)


def split_train_test(
    pool: pd.DataFrame,
    seed: int = 2,
    threshold: float = 0.7,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split the balanced pool on a fresh uniform column.

    Rows with ``split < threshold`` train, the rest test. The split is
    approximate per class, but every row lands in exactly one side.
    """
    ranked = add_random_column(pool, SPLIT_COLUMN, seed)
    is_train = ranked[SPLIT_COLUMN] < threshold
    train = ranked[is_train].reset_index(drop=True)
    test = ranked[~is_train].reset_index(drop=True)
    return train, test


__all__ = [
    "RANDOM_COLUMN",
    "SPLIT_COLUMN",
    "load_labels",
    "class_histogram",
    "sample_stack",
    "add_random_column",
    "cap_per_class",
    "split_train_test",
]
