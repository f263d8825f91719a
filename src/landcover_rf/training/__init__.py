"""Training data preparation and random forest classification."""

from .classifier import (
    MAP_NODATA,
    classify_stack,
    feature_importances,
    load_model,
    predict_rows,
    save_model,
    train_random_forest,
)
from .sampling import (
    add_random_column,
    cap_per_class,
    class_histogram,
    load_labels,
    sample_stack,
    split_train_test,
)

__all__ = [
    "MAP_NODATA",
    "load_labels",
    "class_histogram",
    "sample_stack",
    "add_random_column",
    "cap_per_class",
    "split_train_test",
    "train_random_forest",
    "predict_rows",
    "feature_importances",
    "classify_stack",
    "save_model",
    "load_model",
]
