"""Unit tests for random forest training, prediction, and map classification."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from landcover_rf.config.models import ForestConfig
from landcover_rf.training.classifier import (
    MAP_NODATA,
    classify_stack,
    feature_importances,
    load_model,
    predict_rows,
    save_model,
    train_random_forest,
)

FAST_FOREST = ForestConfig(n_trees=20, random_state=0, n_jobs=1)


@pytest.fixture
def separable_table() -> pd.DataFrame:
    """Two classes separated on band 'a'; band 'b' is noise."""
    rng = np.random.default_rng(0)
    n = 60
    return pd.DataFrame(
        {
            "clase": [1] * n + [2] * n,
            "a": np.concatenate([rng.uniform(0.0, 0.3, n), rng.uniform(0.7, 1.0, n)]),
            "b": rng.uniform(0.0, 1.0, 2 * n),
        }
    )


@pytest.fixture
def model(separable_table):
    return train_random_forest(separable_table, ["a", "b"], "clase", FAST_FOREST)


class TestTrainRandomForest:
    """Tests for train_random_forest() and predict_rows()."""

    def test_uses_configured_trees(self, model):
        assert model.n_estimators == 20
        assert list(model.classes_) == [1, 2]

    def test_predicts_separable_classes(self, model):
        rows = pd.DataFrame({"a": [0.1, 0.9], "b": [0.5, 0.5]})
        assert predict_rows(model, rows, ["a", "b"]).tolist() == [1, 2]

    def test_tolerates_missing_values(self, separable_table):
        separable_table.loc[::7, "b"] = np.nan
        model = train_random_forest(separable_table, ["a", "b"], "clase", FAST_FOREST)
        rows = pd.DataFrame({"a": [0.05], "b": [np.nan]})
        assert predict_rows(model, rows, ["a", "b"]).tolist() == [1]

    def test_empty_table(self):
        with pytest.raises(ValueError, match="empty"):
            train_random_forest(pd.DataFrame({"clase": [], "a": []}), ["a"], "clase", FAST_FOREST)

    def test_missing_feature_column(self, separable_table):
        with pytest.raises(ValueError, match="lacks feature columns"):
            train_random_forest(separable_table, ["a", "c"], "clase", FAST_FOREST)

    def test_predict_empty_rows(self, model):
        assert predict_rows(model, pd.DataFrame({"a": [], "b": []}), ["a", "b"]).size == 0

    def test_importances_rank_signal_first(self, model):
        importances = feature_importances(model, ["a", "b"])
        assert importances.index[0] == "a"
        assert importances.sum() == pytest.approx(1.0)


class TestClassifyStack:
    """Tests for classify_stack()."""

    @pytest.fixture
    def stack(self, make_layer):
        data = np.zeros((2, 20, 20), dtype="float32")
        data[0, :, :10] = 0.1
        data[0, :, 10:] = 0.9
        data[1] = 0.5
        data[:, 0, 0] = np.nan
        return make_layer(["a", "b"], data=data)

    def test_labels_and_nodata(self, model, stack, grid):
        classified = classify_stack(stack, model)
        assert classified.name == "classification"
        assert classified.dtype == np.uint8
        assert classified.dims == ("y", "x")
        assert classified.rio.crs == grid.crs
        values = classified.values
        assert values[0, 0] == MAP_NODATA
        assert values[5, 2] == 1
        assert values[5, 15] == 2

    def test_dask_backed_stack(self, model, stack):
        eager = classify_stack(stack, model).values
        lazy = classify_stack(stack.chunk({"band": 1, "y": 10, "x": 10}), model)
        np.testing.assert_array_equal(lazy.compute().values, eager)


class TestModelPersistence:
    """Tests for save_model() and load_model()."""

    def test_band_order_survives(self, model, tmp_path: Path):
        path = save_model(model, ["a", "b"], tmp_path / "models" / "model.joblib")
        assert path.exists()

        loaded, bands = load_model(path)
        assert bands == ["a", "b"]
        rows = pd.DataFrame({"a": [0.1], "b": [0.2]})
        assert predict_rows(loaded, rows, bands).tolist() == [1]
