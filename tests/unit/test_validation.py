"""Unit tests for the confusion matrix and accuracy metrics."""

import logging

import numpy as np
import pytest

from landcover_rf.validation import ConfusionMatrix, error_matrix


class TestErrorMatrix:
    """Tests for error_matrix()."""

    def test_rows_are_true_columns_predicted(self):
        matrix = error_matrix([1, 1, 2, 3], [1, 2, 2, 3], labels=[1, 2, 3])
        np.testing.assert_array_equal(matrix.counts, [[1, 1, 0], [0, 1, 0], [0, 0, 1]])
        assert matrix.total == 4

    def test_label_order_follows_label_set(self):
        matrix = error_matrix([5, 2], [5, 2], labels=[5, 2])
        assert matrix.labels == (5, 2)
        np.testing.assert_array_equal(matrix.counts, [[1, 0], [0, 1]])

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="lengths differ"):
            error_matrix([1, 2], [1], labels=[1, 2])

    def test_unknown_value(self):
        with pytest.raises(ValueError, match=r"\[9\]"):
            error_matrix([1, 9], [1, 1], labels=[1, 2])

    def test_absent_class_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            matrix = error_matrix([1, 1], [1, 2], labels=[1, 2, 3])
        assert matrix.absent_classes() == [2, 3]
        assert "without test samples" in caplog.text


class TestMetrics:
    """Tests for accuracy, kappa, and per-class ratios."""

    @pytest.fixture
    def matrix(self) -> ConfusionMatrix:
        counts = np.array([[45, 5], [10, 40]])
        return ConfusionMatrix(labels=(1, 2), counts=counts)

    def test_overall_accuracy(self, matrix):
        assert matrix.accuracy == pytest.approx(0.85)

    def test_kappa(self, matrix):
        # expected agreement = (50*55 + 50*45) / 100**2 = 0.5
        assert matrix.kappa == pytest.approx((0.85 - 0.5) / 0.5)

    def test_producers_and_consumers_accuracy(self, matrix):
        np.testing.assert_allclose(matrix.producers_accuracy, [0.9, 0.8])
        np.testing.assert_allclose(matrix.consumers_accuracy, [45 / 55, 40 / 45])

    def test_perfect_classification(self):
        matrix = error_matrix([1, 2, 3], [1, 2, 3], labels=[1, 2, 3])
        assert matrix.accuracy == 1.0
        assert matrix.kappa == pytest.approx(1.0)

    def test_empty_class_ratios_are_nan(self):
        matrix = error_matrix([1, 1], [1, 1], labels=[1, 2])
        assert np.isnan(matrix.producers_accuracy[1])
        assert np.isnan(matrix.consumers_accuracy[1])
        assert matrix.producers_accuracy[0] == 1.0

    def test_degenerate_kappa_is_nan(self):
        # one class only: chance agreement is total
        matrix = error_matrix([1, 1], [1, 1], labels=[1, 2])
        assert np.isnan(matrix.kappa)

    def test_empty_matrix(self):
        matrix = error_matrix([], [], labels=[1, 2])
        assert matrix.total == 0
        assert np.isnan(matrix.accuracy)
        assert np.isnan(matrix.kappa)

    def test_to_dict_replaces_nan(self):
        matrix = error_matrix([1, 1], [1, 1], labels=[1, 2])
        report = matrix.to_dict()
        assert report["matrix"] == [[2, 0], [0, 0]]
        assert report["overall_accuracy"] == 1.0
        assert report["kappa"] is None
        assert report["producers_accuracy"] == {"1": 1.0, "2": None}

    def test_format_matrix(self, matrix):
        lines = matrix.format_matrix().splitlines()
        assert len(lines) == 3
        assert lines[1].split() == ["1", "45", "5"]
