"""Confusion matrix and accuracy metrics for held-out samples.

Rows of the matrix are reference (true) classes and columns are predicted
classes, both in the order of the configured label set. Ratios whose
denominator is zero (an empty class row or column, an empty matrix) are NaN,
never zero, so absent classes stay visible in reports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np

LOGGER = logging.getLogger(__name__)


def _ratio(numerator, denominator):
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(denominator > 0, numerator / np.where(denominator > 0, denominator, 1), np.nan)


@dataclass(frozen=True)
class ConfusionMatrix:
    """Square count matrix over a fixed label set.

    Attributes:
        labels: Class values indexing rows and columns.
        counts: (n, n) integer array, rows = true, columns = predicted.
    """
    labels: Tuple[int, ...]
    counts: np.ndarray

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    @property
    def accuracy(self) -> float:
        """Overall accuracy: correctly classified share of all samples."""
        return float(_ratio(np.trace(self.counts), self.total))

    @property
    def kappa(self) -> float:
        """Cohen's kappa; NaN when chance agreement is total or the matrix is empty."""
        total = self.total
        if total == 0:
            return float("nan")
        observed = np.trace(self.counts) / total
        expected = float((self.counts.sum(axis=1) * self.counts.sum(axis=0)).sum()) / total**2
        if expected >= 1.0:
            return float("nan")
        return float((observed - expected) / (1.0 - expected))

    @property
    def producers_accuracy(self) -> np.ndarray:
        """Per-class recall: diagonal over row totals."""
        return _ratio(np.diag(self.counts), self.counts.sum(axis=1)).astype(float)

    @property
    def consumers_accuracy(self) -> np.ndarray:
        """Per-class precision (user's accuracy): diagonal over column totals."""
        return _ratio(np.diag(self.counts), self.counts.sum(axis=0)).astype(float)

    def absent_classes(self) -> List[int]:
        """Labels with no reference sample."""
        rows = self.counts.sum(axis=1)
        return [label for label, count in zip(self.labels, rows) if count == 0]

    def to_dict(self) -> Dict[str, object]:
        def _clean(value: float):
            return None if np.isnan(value) else round(float(value), 6)

        return {
            "labels": list(self.labels),
            "matrix": self.counts.astype(int).tolist(),
            "total": self.total,
            "overall_accuracy": _clean(self.accuracy),
            "kappa": _clean(self.kappa),
            "producers_accuracy": {
                str(label): _clean(value) for label, value in zip(self.labels, self.producers_accuracy)
            },
            "consumers_accuracy": {
                str(label): _clean(value) for label, value in zip(self.labels, self.consumers_accuracy)
            },
        }

    def format_matrix(self) -> str:
        width = max(6, max(len(str(label)) for label in self.labels) + 1)
        header = "true\\pred".rjust(width + 4) + "".join(str(label).rjust(width) for label in self.labels)
        lines = [header]
        for label, row in zip(self.labels, self.counts):
            lines.append(str(label).rjust(width + 4) + "".join(str(int(v)).rjust(width) for v in row))
        return "\n".join(lines)


def error_matrix(
    true: Iterable[int],
    predicted: Iterable[int],
    labels: Sequence[int],
) -> ConfusionMatrix:
    """Tabulate reference vs predicted classes over ``labels``.

    Raises:
        ValueError: If lengths differ or a value falls outside ``labels``.
    """
    true_arr = np.asarray(list(true), dtype=int)
    pred_arr = np.asarray(list(predicted), dtype=int)
    if true_arr.shape != pred_arr.shape:
        raise ValueError(
            f"true and predicted lengths differ ({true_arr.size} vs {pred_arr.size})"
        )
    index = {int(label): i for i, label in enumerate(labels)}
    unknown = sorted((set(true_arr.tolist()) | set(pred_arr.tolist())) - set(index))
    if unknown:
        raise ValueError(f"Values {unknown} are not in the label set {list(labels)}")

    counts = np.zeros((len(index), len(index)), dtype=np.int64)
    np.add.at(
        counts,
        (
            np.array([index[v] for v in true_arr.tolist()], dtype=int),
            np.array([index[v] for v in pred_arr.tolist()], dtype=int),
        ),
        1,
    )
    matrix = ConfusionMatrix(labels=tuple(int(label) for label in labels), counts=counts)
    absent = matrix.absent_classes()
    if absent:
        LOGGER.warning("Classes without test samples: %s", absent)
    return matrix


__all__ = ["ConfusionMatrix", "error_matrix"]
