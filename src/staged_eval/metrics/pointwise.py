"""Per-object metrics over raw model output.

``approx`` has shape ``(approx_dimension, doc_count)``; single-dimension
metrics read row 0.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
from sklearn.metrics import roc_auc_score

from staged_eval.data.schemas import QueryInfo
from staged_eval.metrics.base import ErrorType, Metric, MetricStats, value_final


def _rmse_eval(approx, target, weights, queries: Sequence[QueryInfo], begin: int, end: int) -> MetricStats:
    diff = approx[0, begin:end] - target[begin:end]
    w = weights[begin:end]
    return MetricStats.of(float(np.sum(w * diff * diff)), float(np.sum(w)))


def _rmse_final(stats: MetricStats) -> float:
    if stats.is_empty or stats.stats[1] == 0:
        return float("nan")
    return float(np.sqrt(stats.stats[0] / stats.stats[1]))


def _mae_eval(approx, target, weights, queries, begin, end) -> MetricStats:
    w = weights[begin:end]
    return MetricStats.of(float(np.sum(w * np.abs(approx[0, begin:end] - target[begin:end]))), float(np.sum(w)))


def _logloss_eval(approx, target, weights, queries, begin, end) -> MetricStats:
    # log(1 + e^a) - t * a == -(t log p + (1 - t) log(1 - p)) with p = sigmoid(a)
    a = approx[0, begin:end]
    t = target[begin:end]
    w = weights[begin:end]
    loss = np.logaddexp(0.0, a) - t * a
    return MetricStats.of(float(np.sum(w * loss)), float(np.sum(w)))


def _accuracy_eval(approx, target, weights, queries, begin, end) -> MetricStats:
    w = weights[begin:end]
    if approx.shape[0] == 1:
        correct = (approx[0, begin:end] > 0) == (target[begin:end] > 0.5)
    else:
        predicted = np.argmax(approx[:, begin:end], axis=0)
        correct = predicted == target[begin:end].astype(np.int64)
    return MetricStats.of(float(np.sum(w * correct)), float(np.sum(w)))


def _auc_eval(approx, target, weights, queries, begin, end) -> MetricStats:
    labels = target[begin:end] > 0.5
    if len(np.unique(labels)) < 2:
        return MetricStats.of(0.5)
    return MetricStats.of(float(roc_auc_score(labels, approx[0, begin:end], sample_weight=weights[begin:end])))


def _median_absolute_error_eval(approx, target, weights, queries, begin, end) -> MetricStats:
    if end <= begin:
        return MetricStats.of(float("nan"))
    return MetricStats.of(float(np.median(np.abs(approx[0, begin:end] - target[begin:end]))))


def rmse() -> Metric:
    return Metric("RMSE", ErrorType.PER_OBJECT, True, _rmse_eval, _rmse_final, ("sum_sq_error", "weight"))


def mae() -> Metric:
    return Metric("MAE", ErrorType.PER_OBJECT, True, _mae_eval, stat_names=("sum_abs_error", "weight"))


def logloss() -> Metric:
    return Metric("Logloss", ErrorType.PER_OBJECT, True, _logloss_eval, stat_names=("sum_loss", "weight"))


def accuracy() -> Metric:
    return Metric("Accuracy", ErrorType.PER_OBJECT, True, _accuracy_eval, stat_names=("correct", "weight"))


def auc() -> Metric:
    """Weighted ROC AUC; needs the whole output vector, so it is non-additive."""
    return Metric("AUC", ErrorType.PER_OBJECT, False, _auc_eval, value_final, ("auc",))


def median_absolute_error() -> Metric:
    return Metric(
        "MedianAbsoluteError", ErrorType.PER_OBJECT, False, _median_absolute_error_eval, value_final, ("median",)
    )
