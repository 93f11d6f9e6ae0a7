"""Metrics package for staged model evaluation.

Exports:
- Metric records: Metric, MetricStats, ErrorType
- Per-object metrics: rmse, mae, logloss, accuracy, auc, median_absolute_error
- Ranking metrics: ndcg, mrr, pair_accuracy, ndcg_at_k, mrr_at_k
- Registry: create_metric, create_metrics
"""

from staged_eval.metrics.base import ErrorType, Metric, MetricStats
from staged_eval.metrics.pointwise import (
    accuracy,
    auc,
    logloss,
    mae,
    median_absolute_error,
    rmse,
)
from staged_eval.metrics.ranking import (
    mrr,
    mrr_at_k,
    ndcg,
    ndcg_at_k,
    pair_accuracy,
)
from staged_eval.metrics.registry import create_metric, create_metrics

__all__ = [
    # Records
    "ErrorType",
    "Metric",
    "MetricStats",
    # Per-object metrics
    "accuracy",
    "auc",
    "logloss",
    "mae",
    "median_absolute_error",
    "rmse",
    # Ranking metrics
    "mrr",
    "mrr_at_k",
    "ndcg",
    "ndcg_at_k",
    "pair_accuracy",
    # Registry
    "create_metric",
    "create_metrics",
]
