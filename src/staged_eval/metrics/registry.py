"""Metric lookup by description string and loss compatibility checks."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from staged_eval.metrics.base import ErrorType, Metric
from staged_eval.metrics.pointwise import accuracy, auc, logloss, mae, median_absolute_error, rmse
from staged_eval.metrics.ranking import mrr, ndcg, pair_accuracy
from staged_eval.utils.logging import get_logger

logger = get_logger(__name__)


def _no_params(factory: Callable[[], Metric]) -> Callable[[Dict[str, str]], Metric]:
    def build(params: Dict[str, str]) -> Metric:
        if params:
            raise ValueError(f"Metric does not accept parameters: {sorted(params)}")
        return factory()

    return build


def _top_param(factory: Callable[..., Metric]) -> Callable[[Dict[str, str]], Metric]:
    def build(params: Dict[str, str]) -> Metric:
        unknown = set(params) - {"top"}
        if unknown:
            raise ValueError(f"Unknown metric parameters: {sorted(unknown)}")
        top = params.get("top")
        try:
            return factory(top=int(top) if top is not None else None)
        except ValueError as exc:
            raise ValueError(f"Invalid top={top!r}: {exc}") from exc

    return build


METRIC_BUILDERS: Dict[str, Callable[[Dict[str, str]], Metric]] = {
    "RMSE": _no_params(rmse),
    "MAE": _no_params(mae),
    "Logloss": _no_params(logloss),
    "Accuracy": _no_params(accuracy),
    "AUC": _no_params(auc),
    "MedianAbsoluteError": _no_params(median_absolute_error),
    "NDCG": _top_param(ndcg),
    "MRR": _top_param(mrr),
    "PairAccuracy": _no_params(pair_accuracy),
}


def parse_metric_description(description: str) -> Tuple[str, Dict[str, str]]:
    """Split ``"Name:key=value;key=value"`` into name and parameters."""
    name, _, raw_params = description.strip().partition(":")
    params: Dict[str, str] = {}
    for item in filter(None, (chunk.strip() for chunk in raw_params.split(";"))):
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Malformed metric parameter '{item}' in '{description}'")
        params[key.strip()] = value.strip()
    return name.strip(), params


def create_metric(description: str) -> Metric:
    name, params = parse_metric_description(description)
    builders = {key.lower(): builder for key, builder in METRIC_BUILDERS.items()}
    builder = builders.get(name.lower())
    if builder is None:
        raise ValueError(f"Unknown metric: {name}. Available: {sorted(METRIC_BUILDERS)}")
    return builder(params)


def create_metrics(descriptions: Sequence[str]) -> List[Metric]:
    if not descriptions:
        raise ValueError("At least one metric is required")
    return [create_metric(description) for description in descriptions]


REGRESSION_LOSSES = {"RMSE", "MAE", "Quantile", "MAPE", "Poisson", "Lq", "Expectile", "Huber", "LogLinQuantile"}
BINARY_LOSSES = {"Logloss", "CrossEntropy"}
MULTICLASS_LOSSES = {"MultiClass", "MultiClassOneVsAll"}
RANKING_LOSSES = {
    "YetiRank",
    "YetiRankPairwise",
    "PairLogit",
    "PairLogitPairwise",
    "QueryRMSE",
    "QuerySoftMax",
    "QueryCrossEntropy",
}

BINARY_METRICS = {"Logloss", "AUC"}
CLASSIFICATION_METRICS = BINARY_METRICS | {"Accuracy"}
MULTICLASS_METRICS = {"Accuracy"}


def read_loss_function(model_info: Mapping[str, Any]) -> Optional[str]:
    """Loss function name stored under ``model_info["params"]["loss_function"]``.

    ``params`` may be a mapping or its JSON dump; ``loss_function`` may be a
    name or ``{"type": name, ...}``.
    """
    params = model_info.get("params")
    if params is None:
        return None
    if isinstance(params, str):
        params = json.loads(params)
    loss_function = params.get("loss_function")
    if isinstance(loss_function, Mapping):
        loss_function = loss_function.get("type")
    if loss_function is None:
        return None
    name, _ = parse_metric_description(str(loss_function))
    return name


def check_metrics(metrics: Sequence[Metric], loss_function: Optional[str]) -> None:
    """Raise ``ValueError`` for metrics that do not fit the model's loss function."""
    if loss_function is None:
        return
    loss_key = loss_function.lower()

    def is_in(names) -> bool:
        return loss_key in {name.lower() for name in names}

    if not (is_in(REGRESSION_LOSSES) or is_in(BINARY_LOSSES) or is_in(MULTICLASS_LOSSES) or is_in(RANKING_LOSSES)):
        logger.warning("Unknown loss function %s; metric compatibility is not checked", loss_function)
        return

    for metric in metrics:
        if metric.error_type != ErrorType.PER_OBJECT and not is_in(RANKING_LOSSES):
            raise ValueError(
                f"Metric {metric.description} needs query groups, but the model was trained with {loss_function}"
            )
        if metric.name in CLASSIFICATION_METRICS and is_in(REGRESSION_LOSSES | RANKING_LOSSES):
            raise ValueError(
                f"Classification metric {metric.description} cannot be used with loss function {loss_function}"
            )
        if is_in(MULTICLASS_LOSSES) and metric.name not in MULTICLASS_METRICS:
            raise ValueError(
                f"Metric {metric.description} is not supported for multiclass loss function {loss_function}"
            )
