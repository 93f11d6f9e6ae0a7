"""Ranking metrics over query groups."""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from staged_eval.data.schemas import QueryInfo
from staged_eval.metrics.base import ErrorType, Metric, MetricStats


def _rank_order(scores: np.ndarray) -> np.ndarray:
    """Indices sorting ``scores`` descending; ties keep document order."""
    return np.argsort(-scores, kind="stable")


def dcg_at_k(relevance: np.ndarray, scores: np.ndarray, k: int) -> float:
    """DCG@K with linear gain."""
    ranked = relevance[_rank_order(scores)][:k]
    discounts = 1.0 / np.log2(np.arange(2, len(ranked) + 2))
    return float(np.sum(ranked * discounts))


def ndcg_at_k(relevance: np.ndarray, scores: np.ndarray, k: int) -> float:
    """nDCG@K; 0.0 when the query has no relevant documents."""
    idcg = dcg_at_k(relevance, relevance, k)
    if idcg <= 0:
        return 0.0
    return dcg_at_k(relevance, scores, k) / idcg


def mrr_at_k(relevance: np.ndarray, scores: np.ndarray, k: int) -> float:
    """MRR@K: reciprocal rank of first relevant document in top-K."""
    ranked = relevance[_rank_order(scores)][:k]
    hits = np.flatnonzero(ranked > 0)
    if len(hits) == 0:
        return 0.0
    return 1.0 / (hits[0] + 1)


def _make_querywise_eval(score_fn, top: int):
    def eval_fn(approx, target, weights, queries: Sequence[QueryInfo], begin: int, end: int) -> MetricStats:
        total = 0.0
        weight_sum = 0.0
        for query in queries[begin:end]:
            k = query.size if top < 0 else top
            total += query.weight * score_fn(target[query.begin:query.end], approx[0, query.begin:query.end], k)
            weight_sum += query.weight
        return MetricStats.of(total, weight_sum)

    return eval_fn


def _pair_accuracy_eval(approx, target, weights, queries: Sequence[QueryInfo], begin: int, end: int) -> MetricStats:
    correct = 0.0
    pair_weight = 0.0
    for query in queries[begin:end]:
        if not query.competitors:
            continue
        pairs = np.asarray(query.competitors, dtype=np.int64)
        scores = approx[0, query.begin:query.end]
        correct += query.weight * float(np.sum(scores[pairs[:, 0]] > scores[pairs[:, 1]]))
        pair_weight += query.weight * len(pairs)
    return MetricStats.of(correct, pair_weight)


def _top_params(top: Optional[int]):
    if top is None or top < 0:
        return -1, {}
    if top == 0:
        raise ValueError("top must be positive")
    return top, {"top": str(top)}


def ndcg(top: Optional[int] = None) -> Metric:
    k, params = _top_params(top)
    return Metric("NDCG", ErrorType.QUERYWISE, True, _make_querywise_eval(ndcg_at_k, k), params=params)


def mrr(top: Optional[int] = None) -> Metric:
    k, params = _top_params(top)
    return Metric("MRR", ErrorType.QUERYWISE, True, _make_querywise_eval(mrr_at_k, k), params=params)


def pair_accuracy() -> Metric:
    return Metric("PairAccuracy", ErrorType.PAIRWISE, True, _pair_accuracy_eval, stat_names=("correct", "weight"))
