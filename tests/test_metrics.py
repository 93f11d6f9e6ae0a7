import math

import numpy as np
import pytest
from sklearn.metrics import roc_auc_score

from staged_eval.data.io import build_queries
from staged_eval.metrics import (
    ErrorType,
    MetricStats,
    accuracy,
    auc,
    create_metric,
    create_metrics,
    logloss,
    mae,
    median_absolute_error,
    mrr_at_k,
    ndcg,
    ndcg_at_k,
    pair_accuracy,
    rmse,
)
from staged_eval.metrics.base import ratio_final
from staged_eval.metrics.registry import parse_metric_description
from staged_eval.utils.parallel import LocalExecutor


def _evaluate(metric, approx, target, weights=None, queries=()):
    if weights is None:
        weights = np.ones(len(target), dtype=np.float32)
    end = len(queries) if metric.error_type != ErrorType.PER_OBJECT else len(target)
    return metric.finalize(metric.evaluate(approx, target, weights, queries, 0, end))


def test_ranking_metrics_basic():
    relevance = np.array([0.0, 1.0, 0.0])
    scores = np.array([0.9, 0.5, 0.1])

    assert mrr_at_k(relevance, scores, k=2) == 0.5
    assert ndcg_at_k(relevance, scores, k=2) == pytest.approx(1.0 / math.log2(3))
    assert ndcg_at_k(relevance, scores, k=1) == 0.0
    assert ndcg_at_k(np.zeros(3), scores, k=3) == 0.0


def test_rmse_and_mae_values():
    approx = np.array([[1.0, 2.0, 4.0]])
    target = np.array([1.0, 0.0, 1.0], dtype=np.float32)
    weights = np.array([1.0, 1.0, 2.0], dtype=np.float32)

    assert _evaluate(rmse(), approx, target, weights) == pytest.approx(math.sqrt((4.0 + 18.0) / 4.0))
    assert _evaluate(mae(), approx, target, weights) == pytest.approx((2.0 + 6.0) / 4.0)


def test_logloss_matches_probability_form():
    approx = np.array([[-2.0, 0.0, 3.0]])
    target = np.array([0.0, 1.0, 1.0], dtype=np.float32)
    p = 1.0 / (1.0 + np.exp(-approx[0]))
    expected = -np.mean(target * np.log(p) + (1 - target) * np.log(1 - p))

    assert _evaluate(logloss(), approx, target) == pytest.approx(expected)


def test_accuracy_binary_and_multiclass():
    binary = np.array([[1.0, -1.0, 2.0, -0.5]])
    target = np.array([1.0, 1.0, 1.0, 0.0], dtype=np.float32)
    assert _evaluate(accuracy(), binary, target) == pytest.approx(0.75)

    multi = np.array([[0.1, 2.0, 0.0], [0.9, 0.0, 0.0], [0.0, 1.0, 3.0]])
    labels = np.array([1.0, 0.0, 0.0], dtype=np.float32)
    assert _evaluate(accuracy(), multi, labels) == pytest.approx(2.0 / 3.0)


def test_auc_matches_sklearn():
    rng = np.random.default_rng(0)
    approx = rng.normal(size=(1, 50))
    target = (rng.uniform(size=50) > 0.4).astype(np.float32)
    weights = rng.uniform(0.5, 2.0, size=50).astype(np.float32)

    expected = roc_auc_score(target > 0.5, approx[0], sample_weight=weights)
    assert _evaluate(auc(), approx, target, weights) == pytest.approx(expected)


def test_auc_single_class_is_half():
    approx = np.array([[0.1, 0.2, 0.3]])
    target = np.ones(3, dtype=np.float32)
    assert _evaluate(auc(), approx, target) == 0.5


def test_median_absolute_error():
    approx = np.array([[1.0, 5.0, 2.0]])
    target = np.array([0.0, 0.0, 0.0], dtype=np.float32)
    assert _evaluate(median_absolute_error(), approx, target) == 2.0


def test_non_additive_flags():
    assert not auc().is_additive
    assert not median_absolute_error().is_additive
    assert all(m.is_additive for m in [rmse(), mae(), logloss(), accuracy(), ndcg(), pair_accuracy()])


@pytest.mark.parametrize("factory", [rmse, mae, logloss, accuracy])
def test_additive_merge_equals_union(factory):
    rng = np.random.default_rng(3)
    approx = rng.normal(size=(1, 30))
    target = (rng.uniform(size=30) > 0.5).astype(np.float32)
    weights = rng.uniform(0.5, 2.0, size=30).astype(np.float32)
    metric = factory()

    whole = metric.evaluate(approx, target, weights, (), 0, 30)
    left = metric.evaluate(approx, target, weights, (), 0, 11)
    right = metric.evaluate(approx, target, weights, (), 11, 30)

    np.testing.assert_allclose(metric.merge(left, right).stats, whole.stats)
    assert metric.finalize(metric.merge(MetricStats(), whole)) == pytest.approx(metric.finalize(whole))


def test_block_parallel_evaluation_matches_serial():
    rng = np.random.default_rng(4)
    approx = rng.normal(size=(1, 100))
    target = rng.normal(size=100).astype(np.float32)
    weights = np.ones(100, dtype=np.float32)
    metric = rmse()

    serial = metric.evaluate(approx, target, weights, (), 0, 100)
    with LocalExecutor(thread_count=4, min_block_size=10) as pool:
        parallel = metric.evaluate(approx, target, weights, (), 0, 100, pool)

    np.testing.assert_allclose(parallel.stats, serial.stats)


def test_querywise_ndcg_merges_over_queries():
    rng = np.random.default_rng(5)
    target = rng.integers(0, 3, size=20).astype(np.float32)
    approx = rng.normal(size=(1, 20))
    weights = np.ones(20, dtype=np.float32)
    queries = build_queries(np.arange(20) // 5)
    metric = ndcg(top=3)

    whole = metric.evaluate(approx, target, weights, queries, 0, 4)
    merged = metric.merge(
        metric.evaluate(approx, target, weights, queries, 0, 1),
        metric.evaluate(approx, target, weights, queries, 1, 4),
    )
    expected = np.mean([
        ndcg_at_k(target[q.begin:q.end], approx[0, q.begin:q.end], 3) for q in queries
    ])

    np.testing.assert_allclose(merged.stats, whole.stats)
    assert metric.finalize(whole) == pytest.approx(expected)


def test_pair_accuracy():
    approx = np.array([[3.0, 1.0, 2.0, 0.0, 1.0]])
    target = np.zeros(5, dtype=np.float32)
    queries = build_queries([0, 0, 0, 1, 1], pairs=np.array([[0, 1], [1, 2], [4, 3]]))

    assert _evaluate(pair_accuracy(), approx, target, queries=queries) == pytest.approx(2.0 / 3.0)


def test_ratio_final_nan_on_zero_weight():
    assert math.isnan(ratio_final(MetricStats.of(1.0, 0.0)))
    assert math.isnan(ratio_final(MetricStats()))


def test_metric_stats_shape_mismatch():
    stats = MetricStats.of(1.0, 2.0)
    with pytest.raises(ValueError, match="Cannot merge"):
        stats.add(MetricStats.of(1.0))


class TestRegistry:
    def test_description_round_trip(self):
        metric = create_metric("ndcg:top=5")
        assert metric.description == "NDCG:top=5"
        assert create_metric(metric.description).description == metric.description

    def test_plain_names(self):
        metrics = create_metrics(["RMSE", "AUC", "Logloss"])
        assert [m.description for m in metrics] == ["RMSE", "AUC", "Logloss"]
        assert [m.stat_descriptions()[0] for m in metrics] == ["RMSE:sum_sq_error", "AUC:auc", "Logloss:sum_loss"]

    def test_parse(self):
        assert parse_metric_description("MRR: top=3 ;") == ("MRR", {"top": "3"})

    @pytest.mark.parametrize(
        "description,match",
        [
            ("Unknown", "Unknown metric"),
            ("RMSE:foo=1", "does not accept"),
            ("NDCG:k=3", "Unknown metric parameters"),
            ("NDCG:top=0", "Invalid top"),
            ("NDCG:top=abc", "Invalid top"),
            ("NDCG:top", "Malformed"),
        ],
    )
    def test_invalid(self, description, match):
        with pytest.raises(ValueError, match=match):
            create_metric(description)

    def test_empty_list(self):
        with pytest.raises(ValueError, match="At least one metric"):
            create_metrics([])
