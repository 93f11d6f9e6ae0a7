"""Metric records and partial results.

A metric is a plain record of functions rather than a class hierarchy:

- ``eval_fn(approx, target, weights, queries, begin, end) -> MetricStats``
  computes partial statistics over documents ``[begin, end)`` (per-object
  metrics) or queries ``[begin, end)`` (querywise and pairwise metrics);
- ``merge_fn(a, b) -> MetricStats`` combines two partial results, defaulting to
  an elementwise sum of statistics;
- ``final_fn(stats) -> float`` reduces statistics to the reported score.

Additive metrics guarantee that merging partial results over disjoint ranges
equals evaluating the union at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from staged_eval.data.schemas import QueryInfo
from staged_eval.utils.parallel import LocalExecutor


class ErrorType(str, Enum):
    """Granularity a metric is evaluated at."""
    PER_OBJECT = "per_object"
    QUERYWISE = "querywise"
    PAIRWISE = "pairwise"


@dataclass
class MetricStats:
    """Partial metric result: a vector of named statistics."""

    stats: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))

    @classmethod
    def of(cls, *values: float) -> "MetricStats":
        return cls(np.asarray(values, dtype=np.float64))

    @property
    def is_empty(self) -> bool:
        return self.stats.size == 0

    def add(self, other: "MetricStats") -> None:
        """Merge ``other`` into this holder by elementwise sum."""
        if other.is_empty:
            return
        if self.is_empty:
            self.stats = other.stats.copy()
            return
        if self.stats.shape != other.stats.shape:
            raise ValueError(f"Cannot merge stats of shapes {self.stats.shape} and {other.stats.shape}")
        self.stats = self.stats + other.stats

    def copy(self) -> "MetricStats":
        return MetricStats(self.stats.copy())


EvalFn = Callable[[np.ndarray, np.ndarray, np.ndarray, Sequence[QueryInfo], int, int], MetricStats]
MergeFn = Callable[[MetricStats, MetricStats], MetricStats]
FinalFn = Callable[[MetricStats], float]


def sum_merge(left: MetricStats, right: MetricStats) -> MetricStats:
    merged = left.copy()
    merged.add(right)
    return merged


def ratio_final(stats: MetricStats) -> float:
    """``stats[0] / stats[1]``, NaN when the denominator is zero."""
    if stats.is_empty or stats.stats[1] == 0:
        return float("nan")
    return float(stats.stats[0] / stats.stats[1])


def value_final(stats: MetricStats) -> float:
    if stats.is_empty:
        return float("nan")
    return float(stats.stats[0])


@dataclass(frozen=True)
class Metric:
    """Metric built from its evaluation, merge and finalize functions."""

    name: str
    error_type: ErrorType
    is_additive: bool
    eval_fn: EvalFn
    final_fn: FinalFn = ratio_final
    stat_names: Tuple[str, ...] = ("sum", "weight")
    params: Mapping[str, str] = field(default_factory=dict)
    merge_fn: Optional[MergeFn] = None

    @property
    def description(self) -> str:
        """Metric name with its parameters, e.g. ``NDCG:top=5``."""
        if not self.params:
            return self.name
        return self.name + ":" + ";".join(f"{key}={value}" for key, value in self.params.items())

    def evaluate(
        self,
        approx: np.ndarray,
        target: np.ndarray,
        weights: np.ndarray,
        queries: Sequence[QueryInfo],
        begin: int,
        end: int,
        executor: Optional[LocalExecutor] = None,
    ) -> MetricStats:
        """Evaluate over ``[begin, end)``.

        Additive metrics are split into blocks on ``executor`` and the block
        results merged in order; non-additive metrics always see the whole range.
        """
        if not self.is_additive or executor is None or executor.thread_count == 1:
            return self.eval_fn(approx, target, weights, queries, begin, end)
        parts: List[MetricStats] = executor.map_blocks(
            begin, end, lambda b, e: self.eval_fn(approx, target, weights, queries, b, e)
        )
        result = MetricStats()
        for part in parts:
            result = self.merge(result, part)
        return result

    def merge(self, left: MetricStats, right: MetricStats) -> MetricStats:
        if self.merge_fn is not None:
            if left.is_empty:
                return right.copy()
            if right.is_empty:
                return left.copy()
            return self.merge_fn(left, right)
        return sum_merge(left, right)

    def finalize(self, stats: MetricStats) -> float:
        return self.final_fn(stats)

    def stat_descriptions(self) -> List[str]:
        return [f"{self.description}:{name}" for name in self.stat_names]
