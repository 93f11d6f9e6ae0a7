"""Data schemas."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class QueryInfo:
    """One query group: documents ``[begin, end)`` of a dataset part.

    ``competitors`` holds ``(winner, loser)`` pairs as indices local to the
    group, used by pairwise metrics.
    """

    begin: int
    end: int
    weight: float = 1.0
    competitors: Tuple[Tuple[int, int], ...] = ()

    @property
    def size(self) -> int:
        return self.end - self.begin


@dataclass(frozen=True)
class DatasetPart:
    """One partition of an evaluation dataset."""

    features: np.ndarray
    target: np.ndarray
    weights: Optional[np.ndarray] = None
    baseline: Optional[np.ndarray] = None
    queries: Tuple[QueryInfo, ...] = field(default_factory=tuple)
    name: str = ""

    def __post_init__(self) -> None:
        doc_count = len(self.target)
        if self.features.ndim != 2 or self.features.shape[0] != doc_count:
            raise ValueError(
                f"features must be (doc_count, n_features) with doc_count={doc_count}, "
                f"got shape {self.features.shape}"
            )
        if self.weights is not None and len(self.weights) != doc_count:
            raise ValueError(f"weights length {len(self.weights)} != doc_count {doc_count}")
        if self.baseline is not None and (self.baseline.ndim != 2 or self.baseline.shape[1] != doc_count):
            raise ValueError(
                f"baseline must be (approx_dimension, doc_count) with doc_count={doc_count}, "
                f"got shape {self.baseline.shape}"
            )

    @property
    def doc_count(self) -> int:
        return len(self.target)

    @property
    def has_baseline(self) -> bool:
        return self.baseline is not None and self.baseline.size > 0


def get_target(part: DatasetPart) -> np.ndarray:
    return np.asarray(part.target, dtype=np.float32)


def get_weights(part: DatasetPart) -> np.ndarray:
    """Return per-document weights, ones when the part carries none."""
    if part.weights is None:
        return np.ones(part.doc_count, dtype=np.float32)
    return np.asarray(part.weights, dtype=np.float32)


def get_baseline(part: DatasetPart) -> Optional[np.ndarray]:
    if not part.has_baseline:
        return None
    return np.asarray(part.baseline, dtype=np.float64)


def get_queries(part: DatasetPart) -> Tuple[QueryInfo, ...]:
    return part.queries


def get_doc_count(parts: Sequence[DatasetPart]) -> int:
    return sum(part.doc_count for part in parts)


def get_start_doc_indices(parts: Sequence[DatasetPart]) -> List[int]:
    """Offset of each part inside the concatenation of all parts."""
    starts: List[int] = []
    start = 0
    for part in parts:
        starts.append(start)
        start += part.doc_count
    return starts
