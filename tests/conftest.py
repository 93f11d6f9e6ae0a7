"""Shared fixtures: small random stump ensembles and dataset parts."""

from typing import Optional

import numpy as np
import pytest

from staged_eval.data.io import build_queries
from staged_eval.data.schemas import DatasetPart
from staged_eval.model.staged import Stump, StumpEnsemble
from staged_eval.utils.parallel import LocalExecutor


def make_model(stage_count: int = 12, approx_dimension: int = 1, n_features: int = 4, seed: int = 0) -> StumpEnsemble:
    rng = np.random.default_rng(seed)
    stumps = [
        Stump(
            feature=int(rng.integers(n_features)),
            border=float(rng.uniform(-1.0, 1.0)),
            left=rng.normal(scale=0.3, size=approx_dimension),
            right=rng.normal(scale=0.3, size=approx_dimension),
        )
        for _ in range(stage_count)
    ]
    return StumpEnsemble(stumps, approx_dimension=approx_dimension)


def make_part(
    doc_count: int = 40,
    n_features: int = 4,
    seed: int = 1,
    approx_dimension: Optional[int] = None,
    group_size: Optional[int] = None,
) -> DatasetPart:
    """Random part; ``approx_dimension`` adds a baseline, ``group_size`` adds query groups."""
    rng = np.random.default_rng(seed)
    features = rng.uniform(-1.0, 1.0, size=(doc_count, n_features)).astype(np.float32)
    target = (rng.uniform(size=doc_count) > 0.5).astype(np.float32)
    weights = rng.uniform(0.5, 2.0, size=doc_count).astype(np.float32)
    baseline = None
    if approx_dimension is not None:
        baseline = rng.normal(scale=0.1, size=(approx_dimension, doc_count))
    queries = ()
    if group_size is not None:
        queries = build_queries(np.arange(doc_count) // group_size)
    return DatasetPart(features=features, target=target, weights=weights, baseline=baseline, queries=queries)


def concat_parts(*parts: DatasetPart) -> DatasetPart:
    baseline = None
    if parts[0].baseline is not None:
        baseline = np.concatenate([part.baseline for part in parts], axis=1)
    return DatasetPart(
        features=np.concatenate([part.features for part in parts]),
        target=np.concatenate([part.target for part in parts]),
        weights=np.concatenate([part.weights for part in parts]),
        baseline=baseline,
    )


@pytest.fixture
def executor():
    with LocalExecutor(thread_count=1) as pool:
        yield pool


@pytest.fixture
def model():
    return make_model()
