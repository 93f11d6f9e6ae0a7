"""Data IO helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from staged_eval.data.schemas import DatasetPart, QueryInfo
from staged_eval.utils.logging import get_logger

logger = get_logger(__name__)

TARGET_COLUMN = "target"
WEIGHT_COLUMN = "weight"
GROUP_COLUMN = "group_id"
GROUP_WEIGHT_COLUMN = "group_weight"
BASELINE_PREFIX = "baseline_"
RESERVED_COLUMNS = {TARGET_COLUMN, WEIGHT_COLUMN, GROUP_COLUMN, GROUP_WEIGHT_COLUMN}


def build_queries(
    group_ids: Optional[Sequence],
    group_weights: Optional[Sequence[float]] = None,
    pairs: Optional[np.ndarray] = None,
) -> Tuple[QueryInfo, ...]:
    """Group consecutive equal ``group_ids`` into ``QueryInfo`` records.

    Documents of one group must be contiguous. ``pairs`` holds
    ``(winner, loser)`` document indices of the part; both documents of a pair
    must belong to the same group.
    """
    if group_ids is None or len(group_ids) == 0:
        return ()
    group_ids = np.asarray(group_ids)
    boundaries = np.flatnonzero(group_ids[1:] != group_ids[:-1]) + 1
    starts = np.concatenate([[0], boundaries])
    ends = np.concatenate([boundaries, [len(group_ids)]])
    if len(np.unique(group_ids)) != len(starts):
        raise ValueError("group_id values must be contiguous within a dataset part")

    doc_to_query = np.repeat(np.arange(len(starts)), ends - starts)
    competitors: Dict[int, List[Tuple[int, int]]] = {}
    if pairs is not None and len(pairs) > 0:
        for winner, loser in np.asarray(pairs, dtype=np.int64):
            query_idx = int(doc_to_query[winner])
            if doc_to_query[loser] != query_idx:
                raise ValueError(f"Pair ({winner}, {loser}) crosses query groups")
            begin = int(starts[query_idx])
            competitors.setdefault(query_idx, []).append((int(winner) - begin, int(loser) - begin))

    queries = []
    for query_idx, (begin, end) in enumerate(zip(starts, ends)):
        weight = 1.0 if group_weights is None else float(group_weights[begin])
        queries.append(
            QueryInfo(
                begin=int(begin),
                end=int(end),
                weight=weight,
                competitors=tuple(competitors.get(query_idx, ())),
            )
        )
    return tuple(queries)


def load_dataset_part(path: Path) -> DatasetPart:
    """Load one dataset part from ``.npz`` or ``.csv``.

    npz keys: ``features``, ``target`` and optionally ``weight``, ``baseline``
    (approx_dimension x docs), ``group_id``, ``group_weight``, ``pairs``.
    CSV columns: ``target``, optional ``weight``/``group_id``/``group_weight``,
    ``baseline_<dim>`` columns, and every other column is a feature.
    """
    path = Path(path)
    if path.suffix == ".npz":
        part = _load_npz(path)
    elif path.suffix in (".csv", ".tsv"):
        part = _load_csv(path, sep="\t" if path.suffix == ".tsv" else ",")
    else:
        raise ValueError(f"Unsupported dataset format: {path}")
    logger.info("Loaded %d documents from %s", part.doc_count, path)
    return part


def load_dataset_parts(paths: Sequence[Path]) -> List[DatasetPart]:
    return [load_dataset_part(Path(p)) for p in paths]


def _load_npz(path: Path) -> DatasetPart:
    with np.load(path, allow_pickle=False) as data:
        if "features" not in data or "target" not in data:
            raise ValueError(f"{path} must contain 'features' and 'target' arrays")
        baseline = data["baseline"] if "baseline" in data else None
        if baseline is not None and baseline.ndim == 1:
            baseline = baseline[np.newaxis, :]
        return DatasetPart(
            features=np.asarray(data["features"], dtype=np.float32),
            target=np.asarray(data["target"], dtype=np.float32),
            weights=np.asarray(data["weight"], dtype=np.float32) if "weight" in data else None,
            baseline=baseline,
            queries=build_queries(
                data["group_id"] if "group_id" in data else None,
                data["group_weight"] if "group_weight" in data else None,
                data["pairs"] if "pairs" in data else None,
            ),
            name=path.stem,
        )


def _load_csv(path: Path, sep: str) -> DatasetPart:
    df = pd.read_csv(path, sep=sep)
    if TARGET_COLUMN not in df.columns:
        raise ValueError(f"{path} must contain a '{TARGET_COLUMN}' column")
    baseline_cols = sorted(
        (c for c in df.columns if c.startswith(BASELINE_PREFIX)),
        key=lambda c: int(c[len(BASELINE_PREFIX):]),
    )
    feature_cols = [c for c in df.columns if c not in RESERVED_COLUMNS and c not in baseline_cols]
    baseline = df[baseline_cols].to_numpy(dtype=np.float64).T if baseline_cols else None
    return DatasetPart(
        features=df[feature_cols].to_numpy(dtype=np.float32),
        target=df[TARGET_COLUMN].to_numpy(dtype=np.float32),
        weights=df[WEIGHT_COLUMN].to_numpy(dtype=np.float32) if WEIGHT_COLUMN in df.columns else None,
        baseline=baseline,
        queries=build_queries(
            df[GROUP_COLUMN].to_numpy() if GROUP_COLUMN in df.columns else None,
            df[GROUP_WEIGHT_COLUMN].to_numpy() if GROUP_WEIGHT_COLUMN in df.columns else None,
        ),
        name=path.stem,
    )
