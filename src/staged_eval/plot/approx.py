"""Running output buffers for incremental model evaluation."""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from staged_eval.data.schemas import DatasetPart, get_baseline, get_doc_count
from staged_eval.utils.parallel import LocalExecutor, resolve_executor


def init_approx_buffer(
    approx_dimension: int,
    parts: Sequence[DatasetPart],
    init_baseline_if_available: bool,
) -> np.ndarray:
    """Allocate the running buffer for the concatenation of ``parts``.

    Starts from the parts' baselines when requested and present, otherwise from
    zeros. Baselines must be present in all parts or in none.
    """
    doc_count = get_doc_count(parts)
    if not parts or not init_baseline_if_available:
        return np.zeros((approx_dimension, doc_count), dtype=np.float64)

    has_baseline = parts[0].has_baseline
    for part_idx in range(1, len(parts)):
        if parts[part_idx].has_baseline != has_baseline:
            raise ValueError(
                "Inconsistent baseline specification between dataset parts: part 0 has "
                f"{'' if has_baseline else 'no '}baseline, but part {part_idx} has"
                f"{' not' if has_baseline else ''}"
            )
    if not has_baseline:
        return np.zeros((approx_dimension, doc_count), dtype=np.float64)

    baselines = [get_baseline(part) for part in parts]
    for part_idx, baseline in enumerate(baselines):
        if baseline.shape[0] != approx_dimension:
            raise ValueError(
                f"Baseline of part {part_idx} has dimension {baseline.shape[0]}, model expects {approx_dimension}"
            )
    return np.concatenate(baselines, axis=1).astype(np.float64, copy=True)


def append_approx(
    delta: np.ndarray,
    dst: np.ndarray,
    dst_start_doc: int = 0,
    executor: Optional[LocalExecutor] = None,
) -> None:
    """Add ``delta`` into ``dst[:, dst_start_doc:dst_start_doc + docs]`` in place."""
    doc_count = delta.shape[1]

    def add_block(block_begin: int, block_end: int) -> None:
        dst[:, dst_start_doc + block_begin:dst_start_doc + block_end] += delta[:, block_begin:block_end]

    resolve_executor(executor).parallel_for(0, doc_count, add_block)
