"""Checkpoint selection."""

from __future__ import annotations

from typing import List


def build_checkpoints(first: int, last: int, step: int) -> List[int]:
    """Stage indices ``first, first + step, ...`` below ``last``, ending at ``last - 1``.

    When ``step`` exceeds ``last - first`` only the final stage is evaluated.
    """
    if first < 0:
        raise ValueError(f"first must be non-negative, got {first}")
    if last <= first:
        raise ValueError(f"Degenerate iteration range: last ({last}) must be greater than first ({first})")
    if step < 1:
        raise ValueError(f"step must be at least 1, got {step}")

    if step > last - first:
        return [last - 1]
    checkpoints = list(range(first, last, step))
    if checkpoints[-1] != last - 1:
        checkpoints.append(last - 1)
    return checkpoints
