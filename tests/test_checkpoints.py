"""Tests for checkpoint selection."""

import pytest

from staged_eval.plot.checkpoints import build_checkpoints


@pytest.mark.parametrize(
    "first,last,step,expected",
    [
        (0, 10, 3, [0, 3, 6, 9]),
        (0, 10, 4, [0, 4, 8, 9]),
        (0, 10, 1, list(range(10))),
        (2, 5, 10, [4]),
        (0, 1, 1, [0]),
        (3, 8, 5, [3, 7]),
    ],
)
def test_build_checkpoints(first, last, step, expected):
    assert build_checkpoints(first, last, step) == expected


@pytest.mark.parametrize("first,last,step", [(0, 100, 7), (5, 37, 4), (0, 2, 1), (10, 11, 3)])
def test_checkpoint_properties(first, last, step):
    checkpoints = build_checkpoints(first, last, step)

    assert checkpoints[-1] == last - 1
    assert all(a < b for a, b in zip(checkpoints, checkpoints[1:]))
    assert all(first <= c < last for c in checkpoints)
    if step <= last - first:
        assert checkpoints[0] == first


@pytest.mark.parametrize(
    "first,last,step,match",
    [
        (5, 5, 1, "Degenerate"),
        (6, 5, 1, "Degenerate"),
        (-1, 5, 1, "non-negative"),
        (0, 5, 0, "step"),
    ],
)
def test_invalid_ranges(first, last, step, match):
    with pytest.raises(ValueError, match=match):
        build_checkpoints(first, last, step)
