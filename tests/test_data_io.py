"""Tests for dataset loading and query grouping."""

import numpy as np
import pandas as pd
import pytest

from staged_eval.data.io import build_queries, load_dataset_part, load_dataset_parts
from staged_eval.data.schemas import DatasetPart, get_start_doc_indices, get_weights


class TestBuildQueries:
    def test_groups_consecutive_ids(self):
        queries = build_queries(["a", "a", "b", "c", "c", "c"], group_weights=[2.0, 2.0, 1.0, 0.5, 0.5, 0.5])

        assert [(q.begin, q.end) for q in queries] == [(0, 2), (2, 3), (3, 6)]
        assert [q.weight for q in queries] == [2.0, 1.0, 0.5]
        assert queries[2].size == 3

    def test_no_groups(self):
        assert build_queries(None) == ()
        assert build_queries([]) == ()

    def test_non_contiguous_ids_rejected(self):
        with pytest.raises(ValueError, match="contiguous"):
            build_queries([1, 1, 2, 1])

    def test_pairs_are_local_to_group(self):
        queries = build_queries([0, 0, 1, 1, 1], pairs=np.array([[1, 0], [4, 2]]))
        assert queries[0].competitors == ((1, 0),)
        assert queries[1].competitors == ((2, 0),)

    def test_cross_group_pair_rejected(self):
        with pytest.raises(ValueError, match="crosses"):
            build_queries([0, 0, 1], pairs=np.array([[0, 2]]))


def test_load_npz(tmp_path):
    path = tmp_path / "part.npz"
    np.savez(
        path,
        features=np.arange(12, dtype=np.float32).reshape(6, 2),
        target=np.array([0, 1, 0, 1, 1, 0], dtype=np.float32),
        baseline=np.linspace(0, 1, 6),
        group_id=np.array([0, 0, 0, 1, 1, 1]),
    )

    part = load_dataset_part(path)

    assert part.doc_count == 6
    assert part.baseline.shape == (1, 6)
    assert part.has_baseline
    assert len(part.queries) == 2
    assert part.name == "part"
    np.testing.assert_array_equal(get_weights(part), np.ones(6, dtype=np.float32))


def test_load_csv(tmp_path):
    path = tmp_path / "part.csv"
    pd.DataFrame(
        {
            "f0": [0.1, 0.2, 0.3],
            "target": [1.0, 0.0, 1.0],
            "f1": [1.0, 2.0, 3.0],
            "weight": [1.0, 2.0, 3.0],
            "baseline_1": [0.5, 0.5, 0.5],
            "baseline_0": [0.0, 0.1, 0.2],
        }
    ).to_csv(path, index=False)

    part = load_dataset_part(path)

    assert part.features.shape == (3, 2)
    np.testing.assert_allclose(part.features[:, 1], [1.0, 2.0, 3.0])
    np.testing.assert_allclose(part.baseline, [[0.0, 0.1, 0.2], [0.5, 0.5, 0.5]])
    np.testing.assert_allclose(part.weights, [1.0, 2.0, 3.0])
    assert part.queries == ()


def test_load_multiple_parts(tmp_path):
    paths = []
    for idx, size in enumerate([3, 5]):
        path = tmp_path / f"part{idx}.npz"
        np.savez(path, features=np.zeros((size, 1)), target=np.zeros(size))
        paths.append(path)

    parts = load_dataset_parts(paths)

    assert [p.doc_count for p in parts] == [3, 5]
    assert get_start_doc_indices(parts) == [0, 3]


def test_unsupported_format(tmp_path):
    with pytest.raises(ValueError, match="Unsupported"):
        load_dataset_part(tmp_path / "part.parquet")


def test_npz_requires_target(tmp_path):
    path = tmp_path / "bad.npz"
    np.savez(path, features=np.zeros((2, 1)))
    with pytest.raises(ValueError, match="target"):
        load_dataset_part(path)


def test_part_shape_validation():
    with pytest.raises(ValueError, match="features"):
        DatasetPart(features=np.zeros((3, 2)), target=np.zeros(4))
    with pytest.raises(ValueError, match="baseline"):
        DatasetPart(features=np.zeros((3, 2)), target=np.zeros(3), baseline=np.zeros((1, 2)))
