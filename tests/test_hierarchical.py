import numpy as np
import pandas as pd
import pytest
from scipy.spatial.distance import squareform
from sklearn.metrics import adjusted_rand_score

from algorithms.hierarchical import (
    LINKAGE_METHODS,
    compare_linkages,
    compute_sample_distances,
    cut_by_height,
    cut_by_k,
    distance_matrix,
    height_for_k,
    run_hierarchical_once,
)


@pytest.fixture
def tree(e):
    return run_hierarchical_once(compute_sample_distances(e))


def test_distances_are_between_samples(e):
    d = compute_sample_distances(e)
    n = e.shape[1]
    assert d.shape == (n * (n - 1) // 2,)

    D = distance_matrix(e)
    assert list(D.columns) == list(e.columns)
    expected = np.linalg.norm(e.iloc[:, 0] - e.iloc[:, 3])
    assert D.iloc[0, 3] == pytest.approx(expected)


def test_distances_need_two_samples(e):
    with pytest.raises(ValueError):
        compute_sample_distances(e.iloc[:, :1])


def test_run_hierarchical_once(tree, e):
    assert tree["method"] == "complete"
    assert tree["n_samples"] == e.shape[1]
    assert tree["linkage_matrix"].shape == (e.shape[1] - 1, 4)
    assert 0 < tree["cophenetic_corr"] <= 1


def test_square_input_gives_same_tree(e):
    d = compute_sample_distances(e)
    Z1 = run_hierarchical_once(d)["linkage_matrix"]
    Z2 = run_hierarchical_once(squareform(d))["linkage_matrix"]
    assert np.allclose(Z1, Z2)


def test_invalid_linkage(e):
    d = compute_sample_distances(e)
    with pytest.raises(ValueError):
        run_hierarchical_once(d, method="centroid")
    with pytest.raises(ValueError, match="Ward"):
        run_hierarchical_once(d, method="ward", metric="cosine")


def test_cut_by_k_recovers_tissues(tree, tissue):
    labels = cut_by_k(tree["linkage_matrix"], 4)
    assert adjusted_rand_score(tissue, labels) == pytest.approx(1.0)


@pytest.mark.parametrize("k", [1, 2, 4, 9])
def test_cut_by_k_gives_exactly_k(tree, k):
    labels = cut_by_k(tree["linkage_matrix"], k)
    assert len(np.unique(labels)) == k
    assert labels[0] == 1
    assert set(labels) == set(range(1, k + 1))


def test_cut_by_k_range(tree, e):
    Z = tree["linkage_matrix"]
    with pytest.raises(ValueError):
        cut_by_k(Z, 0)
    with pytest.raises(ValueError):
        cut_by_k(Z, e.shape[1] + 1)


def test_cut_by_height(tree):
    Z = tree["linkage_matrix"]
    top = Z[-1, 2]
    assert len(np.unique(cut_by_height(Z, top))) == 1
    assert len(np.unique(cut_by_height(Z, Z[0, 2] / 2))) == Z.shape[0] + 1
    with pytest.raises(ValueError):
        cut_by_height(Z, 0)


@pytest.mark.parametrize("k", [1, 2, 4, 7])
def test_height_for_k_matches_cut_by_k(tree, k):
    Z = tree["linkage_matrix"]
    h = height_for_k(Z, k)
    by_height = cut_by_height(Z, h)
    assert len(np.unique(by_height)) == k
    assert np.array_equal(by_height, cut_by_k(Z, k))


def test_height_for_all_singletons(tree, e):
    Z = tree["linkage_matrix"]
    h = height_for_k(Z, e.shape[1])
    assert 0 < h < Z[0, 2]


def test_height_for_k_with_tied_merges():
    # four points on a square: both first merges happen at the same height
    d = squareform(np.array([
        [0, 1, 2, 2],
        [1, 0, 2, 2],
        [2, 2, 0, 1],
        [2, 2, 1, 0],
    ], dtype=float))
    Z = run_hierarchical_once(d)["linkage_matrix"]
    with pytest.raises(ValueError, match="Tied"):
        height_for_k(Z, 3)
    assert len(np.unique(cut_by_height(Z, height_for_k(Z, 2)))) == 2


def test_compare_linkages(e, tissue):
    table = compare_linkages(e, tissue)
    assert list(table["method"]) == list(LINKAGE_METHODS)
    assert set(table["k"]) == {4}
    assert {"ari", "purity", "f_measure", "cophenetic_corr"} <= set(table.columns)
    assert table.loc[table["method"] == "complete", "ari"].iloc[0] == pytest.approx(1.0)


def test_compare_linkages_skips_ward_for_other_metrics(e, tissue):
    table = compare_linkages(e, tissue, metric="cityblock")
    assert "ward" not in set(table["method"])
    assert isinstance(table, pd.DataFrame)


def test_compare_linkages_explicit_k(e, tissue):
    table = compare_linkages(e, tissue, methods=["complete", "average"], k=2)
    assert list(table["method"]) == ["complete", "average"]
    assert set(table["k"]) == {2}
    assert set(table["n_clusters"]) == {2}
