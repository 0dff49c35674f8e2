import logging

import numpy as np
import pytest
from scipy.spatial.distance import pdist, squareform

from algorithms.hierarchical import compute_sample_distances
from algorithms.mds import ClassicalMDS


def test_full_rank_embedding_reproduces_distances(points):
    d = pdist(points)
    coords = ClassicalMDS(n_components=3).fit_transform(d)
    assert coords.shape == (10, 3)
    assert np.allclose(pdist(coords), d)


def test_embedding_is_centred(points):
    coords = ClassicalMDS(n_components=2).fit_transform(pdist(points))
    assert np.allclose(coords.mean(axis=0), 0.0)


def test_square_and_condensed_agree(points):
    d = pdist(points)
    a = ClassicalMDS(n_components=2).fit_transform(d)
    b = ClassicalMDS(n_components=2).fit_transform(squareform(d))
    assert np.allclose(a, b)


def test_sign_convention(points):
    coords = ClassicalMDS(n_components=2).fit_transform(pdist(points))
    for j in range(coords.shape[1]):
        assert coords[np.argmax(np.abs(coords[:, j])), j] > 0


def test_eigenvalues_and_explained_ratio(points):
    mds = ClassicalMDS(n_components=2).fit(pdist(points))
    assert np.all(np.diff(mds.eigenvalues_) <= 1e-12)
    assert mds.explained_ratio_.shape == (2,)
    assert 0 < mds.explained_ratio_.sum() <= 1


def test_fewer_positive_eigenvalues_than_requested(points, caplog):
    with caplog.at_level(logging.WARNING, logger="algorithms.mds"):
        coords = ClassicalMDS(n_components=5).fit_transform(pdist(points))
    assert coords.shape == (10, 3)
    assert "positive eigenvalues" in caplog.text


def test_projection_never_stretches_distances(e):
    d = compute_sample_distances(e)
    coords = ClassicalMDS(n_components=2).fit_transform(d)
    assert coords.shape == (e.shape[1], 2)
    # on Euclidean input the embedding is an orthogonal projection
    assert np.all(pdist(coords) <= d + 1e-6)


def test_invalid_inputs():
    with pytest.raises(ValueError):
        ClassicalMDS(n_components=0)
    with pytest.raises(ValueError, match="square"):
        ClassicalMDS().fit(np.ones((2, 3)))
    with pytest.raises(ValueError, match="symmetric"):
        ClassicalMDS().fit(np.array([[0, 1], [2, 0]]))
    with pytest.raises(ValueError, match="non-negative"):
        ClassicalMDS().fit(np.array([[0, -1], [-1, 0]]))


def test_transform_before_fit():
    with pytest.raises(RuntimeError):
        ClassicalMDS().transform()
