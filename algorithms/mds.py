"""
Classical Multidimensional Scaling (Torgerson / Gower MDS).

Scikit-Learn only ships metric MDS fitted by SMACOF, which is iterative and
depends on its starting point. The tutorial needs the classical solution: the
low-dimensional coordinates whose Euclidean distances best match the sample
distance matrix, obtained in closed form from one eigen-decomposition.

When the distances are Euclidean distances between the samples, the result
coincides with the principal component scores of the samples.

References
----------
[1] Torgerson, W.S., "Multidimensional scaling: I. Theory and method", 1952,
    Psychometrika, 17(4): 401-419.
[2] Gower, J.C., "Some distance properties of latent root and vector methods
    used in multivariate analysis", 1966, Biometrika, 53(3-4): 325-338.
"""

import logging

import numpy as np
from scipy.spatial.distance import squareform

logger = logging.getLogger(__name__)


class ClassicalMDS:
    """
    Classical MDS of a distance matrix.

    Parameters
    ----------
    n_components : int, default=2
        The target dimension of the embedding.
    verbose : bool, default=False
        If True, prints the double-centred matrix and eigenvalues to console.

    Attributes
    ----------
    eigenvalues_ : np.ndarray
        All eigenvalues of the double-centred matrix, decreasing.
    explained_ratio_ : np.ndarray
        Share of the positive eigenvalue mass carried by each kept dimension.
    embedding_ : np.ndarray
        Coordinates of shape (n_samples, n_kept_components).
    """

    def __init__(self, n_components: int = 2, verbose: bool = False):
        if n_components < 1:
            raise ValueError(f"n_components must be >= 1, got {n_components}")
        self.n_components = n_components
        self.verbose = verbose
        self.eigenvalues_ = None
        self.explained_ratio_ = None
        self.embedding_ = None

    @staticmethod
    def _square_distances(d) -> np.ndarray:
        d = np.asarray(d, dtype=float)
        if d.ndim == 1:
            d = squareform(d)
        elif d.ndim != 2 or d.shape[0] != d.shape[1]:
            raise ValueError(f"Distance matrix must be square, got shape {d.shape}")

        if not np.allclose(d, d.T):
            raise ValueError("Distance matrix must be symmetric.")
        if np.any(d < 0):
            raise ValueError("Distances must be non-negative.")
        return d

    def fit(self, d):
        """
        Computes the embedding from a distance matrix.

        Parameters
        ----------
        d : np.ndarray
            Condensed distance vector or square distance matrix.

        Returns
        -------
        self
        """
        D = self._square_distances(d)
        n = D.shape[0]

        # Double centring: B = -1/2 J D^2 J with J = I - 11'/n
        J = np.eye(n) - np.ones((n, n)) / n
        B = -0.5 * J @ (D ** 2) @ J

        if self.verbose:
            print("\n[MDS] Double-centred matrix B (top-left 5x5):")
            print(B[:5, :5])

        # B is symmetric, eigh returns ascending eigenvalues
        eigenvalues, eigenvectors = np.linalg.eigh(B)
        order = np.argsort(eigenvalues)[::-1]
        self.eigenvalues_ = eigenvalues[order]
        eigenvectors = eigenvectors[:, order]

        if self.verbose:
            print("\n[MDS] Leading eigenvalues:", self.eigenvalues_[:self.n_components + 3])

        # Round-off leaves tiny negative eigenvalues on Euclidean input
        tol = max(abs(self.eigenvalues_[0]), 1.0) * 1e-10
        positive = self.eigenvalues_ > tol
        n_keep = min(self.n_components, int(positive.sum()))
        if n_keep < self.n_components:
            logger.warning(
                "Only %d positive eigenvalues; returning %d of %d requested dimensions",
                n_keep, n_keep, self.n_components,
            )

        vectors = eigenvectors[:, :n_keep]

        # Deterministic sign: largest-magnitude entry of each column is positive
        signs = np.sign(vectors[np.argmax(np.abs(vectors), axis=0), np.arange(n_keep)])
        signs[signs == 0] = 1
        vectors = vectors * signs

        self.embedding_ = vectors * np.sqrt(self.eigenvalues_[:n_keep])

        total_positive = np.sum(self.eigenvalues_[positive])
        if total_positive > 0:
            self.explained_ratio_ = self.eigenvalues_[:n_keep] / total_positive
        else:
            self.explained_ratio_ = np.zeros(n_keep)

        return self

    def transform(self) -> np.ndarray:
        """
        Returns the fitted coordinates.

        Classical MDS has no out-of-sample projection; the embedding exists
        only for the samples of the fitted distance matrix.
        """
        if self.embedding_ is None:
            raise RuntimeError("MDS has not been fitted yet. Call fit() first.")
        return self.embedding_

    def fit_transform(self, d) -> np.ndarray:
        """
        Fit the model with `d` and return the embedding.
        """
        self.fit(d)
        return self.transform()
