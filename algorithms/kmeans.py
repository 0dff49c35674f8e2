"""
K-Means Clustering of Samples (Wrapper).

This module wraps Scikit-Learn's KMeans (Lloyd's algorithm) for the tutorial.
The defaults reproduce the classic textbook setting: centres initialised at
randomly chosen samples and a single start, so that changing the seed visibly
changes the answer. A sweep over k provides the total within-cluster sum of
squares for the elbow plot.

References
----------
[1] Lloyd, S., "Least squares quantization in PCM", 1982, IEEE Transactions on
    Information Theory, 28(2): 129-137.
[2] MacQueen, J., "Some methods for classification and analysis of multivariate
    observations", 1967, Proc. 5th Berkeley Symp. Math. Stat. Prob., pp. 281-297.
"""

import time
from typing import Any, Dict, Iterable, Optional, Union

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans
from tqdm import tqdm


def _as_samples(X: Union[np.ndarray, pd.DataFrame]) -> np.ndarray:
    if isinstance(X, pd.DataFrame):
        X = X.values
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X[:, np.newaxis]
    return X


def run_kmeans_once(
        X: Union[np.ndarray, pd.DataFrame],
        n_clusters: int,
        random_state: Optional[int] = 1,
        n_init: int = 1,
        max_iter: int = 300,
        init: str = "random",
) -> Dict[str, Any]:
    """
    Runs K-Means once with a specific configuration.

    Parameters
    ----------
    X : array-like of shape (n_samples, n_features)
        Samples as rows. Pass the transposed expression matrix.
    n_clusters : int
        The number of clusters to find.
    random_state : int, optional
        Seed for the centre initialisation.
    n_init : int, default=1
        Number of random starts; the best (lowest inertia) is kept.
    max_iter : int, default=300
        Maximum number of Lloyd iterations per start.
    init : str, default="random"
        "random" picks samples as starting centres, "k-means++" spreads them.

    Returns
    -------
    dict
        A dictionary containing:
        - Metadata (algorithm, parameters, runtime, iterations).
        - "inertia": total within-cluster sum of squares.
        - "labels": 1-based cluster labels (kept in memory).
        - "centers": cluster centres of shape (n_clusters, n_features).
    """
    X = _as_samples(X)
    n_samples = X.shape[0]
    if not 1 <= n_clusters <= n_samples:
        raise ValueError(f"n_clusters must be between 1 and {n_samples}, got {n_clusters}")

    start = time.perf_counter()
    model = KMeans(
        n_clusters=n_clusters,
        init=init,
        n_init=n_init,
        max_iter=max_iter,
        random_state=random_state,
    )
    labels = model.fit_predict(X)
    runtime = time.perf_counter() - start

    return {
        "algorithm": "KMeans",
        "n_clusters": n_clusters,
        "n_init": n_init,
        "init": init,
        "random_state": random_state,
        "n_iter": int(model.n_iter_),
        "inertia": float(model.inertia_),
        "runtime_sec": runtime,
        # 1-based to line up with the tree-cut labels
        "labels": labels + 1,
        "centers": model.cluster_centers_,
    }


def kmeans_inertia_sweep(
        X: Union[np.ndarray, pd.DataFrame],
        k_values: Iterable[int],
        random_state: Optional[int] = 1,
        n_init: int = 10,
        show_progress: bool = True,
) -> pd.DataFrame:
    """
    Total within-cluster sum of squares for every k in `k_values`.

    Values of k larger than the number of samples are skipped.

    Returns
    -------
    pd.DataFrame
        Columns 'n_clusters', 'inertia', 'n_iter' and 'runtime_sec'.
    """
    X = _as_samples(X)
    ks = [k for k in k_values if 1 <= k <= X.shape[0]]

    rows = []
    for k in tqdm(ks, unit="k", desc="k-means sweep", disable=not show_progress):
        res = run_kmeans_once(X, k, random_state=random_state, n_init=n_init, init="k-means++")
        rows.append({
            "n_clusters": k,
            "inertia": res["inertia"],
            "n_iter": res["n_iter"],
            "runtime_sec": res["runtime_sec"],
        })

    return pd.DataFrame(rows, columns=["n_clusters", "inertia", "n_iter", "runtime_sec"])
