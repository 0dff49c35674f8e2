"""
Hierarchical (Agglomerative) Clustering of Samples.

This module wraps SciPy's agglomerative clustering routines for the tutorial:
pairwise distances between samples, the linkage tree itself and the two ways
of turning a tree into flat clusters (cutting at a height, or asking for a
fixed number of groups).

Samples are the columns of the expression matrix, so every function here
transposes before handing the data to SciPy.

References
----------
[1] Hastie, T., Tibshirani, R., Friedman, J., "The Elements of Statistical
    Learning", 2009, Section 14.3.12 "Hierarchical Clustering".
[2] Mullner, D., "Modern hierarchical, agglomerative clustering algorithms",
    2011, arXiv:1109.2378.
"""

import time
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import cophenet, cut_tree, fcluster, linkage
from scipy.spatial.distance import pdist, squareform

from utils.clustering_metrics import compute_clustering_metrics

LINKAGE_METHODS = ("single", "complete", "average", "ward")


def _samples_matrix(e) -> np.ndarray:
    """Samples x genes view of a genes x samples matrix."""
    values = e.to_numpy() if isinstance(e, pd.DataFrame) else np.asarray(e)
    return values.T.astype(float)


def _relabel_by_appearance(labels: np.ndarray) -> np.ndarray:
    # Cluster 1 is the cluster of the first sample, cluster 2 the next new one, ...
    codes, _ = pd.factorize(np.asarray(labels))
    return codes + 1


def compute_sample_distances(e, metric: str = "euclidean") -> np.ndarray:
    """
    Pairwise distances between samples (columns of `e`).

    Parameters
    ----------
    e : pd.DataFrame or np.ndarray
        Expression matrix (genes x samples).
    metric : str, default="euclidean"
        Any metric accepted by `scipy.spatial.distance.pdist`.

    Returns
    -------
    np.ndarray
        Condensed distance vector of length n * (n - 1) / 2.
    """
    X = _samples_matrix(e)
    if X.shape[0] < 2:
        raise ValueError(f"Need at least 2 samples to compute distances, got {X.shape[0]}")
    return pdist(X, metric=metric)


def distance_matrix(e, metric: str = "euclidean") -> pd.DataFrame:
    """Square sample x sample distance table labelled by sample id."""
    d = squareform(compute_sample_distances(e, metric=metric))
    names = list(e.columns) if isinstance(e, pd.DataFrame) else None
    return pd.DataFrame(d, index=names, columns=names)


def run_hierarchical_once(
        d: np.ndarray,
        method: str = "complete",
        metric: str = "euclidean",
) -> Dict[str, Any]:
    """
    Builds the agglomerative clustering tree once with a specific configuration.

    Parameters
    ----------
    d : np.ndarray
        Condensed distance vector, or a square symmetric distance matrix.
    method : str, default="complete"
        The linkage criterion ("single", "complete", "average", "ward").
    metric : str, default="euclidean"
        The metric used to compute `d`. Only recorded, except that "ward"
        is only meaningful on Euclidean distances.

    Returns
    -------
    dict
        A dictionary containing the linkage matrix, configuration, cophenetic
        correlation and runtime.
    """
    if method not in LINKAGE_METHODS:
        raise ValueError(f"Linkage '{method}' not supported. Use one of {LINKAGE_METHODS}.")
    if method == "ward" and metric != "euclidean":
        raise ValueError("Ward linkage requires euclidean distances.")

    d = np.asarray(d, dtype=float)
    if d.ndim == 2:
        d = squareform(d, checks=True)

    start = time.perf_counter()
    Z = linkage(d, method=method)
    runtime = time.perf_counter() - start

    coph_corr, _ = cophenet(Z, d)

    return {
        "algorithm": "Hierarchical",
        "method": method,
        "metric": metric,
        "n_samples": Z.shape[0] + 1,
        "cophenetic_corr": float(coph_corr),
        "runtime_sec": runtime,
        # the tree is not CSV-friendly; keep it in memory only
        "linkage_matrix": Z,
    }


def cut_by_height(Z: np.ndarray, height: float) -> np.ndarray:
    """
    Flat clusters obtained by cutting the tree at `height`.

    Two samples end up in the same cluster iff they are merged at or below
    `height`. Labels start at 1 and follow the sample order.
    """
    if height <= 0:
        raise ValueError(f"Cut height must be positive, got {height}")
    labels = fcluster(Z, t=height, criterion="distance")
    return _relabel_by_appearance(labels)


def cut_by_k(Z: np.ndarray, k: int) -> np.ndarray:
    """
    Flat clusters with exactly `k` groups.

    Labels start at 1 and follow the sample order.
    """
    n = Z.shape[0] + 1
    if not 1 <= k <= n:
        raise ValueError(f"k must be between 1 and {n}, got {k}")
    labels = cut_tree(Z, n_clusters=k).ravel()
    return _relabel_by_appearance(labels)


def height_for_k(Z: np.ndarray, k: int) -> float:
    """
    A cut height that yields `k` clusters.

    Returns the midpoint between the last merge kept below the cut and the
    first merge above it.
    """
    n = Z.shape[0] + 1
    if not 1 <= k <= n:
        raise ValueError(f"k must be between 1 and {n}, got {k}")

    heights = np.sort(Z[:, 2])
    n_merges = n - k

    if k == 1:
        return float(heights[-1] * 1.05) if heights[-1] > 0 else 1.0

    upper = heights[n_merges]
    lower = heights[n_merges - 1] if n_merges > 0 else 0.0
    if upper <= lower:
        raise ValueError(f"Tied merge heights: no single cut gives exactly {k} clusters")
    return float((lower + upper) / 2)


def compare_linkages(
        e,
        tissue: np.ndarray,
        methods: Sequence[str] = LINKAGE_METHODS,
        k: Optional[int] = None,
        metric: str = "euclidean",
) -> pd.DataFrame:
    """
    Fits every linkage rule and scores the k-cluster cut against the tissues.

    Parameters
    ----------
    e : pd.DataFrame or np.ndarray
        Expression matrix (genes x samples).
    tissue : np.ndarray
        Tissue of every sample.
    methods : Sequence[str]
        Linkage criteria to compare.
    k : int, optional
        Number of clusters. Defaults to the number of tissues.
    metric : str, default="euclidean"
        Distance between samples. Ward is skipped for other metrics.

    Returns
    -------
    pd.DataFrame
        One row per linkage with cophenetic correlation and agreement metrics.
    """
    X = _samples_matrix(e)
    d = compute_sample_distances(e, metric=metric)
    if k is None:
        k = len(pd.unique(np.asarray(tissue)))

    rows = []
    for method in methods:
        if method == "ward" and metric != "euclidean":
            continue
        res = run_hierarchical_once(d, method=method, metric=metric)
        labels = cut_by_k(res["linkage_matrix"], k)
        row = {
            "method": method,
            "k": k,
            "cophenetic_corr": res["cophenetic_corr"],
        }
        row.update(compute_clustering_metrics(X, tissue, labels))
        rows.append(row)

    return pd.DataFrame(rows)
