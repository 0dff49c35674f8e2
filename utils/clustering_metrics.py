"""
Agreement metrics between clusters and tissues.

The tutorial never trains on the tissue labels; they are only used afterwards
to ask how well an unsupervised partition recovers the biology. This module
provides the contingency table the narration is built around, plus a few
summary scores: Adjusted Rand Index, Purity, F-Measure and, where defined,
the Davies-Bouldin index.

References
----------
[1] Hubert, L., Arabie, P., "Comparing partitions", 1985, Journal of
    Classification, 2(1): 193-218.
[2] Manning, C.D., Raghavan, P., Schutze, H., "Introduction to Information
    Retrieval", 2008, Section 16.3 "Evaluation of clustering".
"""

from typing import Dict

import numpy as np
import pandas as pd
from scipy.optimize import linear_sum_assignment
from sklearn.metrics import (
    adjusted_rand_score,
    davies_bouldin_score,
)


def contingency_table(tissue: np.ndarray, clusters: np.ndarray) -> pd.DataFrame:
    """
    Cross-tabulates true tissues (rows) against cluster labels (columns).

    Rows keep the order in which tissues first appear; columns are sorted
    cluster labels.
    """
    tissue = np.asarray(tissue)
    order = pd.unique(tissue)
    table = pd.crosstab(
        pd.Series(tissue, name="true"),
        pd.Series(np.asarray(clusters), name="cluster"),
    )
    table = table.reindex(order)
    table.index.name = "true"
    return table


def purity_score(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Computes the Purity score for a clustering result.

    Purity is defined as the ratio of correctly assigned points to the total
    number of points, assuming each cluster is assigned to the class which is
    most frequent in that cluster.

    Formula
    -------
    Purity = (1 / N) * sum_k (max_j (n_kj))
    where n_kj is the number of points in cluster k belonging to class j.

    Parameters
    ----------
    y_true : np.ndarray
        True class labels.
    y_pred : np.ndarray
        Predicted cluster labels.

    Returns
    -------
    float
        The purity score in range [0, 1].
    """
    # Rows = True Classes, Cols = Predicted Clusters
    cm = contingency_table(y_true, y_pred).to_numpy()

    # axis=0 looks down columns (finding max class count per cluster)
    return float(np.sum(np.max(cm, axis=0)) / np.sum(cm))


def f_measure_score(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Computes the overall F-measure for the clustering.

    The F-measure is computed for each class against every cluster, the best
    match is kept per class and the result is averaged with class-size
    weights.

    Formula
    -------
    F = sum_i (n_i / N) * max_j (F(i, j))
    where F(i, j) is the F1-score for class i and cluster j.

    Parameters
    ----------
    y_true : np.ndarray
        True class labels.
    y_pred : np.ndarray
        Predicted cluster labels.

    Returns
    -------
    float
        The weighted F-measure score in range [0, 1].
    """
    cm = contingency_table(y_true, y_pred).to_numpy()
    N = cm.sum()
    n_classes, n_clusters = cm.shape

    F_overall = 0.0

    for i in range(n_classes):
        n_c = cm[i, :].sum()  # Total items in class i
        if n_c == 0:
            continue

        best_F_ck = 0.0

        for j in range(n_clusters):
            n_k = cm[:, j].sum()  # Total items in cluster j
            n_ck = cm[i, j]  # Intersection

            if n_ck == 0 or n_k == 0:
                continue

            precision = n_ck / n_k
            recall = n_ck / n_c

            F_ck = 2 * precision * recall / (precision + recall)
            if F_ck > best_F_ck:
                best_F_ck = F_ck

        F_overall += (n_c / N) * best_F_ck

    return float(F_overall)


def compute_clustering_metrics(
        X: np.ndarray,
        y_true: np.ndarray,
        y_pred: np.ndarray
) -> Dict[str, float]:
    """
    Computes a suite of clustering validation metrics.

    Parameters
    ----------
    X : np.ndarray
        The samples x features matrix (required for Davies-Bouldin Index).
    y_true : np.ndarray
        The tissue labels.
    y_pred : np.ndarray
        The predicted cluster labels.

    Returns
    -------
    Dict[str, float]
        'n_clusters', 'ari', 'purity', 'f_measure' and 'davies_bouldin'
        (NaN when the index is undefined for this number of clusters).
    """
    y_pred = np.asarray(y_pred)
    n_clusters = len(np.unique(y_pred))

    # DBI needs 2 <= k < n
    if 2 <= n_clusters < len(y_pred):
        dbi = float(davies_bouldin_score(X, y_pred))
    else:
        dbi = float("nan")

    return {
        "n_clusters": n_clusters,
        "ari": float(adjusted_rand_score(y_true, y_pred)),
        "purity": purity_score(y_true, y_pred),
        "f_measure": f_measure_score(y_true, y_pred),
        "davies_bouldin": dbi,
    }


def map_clusters_to_labels(y_true: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
    """
    Maps cluster ids to tissue names using the Hungarian Algorithm.

    Clusters are matched one-to-one to the tissue they overlap most. When
    there are more clusters than tissues, the clusters left over after the
    assignment take their majority tissue.

    Parameters
    ----------
    y_true : np.ndarray
        Tissue labels.
    y_pred : np.ndarray
        Raw cluster assignments.

    Returns
    -------
    np.ndarray
        One tissue name per sample.
    """
    table = contingency_table(y_true, y_pred)
    counts = table.to_numpy()

    # linear_sum_assignment minimizes cost, so we pass negative counts
    tissue_idx, cluster_idx = linear_sum_assignment(-counts)
    mapping = {
        table.columns[c]: table.index[t] for t, c in zip(tissue_idx, cluster_idx)
    }

    for j, cluster in enumerate(table.columns):
        if cluster not in mapping:
            mapping[cluster] = table.index[int(np.argmax(counts[:, j]))]

    return np.array([mapping[label] for label in np.asarray(y_pred)], dtype=object)
