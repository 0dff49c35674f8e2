"""
Clustering Algorithms Package.

This package contains thin wrappers around the standard routines used by the
tutorial: SciPy agglomerative clustering, Scikit-Learn K-Means and a classical
MDS built on NumPy's symmetric eigen-decomposition.

Modules
-------
- hierarchical: Sample distances, linkage trees and tree cutting.
- kmeans: K-Means (Lloyd's Algorithm) and the inertia sweep over k.
- mds: Classical (Torgerson) Multidimensional Scaling.
"""

from .hierarchical import (
    compute_sample_distances,
    distance_matrix,
    run_hierarchical_once,
    cut_by_height,
    cut_by_k,
    height_for_k,
    compare_linkages,
    LINKAGE_METHODS,
)
from .kmeans import run_kmeans_once, kmeans_inertia_sweep
from .mds import ClassicalMDS
