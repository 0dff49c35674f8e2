"""
Utilities package initialization.

Exposes key data loading, simulation and validation functions to the
top-level utils package for cleaner imports throughout the project.
"""

from .parser import (
    load_tissue_dataset,
    top_variable_genes,
    tissue_codes,
    describe_dataset,
)

from .synthetic import simulate_tissue_expression, TISSUE_COUNTS

from .clustering_metrics import (
    compute_clustering_metrics,
    contingency_table,
    map_clusters_to_labels,
    purity_score,
    f_measure_score,
)
