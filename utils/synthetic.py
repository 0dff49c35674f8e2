"""
Simulated stand-in for the tissue gene-expression dataset.

The tutorial is written around a microarray study of 189 samples from seven
human tissues. When that data is not available locally, this module generates
a matrix with the same shape of problem: log-scale expression, one block of
up-regulated marker genes per tissue and a signature shared by the two brain
tissues, so that hierarchical clustering finds a nested structure instead of
seven equidistant blobs.
"""

from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

# Sample counts of the classic teaching dataset, in order of appearance
TISSUE_COUNTS: Dict[str, int] = {
    "kidney": 39,
    "hippocampus": 31,
    "cerebellum": 38,
    "colon": 34,
    "liver": 26,
    "endometrium": 15,
    "placenta": 6,
}

BRAIN_TISSUES = ("hippocampus", "cerebellum")


def simulate_tissue_expression(
        n_genes: int = 1000,
        tissue_counts: Optional[Dict[str, int]] = None,
        n_markers: int = 40,
        marker_shift: float = 2.5,
        n_brain_shared: int = 30,
        noise_sd: float = 0.5,
        random_state: Optional[int] = 1,
) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    Generates a reproducible genes x samples expression matrix.

    Parameters
    ----------
    n_genes : int, default=1000
        Number of genes (rows).
    tissue_counts : Dict[str, int], optional
        Samples per tissue. Defaults to `TISSUE_COUNTS`.
    n_markers : int, default=40
        Marker genes up-regulated in each tissue.
    marker_shift : float, default=2.5
        Log-scale increase of a marker gene in its tissue.
    n_brain_shared : int, default=30
        Genes up-regulated in every brain tissue present.
    noise_sd : float, default=0.5
        Standard deviation of the per-measurement noise.
    random_state : int, optional
        Seed for the random generator.

    Returns
    -------
    e : pd.DataFrame
        Expression matrix, index = gene ids, columns = sample ids.
    tissue : np.ndarray
        Tissue of every sample (column order).
    """
    counts = dict(TISSUE_COUNTS if tissue_counts is None else tissue_counts)
    if not counts or any(n < 1 for n in counts.values()):
        raise ValueError("tissue_counts must list at least one tissue with >= 1 sample")

    brain = [t for t in BRAIN_TISSUES if t in counts]
    n_special = n_markers * len(counts) + (n_brain_shared if len(brain) > 1 else 0)
    if n_genes < n_special:
        raise ValueError(
            f"n_genes={n_genes} is too small for {n_special} marker genes"
        )

    rng = np.random.default_rng(random_state)

    tissue = np.array(
        [name for name, n in counts.items() for _ in range(n)], dtype=object
    )
    n_samples = tissue.size

    # Gene baselines vary a lot more than samples do, as on a real array
    baseline = rng.normal(7.0, 1.5, size=n_genes)
    e = baseline[:, np.newaxis] + rng.normal(0.0, noise_sd, size=(n_genes, n_samples))

    # Small per-array offset
    e += rng.normal(0.0, 0.1, size=n_samples)[np.newaxis, :]

    # Marker blocks land on random rows so the first genes are not informative
    rows = rng.permutation(n_genes)
    cursor = 0
    for name in counts:
        marker_rows = rows[cursor:cursor + n_markers]
        cursor += n_markers
        e[np.ix_(marker_rows, tissue == name)] += marker_shift

    if len(brain) > 1:
        shared_rows = rows[cursor:cursor + n_brain_shared]
        e[np.ix_(shared_rows, np.isin(tissue, brain))] += marker_shift

    genes = [f"gene_{i + 1:05d}" for i in range(n_genes)]
    samples = [f"GSM{i + 1:04d}" for i in range(n_samples)]
    return pd.DataFrame(e, index=genes, columns=samples), tissue


def write_simulated_dataset(
        expression_path: str,
        annotations_path: str,
        **kwargs,
) -> Tuple[pd.DataFrame, np.ndarray]:
    """Simulates a dataset and writes it in the layout `load_tissue_dataset` reads."""
    e, tissue = simulate_tissue_expression(**kwargs)
    e.to_csv(expression_path, index_label="gene")
    pd.DataFrame({"sample": e.columns, "tissue": tissue}).to_csv(
        annotations_path, index=False
    )
    return e, tissue
