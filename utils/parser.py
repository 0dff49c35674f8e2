"""
Parser / preprocessing utilities for the tissue gene-expression tutorial.

This module handles all data loading and preprocessing for the expression
matrix (genes as rows, samples as columns) and the per-sample annotation
table that tells us which tissue every sample came from. It reads delimited
text files with pandas, aligns annotations to the matrix columns and imputes
missing values so that the distance computations downstream never see a NaN.

References
----------
[1] Hastie, T., Tibshirani, R., Friedman, J., "The Elements of Statistical
    Learning", 2009, Chapter 14.3 "Cluster Analysis".
"""

import logging
import os
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# Basic helpers
# ---------------------------------------------------------------------

def _infer_separator(filepath: str) -> str:
    name = filepath.lower()
    if name.endswith(".gz"):
        name = name[:-3]
    if name.endswith(".tsv") or name.endswith(".txt"):
        return "\t"
    return ","


def load_expression_matrix(filepath: str) -> pd.DataFrame:
    """
    Loads a genes x samples expression table into a pandas DataFrame.

    The first column holds the gene (or probe) identifiers and becomes the
    index; every other column is one sample. Cells that cannot be parsed as
    numbers are coerced to NaN and handled later by `handle_missing_values`.

    Parameters
    ----------
    filepath : str
        Path to a .csv, .tsv or .txt file (optionally gzipped).

    Returns
    -------
    pd.DataFrame
        Expression values, index = gene ids, columns = sample ids.
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Expression matrix not found at {filepath}")

    df = pd.read_csv(filepath, sep=_infer_separator(filepath), index_col=0)
    df.index = df.index.astype(str)
    df.columns = [str(c) for c in df.columns]

    # 'coerce' turns stray strings ("NA", "?", "") into NaN
    df = df.apply(pd.to_numeric, errors="coerce")

    numeric_cols = [c for c in df.columns if df[c].notna().any()]
    if not numeric_cols:
        raise ValueError(f"No numeric sample columns found in {filepath}")

    return df[numeric_cols]


def load_sample_annotations(
        filepath: str,
        sample_column: str = "sample",
        tissue_column: str = "tissue",
) -> pd.DataFrame:
    """
    Loads the sample annotation table (one row per sample).

    Parameters
    ----------
    filepath : str
        Path to the delimited annotation file.
    sample_column : str, default="sample"
        Column holding the sample ids used as expression matrix headers.
    tissue_column : str, default="tissue"
        Column holding the tissue of origin.

    Returns
    -------
    pd.DataFrame
        Annotations indexed by sample id with a single 'tissue' column.
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Sample annotations not found at {filepath}")

    df = pd.read_csv(filepath, sep=_infer_separator(filepath))

    for col in (sample_column, tissue_column):
        if col not in df.columns:
            raise ValueError(
                f"Column '{col}' missing from {filepath} (found {list(df.columns)})"
            )

    annotations = df[[sample_column, tissue_column]].copy()
    annotations.columns = ["sample", "tissue"]
    annotations["sample"] = annotations["sample"].astype(str)
    annotations["tissue"] = annotations["tissue"].astype(str).str.strip()
    return annotations.set_index("sample")


def align_samples(e: pd.DataFrame, annotations: pd.DataFrame) -> np.ndarray:
    """
    Returns the tissue of every expression column, in column order.

    Annotation rows for samples that are not in the matrix are ignored;
    matrix columns without an annotation, or with more than one, are an error.
    """
    duplicated = annotations.index[annotations.index.duplicated()].unique()
    if len(duplicated):
        preview = ", ".join(map(str, duplicated[:5]))
        raise ValueError(
            f"{len(duplicated)} sample(s) are annotated more than once: {preview}"
        )

    missing = [s for s in e.columns if s not in annotations.index]
    if missing:
        preview = ", ".join(missing[:5])
        raise ValueError(
            f"{len(missing)} sample(s) have no tissue annotation: {preview}"
        )

    extra = len(annotations.index.difference(e.columns))
    if extra:
        logger.debug("Ignoring %d annotation rows without expression data", extra)

    return annotations.loc[list(e.columns), "tissue"].to_numpy(dtype=object)


def handle_missing_values(e: pd.DataFrame) -> Tuple[pd.DataFrame, Dict[str, int]]:
    """
    Imputes missing values in the expression matrix.

    - Genes with no observed value at all are dropped.
    - Remaining gaps are imputed with the gene's median across samples.

    Parameters
    ----------
    e : pd.DataFrame
        Raw expression matrix (genes x samples).

    Returns
    -------
    e : pd.DataFrame
        The cleaned matrix with no NaN values.
    counts : Dict[str, int]
        'n_dropped_genes' and 'n_imputed' for the preprocessing report.
    """
    e = e.copy()

    all_missing = e.isnull().all(axis=1)
    n_dropped = int(all_missing.sum())
    if n_dropped:
        logger.warning("Dropping %d genes with no observed values", n_dropped)
        e = e.loc[~all_missing]

    n_imputed = int(e.isnull().sum().sum())
    if n_imputed:
        # Row-wise median: each gene is imputed from its own distribution
        medians = e.median(axis=1)
        e = e.T.fillna(medians).T

    return e, {"n_dropped_genes": n_dropped, "n_imputed": n_imputed}


def tissue_codes(tissue: np.ndarray) -> Tuple[np.ndarray, List[str]]:
    """
    Integer codes for tissues in order of first appearance.

    Colours and cluster tables follow the order the tissues appear in the
    dataset rather than alphabetical order.
    """
    codes, uniques = pd.factorize(np.asarray(tissue))
    return codes, [str(u) for u in uniques]


def top_variable_genes(e: pd.DataFrame, n: int = 40) -> pd.DataFrame:
    """
    Selects the `n` genes with the largest across-sample variance.

    Parameters
    ----------
    e : pd.DataFrame
        Expression matrix (genes x samples).
    n : int, default=40
        Number of genes to keep. Clipped to the number of genes available.

    Returns
    -------
    pd.DataFrame
        Sub-matrix ordered by decreasing variance.
    """
    if n < 1:
        raise ValueError(f"n must be >= 1, got {n}")

    row_vars = e.var(axis=1, ddof=1)
    # stable sort keeps the file order among ties
    order = np.argsort(-row_vars.to_numpy(), kind="stable")[:min(n, e.shape[0])]
    return e.iloc[order]


# ---------------------------------------------------------------------
# Full dataset loading
# ---------------------------------------------------------------------

def load_tissue_dataset(
        expression_path: str,
        annotations_path: str,
        sample_column: str = "sample",
        tissue_column: str = "tissue",
) -> Tuple[pd.DataFrame, np.ndarray, Dict[str, Any]]:
    """
    Loads and cleans the tissue gene-expression dataset.

    This function orchestrates loading, alignment and missing value handling
    so the walkthrough can start from a clean numeric matrix.

    Parameters
    ----------
    expression_path : str
        Path to the genes x samples expression table.
    annotations_path : str
        Path to the sample annotation table.
    sample_column : str, default="sample"
        Sample id column in the annotation table.
    tissue_column : str, default="tissue"
        Tissue column in the annotation table.

    Returns
    -------
    e : pd.DataFrame
        Expression matrix (genes x samples), NaN free.
    tissue : np.ndarray
        Tissue of every sample, aligned with the columns of `e`.
    info : Dict[str, Any]
        Metadata about the preprocessing steps.
    """
    # 1) Load both tables
    e = load_expression_matrix(expression_path)
    annotations = load_sample_annotations(annotations_path, sample_column, tissue_column)

    # 2) Align annotations to the matrix columns
    tissue = align_samples(e, annotations)

    # 3) Handle missing values
    e, counts = handle_missing_values(e)

    _, tissue_order = tissue_codes(tissue)
    info: Dict[str, Any] = {
        "source": "files",
        "expression_path": expression_path,
        "annotations_path": annotations_path,
        "n_genes": e.shape[0],
        "n_samples": e.shape[1],
        "tissue_order": tissue_order,
        **counts,
    }
    return e, tissue, info


def describe_dataset(tissue: np.ndarray) -> pd.DataFrame:
    """Number of samples per tissue, in order of first appearance."""
    _, order = tissue_codes(tissue)
    counts = pd.Series(np.asarray(tissue)).value_counts()
    return pd.DataFrame({
        "tissue": order,
        "n_samples": [int(counts[t]) for t in order],
    })
