"""
Figures for the clustering walkthrough.

Every function draws one figure with matplotlib/seaborn, saves it as a PNG
in `output_dir`, closes it and returns the saved path, so the walkthrough can
list the figures in its report.

Colours always encode the true tissue; wherever a clustering result is shown
it sits in a second panel next to the tissue-coloured one so the two can be
compared by eye.
"""

import os
from typing import Dict, List, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.colors import ListedColormap
from matplotlib.patches import Patch
from scipy.cluster.hierarchy import dendrogram

from utils.parser import tissue_codes

# ---------------------------------------------------------
# CONFIGURATION
# ---------------------------------------------------------
PLOT_CONFIG = {
    "dpi": 150,
    "scatter_figsize": (16, 7),
    "heatmap_figsize": (14, 12),
    "contingency_cmap": "Blues",
    "heatmap_colors": 100,
}


def _save(fig, output_dir: str, filename: str) -> str:
    os.makedirs(output_dir, exist_ok=True)
    save_path = os.path.join(output_dir, filename)
    fig.savefig(save_path, dpi=PLOT_CONFIG["dpi"], bbox_inches="tight")
    plt.close(fig)
    print(f"  [Saved] {filename}")
    return save_path


def tissue_palette(tissue: Sequence[str]) -> Dict[str, tuple]:
    """
    Tissue -> colour mapping, in order of first appearance.

    Uses the "tab10" qualitative palette up to ten tissues and "husl" beyond.
    """
    _, order = tissue_codes(np.asarray(tissue))
    name = "tab10" if len(order) <= 10 else "husl"
    colors = sns.color_palette(name, len(order))
    return dict(zip(order, colors))


def _tissue_legend(palette: Dict[str, tuple]) -> List[Patch]:
    return [Patch(facecolor=color, label=name) for name, color in palette.items()]


def plot_dendrogram(
        Z: np.ndarray,
        tissue: Sequence[str],
        output_dir: str,
        filename: str = "01_dendrogram.png",
        cut_height: Optional[float] = None,
        title: str = "Hierarchical clustering of samples",
) -> str:
    """
    Dendrogram with leaves labelled and coloured by tissue.

    Parameters
    ----------
    Z : np.ndarray
        SciPy linkage matrix.
    tissue : Sequence[str]
        Tissue of every sample, in the order used to build `Z`.
    output_dir : str
        Directory to save the figure.
    filename : str
        PNG file name.
    cut_height : float, optional
        If given, a dashed horizontal line marks where the tree is cut.
    title : str
        Figure title.
    """
    tissue = [str(t) for t in tissue]
    palette = tissue_palette(tissue)

    fig, ax = plt.subplots(figsize=(max(12, 0.09 * len(tissue)), 7))
    dendrogram(
        Z,
        labels=tissue,
        ax=ax,
        leaf_font_size=6,
        color_threshold=0,
        above_threshold_color="dimgrey",
    )

    # Leaf text takes the tissue colour
    for label in ax.get_xmajorticklabels():
        label.set_color(palette[label.get_text()])

    if cut_height is not None:
        # Cuts above the root still have to sit inside the axes
        ax.set_ylim(top=max(ax.get_ylim()[1], cut_height * 1.05))
        ax.axhline(cut_height, color="crimson", linestyle="--", linewidth=1)
        ax.text(ax.get_xlim()[1], cut_height, f" h={cut_height:.1f}",
                color="crimson", va="center", fontsize=9)

    ax.set_ylabel("Height (distance at merge)")
    ax.set_title(title)
    ax.legend(handles=_tissue_legend(palette), loc="upper right", fontsize=8, title="tissue")
    return _save(fig, output_dir, filename)


def _plot_side_by_side(
        points: np.ndarray,
        tissue: Sequence[str],
        clusters: Sequence[int],
        xlabel: str,
        ylabel: str,
        title: str,
        output_dir: str,
        filename: str,
) -> str:
    """
    Generates a side-by-side scatter: true tissue (left) vs clusters (right).
    """
    fig, axes = plt.subplots(1, 2, figsize=PLOT_CONFIG["scatter_figsize"])

    df_plot = pd.DataFrame(points[:, :2], columns=["C1", "C2"])
    df_plot["tissue"] = [str(t) for t in tissue]
    df_plot["cluster"] = [str(c) for c in clusters]

    palette = tissue_palette(df_plot["tissue"])
    sns.scatterplot(
        data=df_plot, x="C1", y="C2", hue="tissue", hue_order=list(palette),
        palette=palette, s=30, alpha=0.8, ax=axes[0],
    )
    axes[0].set_title("Coloured by tissue")

    cluster_order = sorted(df_plot["cluster"].unique(), key=int)
    sns.scatterplot(
        data=df_plot, x="C1", y="C2", hue="cluster", hue_order=cluster_order,
        palette=sns.color_palette("Set2", len(cluster_order)), s=30, alpha=0.8,
        ax=axes[1],
    )
    axes[1].set_title("Coloured by cluster")

    for ax in axes:
        ax.set_xlabel(xlabel)
        ax.set_ylabel(ylabel)
        ax.grid(True, linestyle="--", alpha=0.3)
        ax.legend(fontsize=8, loc="best")

    fig.suptitle(title, fontsize=16)
    fig.tight_layout()
    return _save(fig, output_dir, filename)


def plot_gene_pair(
        e: pd.DataFrame,
        gene_a: str,
        gene_b: str,
        tissue: Sequence[str],
        clusters: Sequence[int],
        output_dir: str,
        filename: str = "02_kmeans_two_genes.png",
) -> str:
    """
    Expression of two genes against each other, by tissue and by cluster.
    """
    points = np.column_stack([e.loc[gene_a].to_numpy(), e.loc[gene_b].to_numpy()])
    return _plot_side_by_side(
        points, tissue, clusters,
        xlabel=f"{gene_a} expression", ylabel=f"{gene_b} expression",
        title=f"K-means on two genes ({gene_a}, {gene_b})",
        output_dir=output_dir, filename=filename,
    )


def plot_mds(
        coords: np.ndarray,
        tissue: Sequence[str],
        clusters: Sequence[int],
        output_dir: str,
        filename: str = "03_mds.png",
        explained: Optional[Sequence[float]] = None,
        title: str = "Classical MDS of the sample distances",
) -> str:
    """
    First two MDS coordinates, by tissue and by cluster.
    """
    if coords.shape[1] < 2:
        raise ValueError("MDS plot needs at least 2 dimensions.")

    if explained is not None and len(explained) >= 2:
        xlabel = f"First dimension ({explained[0]:.0%})"
        ylabel = f"Second dimension ({explained[1]:.0%})"
    else:
        xlabel, ylabel = "First dimension", "Second dimension"

    return _plot_side_by_side(
        coords, tissue, clusters, xlabel=xlabel, ylabel=ylabel, title=title,
        output_dir=output_dir, filename=filename,
    )


def plot_expression_heatmap(
        e_sub: pd.DataFrame,
        tissue: Sequence[str],
        output_dir: str,
        filename: str = "04_heatmap.png",
        cmap: str = "GnBu",
        z_score: Optional[int] = None,
        title: Optional[str] = None,
) -> str:
    """
    Clustered heatmap of selected genes with a tissue colour bar.

    Rows (genes) and columns (samples) are both reordered by hierarchical
    clustering; columns are labelled by tissue.

    Parameters
    ----------
    e_sub : pd.DataFrame
        Expression of the selected genes (genes x samples).
    tissue : Sequence[str]
        Tissue of every column.
    output_dir : str
        Directory to save the figure.
    filename : str
        PNG file name.
    cmap : str, default="GnBu"
        Sequential palette, stretched to 100 colours.
    z_score : int, optional
        Passed to seaborn: 0 standardises rows, 1 columns, None keeps raw values.
    title : str, optional
        Figure title.
    """
    tissue = [str(t) for t in tissue]
    palette = tissue_palette(tissue)
    hmcol = ListedColormap(sns.color_palette(cmap, PLOT_CONFIG["heatmap_colors"]))

    grid = sns.clustermap(
        e_sub,
        cmap=hmcol,
        col_colors=[palette[t] for t in tissue],
        xticklabels=tissue,
        yticklabels=True,
        z_score=z_score,
        figsize=PLOT_CONFIG["heatmap_figsize"],
    )
    grid.ax_heatmap.set_xticklabels(grid.ax_heatmap.get_xticklabels(), fontsize=5)
    grid.ax_heatmap.set_yticklabels(grid.ax_heatmap.get_yticklabels(), fontsize=7)
    grid.ax_col_dendrogram.legend(
        handles=_tissue_legend(palette), loc="center", ncol=min(len(palette), 7),
        fontsize=8, frameon=False,
    )
    if title:
        grid.figure.suptitle(title, y=1.02)
    return _save(grid.figure, output_dir, filename)


def plot_contingency(
        table: pd.DataFrame,
        output_dir: str,
        filename: str,
        title: str = "Tissue vs cluster",
) -> str:
    """
    Annotated heatmap of a tissue x cluster count table.
    """
    fig, ax = plt.subplots(figsize=(1.0 + 0.8 * table.shape[1], 1.0 + 0.6 * table.shape[0]))
    sns.heatmap(table, annot=True, fmt="d", cmap=PLOT_CONFIG["contingency_cmap"],
                cbar=False, ax=ax)
    ax.set_title(title, fontsize=12)
    ax.set_xlabel("Cluster")
    ax.set_ylabel("True tissue")
    return _save(fig, output_dir, filename)


def plot_elbow(
        sweep: pd.DataFrame,
        output_dir: str,
        filename: str = "05_kmeans_elbow.png",
        highlight_k: Optional[int] = None,
) -> str:
    """
    Total within-cluster sum of squares against k.
    """
    fig, ax = plt.subplots(figsize=(8, 5))
    sns.lineplot(data=sweep, x="n_clusters", y="inertia", marker="o", ax=ax)
    if highlight_k is not None:
        ax.axvline(highlight_k, color="crimson", linestyle="--", linewidth=1)
    ax.set_title("Elbow Method: K-Means on all genes")
    ax.set_xlabel("Number of clusters (k)")
    ax.set_ylabel("Within-cluster sum of squares")
    ax.grid(True)
    return _save(fig, output_dir, filename)


def plot_linkage_comparison(
        table: pd.DataFrame,
        output_dir: str,
        filename: str = "06_linkage_comparison.png",
        metric: str = "ari",
) -> str:
    """
    Bar chart of one agreement metric per linkage rule.
    """
    if metric not in table.columns:
        raise ValueError(f"Metric '{metric}' not in linkage comparison table.")

    fig, ax = plt.subplots(figsize=(8, 5))
    sns.barplot(data=table, x="method", y=metric, ax=ax, color="steelblue")
    ax.set_title(f"Impact of Linkage on Hierarchical Clustering ({metric})")
    ax.set_xlabel("Linkage")
    return _save(fig, output_dir, filename)
