"""
Narrated Clustering Walkthrough.

This module is the tutorial itself. It runs an ordered list of steps over a
tissue gene-expression dataset:

1. Load the data (or simulate it).
2. Compute distances between samples.
3. Build a hierarchical clustering tree and draw the dendrogram.
4. Cut the tree into flat clusters and compare them with the tissues.
5. Run k-means on two genes, then on all genes.
6. Project the samples with classical MDS.
7. Draw a heatmap of the most variable genes.
8. Choose k with the elbow method and compare linkage rules.
9. Write the narrated report and the companion notebook.

Every step reads from and writes to a shared context dict and returns a
result dict with a paragraph of narrative, the tables it built and the
figures it saved. A failing step is recorded and the walkthrough moves on;
steps that need its output then fail with a clear message.
"""

import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import leaves_list
from scipy.spatial.distance import squareform
from sklearn.metrics import adjusted_rand_score
from tqdm import tqdm

from algorithms.hierarchical import (
    compare_linkages,
    compute_sample_distances,
    cut_by_height,
    cut_by_k,
    height_for_k,
    run_hierarchical_once,
)
from algorithms.kmeans import kmeans_inertia_sweep, run_kmeans_once
from algorithms.mds import ClassicalMDS
from analysis import visualization as viz
from analysis.notebook_export import build_tutorial_notebook, write_notebook
from analysis.report_generator import TutorialReport, save_tables
from utils.clustering_metrics import (
    compute_clustering_metrics,
    contingency_table,
    map_clusters_to_labels,
)
from utils.parser import describe_dataset, load_tissue_dataset, tissue_codes, top_variable_genes
from utils.synthetic import simulate_tissue_expression

logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# Step catalogue
# ---------------------------------------------------------
STEP_INFO = {
    "load_data": (
        "The dataset",
        "Load the expression matrix (genes as rows, samples as columns) and the "
        "tissue of every sample. The tissues are kept aside: clustering never "
        "sees them, we only use them to judge the result.",
    ),
    "distances": (
        "Distances between samples",
        "Each sample is a point with one coordinate per gene. Everything that "
        "follows starts from the Euclidean distance between every pair of samples.",
    ),
    "hierarchical": (
        "Hierarchical clustering",
        "Agglomerative clustering starts with every sample on its own and "
        "repeatedly merges the two closest groups. The dendrogram records the "
        "order and height of every merge.",
    ),
    "cut_tree": (
        "Cutting the tree",
        "A dendrogram is not a clustering yet. Cutting it at a height, or asking "
        "for a number of groups, turns it into flat clusters we can compare "
        "with the tissues.",
    ),
    "kmeans_two_genes": (
        "K-means on two genes",
        "K-means needs the number of clusters up front. We start with just two "
        "genes, so the clusters can be drawn in the plane.",
    ),
    "kmeans_all_genes": (
        "K-means on all genes",
        "The same algorithm using every gene.",
    ),
    "mds": (
        "Looking at the clusters with MDS",
        "Multidimensional scaling places the samples in two dimensions while "
        "keeping their distances as faithful as possible, which lets us see the "
        "k-means clusters.",
    ),
    "heatmap": (
        "Heatmap of the most variable genes",
        "A heatmap shows the data itself, with rows and columns reordered by "
        "hierarchical clustering.",
    ),
    "k_selection": (
        "How many clusters?",
        "The within-cluster sum of squares always drops as k grows; the elbow of "
        "the curve is a common rule of thumb for choosing k.",
    ),
    "linkage_comparison": (
        "Does the linkage rule matter?",
        "Single, complete, average and Ward linkage define the distance between "
        "groups differently and can give very different trees.",
    ),
    "report": (
        "Report",
        "Write everything above to a Markdown document.",
    ),
    "notebook": (
        "Notebook",
        "Export the walkthrough as a Jupyter notebook.",
    ),
}

PIPELINE_STEPS: List[str] = list(STEP_INFO)

# Which step provides each context key
_PRODUCERS = {
    "e": "load_data",
    "tissue": "load_data",
    "d": "distances",
    "Z": "hierarchical",
    "km_labels": "kmeans_all_genes",
}


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def ensure_output_dirs(output_dir: str) -> Dict[str, str]:
    dirs = {
        "base_dir": output_dir,
        "figures_dir": os.path.join(output_dir, "figures"),
        "tables_dir": os.path.join(output_dir, "tables"),
        "reports_dir": os.path.join(output_dir, "reports"),
    }
    for path in dirs.values():
        os.makedirs(path, exist_ok=True)
    return dirs


def new_context(config: Dict[str, Any]) -> Dict[str, Any]:
    """Fresh context for a walkthrough run."""
    context: Dict[str, Any] = {"config": config, "results": []}
    context.update(ensure_output_dirs(config["output_dir"]))
    return context


def _require(context: Dict[str, Any], *keys: str) -> None:
    for key in keys:
        if context.get(key) is None:
            raise RuntimeError(
                f"'{key}' is not available; the '{_PRODUCERS[key]}' step must succeed first"
            )


def _n_tissues(context: Dict[str, Any]) -> int:
    return len(tissue_codes(context["tissue"])[1])


def _format_counts(table: pd.DataFrame) -> str:
    return ", ".join(f"{row.tissue} ({row.n_samples})" for row in table.itertuples())


def _describe_agreement(table: pd.DataFrame, metrics: Dict[str, float]) -> str:
    """One paragraph on how a partition lines up with the tissues."""
    split = [t for t, row in table.iterrows() if (row > 0).sum() > 1]
    mixed = [c for c in table.columns if (table[c] > 0).sum() > 1]

    parts = [
        f"The partition has {metrics['n_clusters']} clusters; purity is "
        f"{metrics['purity']:.2f} and the adjusted Rand index is {metrics['ari']:.2f} "
        "(1 means perfect agreement with the tissues, 0 is what random labels give)."
    ]
    if not split and not mixed:
        parts.append("Every cluster corresponds to exactly one tissue.")
    else:
        if split:
            parts.append(f"Tissues split across several clusters: {', '.join(map(str, split))}.")
        if mixed:
            parts.append(
                f"Clusters mixing more than one tissue: {', '.join(map(str, mixed))}."
            )
    return " ".join(parts)


def _contiguous_tissues(Z: np.ndarray, tissue: np.ndarray) -> List[str]:
    """Tissues whose samples form one unbroken run of dendrogram leaves."""
    ordered = np.asarray(tissue)[leaves_list(Z)]
    runs: Dict[str, int] = {}
    previous = None
    for t in ordered:
        if t != previous:
            runs[t] = runs.get(t, 0) + 1
        previous = t
    return [t for t, n in runs.items() if n == 1]


# ---------------------------------------------------------
# Steps
# ---------------------------------------------------------
def step_load_data(context: Dict[str, Any]) -> Dict[str, Any]:
    ds_cfg = context["config"]["dataset"]

    if ds_cfg.get("synthetic", False):
        sim_kwargs = dict(ds_cfg.get("simulation", {}))
        sim_kwargs.setdefault("random_state", context["config"]["seed"])
        e, tissue = simulate_tissue_expression(**sim_kwargs)
        info = {"source": "simulated", "n_genes": e.shape[0], "n_samples": e.shape[1]}
        source = "a simulated stand-in for the tissue dataset"
    else:
        e, tissue, info = load_tissue_dataset(
            ds_cfg["expression_path"],
            ds_cfg["annotations_path"],
            sample_column=ds_cfg.get("sample_column", "sample"),
            tissue_column=ds_cfg.get("tissue_column", "tissue"),
        )
        source = f"'{os.path.basename(ds_cfg['expression_path'])}'"

    context.update(e=e, tissue=tissue, info=info)
    counts = describe_dataset(tissue)

    narrative = (
        f"We use {source}: {e.shape[0]} genes measured on {e.shape[1]} samples "
        f"from {len(counts)} tissues: {_format_counts(counts)}. "
        "Clustering is unsupervised, so the tissue labels are set aside and only "
        "used afterwards to check whether the groups we find make biological sense."
    )
    if info.get("n_imputed") or info.get("n_dropped_genes"):
        narrative += (
            f" Before starting, {info.get('n_dropped_genes', 0)} genes without any "
            f"measurement were dropped and {info.get('n_imputed', 0)} missing values "
            "were replaced by the gene's median."
        )

    return {
        "message": f"{e.shape[0]} genes x {e.shape[1]} samples",
        "narrative": narrative,
        "tables": {"samples_per_tissue": counts.set_index("tissue")},
    }


def step_distances(context: Dict[str, Any]) -> Dict[str, Any]:
    _require(context, "e", "tissue")
    metric = context["config"]["distance_metric"]

    d = compute_sample_distances(context["e"], metric=metric)
    context["d"] = d

    D = squareform(d)
    tissue = np.asarray(context["tissue"])
    same = tissue[:, np.newaxis] == tissue[np.newaxis, :]
    off_diag = ~np.eye(len(tissue), dtype=bool)
    within = D[same & off_diag]
    between = D[~same]

    narrative = (
        f"Treating every sample as a point in {context['e'].shape[0]}-dimensional space, "
        f"we compute the {metric} distance between all {len(d)} pairs of samples. "
        f"Distances range from {d.min():.1f} to {d.max():.1f} (median {np.median(d):.1f})."
    )
    if within.size and between.size:
        narrative += (
            f" Two samples of the same tissue are on average {within.mean():.1f} apart, "
            f"against {between.mean():.1f} for samples of different tissues: "
            "the distances already carry the tissue signal the clustering will try to recover."
        )

    summary = pd.DataFrame({
        "pairs": ["same tissue", "different tissue"],
        "mean_distance": [within.mean() if within.size else np.nan,
                          between.mean() if between.size else np.nan],
        "n_pairs": [within.size // 2, between.size // 2],
    }).set_index("pairs")

    return {
        "message": f"{len(d)} pairwise distances",
        "narrative": narrative,
        "tables": {"distance_summary": summary},
    }


def step_hierarchical(context: Dict[str, Any]) -> Dict[str, Any]:
    _require(context, "d", "tissue")
    cfg = context["config"]
    method = cfg["hierarchical"]["method"]

    res = run_hierarchical_once(context["d"], method=method, metric=cfg["distance_metric"])
    Z = res["linkage_matrix"]
    context.update(Z=Z, hc=res)

    fig = viz.plot_dendrogram(
        Z, context["tissue"], context["figures_dir"], "01_dendrogram.png",
        title=f"Hierarchical clustering ({method} linkage)",
    )

    contiguous = _contiguous_tissues(Z, context["tissue"])
    n_t = _n_tissues(context)
    narrative = (
        f"With {method} linkage the distance between two groups is "
        + {
            "complete": "the largest distance between their members",
            "single": "the smallest distance between their members",
            "average": "the average distance between their members",
            "ward": "the increase in within-group variance caused by merging them",
        }[method]
        + f". The {res['n_samples']} samples are merged in {res['n_samples'] - 1} steps; "
        f"the final merge happens at height {Z[-1, 2]:.1f}. Labelling the leaves "
        f"by tissue, {len(contiguous)} of the {n_t} tissues form a single unbroken "
        "branch"
        + (f" ({', '.join(contiguous)})" if contiguous else "")
        + f". The cophenetic correlation, {res['cophenetic_corr']:.2f}, measures how "
        "well merge heights preserve the original distances."
    )
    return {
        "message": f"{method} linkage, cophenetic r={res['cophenetic_corr']:.2f}",
        "narrative": narrative,
        "figures": [fig],
    }


def step_cut_tree(context: Dict[str, Any]) -> Dict[str, Any]:
    _require(context, "Z", "tissue", "e")
    cfg = context["config"]["hierarchical"]
    Z, tissue = context["Z"], context["tissue"]
    X = context["e"].to_numpy().T
    n_t = _n_tissues(context)

    height = cfg.get("cut_height")
    height_source = "configured"
    if height is None:
        height = height_for_k(Z, n_t)
        height_source = f"chosen to give {n_t} groups, one per tissue"

    by_height = cut_by_height(Z, height)
    table_h = contingency_table(tissue, by_height)
    metrics_h = compute_clustering_metrics(X, tissue, by_height)

    k = cfg["k"]
    by_k = cut_by_k(Z, k)
    table_k = contingency_table(tissue, by_k)
    metrics_k = compute_clustering_metrics(X, tissue, by_k)

    context.update(hc_height_labels=by_height, hc_k_labels=by_k)

    figures = [
        viz.plot_dendrogram(
            Z, tissue, context["figures_dir"], "01b_dendrogram_cut.png",
            cut_height=height, title=f"Cutting the tree at height {height:.1f}",
        ),
        viz.plot_contingency(table_h, context["figures_dir"], "01c_tree_cut_height.png",
                             title=f"Tissue vs cluster (cut at h={height:.1f})"),
        viz.plot_contingency(table_k, context["figures_dir"], "01d_tree_cut_k.png",
                             title=f"Tissue vs cluster (k={k})"),
    ]

    narrative = (
        f"Cutting the tree at height {height:.1f} ({height_source}) keeps together "
        "samples that were merged below that line. "
        + _describe_agreement(table_h, metrics_h)
        + f" Asking instead for exactly k={k} clusters: "
        + _describe_agreement(table_k, metrics_k)
    )
    return {
        "message": f"h={height:.1f} -> {metrics_h['n_clusters']} clusters; k={k}",
        "narrative": narrative,
        "tables": {
            "tree_cut_height": table_h,
            f"tree_cut_k{k}": table_k,
            "tree_cut_metrics": pd.DataFrame(
                [dict(cut=f"height={height:.1f}", **metrics_h), dict(cut=f"k={k}", **metrics_k)]
            ).set_index("cut"),
        },
        "figures": figures,
    }


def step_kmeans_two_genes(context: Dict[str, Any]) -> Dict[str, Any]:
    _require(context, "e", "tissue")
    cfg = context["config"]
    e, tissue = context["e"], context["tissue"]
    if e.shape[0] < 2:
        raise ValueError("Need at least two genes for the two-gene example.")

    gene_a, gene_b = e.index[0], e.index[1]
    X2 = e.iloc[:2].to_numpy().T
    k = _n_tissues(context)

    res = run_kmeans_once(X2, k, random_state=cfg["seed"], n_init=cfg["kmeans"]["n_init"])
    table = contingency_table(tissue, res["labels"])
    metrics = compute_clustering_metrics(X2, tissue, res["labels"])

    fig = viz.plot_gene_pair(e, gene_a, gene_b, tissue, res["labels"], context["figures_dir"])

    narrative = (
        f"Using only the first two genes ({gene_a} and {gene_b}) and k={k}, one cluster "
        f"per tissue, k-means converges in {res['n_iter']} iterations. "
        + _describe_agreement(table, metrics)
    )
    if metrics["ari"] < 0.3:
        narrative += (
            " The tissues overlap heavily in the left panel, so the clusters on the "
            "right are little more than slices of one cloud of points: two genes out "
            "of thousands carry little information about tissue."
        )
    else:
        narrative += (
            " These two genes happen to separate some tissues on their own, which is "
            "the exception rather than the rule."
        )
    return {
        "message": f"k={k}, ARI={metrics['ari']:.2f}",
        "narrative": narrative,
        "tables": {"kmeans_two_genes": table},
        "figures": [fig],
    }


def step_kmeans_all_genes(context: Dict[str, Any]) -> Dict[str, Any]:
    _require(context, "e", "tissue")
    cfg = context["config"]
    e, tissue = context["e"], context["tissue"]
    X = e.to_numpy().T
    k = _n_tissues(context)
    seed = cfg["seed"]

    res = run_kmeans_once(X, k, random_state=seed, n_init=cfg["kmeans"]["n_init"])
    table = contingency_table(tissue, res["labels"])
    metrics = compute_clustering_metrics(X, tissue, res["labels"])
    context.update(km_labels=res["labels"], km=res)

    # Name every cluster after the tissue it matches best
    named = map_clusters_to_labels(tissue, res["labels"])
    matched = float(np.mean(named == np.asarray(tissue, dtype=object)))

    # Same data, another seed: how stable is a single random start?
    rerun = run_kmeans_once(X, k, random_state=seed + 1, n_init=cfg["kmeans"]["n_init"])
    stability = adjusted_rand_score(res["labels"], rerun["labels"])

    fig = viz.plot_contingency(table, context["figures_dir"], "02b_kmeans_all_genes.png",
                               title=f"Tissue vs k-means cluster (k={k})")

    narrative = (
        f"With all {e.shape[0]} genes and k={k}, k-means (seed {seed}, "
        f"{cfg['kmeans']['n_init']} start(s)) reaches a within-cluster sum of squares of "
        f"{res['inertia']:.1f}. "
        + _describe_agreement(table, metrics)
        + f" Naming each cluster after the tissue it overlaps most, {matched:.0%} of "
        "the samples land in a cluster carrying their own tissue's name."
        + f" Re-running with seed {seed + 1} gives a partition whose agreement with the "
        f"first one is ARI={stability:.2f}; k-means only finds a local optimum, so "
        "the starting centres matter."
    )
    return {
        "message": f"k={k}, ARI={metrics['ari']:.2f}, rerun ARI={stability:.2f}",
        "narrative": narrative,
        "tables": {"kmeans_all_genes": table},
        "figures": [fig],
    }


def step_mds(context: Dict[str, Any]) -> Dict[str, Any]:
    _require(context, "d", "tissue", "km_labels")
    cfg = context["config"]["mds"]

    mds = ClassicalMDS(n_components=cfg["n_components"])
    coords = mds.fit_transform(context["d"])
    context.update(mds_coords=coords, mds=mds)

    if coords.shape[1] < 2:
        raise ValueError("MDS returned fewer than two dimensions; nothing to plot.")

    fig = viz.plot_mds(
        coords, context["tissue"], context["km_labels"], context["figures_dir"],
        explained=mds.explained_ratio_,
    )

    explained = mds.explained_ratio_
    narrative = (
        "Classical MDS finds coordinates whose distances approximate the sample "
        f"distances. The first two dimensions capture {explained[0]:.0%} and "
        f"{explained[1]:.0%} of the total, {explained[:2].sum():.0%} together, so the "
        "plot is a faithful but incomplete picture. Comparing the panels shows which "
        "tissues k-means kept apart and which it lumped together or cut in two."
    )
    coords_table = pd.DataFrame(
        {"dimension": np.arange(1, len(explained) + 1), "explained_ratio": explained}
    ).set_index("dimension")
    return {
        "message": f"explained {explained[:2].sum():.0%} in 2D",
        "narrative": narrative,
        "tables": {"mds_explained": coords_table},
        "figures": [fig],
    }


def step_heatmap(context: Dict[str, Any]) -> Dict[str, Any]:
    _require(context, "e", "tissue")
    cfg = context["config"]["heatmap"]

    e_sub = top_variable_genes(context["e"], n=cfg["n_genes"])
    fig = viz.plot_expression_heatmap(
        e_sub, context["tissue"], context["figures_dir"], cmap=cfg["cmap"],
        title=f"Top {e_sub.shape[0]} most variable genes",
    )

    variances = e_sub.var(axis=1, ddof=1).rename("variance").to_frame()
    narrative = (
        f"We keep the {e_sub.shape[0]} genes with the largest variance across samples "
        f"(from {variances['variance'].iloc[-1]:.2f} up to {variances['variance'].iloc[0]:.2f}) "
        f"and show them as colours on a {cfg['cmap']} scale. Rows and columns are "
        "reordered by hierarchical clustering and the bar above the columns gives "
        "the tissue, so blocks of genes that are high in one tissue and low in the "
        "others stand out as coloured rectangles."
    )
    return {
        "message": f"{e_sub.shape[0]} genes",
        "narrative": narrative,
        "tables": {"top_variable_genes": variances},
        "figures": [fig],
    }


def _elbow_k(sweep: pd.DataFrame) -> Optional[int]:
    if len(sweep) < 3:
        return None
    inertia = sweep["inertia"].to_numpy()
    # largest second difference = sharpest bend
    bend = inertia[:-2] - 2 * inertia[1:-1] + inertia[2:]
    return int(sweep["n_clusters"].iloc[int(np.argmax(bend)) + 1])


def step_k_selection(context: Dict[str, Any]) -> Dict[str, Any]:
    _require(context, "e", "tissue")
    cfg = context["config"]
    X = context["e"].to_numpy().T
    n_t = _n_tissues(context)

    sweep = kmeans_inertia_sweep(
        X, cfg["kmeans"]["sweep_k"], random_state=cfg["seed"],
        n_init=cfg["kmeans"]["sweep_n_init"],
    )
    if sweep.empty:
        raise ValueError("No valid k in the sweep range.")

    fig = viz.plot_elbow(sweep, context["figures_dir"], highlight_k=n_t)
    elbow = _elbow_k(sweep)

    first, last = sweep.iloc[0], sweep.iloc[-1]
    narrative = (
        f"The within-cluster sum of squares drops from {first['inertia']:.1f} at "
        f"k={int(first['n_clusters'])} to {last['inertia']:.1f} at k={int(last['n_clusters'])}. "
        "It can only go down as k grows, so the lowest value is no guide; we look for "
        "the point where adding clusters stops paying off."
    )
    if elbow is not None:
        narrative += (
            f" The curve bends most sharply at k={elbow}; the dataset has {n_t} tissues."
        )
    return {
        "message": f"elbow at k={elbow}",
        "narrative": narrative,
        "tables": {"kmeans_sweep": sweep.set_index("n_clusters")},
        "figures": [fig],
    }


def step_linkage_comparison(context: Dict[str, Any]) -> Dict[str, Any]:
    _require(context, "e", "tissue")
    cfg = context["config"]

    table = compare_linkages(
        context["e"], context["tissue"], methods=cfg["linkage_methods"],
        metric=cfg["distance_metric"],
    )
    if table.empty:
        raise ValueError("No linkage method could be evaluated.")

    fig = viz.plot_linkage_comparison(table, context["figures_dir"])
    best = table.loc[table["ari"].idxmax()]
    worst = table.loc[table["ari"].idxmin()]

    narrative = (
        f"Cutting each tree into k={int(best['k'])} groups, {best['method']} linkage "
        f"agrees best with the tissues (ARI {best['ari']:.2f}) and {worst['method']} "
        f"worst (ARI {worst['ari']:.2f})."
    )
    if "single" in set(table["method"]):
        narrative += (
            " Single linkage tends to chain samples one by one onto a large group, "
            "which typically leaves a few tiny clusters and one huge one."
        )
    return {
        "message": f"best: {best['method']}",
        "narrative": narrative,
        "tables": {"linkage_comparison": table.set_index("method")},
        "figures": [fig],
    }


def step_report(context: Dict[str, Any]) -> Dict[str, Any]:
    report = TutorialReport(
        title="Exploratory clustering of tissue gene expression",
        intro=(
            "A walk through hierarchical clustering, k-means, multidimensional "
            "scaling and heatmaps on a gene-expression dataset with known tissues."
        ),
    )
    n_sections = 0
    for res in context["results"]:
        if res["status"] != "ok" or res["step"] in ("report", "notebook"):
            continue
        heading = STEP_INFO[res["step"]][0]
        report.add_section(heading, res["narrative"], res["tables"], res["figures"])
        n_sections += 1

    if n_sections == 0:
        raise RuntimeError("No successful step to report on.")

    path = report.save(os.path.join(context["reports_dir"], "clustering_tutorial.md"))
    context["report_path"] = path
    return {
        "message": f"{n_sections} sections -> {path}",
        "narrative": f"The narrated report was written to {path}.",
    }


def step_notebook(context: Dict[str, Any]) -> Dict[str, Any]:
    nb = build_tutorial_notebook(context["config"], STEP_INFO)
    path = write_notebook(nb, os.path.join(context["base_dir"], "clustering_tutorial.ipynb"))
    context["notebook_path"] = path
    return {
        "message": f"{len(nb.cells)} cells -> {path}",
        "narrative": f"The walkthrough was exported as a notebook to {path}.",
    }


STEP_FUNCTIONS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "load_data": step_load_data,
    "distances": step_distances,
    "hierarchical": step_hierarchical,
    "cut_tree": step_cut_tree,
    "kmeans_two_genes": step_kmeans_two_genes,
    "kmeans_all_genes": step_kmeans_all_genes,
    "mds": step_mds,
    "heatmap": step_heatmap,
    "k_selection": step_k_selection,
    "linkage_comparison": step_linkage_comparison,
    "report": step_report,
    "notebook": step_notebook,
}


# ---------------------------------------------------------
# Runner
# ---------------------------------------------------------
def run_step(step_name: str, context: Dict[str, Any]) -> Dict[str, Any]:
    """
    Runs one step and normalises its result.

    Exceptions, including failures to write the step tables, are logged and
    turned into a result with status "error".
    """
    if step_name not in STEP_FUNCTIONS:
        raise ValueError(f"Unknown step '{step_name}'. Available: {PIPELINE_STEPS}")

    result: Dict[str, Any] = {
        "step": step_name,
        "status": "ok",
        "message": "",
        "narrative": "",
        "tables": {},
        "figures": [],
    }
    try:
        result.update(STEP_FUNCTIONS[step_name](context))
        save_tables(result["tables"], context["tables_dir"])
    except Exception as e:
        logger.exception("Step '%s' failed", step_name)
        result.update(status="error", message=str(e))

    context["results"].append(result)
    return result


def run_walkthrough(
        config: Dict[str, Any],
        steps: Optional[Sequence[str]] = None,
        show_progress: bool = True,
) -> List[Dict[str, Any]]:
    """
    Runs the walkthrough steps in order, narrating each one.

    Parameters
    ----------
    config : Dict[str, Any]
        Run configuration (see `main.RUN_CONFIG`).
    steps : Sequence[str], optional
        Subset of steps, in order. Defaults to `config["steps"]`.
    show_progress : bool, default=True
        Show a tqdm progress bar.

    Returns
    -------
    List[Dict[str, Any]]
        One result dict per step.
    """
    steps = list(steps if steps is not None else config.get("steps", PIPELINE_STEPS))
    unknown = [s for s in steps if s not in STEP_FUNCTIONS]
    if unknown:
        raise ValueError(f"Unknown step(s): {unknown}. Available: {PIPELINE_STEPS}")

    context = new_context(config)

    pbar = tqdm(steps, unit="step", disable=not show_progress)
    for step in pbar:
        pbar.set_description(f"{step:<20}")
        result = run_step(step, context)

        heading = STEP_INFO[step][0]
        if result["status"] == "ok":
            pbar.write(f"\n== {heading} ==\n{result['narrative']}")
        else:
            pbar.write(f"\n[error] {step}: {result['message']}")

    return context["results"]
