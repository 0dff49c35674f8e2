import argparse
import copy
import datetime
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from tutorial.walkthrough import PIPELINE_STEPS, run_walkthrough

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# ---------------------------------------------------------
# CONFIGURATION
# ---------------------------------------------------------
RUN_CONFIG = {
    "dataset": {
        # Simulated data unless expression/annotation files are given
        "synthetic": True,
        "expression_path": "datasets/tissue_expression.csv",
        "annotations_path": "datasets/tissue_annotations.csv",
        "sample_column": "sample",
        "tissue_column": "tissue",
        "simulation": {"n_genes": 1000},
    },
    "output_dir": "results",
    "seed": 1,
    "distance_metric": "euclidean",
    "hierarchical": {
        "method": "complete",
        "cut_height": None,  # None -> height giving one cluster per tissue
        "k": 8,
    },
    "kmeans": {
        "n_init": 1,
        "sweep_k": list(range(1, 13)),
        "sweep_n_init": 10,
    },
    "mds": {"n_components": 2},
    "heatmap": {"n_genes": 40, "cmap": "GnBu"},
    "linkage_methods": ["single", "complete", "average", "ward"],
    "steps": PIPELINE_STEPS,
}


# ---------------------------------------------------------
# HELPER & MAIN
# ---------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Exploratory clustering of tissue gene expression, narrated step by step."
    )
    parser.add_argument("--expression", help="Genes x samples expression table (.csv/.tsv).")
    parser.add_argument("--annotations", help="Sample annotation table with sample/tissue columns.")
    parser.add_argument(
        "--synthetic",
        action="store_true",
        help="Use simulated data even if files are configured.",
    )
    parser.add_argument("--output-dir", help="Where figures, tables and reports are written.")
    parser.add_argument("--seed", type=int, help="Random seed for simulation and k-means.")
    parser.add_argument(
        "--cut-height",
        type=float,
        help="Height at which the dendrogram is cut (default: one cluster per tissue).",
    )
    parser.add_argument(
        "--steps",
        nargs="+",
        choices=PIPELINE_STEPS,
        help="Subset of steps to run in order.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned steps and exit.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def build_config(args: argparse.Namespace) -> Dict[str, Any]:
    """Applies command line overrides to a copy of RUN_CONFIG."""
    config = copy.deepcopy(RUN_CONFIG)
    dataset = config["dataset"]

    if args.expression or args.annotations:
        if not (args.expression and args.annotations):
            raise ValueError("--expression and --annotations must be given together.")
        dataset["expression_path"] = args.expression
        dataset["annotations_path"] = args.annotations
        dataset["synthetic"] = False
    if args.synthetic:
        dataset["synthetic"] = True

    if args.output_dir:
        config["output_dir"] = args.output_dir
    if args.seed is not None:
        config["seed"] = args.seed
    if args.cut_height is not None:
        config["hierarchical"]["cut_height"] = args.cut_height
    if args.steps:
        config["steps"] = list(args.steps)
    return config


def save_summary(config: Dict[str, Any], results: List[Dict[str, Any]], path: str) -> str:
    summary = {
        "finished": datetime.datetime.now().isoformat(timespec="seconds"),
        "dataset": "simulated" if config["dataset"]["synthetic"] else config["dataset"]["expression_path"],
        "steps": [
            {
                "step": r["step"],
                "status": r["status"],
                "message": r["message"],
                "figures": r["figures"],
            }
            for r in results
        ],
    }
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)
    return path


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format=LOG_FORMAT)

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    if args.dry_run:
        print("Planned steps:")
        for step in config["steps"]:
            print(f"- {step}")
        return 0

    print(f"Clustering walkthrough started, writing to '{config['output_dir']}/'")
    results = run_walkthrough(config)

    summary_path = save_summary(
        config, results,
        os.path.join(config["output_dir"], "reports", "walkthrough_summary.json"),
    )
    print(f"\nSaved summary: {summary_path}")

    failed = [r["step"] for r in results if r["status"] != "ok"]
    if failed:
        print(f"Steps with errors: {', '.join(failed)}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
