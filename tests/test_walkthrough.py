import copy
import os

import pytest

from main import RUN_CONFIG
from tutorial.walkthrough import PIPELINE_STEPS, new_context, run_step, run_walkthrough
from utils.synthetic import write_simulated_dataset

SMALL_SIMULATION = {
    "n_genes": 300,
    "tissue_counts": {"kidney": 8, "hippocampus": 6, "cerebellum": 7, "liver": 5},
    "n_markers": 25,
    "n_brain_shared": 20,
}


@pytest.fixture
def config(tmp_path):
    config = copy.deepcopy(RUN_CONFIG)
    config["dataset"]["synthetic"] = True
    config["dataset"]["simulation"] = dict(SMALL_SIMULATION)
    config["output_dir"] = str(tmp_path / "results")
    config["hierarchical"]["k"] = 5
    config["kmeans"]["sweep_k"] = [1, 2, 3, 4, 5, 6]
    config["kmeans"]["sweep_n_init"] = 3
    config["heatmap"]["n_genes"] = 20
    return config


def test_full_walkthrough(config):
    results = run_walkthrough(config, show_progress=False)

    assert [r["step"] for r in results] == PIPELINE_STEPS
    failed = {r["step"]: r["message"] for r in results if r["status"] != "ok"}
    assert failed == {}

    out = config["output_dir"]
    assert os.path.isfile(os.path.join(out, "reports", "clustering_tutorial.md"))
    assert os.path.isfile(os.path.join(out, "clustering_tutorial.ipynb"))
    assert os.path.isfile(os.path.join(out, "figures", "01_dendrogram.png"))
    assert os.path.isfile(os.path.join(out, "figures", "04_heatmap.png"))
    assert os.path.isfile(os.path.join(out, "tables", "tree_cut_k5.csv"))

    by_step = {r["step"]: r for r in results}
    assert "26 samples" in by_step["load_data"]["narrative"]
    # one cluster per tissue recovers the simulated tissues exactly
    assert "Every cluster corresponds to exactly one tissue" in by_step["cut_tree"]["narrative"]


def test_report_contains_every_successful_step(config):
    run_walkthrough(config, show_progress=False)
    text = open(os.path.join(config["output_dir"], "reports", "clustering_tutorial.md"),
                encoding="utf-8").read()
    assert "## 1. The dataset" in text
    assert "Heatmap of the most variable genes" in text
    assert "Notebook" not in text


def test_missing_input_is_reported(config):
    results = run_walkthrough(config, steps=["mds"], show_progress=False)
    assert results[0]["status"] == "error"
    assert "'distances' step must succeed first" in results[0]["message"]


def test_unknown_step_rejected(config):
    with pytest.raises(ValueError):
        run_walkthrough(config, steps=["load_data", "clustering"], show_progress=False)
    with pytest.raises(ValueError):
        run_step("clustering", new_context(config))


def test_configured_cut_height(config):
    config["hierarchical"]["cut_height"] = 1e6
    context = new_context(config)
    for step in ["load_data", "distances", "hierarchical", "cut_tree"]:
        assert run_step(step, context)["status"] == "ok"
    assert set(context["hc_height_labels"]) == {1}


def test_load_from_files(config, tmp_path):
    expr = tmp_path / "expr.csv"
    annot = tmp_path / "annot.csv"
    write_simulated_dataset(str(expr), str(annot), random_state=3, **SMALL_SIMULATION)
    config["dataset"].update(synthetic=False, expression_path=str(expr),
                             annotations_path=str(annot))

    context = new_context(config)
    result = run_step("load_data", context)
    assert result["status"] == "ok"
    assert context["e"].shape == (300, 26)
    assert "'expr.csv'" in result["narrative"]


def test_missing_file_is_an_error(config):
    config["dataset"].update(synthetic=False, expression_path="nope.csv",
                             annotations_path="nope_annot.csv")
    result = run_step("load_data", new_context(config))
    assert result["status"] == "error"
    assert "not found" in result["message"]


def test_kmeans_all_genes_names_clusters(config):
    context = new_context(config)
    run_step("load_data", context)
    result = run_step("kmeans_all_genes", context)
    assert result["status"] == "ok"
    assert "carrying their own tissue's name" in result["narrative"]
    assert len(context["km_labels"]) == 26


def test_walkthrough_continues_after_failed_step(config):
    results = run_walkthrough(config, steps=["mds", "load_data", "heatmap"], show_progress=False)
    assert [r["status"] for r in results] == ["error", "ok", "ok"]
    assert os.path.isfile(os.path.join(config["output_dir"], "figures", "04_heatmap.png"))


def test_table_write_failure_is_recorded(config, tmp_path):
    context = new_context(config)
    blocked = tmp_path / "not_a_dir"
    blocked.write_text("")
    context["tables_dir"] = str(blocked)

    failed = run_step("load_data", context)
    assert failed["status"] == "error"
    # outputs stay in the context; only writing the tables failed
    assert run_step("distances", context)["status"] == "error"
    context["tables_dir"] = str(tmp_path / "tables")
    assert run_step("distances", context)["status"] == "ok"
