import json
import os

import pytest

import main


def test_build_config_defaults():
    config = main.build_config(main.parse_args([]))
    assert config == main.RUN_CONFIG
    assert config is not main.RUN_CONFIG


def test_build_config_overrides():
    args = main.parse_args([
        "--expression", "e.csv", "--annotations", "a.csv", "--output-dir", "out",
        "--seed", "7", "--cut-height", "120", "--steps", "load_data", "distances",
    ])
    config = main.build_config(args)
    assert config["dataset"]["synthetic"] is False
    assert config["dataset"]["expression_path"] == "e.csv"
    assert config["output_dir"] == "out"
    assert config["seed"] == 7
    assert config["hierarchical"]["cut_height"] == 120.0
    assert config["steps"] == ["load_data", "distances"]
    # defaults untouched
    assert main.RUN_CONFIG["seed"] == 1


def test_expression_needs_annotations():
    with pytest.raises(ValueError):
        main.build_config(main.parse_args(["--expression", "e.csv"]))


def test_unknown_step_rejected_by_cli():
    with pytest.raises(SystemExit):
        main.parse_args(["--steps", "clustering"])


def test_dry_run(capsys):
    assert main.main(["--dry-run", "--steps", "load_data", "mds"]) == 0
    out = capsys.readouterr().out
    assert "- load_data" in out
    assert "- mds" in out


def test_main_writes_summary(tmp_path):
    out = tmp_path / "results"
    code = main.main(["--synthetic", "--output-dir", str(out), "--steps", "load_data", "distances"])
    assert code == 0

    summary = json.load(open(out / "reports" / "walkthrough_summary.json"))
    assert summary["dataset"] == "simulated"
    assert [s["status"] for s in summary["steps"]] == ["ok", "ok"]


def test_main_reports_failure(tmp_path):
    out = tmp_path / "results"
    assert main.main(["--output-dir", str(out), "--steps", "mds"]) == 1
    assert os.path.isfile(out / "reports" / "walkthrough_summary.json")


def test_unpaired_expression_is_a_usage_error(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main.main(["--annotations", "a.csv"])
    assert excinfo.value.code == 2
    assert "must be given together" in capsys.readouterr().err
