"""
Jupyter Notebook Export.

Builds a notebook version of the walkthrough: one Markdown cell explaining
each step followed by a code cell that runs it through the project API and
displays its narrative and figures. Learners can then re-run single steps,
change the configuration and watch the results move.
"""

import os
import pprint
from typing import Any, Dict, Optional, Sequence, Tuple

import nbformat as nbf

# --------------------------------------------------------------------------
# Fixed cells
# --------------------------------------------------------------------------
SOURCE_INTRO = """\
# Exploratory clustering of tissue gene expression

This notebook walks through hierarchical clustering, k-means, classical
multidimensional scaling and heatmaps on a gene-expression dataset whose
samples come from several tissues. The tissue labels are never used to build
the clusters, only to judge them.

Run the cells in order. Every step prints a short explanation of what it
found and shows the figures it saved."""

SOURCE_IMPORTS = """\
from IPython.display import Image, Markdown, display

# NOTE: run from the project root so the packages are importable
from tutorial.walkthrough import new_context, run_step


def show(result):
    if result["status"] != "ok":
        print(f"[error] {result['step']}: {result['message']}")
        return
    display(Markdown(result["narrative"]))
    for path in result["figures"]:
        display(Image(filename=path))"""

SOURCE_STEP = """\
result = run_step({step!r}, context)
show(result)"""


def build_tutorial_notebook(
        config: Dict[str, Any],
        step_info: Dict[str, Tuple[str, str]],
        steps: Optional[Sequence[str]] = None,
) -> nbf.NotebookNode:
    """
    Assembles the walkthrough notebook.

    Parameters
    ----------
    config : Dict[str, Any]
        Run configuration, embedded as a literal in the configuration cell.
    step_info : Dict[str, Tuple[str, str]]
        Step name -> (heading, explanation).
    steps : Sequence[str], optional
        Steps to include. Defaults to `config["steps"]`; the notebook export
        step itself is always left out.

    Returns
    -------
    nbformat.NotebookNode
        A v4 notebook.
    """
    steps = list(steps if steps is not None else config.get("steps", step_info))
    steps = [s for s in steps if s != "notebook"]
    unknown = [s for s in steps if s not in step_info]
    if unknown:
        raise ValueError(f"Unknown step(s): {unknown}")

    nb_config = dict(config)
    nb_config["steps"] = steps
    source_config = (
        "# Edit and re-run from here to change the walkthrough\n"
        f"config = {pprint.pformat(nb_config, sort_dicts=False)}\n"
        "context = new_context(config)"
    )

    nb = nbf.v4.new_notebook()
    cells = [
        nbf.v4.new_markdown_cell(SOURCE_INTRO),
        nbf.v4.new_code_cell(SOURCE_IMPORTS),
        nbf.v4.new_code_cell(source_config),
    ]
    for i, step in enumerate(steps, start=1):
        heading, blurb = step_info[step]
        cells.append(nbf.v4.new_markdown_cell(f"## {i}. {heading}\n\n{blurb}"))
        cells.append(nbf.v4.new_code_cell(SOURCE_STEP.format(step=step)))

    nb["cells"] = cells
    nb.metadata["kernelspec"] = {
        "display_name": "Python 3",
        "language": "python",
        "name": "python3",
    }
    return nb


def write_notebook(nb: nbf.NotebookNode, path: str) -> str:
    """Validates and writes the notebook, returning its path."""
    nbf.validate(nb)
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        nbf.write(nb, f)
    print(f"  [Saved notebook] {path}")
    return path
