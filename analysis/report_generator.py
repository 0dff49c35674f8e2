"""
Narrated Report Generator.

Collects what every walkthrough step has to say (a paragraph of prose, the
tables it produced and the figures it saved) and renders it as a single
Markdown document that reads as a tutorial chapter.

Tables are rendered with `DataFrame.to_markdown`, which relies on the
`tabulate` package.
"""

import os
from typing import Dict, List, Optional

import pandas as pd


class TutorialReport:
    """
    Accumulates narrated sections and renders them as Markdown.

    Parameters
    ----------
    title : str
        Document title.
    intro : str, optional
        Paragraph printed under the title.
    """

    def __init__(self, title: str, intro: Optional[str] = None):
        self.title = title
        self.intro = intro
        self.sections: List[Dict] = []

    def add_section(
            self,
            heading: str,
            narrative: str,
            tables: Optional[Dict[str, pd.DataFrame]] = None,
            figures: Optional[List[str]] = None,
    ) -> None:
        self.sections.append({
            "heading": heading,
            "narrative": narrative,
            "tables": tables or {},
            "figures": figures or [],
        })

    def to_markdown(self, relative_to: Optional[str] = None) -> str:
        """
        Renders the report.

        Parameters
        ----------
        relative_to : str, optional
            Directory the Markdown file will live in. Figure links are made
            relative to it so the report can be moved with its figures.
        """
        lines = [f"# {self.title}", ""]
        if self.intro:
            lines += [self.intro, ""]

        for i, section in enumerate(self.sections, start=1):
            lines += [f"## {i}. {section['heading']}", "", section["narrative"], ""]

            for name, table in section["tables"].items():
                lines += [f"**{name}**", "", table.to_markdown(), ""]

            for path in section["figures"]:
                link = os.path.relpath(path, relative_to) if relative_to else path
                caption = os.path.splitext(os.path.basename(path))[0].replace("_", " ")
                lines += [f"![{caption}]({link})", ""]

        return "\n".join(lines).rstrip() + "\n"

    def save(self, path: str) -> str:
        folder = os.path.dirname(path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.to_markdown(relative_to=folder or None))
        print(f"  [Saved report] {path}")
        return path


def _safe_name(name: str) -> str:
    return "".join(c if c.isalnum() or c in "-_" else "_" for c in name).strip("_")


def save_tables(tables: Dict[str, pd.DataFrame], output_dir: str) -> List[str]:
    """
    Writes every table as CSV and returns the paths.

    The index is kept, since contingency tables carry the tissue names there.
    """
    if not tables:
        return []

    os.makedirs(output_dir, exist_ok=True)
    paths = []
    for name, table in tables.items():
        path = os.path.join(output_dir, f"{_safe_name(name)}.csv")
        table.to_csv(path)
        paths.append(path)
    return paths
