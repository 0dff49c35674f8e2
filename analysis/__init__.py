"""
Analysis Package.

Figures, the narrated Markdown report and the notebook export of the
clustering walkthrough.

Modules
-------
- visualization: Dendrogram, scatter, heatmap and summary plots.
- report_generator: Markdown report assembled from the step narratives.
- notebook_export: Jupyter notebook version of the walkthrough.
"""
