"""
Report Module for RNA-seq Analysis Toolkit

Renders the HTML analysis report from a jinja2 template shipped with the
package. Tables are rendered with DataFrame.to_html and figures are embedded
as inline SVG.
"""

import os
import numpy as np
import pandas as pd
from datetime import datetime
from jinja2 import Environment, PackageLoader, select_autoescape
from matplotlib.figure import Figure
from typing import Any, Dict, List, Optional

from .statistical_analysis import DifferentialExpressionConfig, count_regulated, top_regulated_genes
from .visualization import figure_to_svg


REPORT_TEMPLATE = "analysis_report.html"


def _environment() -> Environment:
    return Environment(
        loader=PackageLoader("rnaseq_toolkit", "templates"),
        autoescape=select_autoescape(["html"]),
    )


def dataframe_to_html(df: pd.DataFrame, max_rows: Optional[int] = 50, index: bool = False,
                      float_format: str = "{:.4g}") -> str:
    """HTML table markup for a DataFrame, empty-table aware."""
    if df is None or df.empty:
        return "<p><em>No entries.</em></p>"
    shown = df.head(max_rows) if max_rows else df
    return shown.to_html(
        index=index,
        border=0,
        na_rep="",
        float_format=float_format.format,
        classes="dataframe",
    )


def _svg_or_blank(fig: Optional[Figure]) -> str:
    return figure_to_svg(fig) if fig is not None else ""


def build_report_context(
    title: str,
    input_file: str,
    config: DifferentialExpressionConfig,
    group_counts: pd.Series,
    n_genes_total: int,
    n_samples: int,
    filter_threshold: float,
    n_genes_expressed: int,
    library_summary: pd.DataFrame,
    figures: Dict[str, Optional[Figure]],
    results_by_contrast: Dict[str, pd.DataFrame],
    volcano_figures: Dict[str, Figure],
    contrast_titles: Dict[str, str],
    enrichment_by_contrast: Optional[Dict[str, Dict[str, pd.DataFrame]]] = None,
    enrichment_figures: Optional[Dict[str, Dict[str, Optional[Figure]]]] = None,
    n_components: int = 2,
    n_hvg: int = 500,
    top_n: int = 25,
) -> Dict[str, Any]:
    """
    Collect everything the report template needs.

    Parameters:
    -----------
    figures : Dict[str, Figure]
        QC figures keyed by 'filter', 'library', 'pca' and 'correlation'
    results_by_contrast : Dict[str, pd.DataFrame]
        Classified result tables keyed by contrast name
    volcano_figures : Dict[str, Figure]
        Volcano figure per contrast name
    contrast_titles : Dict[str, str]
        Display title per contrast name
    enrichment_by_contrast : Dict[str, Dict[str, pd.DataFrame]], optional
        Contrast name -> direction -> enrichment table
    enrichment_figures : Dict[str, Dict[str, Figure]], optional
        Contrast name -> direction -> enrichment bar plot (None when empty)

    Returns:
    --------
    Dict[str, Any]
    """

    group_table = group_counts.rename("samples").rename_axis(config.group_column).reset_index()

    contrasts: List[Dict[str, Any]] = []
    for name, classified in results_by_contrast.items():
        counts = count_regulated(classified)
        top = top_regulated_genes(classified, config, n=top_n)
        top = top[["ensg", "symbol", "avgExpr", "logFC", "pvalue", "padj", "status"]]

        enrichment_tables = {}
        enrichment_svgs = {}
        if enrichment_by_contrast and name in enrichment_by_contrast:
            for direction, table in enrichment_by_contrast[name].items():
                shown = table
                if not table.empty:
                    shown = table[["Library", "Term", "P_Value", "Adj_P_Value", "Combined_Score", "N_Genes", "Genes"]]
                enrichment_tables[direction] = dataframe_to_html(shown, max_rows=top_n)
        if enrichment_figures and name in enrichment_figures:
            for direction, fig in enrichment_figures[name].items():
                enrichment_svgs[direction] = _svg_or_blank(fig)

        contrasts.append({
            "name": name,
            "title": contrast_titles.get(name, name),
            "n_up": counts["up"],
            "n_down": counts["down"],
            "volcano_figure": _svg_or_blank(volcano_figures.get(name)),
            "top_table": dataframe_to_html(top),
            "enrichment": enrichment_tables,
            "enrichment_figures": enrichment_svgs,
        })

    return {
        "title": title,
        "generated": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "input_file": input_file,
        "design": config.design,
        "reference_level": config.reference_level,
        "n_genes_total": n_genes_total,
        "n_genes_expressed": n_genes_expressed,
        "n_samples": n_samples,
        "n_components": n_components,
        "n_hvg": n_hvg,
        "filter_threshold": filter_threshold if np.isfinite(filter_threshold) else float("nan"),
        "group_table": dataframe_to_html(group_table),
        "library_table": dataframe_to_html(library_summary, index=True),
        "filter_figure": _svg_or_blank(figures.get("filter")),
        "library_figure": _svg_or_blank(figures.get("library")),
        "pca_figure": _svg_or_blank(figures.get("pca")),
        "correlation_figure": _svg_or_blank(figures.get("correlation")),
        "logfc_threshold": config.logfc_threshold,
        "p_value_threshold": config.p_value_threshold,
        "p_label": "nominal p" if config.p_value_column == "pvalue" else "FDR",
        "contrasts": contrasts,
    }


def render_html_report(context: Dict[str, Any], output_file: str, verbose: bool = True) -> str:
    """
    Render the report template to a file.

    Returns:
    --------
    str
        Path of the written report
    """
    template = _environment().get_template(REPORT_TEMPLATE)
    html = template.render(**context)

    directory = os.path.dirname(output_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(output_file, "w", encoding="utf-8") as f:
        f.write(html)

    if verbose:
        print(f"✓ HTML report written to: {output_file}")
    return output_file
