"""
Visualization Module for RNA-seq Analysis Toolkit

Functions for the volcano plot, QC plots (expression filter, library sizes,
PCA, sample correlation) and for writing figures as SVG.
"""

import io
import os
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from adjustText import adjust_text
from matplotlib.figure import Figure
from typing import Dict, Optional, Tuple

from .preprocessing import ExpressionFilterResult
from .statistical_analysis import (
    DifferentialExpressionConfig,
    UP_REGULATED,
    DOWN_REGULATED,
    NOT_SIGNIFICANT,
)


STATUS_COLORS = {
    UP_REGULATED: "red",
    DOWN_REGULATED: "blue",
    NOT_SIGNIFICANT: "grey",
}


def volcano_y_values(p_values: pd.Series, p_value_threshold: float = 0.001) -> pd.Series:
    """
    -log10(p) for the volcano y axis.

    p-values of exactly 0 (underflow in the Wald test) are placed just above
    the most significant finite point so they stay on the panel.
    """
    p = p_values.astype(float)
    zero = p <= 0
    neg_log10_p = -np.log10(p.where(~zero, 1.0))

    if zero.any():
        finite = neg_log10_p[~zero]
        ceiling = max(finite.max() if len(finite) else 0.0, -np.log10(p_value_threshold))
        neg_log10_p[zero] = ceiling * 1.05

    return neg_log10_p


def plot_volcano(
    classified: pd.DataFrame,
    config: Optional[DifferentialExpressionConfig] = None,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (7, 6),
    max_labels: int = 200,
) -> Figure:
    """
    Volcano plot of one contrast.

    Parameters:
    -----------
    classified : pd.DataFrame
        Result table with logFC, the configured p-value column, status and lbl
    config : DifferentialExpressionConfig, optional
        Supplies the fold-change and p-value thresholds drawn as dashed lines
    title : str, optional
        Plot title
    figsize : Tuple[float, float]
        Figure size in inches
    max_labels : int
        Upper bound on repelled text labels; the most significant are kept

    Returns:
    --------
    Figure
    """

    if config is None:
        config = DifferentialExpressionConfig()

    p_col = config.p_value_column
    df = classified.dropna(subset=[p_col, "logFC"]).copy()
    df["neg_log10_p"] = volcano_y_values(df[p_col], config.p_value_threshold)

    fig, ax = plt.subplots(figsize=figsize)

    # Not significant first so coloured points sit on top
    for status in [NOT_SIGNIFICANT, DOWN_REGULATED, UP_REGULATED]:
        subset = df[df["status"] == status]
        if len(subset) > 0:
            ax.scatter(
                subset["logFC"],
                subset["neg_log10_p"],
                c=STATUS_COLORS[status],
                s=12,
                linewidths=0,
            )

    ax.axvline(x=config.logfc_threshold, color="black", linestyle="--", linewidth=0.8)
    ax.axvline(x=-config.logfc_threshold, color="black", linestyle="--", linewidth=0.8)
    ax.axhline(y=-np.log10(config.p_value_threshold), color="black", linestyle="--", linewidth=0.8)

    labelled = df[df["lbl"] != ""].sort_values(p_col).head(max_labels)
    texts = [
        ax.text(row["logFC"], row["neg_log10_p"], row["lbl"], fontsize=8,
                color=STATUS_COLORS.get(row["status"], "black"))
        for _, row in labelled.iterrows()
    ]
    if texts:
        adjust_text(texts, ax=ax, arrowprops=dict(arrowstyle="-", color="grey", lw=0.5))

    p_label = "p-value" if p_col == "pvalue" else "adjusted p-value"
    ax.set_xlabel("log2 fold-change")
    ax.set_ylabel(f"-log10({p_label})")
    if title:
        ax.set_title(title)
    ax.grid(True, color="#ebebeb", linewidth=0.5)
    ax.set_axisbelow(True)

    fig.tight_layout()
    return fig


def plot_expression_filter(
    filter_result: ExpressionFilterResult,
    figsize: Tuple[float, float] = (8, 5),
    bins: int = 60,
) -> Figure:
    """
    Histogram of median log2 counts coloured by mixture component.
    """

    fig, ax = plt.subplots(figsize=figsize)
    values = filter_result.median_log2.to_numpy()
    edges = np.histogram_bin_edges(values, bins=bins)

    colors = ["#bdbdbd", "#3182bd", "#31a354", "#e6550d"]
    for component in range(len(filter_result.means)):
        mask = filter_result.labels == component
        label = "Expressed" if component == len(filter_result.means) - 1 else f"Component {component + 1}"
        ax.hist(values[mask], bins=edges, color=colors[component % len(colors)], alpha=0.8,
                label=f"{label} (n={int(mask.sum())})")

    if np.isfinite(filter_result.threshold):
        ax.axvline(filter_result.threshold, color="black", linestyle="--", linewidth=1)

    ax.set_xlabel("Median log2(count + 1) across samples")
    ax.set_ylabel("Genes")
    ax.set_title("Expression filter (Gaussian mixture)")
    ax.legend(frameon=False)

    fig.tight_layout()
    return fig


def plot_library_sizes(
    library_summary: pd.DataFrame,
    group_column: str,
    group_colors: Optional[Dict[str, str]] = None,
    figsize: Tuple[float, float] = (10, 5),
) -> Figure:
    """
    Bar chart of total counts per sample, grouped and coloured by group.
    """

    df = library_summary.sort_values([group_column, "total_counts"])
    if group_colors is None:
        palette = plt.cm.tab10(np.linspace(0, 1, 10))
        group_colors = {g: palette[i % 10] for i, g in enumerate(df[group_column].unique())}

    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(
        range(len(df)),
        df["total_counts"] / 1e6,
        color=[group_colors.get(g, "#7f7f7f") for g in df[group_column]],
    )
    ax.set_xticks(range(len(df)))
    ax.set_xticklabels(df.index, rotation=45, ha="right", fontsize=8)
    ax.set_ylabel("Total counts (millions)")
    ax.set_title("Library sizes")

    handles = [plt.Rectangle((0, 0), 1, 1, color=c) for g, c in group_colors.items()
               if g in set(df[group_column])]
    labels = [g for g in group_colors if g in set(df[group_column])]
    ax.legend(handles, labels, frameon=False, fontsize=8)

    fig.tight_layout()
    return fig


def plot_pca(
    scores: pd.DataFrame,
    explained_variance: np.ndarray,
    group_column: str,
    group_colors: Optional[Dict[str, str]] = None,
    figsize: Tuple[float, float] = (7, 6),
    title: str = "Principal Component Analysis",
) -> Figure:
    """
    Scatter of PC1 vs PC2 coloured by group.

    Parameters:
    -----------
    scores : pd.DataFrame
        Output of qc.compute_pca
    explained_variance : np.ndarray
        Explained variance ratio per component
    group_column : str
        Column in ``scores`` holding the group label
    group_colors : Dict[str, str], optional
        Colours for groups
    """

    if "PC2" not in scores.columns:
        raise ValueError("PCA plot needs at least two components")

    unique_groups = list(dict.fromkeys(scores[group_column]))
    if group_colors is None:
        colors = plt.cm.tab10(np.linspace(0, 1, max(len(unique_groups), 1)))
        group_colors = {group: colors[i] for i, group in enumerate(unique_groups)}

    fig, ax = plt.subplots(figsize=figsize)

    for group in unique_groups:
        subset = scores[scores[group_column] == group]
        ax.scatter(
            subset["PC1"],
            subset["PC2"],
            color=group_colors.get(group, "#7f7f7f"),
            label=group,
            alpha=0.8,
            s=60,
            edgecolors="black",
            linewidth=0.5,
        )

    ax.set_xlabel(f"PC1 ({explained_variance[0]:.1%} variance)")
    ax.set_ylabel(f"PC2 ({explained_variance[1]:.1%} variance)")
    ax.set_title(title)
    ax.legend(frameon=False, fontsize=8)
    ax.grid(True, alpha=0.3)

    fig.tight_layout()
    return fig


def plot_sample_correlation_heatmap(
    corr: pd.DataFrame,
    metadata: Optional[pd.DataFrame] = None,
    group_column: Optional[str] = None,
    figsize: Tuple[float, float] = (9, 8),
    title: str = "Sample correlation",
) -> Figure:
    """
    Heatmap of a sample-sample correlation matrix.

    Tick labels carry the group when metadata is supplied.
    """

    labels = list(corr.index)
    if metadata is not None and group_column is not None:
        groups = metadata.reindex(corr.index)[group_column].astype(str)
        labels = [f"{s} ({g})" for s, g in zip(corr.index, groups)]

    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(
        corr,
        ax=ax,
        cmap="viridis",
        square=True,
        xticklabels=labels,
        yticklabels=labels,
        cbar_kws={"label": "Correlation", "shrink": 0.7},
    )
    ax.tick_params(labelsize=7)
    ax.set_title(title)

    fig.tight_layout()
    return fig


def volcano_filename(title: str, suffix: str = "VEH", width: float = 7, height: float = 6) -> str:
    """File name for a volcano figure, e.g. 'CSS Vehicle vs Control Vehicle_VEH_7x6in.svg'."""
    return f"{title}_{suffix}_{width:g}x{height:g}in.svg"


def save_figure(fig: Figure, path: str, width: float = 7, height: float = 6) -> str:
    """
    Write a figure as SVG at the given size in inches.

    Returns:
    --------
    str
        The path written
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    fig.set_size_inches(width, height)
    fig.savefig(path, format="svg")
    return path


def figure_to_svg(fig: Figure) -> str:
    """Inline SVG markup for embedding a figure in HTML."""
    buffer = io.StringIO()
    fig.savefig(buffer, format="svg")
    svg = buffer.getvalue()
    # Drop the XML prolog and doctype so the markup can sit inside <body>
    start = svg.find("<svg")
    return svg[start:] if start >= 0 else svg
