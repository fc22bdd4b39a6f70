"""
Preprocessing Module for RNA-seq Analysis Toolkit

Expression filtering with a two-component Gaussian mixture on median log2
counts, reference-level handling for the design factor, and group colours.
"""

import warnings
import numpy as np
import pandas as pd
import anndata as ad
import matplotlib.pyplot as plt
from dataclasses import dataclass
from sklearn.mixture import GaussianMixture
from typing import Dict, List, Optional, Tuple

from .data_import import COUNTS_LAYER, get_assay, subset_genes
from .validation import ReferenceLevelError


REFERENCE_GROUP_COLOR = "#708090"  # SlateGray


@dataclass
class ExpressionFilterResult:
    """Outcome of the Gaussian-mixture expression filter.

    Attributes
    ----------
    median_log2 : pd.Series
        Per-gene median of log2(count + 1) across samples
    labels : np.ndarray
        Mixture component per gene, renumbered so 0 has the lowest mean
    expressed : np.ndarray
        Boolean mask, True for genes in the highest-mean component
    means : np.ndarray
        Component means in ascending order
    stds : np.ndarray
        Component standard deviations, same order as ``means``
    weights : np.ndarray
        Component mixing proportions, same order as ``means``
    threshold : float
        Smallest median log2 value assigned to the expressed component
    """

    median_log2: pd.Series
    labels: np.ndarray
    expressed: np.ndarray
    means: np.ndarray
    stds: np.ndarray
    weights: np.ndarray
    threshold: float

    @property
    def n_expressed(self) -> int:
        return int(self.expressed.sum())

    @property
    def n_not_expressed(self) -> int:
        return int((~self.expressed).sum())


def median_log2_counts(counts: pd.DataFrame) -> pd.Series:
    """
    Per-gene median of log2(count + 1) across samples.

    Parameters:
    -----------
    counts : pd.DataFrame
        Genes x samples count matrix

    Returns:
    --------
    pd.Series indexed by gene
    """
    return np.log2(counts + 1).median(axis=1)


def fit_expression_mixture(
    values: pd.Series,
    n_components: int = 2,
    random_state: int = 42,
) -> ExpressionFilterResult:
    """
    Fit a univariate Gaussian mixture and mark the top component as expressed.

    Parameters:
    -----------
    values : pd.Series
        Per-gene summary (median log2 counts)
    n_components : int
        Number of mixture components
    random_state : int
        Seed for the EM initialisation

    Returns:
    --------
    ExpressionFilterResult
    """

    values = pd.Series(values, dtype=np.float64)

    if values.isna().any():
        raise ValueError(f"Expression summary contains {int(values.isna().sum())} NaN values")

    if values.nunique() < n_components:
        raise ValueError(
            f"Need at least {n_components} distinct values to fit a "
            f"{n_components}-component mixture, got {values.nunique()}"
        )

    x = values.to_numpy().reshape(-1, 1)
    gmm = GaussianMixture(n_components=n_components, random_state=random_state)
    raw_labels = gmm.fit_predict(x)

    # Renumber components by ascending mean so labels are stable across runs
    means = gmm.means_.ravel()
    order = np.argsort(means)
    rank = np.empty_like(order)
    rank[order] = np.arange(n_components)
    labels = rank[raw_labels]

    stds = np.sqrt(gmm.covariances_.reshape(n_components, -1)[:, 0])[order]
    expressed = labels == n_components - 1

    threshold = float(values[expressed].min()) if expressed.any() else float("inf")

    return ExpressionFilterResult(
        median_log2=values,
        labels=labels,
        expressed=expressed,
        means=means[order],
        stds=stds,
        weights=gmm.weights_[order],
        threshold=threshold,
    )


def filter_expressed_genes(
    adata: ad.AnnData,
    layer: str = COUNTS_LAYER,
    n_components: int = 2,
    random_state: int = 42,
    verbose: bool = True,
) -> Tuple[ad.AnnData, ExpressionFilterResult]:
    """
    Keep only genes assigned to the expressed mixture component.

    Parameters:
    -----------
    adata : ad.AnnData
        Expression experiment
    layer : str
        Assay used for the median log2 summary
    n_components : int
        Number of mixture components
    random_state : int
        Seed for the mixture fit
    verbose : bool
        Print filter summary

    Returns:
    --------
    Tuple[ad.AnnData, ExpressionFilterResult]
        Filtered experiment and the mixture fit
    """

    counts = get_assay(adata, layer)
    medians = median_log2_counts(counts)
    result = fit_expression_mixture(medians, n_components=n_components, random_state=random_state)
    filtered = subset_genes(adata, result.expressed)

    if verbose:
        print("\n=== EXPRESSION FILTER (Gaussian mixture on median log2 counts) ===")
        for i, (mean, sd, weight) in enumerate(zip(result.means, result.stds, result.weights)):
            print(f"  Component {i + 1}: mean={mean:.2f}, sd={sd:.2f}, weight={weight:.2f}")
        print(f"  Expressed threshold: median log2(count + 1) >= {result.threshold:.2f}")
        print(f"✓ Kept {result.n_expressed} of {len(medians)} genes "
              f"({result.n_not_expressed} classified as not expressed)")

    return filtered, result


def round_counts(counts: pd.DataFrame) -> pd.DataFrame:
    """Round a count matrix to integers, warning when values change."""
    rounded = counts.round()
    if not np.allclose(counts.to_numpy(dtype=np.float64), rounded.to_numpy(dtype=np.float64)):
        warnings.warn("Non-integer counts were rounded to the nearest integer")
    return rounded.astype(np.int64)


def set_reference_level(
    adata: ad.AnnData,
    group_column: str,
    reference_level: str,
) -> ad.AnnData:
    """
    Make the group column categorical with the reference as first level.

    Parameters:
    -----------
    adata : ad.AnnData
        Expression experiment, modified in place
    group_column : str
        Sample metadata column holding the design factor
    reference_level : str
        Level used as baseline for contrasts

    Returns:
    --------
    ad.AnnData
        The same experiment, for chaining
    """

    groups = adata.obs[group_column].astype(str)
    levels = sorted(groups.unique())

    if reference_level not in levels:
        raise ReferenceLevelError(
            f"Reference level '{reference_level}' not found in '{group_column}'. "
            f"Available levels: {levels}"
        )

    ordered_levels = [reference_level] + [lvl for lvl in levels if lvl != reference_level]
    adata.obs[group_column] = pd.Categorical(groups, categories=ordered_levels)
    return adata


def calculate_group_colors(
    groups: List[str],
    reference_level: Optional[str] = None,
) -> Dict[str, str]:
    """
    Assign a colour to each experimental group.

    The reference group is drawn in slate grey, the remaining groups take
    tab10 colours in sorted order.
    """

    unique_groups = []
    for group in groups:
        group = "Unknown" if pd.isna(group) else str(group)
        if group not in unique_groups:
            unique_groups.append(group)

    palette = plt.cm.tab10(np.linspace(0, 1, 10))
    study_groups = sorted(g for g in unique_groups if g != reference_level)

    group_colors = {}
    if reference_level is not None and reference_level in unique_groups:
        group_colors[reference_level] = REFERENCE_GROUP_COLOR
    for i, group in enumerate(study_groups):
        r, g, b, _ = palette[i % len(palette)]
        group_colors[group] = "#{:02x}{:02x}{:02x}".format(int(r * 255), int(g * 255), int(b * 255))

    return group_colors
