"""
Statistical Analysis Module for RNA-seq Data

This module provides a configuration-driven wrapper around pydeseq2 for
differential gene expression: model fitting, per-contrast Wald tests,
annotation of result tables and up/down classification.
"""

import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Tuple
from pydeseq2.dds import DeseqDataSet
from pydeseq2.ds import DeseqStats
from pydeseq2.default_inference import DefaultInference

from .preprocessing import round_counts


UP_REGULATED = "Up-regulated"
DOWN_REGULATED = "Down-regulated"
NOT_SIGNIFICANT = "Not significant"

RESULT_COLUMNS = ["ensg", "symbol", "avgExpr", "logFC", "pvalue", "padj"]


class DifferentialExpressionConfig:
    """Configuration class for differential expression parameters

    The defaults reproduce the VTA dopamine-neuron vehicle comparison:
    chronic social stress vs control, genes called at |log2FC| > 0.5 and
    nominal p < 0.001.
    """

    def __init__(self):
        # Design factor
        self.group_column = "MFGroup"
        self.reference_level = "control_vehicle_DA_neuron"

        # (numerator, denominator) pairs tested against each other
        self.contrasts = [("CSS_vehicle_DA_neuron", "control_vehicle_DA_neuron")]
        # Optional display titles keyed by contrast_name()
        self.contrast_titles = {
            "CSS_vehicle_DA_neuron_vs_control_vehicle_DA_neuron": "CSS Vehicle vs Control Vehicle",
        }

        # Significance calling
        self.logfc_threshold = 0.5
        self.p_value_threshold = 0.001
        self.p_value_column = "pvalue"  # "pvalue" (nominal) or "padj"

        # DESeq2 settings
        self.alpha = 0.05  # target FDR for independent filtering
        self.refit_cooks = True
        self.cooks_filter = True
        self.independent_filter = True
        self.n_cpus = 1

        # Manual label corrections applied by gene id
        self.label_overrides = {"ENSMUSG00000110038": "Gm45570"}

    @property
    def design(self) -> str:
        return f"~{self.group_column}"

    def validate(self):
        """Validate that parameters are usable"""
        if not self.group_column:
            raise ValueError("group_column must be set")
        if not self.contrasts:
            raise ValueError("At least one contrast must be configured")
        for contrast in self.contrasts:
            if len(contrast) != 2:
                raise ValueError(f"Contrasts must be (numerator, denominator) pairs, got {contrast!r}")
            if contrast[0] == contrast[1]:
                raise ValueError(f"Contrast compares a level with itself: {contrast!r}")
        if self.p_value_column not in ("pvalue", "padj"):
            raise ValueError(f"p_value_column must be 'pvalue' or 'padj', got '{self.p_value_column}'")
        if self.logfc_threshold < 0:
            raise ValueError("logfc_threshold must be non-negative")
        if not 0 < self.p_value_threshold <= 1:
            raise ValueError("p_value_threshold must be in (0, 1]")
        if not 0 < self.alpha < 1:
            raise ValueError("alpha must be in (0, 1)")
        return True

    def title_for(self, numerator: str, denominator: str) -> str:
        return self.contrast_titles.get(
            contrast_name(numerator, denominator),
            contrast_title(numerator, denominator),
        )


def contrast_name(numerator: str, denominator: str) -> str:
    """Identifier used for files and result keys."""
    return f"{numerator}_vs_{denominator}"


def contrast_title(numerator: str, denominator: str) -> str:
    """Readable fallback title built from the level names."""
    return f"{numerator.replace('_', ' ')} vs {denominator.replace('_', ' ')}"


def build_deseq_dataset(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    design: str,
    n_cpus: int = 1,
    refit_cooks: bool = True,
) -> DeseqDataSet:
    """
    Create a DeseqDataSet from a genes x samples count matrix.

    Parameters:
    -----------
    counts : pd.DataFrame
        Genes x samples counts; non-integers are rounded
    metadata : pd.DataFrame
        Sample metadata indexed by sample id
    design : str
        Design formula
    n_cpus : int
        Worker count for pydeseq2 inference
    refit_cooks : bool
        Refit genes with Cook's distance outliers

    Returns:
    --------
    DeseqDataSet (not yet fitted)
    """

    missing = [s for s in counts.columns if s not in metadata.index]
    if missing:
        raise ValueError(f"Samples missing from metadata: {missing}")

    # pydeseq2 expects samples x genes
    count_matrix = round_counts(counts).T
    aligned_metadata = metadata.loc[count_matrix.index].copy()

    return DeseqDataSet(
        counts=count_matrix,
        metadata=aligned_metadata,
        design=design,
        refit_cooks=refit_cooks,
        inference=DefaultInference(n_cpus=n_cpus),
        quiet=True,
    )


def run_deseq2(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    config: Optional[DifferentialExpressionConfig] = None,
    verbose: bool = True,
) -> DeseqDataSet:
    """
    Fit the DESeq2 negative-binomial GLM.

    Parameters:
    -----------
    counts : pd.DataFrame
        Genes x samples counts (expressed genes only)
    metadata : pd.DataFrame
        Sample metadata with the group column
    config : DifferentialExpressionConfig, optional
        Analysis parameters
    verbose : bool
        Print progress

    Returns:
    --------
    DeseqDataSet
        Fitted dataset
    """

    if config is None:
        config = DifferentialExpressionConfig()
    config.validate()

    if verbose:
        print(f"\nFitting DESeq2 model {config.design} on "
              f"{counts.shape[0]} genes x {counts.shape[1]} samples...", flush=True)

    dds = build_deseq_dataset(
        counts,
        metadata,
        design=config.design,
        n_cpus=config.n_cpus,
        refit_cooks=config.refit_cooks,
    )
    dds.deseq2()

    if verbose:
        print("✓ DESeq2 model fitted", flush=True)

    return dds


def get_contrast_results(
    dds: DeseqDataSet,
    numerator: str,
    denominator: str,
    config: Optional[DifferentialExpressionConfig] = None,
) -> pd.DataFrame:
    """
    Wald test results for one contrast.

    Returns:
    --------
    pd.DataFrame indexed by gene id with baseMean, log2FoldChange, lfcSE,
    stat, pvalue and padj
    """

    if config is None:
        config = DifferentialExpressionConfig()

    stats = DeseqStats(
        dds,
        contrast=[config.group_column, numerator, denominator],
        alpha=config.alpha,
        cooks_filter=config.cooks_filter,
        independent_filter=config.independent_filter,
        quiet=True,
    )
    stats.summary()

    results = stats.results_df.copy()
    results.index = results.index.astype(str)
    return results


def annotate_results(results: pd.DataFrame, gene_annotations: pd.DataFrame) -> pd.DataFrame:
    """
    Join gene symbols onto a results table and keep the reporting columns.

    Parameters:
    -----------
    results : pd.DataFrame
        Output of get_contrast_results, indexed by gene id
    gene_annotations : pd.DataFrame
        Gene table with 'ensg' and 'symbol'

    Returns:
    --------
    pd.DataFrame with columns ensg, symbol, avgExpr, logFC, pvalue, padj
    """

    table = results.rename_axis("ensg").reset_index()
    annotations = gene_annotations[["ensg", "symbol"]].drop_duplicates("ensg")
    table = table.merge(annotations, on="ensg", how="left")

    table = table.rename(columns={"log2FoldChange": "logFC", "baseMean": "avgExpr"})
    return table[RESULT_COLUMNS]


def classify_regulation(
    annotated: pd.DataFrame,
    config: Optional[DifferentialExpressionConfig] = None,
) -> pd.DataFrame:
    """
    Add regulation status and point labels.

    A gene is up-regulated when logFC > threshold and p < cutoff, down-regulated
    when logFC < -threshold and p < cutoff. Genes with missing p-values are not
    significant. Significant genes are labelled with their symbol (genes without
    a symbol stay unlabelled), then label_overrides are applied by gene id.
    """

    if config is None:
        config = DifferentialExpressionConfig()

    df = annotated.copy()
    p_values = df[config.p_value_column]
    significant = p_values.notna() & (p_values < config.p_value_threshold)

    up = significant & (df["logFC"] > config.logfc_threshold)
    down = significant & (df["logFC"] < -config.logfc_threshold)

    df["status"] = np.select([up, down], [UP_REGULATED, DOWN_REGULATED], default=NOT_SIGNIFICANT)
    df["lbl"] = np.where(up | down, df["symbol"].fillna(""), "")

    for gene_id, label in config.label_overrides.items():
        df.loc[df["ensg"] == gene_id, "lbl"] = label

    return df


def count_regulated(classified: pd.DataFrame) -> Dict[str, int]:
    """Number of up- and down-regulated genes."""
    return {
        "up": int((classified["status"] == UP_REGULATED).sum()),
        "down": int((classified["status"] == DOWN_REGULATED).sum()),
    }


def run_differential_expression(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    gene_annotations: pd.DataFrame,
    config: Optional[DifferentialExpressionConfig] = None,
    verbose: bool = True,
) -> Tuple[DeseqDataSet, Dict[str, pd.DataFrame]]:
    """
    Fit the model once and extract every configured contrast.

    Returns:
    --------
    Tuple of the fitted DeseqDataSet and a dict mapping contrast_name to the
    classified result table
    """

    if config is None:
        config = DifferentialExpressionConfig()

    dds = run_deseq2(counts, metadata, config, verbose=verbose)

    results_by_contrast = {}
    for numerator, denominator in config.contrasts:
        name = contrast_name(numerator, denominator)
        results = get_contrast_results(dds, numerator, denominator, config)
        classified = classify_regulation(annotate_results(results, gene_annotations), config)
        results_by_contrast[name] = classified

        if verbose:
            display_analysis_summary(classified, config, title=config.title_for(numerator, denominator))

    return dds, results_by_contrast


def top_regulated_genes(classified: pd.DataFrame, config: Optional[DifferentialExpressionConfig] = None,
                        n: int = 20) -> pd.DataFrame:
    """Significant genes ordered by the configured p-value column."""
    if config is None:
        config = DifferentialExpressionConfig()
    significant = classified[classified["status"] != NOT_SIGNIFICANT]
    return significant.sort_values(config.p_value_column).head(n)


def display_analysis_summary(
    classified: pd.DataFrame,
    config: Optional[DifferentialExpressionConfig] = None,
    title: Optional[str] = None,
    label_top_n: int = 10,
) -> None:
    """Print the up/down counts and the top genes for one contrast."""

    if config is None:
        config = DifferentialExpressionConfig()

    counts = count_regulated(classified)
    p_label = "nominal p" if config.p_value_column == "pvalue" else "FDR"

    print("\n" + "=" * 60)
    print(f"DIFFERENTIAL EXPRESSION: {title or 'contrast'}")
    print("=" * 60)
    print(f"Genes tested: {len(classified)}")
    print(f"Criteria: |log2FC| > {config.logfc_threshold} and {p_label} < {config.p_value_threshold}")
    print(f"  Up-regulated:   {counts['up']}")
    print(f"  Down-regulated: {counts['down']}")

    n_padj = int((classified["padj"] < config.alpha).sum())
    print(f"  padj < {config.alpha}: {n_padj}")

    top = top_regulated_genes(classified, config, n=label_top_n)
    if len(top) > 0:
        print(f"\nTop {len(top)} genes:")
        for _, row in top.iterrows():
            label = row["lbl"] or row["ensg"]
            print(f"  {label:<15} logFC={row['logFC']:+.2f}  p={row['pvalue']:.2e}")
