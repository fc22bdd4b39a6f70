"""
Normalization Module for RNA-seq Analysis Toolkit

Log-scale TPM, DESeq2 variance-stabilizing transformation (through pydeseq2)
and highly-variable-gene selection for QC.
"""

import numpy as np
import pandas as pd

from .statistical_analysis import build_deseq_dataset


def log2_tpm(tpm: pd.DataFrame, pseudocount: float = 1.0) -> pd.DataFrame:
    """
    log2-transform a TPM matrix.

    Parameters:
    -----------
    tpm : pd.DataFrame
        Genes x samples TPM matrix
    pseudocount : float
        Added before taking logs so zeros stay finite

    Returns:
    --------
    pd.DataFrame
    """
    if (tpm < 0).any().any():
        raise ValueError("TPM matrix contains negative values")
    return np.log2(tpm + pseudocount)


def variance_stabilize(dds, use_design: bool = False) -> pd.DataFrame:
    """
    Variance-stabilizing transformation of a DeseqDataSet.

    Parameters:
    -----------
    dds : pydeseq2.dds.DeseqDataSet
        Dataset with raw counts (fitted or not)
    use_design : bool
        False gives the blind transform used for QC plots

    Returns:
    --------
    pd.DataFrame
        Genes x samples VST matrix
    """
    dds.vst(use_design=use_design)
    return pd.DataFrame(
        np.asarray(dds.layers["vst_counts"]).T,
        index=dds.var_names.astype(str),
        columns=dds.obs_names.astype(str),
    )


def vst_from_counts(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    design: str,
    n_cpus: int = 1,
) -> pd.DataFrame:
    """
    Blind VST straight from a genes x samples count matrix.

    Parameters:
    -----------
    counts : pd.DataFrame
        Genes x samples counts
    metadata : pd.DataFrame
        Sample metadata indexed by sample id
    design : str
        Design formula, e.g. ``"~MFGroup"``
    n_cpus : int
        Worker count for pydeseq2

    Returns:
    --------
    pd.DataFrame
        Genes x samples VST matrix
    """
    dds = build_deseq_dataset(counts, metadata, design=design, n_cpus=n_cpus)
    return variance_stabilize(dds, use_design=False)


def select_highly_variable_genes(matrix: pd.DataFrame, n_top: int = 500) -> pd.DataFrame:
    """
    Keep the ``n_top`` genes with the largest variance across samples.

    Parameters:
    -----------
    matrix : pd.DataFrame
        Genes x samples matrix on a variance-stabilized scale
    n_top : int
        Number of genes to keep; all genes are kept when fewer exist

    Returns:
    --------
    pd.DataFrame
        Subset ordered by decreasing variance
    """
    if n_top <= 0:
        raise ValueError(f"n_top must be positive, got {n_top}")
    variances = matrix.var(axis=1)
    top_genes = variances.sort_values(ascending=False).head(n_top).index
    return matrix.loc[top_genes]
