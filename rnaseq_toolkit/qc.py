"""
Quality Control Module for RNA-seq Analysis Toolkit

Per-sample library summaries, PCA on highly variable genes and sample-sample
correlation, computed on the tables produced by data_import and normalization.
"""

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import linkage, leaves_list
from scipy.spatial.distance import squareform
from sklearn.decomposition import PCA
from typing import List, Optional, Tuple

from .normalization import select_highly_variable_genes


def compute_library_summary(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    group_column: Optional[str] = None,
    metric_columns: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Per-sample library metrics.

    Parameters:
    -----------
    counts : pd.DataFrame
        Genes x samples counts
    metadata : pd.DataFrame
        Sample metadata indexed by sample id
    group_column : str, optional
        Group label carried into the summary
    metric_columns : List[str], optional
        Metadata columns to include; defaults to every numeric column

    Returns:
    --------
    pd.DataFrame indexed by sample with total_counts, detected_genes, the
    group label and the library metrics
    """

    summary = pd.DataFrame(index=counts.columns)
    summary.index.name = "sample"
    summary["total_counts"] = counts.sum(axis=0)
    summary["detected_genes"] = (counts > 0).sum(axis=0)

    aligned = metadata.reindex(counts.columns)
    if group_column is not None and group_column in aligned.columns:
        summary.insert(0, group_column, aligned[group_column].astype(str).values)

    if metric_columns is None:
        metric_columns = aligned.select_dtypes(include=[np.number]).columns.tolist()
    for col in metric_columns:
        if col in aligned.columns and col not in summary.columns:
            summary[col] = aligned[col].values

    return summary


def compute_pca(
    matrix: pd.DataFrame,
    metadata: pd.DataFrame,
    group_column: str,
    n_top: int = 500,
    n_components: int = 2,
) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    PCA of samples on the most variable genes.

    Data are centred but not scaled, as DESeq2's plotPCA does.

    Parameters:
    -----------
    matrix : pd.DataFrame
        Genes x samples matrix on a variance-stabilized scale
    metadata : pd.DataFrame
        Sample metadata indexed by sample id
    group_column : str
        Group label carried into the scores table
    n_top : int
        Number of highly variable genes used
    n_components : int
        Requested components, capped by the data dimensions

    Returns:
    --------
    Tuple[pd.DataFrame, np.ndarray]
        Scores (PC1..PCn plus group and sample columns) and the explained
        variance ratio of each component
    """

    hvg = select_highly_variable_genes(matrix, n_top=n_top)
    samples_by_genes = hvg.T

    n_components = min(n_components, samples_by_genes.shape[0], samples_by_genes.shape[1])
    if n_components < 1:
        raise ValueError("PCA needs at least one sample and one gene")

    pca = PCA(n_components=n_components)
    scores = pca.fit_transform(samples_by_genes.to_numpy(dtype=np.float64))

    scores_df = pd.DataFrame(
        scores,
        index=samples_by_genes.index,
        columns=[f"PC{i + 1}" for i in range(n_components)],
    )
    aligned = metadata.reindex(scores_df.index)
    scores_df[group_column] = aligned[group_column].astype(str).values
    scores_df["sample"] = scores_df.index

    return scores_df, pca.explained_variance_ratio_


def sample_correlation_matrix(
    matrix: pd.DataFrame,
    method: str = "pearson",
    cluster: bool = True,
) -> pd.DataFrame:
    """
    Sample-sample correlation, optionally reordered by hierarchical clustering.

    Parameters:
    -----------
    matrix : pd.DataFrame
        Genes x samples matrix
    method : str
        'pearson' or 'spearman'
    cluster : bool
        Reorder samples by average-linkage clustering on 1 - correlation

    Returns:
    --------
    pd.DataFrame
    """

    corr = matrix.corr(method=method)

    if cluster and corr.shape[0] > 2:
        distance = (1 - corr).clip(lower=0).to_numpy()
        np.fill_diagonal(distance, 0)
        condensed = squareform(distance, checks=False)
        order = leaves_list(linkage(condensed, method="average"))
        corr = corr.iloc[order, order]

    return corr
