"""
Data Import Module for RNA-seq Analysis Toolkit

Functions for loading the serialized expression experiment (an AnnData object
holding a count matrix, a TPM matrix, sample metadata and gene annotations)
and for slicing it into the tables the analysis steps consume.
"""

import os
import pandas as pd
import numpy as np
import anndata as ad
from typing import Optional


COUNTS_LAYER = "counts"
TPM_LAYER = "tpm"


def load_expression_experiment(path: str, verbose: bool = True) -> ad.AnnData:
    """
    Load a serialized expression experiment.

    Parameters:
    -----------
    path : str
        Path to an ``.h5ad`` file. Samples are observations, genes are variables.
    verbose : bool
        Print a short summary of what was loaded

    Returns:
    --------
    ad.AnnData
        Experiment with ``layers['counts']`` (or counts in ``X``), optionally
        ``layers['tpm']``, sample metadata in ``obs`` and gene annotations in ``var``
    """

    if not os.path.exists(path):
        raise FileNotFoundError(f"Experiment file not found: {path}")

    if not path.endswith(".h5ad"):
        raise ValueError(f"Unsupported experiment file format: {path} (expected .h5ad)")

    if verbose:
        print("=== LOADING EXPRESSION EXPERIMENT ===\n")

    adata = ad.read_h5ad(path)
    _ensure_gene_id_column(adata)

    if verbose:
        print(f"✓ Loaded experiment: {adata.n_vars} genes x {adata.n_obs} samples")
        print(f"  Layers: {list(adata.layers.keys()) or ['X']}")
        print(f"  Sample metadata columns: {list(adata.obs.columns)}")

    return adata


def load_experiment_from_tables(
    counts_file: str,
    coldata_file: str,
    rowdata_file: str,
    tpm_file: Optional[str] = None,
    verbose: bool = True,
) -> ad.AnnData:
    """
    Build an expression experiment from CSV tables.

    Parameters:
    -----------
    counts_file : str
        Genes x samples count matrix, gene id in the first column
    coldata_file : str
        Sample table, sample id in the first column
    rowdata_file : str
        Gene table, gene id in the first column (must contain ``symbol``)
    tpm_file : str, optional
        Genes x samples TPM matrix with the same layout as ``counts_file``

    Returns:
    --------
    ad.AnnData
    """

    for file_path, file_type in [
        (counts_file, "counts"),
        (coldata_file, "sample metadata"),
        (rowdata_file, "gene annotation"),
    ]:
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"{file_type.title()} file not found: {file_path}")

    counts = pd.read_csv(counts_file, index_col=0)
    coldata = pd.read_csv(coldata_file, index_col=0)
    rowdata = pd.read_csv(rowdata_file, index_col=0)

    # Sample and gene order follow the count matrix
    coldata = coldata.reindex(counts.columns)
    rowdata = rowdata.reindex(counts.index)
    coldata.index = coldata.index.astype(str)
    rowdata.index = rowdata.index.astype(str)

    adata = ad.AnnData(
        X=counts.T.to_numpy(dtype=np.float64),
        obs=coldata,
        var=rowdata,
    )
    adata.layers[COUNTS_LAYER] = adata.X.copy()

    if tpm_file:
        if not os.path.exists(tpm_file):
            raise FileNotFoundError(f"TPM file not found: {tpm_file}")
        tpm = pd.read_csv(tpm_file, index_col=0)
        tpm = tpm.reindex(index=counts.index, columns=counts.columns)
        adata.layers[TPM_LAYER] = tpm.T.to_numpy(dtype=np.float64)

    _ensure_gene_id_column(adata)

    if verbose:
        print(f"✓ Built experiment from tables: {adata.n_vars} genes x {adata.n_obs} samples")

    return adata


def _ensure_gene_id_column(adata: ad.AnnData) -> None:
    """Mirror the var index into an 'ensg' column used for joins."""
    if "ensg" not in adata.var.columns:
        adata.var["ensg"] = adata.var_names.astype(str)


def get_assay(adata: ad.AnnData, layer: str = COUNTS_LAYER) -> pd.DataFrame:
    """
    Return one assay as a genes x samples DataFrame.

    The counts assay falls back to ``X`` when no ``counts`` layer exists.
    """

    if layer in adata.layers:
        values = adata.layers[layer]
    elif layer == COUNTS_LAYER:
        values = adata.X
    else:
        raise KeyError(f"Layer '{layer}' not found in experiment. Available: {list(adata.layers.keys())}")

    if hasattr(values, "toarray"):
        values = values.toarray()

    return pd.DataFrame(
        np.asarray(values).T,
        index=adata.var_names.astype(str),
        columns=adata.obs_names.astype(str),
    )


def get_sample_metadata(adata: ad.AnnData) -> pd.DataFrame:
    """Copy of the per-sample metadata."""
    metadata = adata.obs.copy()
    metadata.index = metadata.index.astype(str)
    return metadata


def get_gene_annotations(adata: ad.AnnData) -> pd.DataFrame:
    """Gene annotation table with 'ensg' and 'symbol' columns."""
    annotations = adata.var.copy()
    annotations.index = annotations.index.astype(str)
    if "ensg" not in annotations.columns:
        annotations["ensg"] = annotations.index
    if "symbol" not in annotations.columns:
        annotations["symbol"] = annotations["ensg"]
    # h5ad stores string columns as categoricals; joins and label filling need plain strings
    for col in ("ensg", "symbol"):
        annotations[col] = annotations[col].astype(object)
    return annotations


def subset_genes(adata: ad.AnnData, mask) -> ad.AnnData:
    """Slice the experiment to the genes selected by a boolean mask."""
    mask = np.asarray(mask, dtype=bool)
    if mask.shape[0] != adata.n_vars:
        raise ValueError(
            f"Gene mask has {mask.shape[0]} entries but experiment has {adata.n_vars} genes"
        )
    return adata[:, mask].copy()
