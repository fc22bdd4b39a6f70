"""
Export Module for RNA-seq Analysis Toolkit

This module writes the analysis outputs: the Excel workbook of normalized
expression, per-contrast result and enrichment tables, and a timestamped
Python configuration file that records every setting of the run.
"""

import os
import pandas as pd
from datetime import datetime
from typing import Dict, Any, Optional, List

from .enrichment import merge_enrichment_results


ANNOTATION_COLUMNS = ["ensg", "symbol"]


def _with_annotations(matrix: pd.DataFrame, gene_annotations: pd.DataFrame) -> pd.DataFrame:
    """Genes x samples matrix with annotation columns first and no index."""
    annotations = gene_annotations.reindex(matrix.index)[ANNOTATION_COLUMNS].copy()
    annotations["ensg"] = matrix.index
    return pd.concat([annotations, matrix], axis=1).reset_index(drop=True)


def export_normalized_expression(
    tpm: Optional[pd.DataFrame],
    vst: Optional[pd.DataFrame],
    gene_annotations: pd.DataFrame,
    sample_metadata: pd.DataFrame,
    output_file: str,
    verbose: bool = True,
) -> str:
    """
    Write normalized expression to an Excel workbook.

    Parameters:
    -----------
    tpm : pd.DataFrame, optional
        Genes x samples TPM matrix (sheet 'TPM')
    vst : pd.DataFrame, optional
        Genes x samples VST matrix (sheet 'VST')
    gene_annotations : pd.DataFrame
        Gene table with 'ensg' and 'symbol', indexed by gene id
    sample_metadata : pd.DataFrame
        Written to sheet 'Sample_Metadata'
    output_file : str
        Path of the .xlsx file

    Returns:
    --------
    str
        Path written
    """

    if tpm is None and vst is None:
        raise ValueError("Nothing to export: both TPM and VST matrices are missing")

    directory = os.path.dirname(output_file)
    if directory:
        os.makedirs(directory, exist_ok=True)

    metadata_export = sample_metadata.copy()
    metadata_export.index.name = "Sample_ID"

    with pd.ExcelWriter(output_file, engine="openpyxl") as writer:
        if tpm is not None:
            _with_annotations(tpm, gene_annotations).to_excel(writer, sheet_name="TPM", index=False)
        if vst is not None:
            _with_annotations(vst, gene_annotations).to_excel(writer, sheet_name="VST", index=False)
        metadata_export.to_excel(writer, sheet_name="Sample_Metadata")

    if verbose:
        print(f"Normalized expression exported to: {output_file}")
    return output_file


def export_differential_results(
    results_by_contrast: Dict[str, pd.DataFrame],
    output_prefix: str,
    verbose: bool = True,
) -> Dict[str, str]:
    """
    Write one CSV per contrast.

    Returns:
    --------
    dict
        Contrast name -> file path
    """

    exported_files = {}
    for name, results in results_by_contrast.items():
        path = f"{output_prefix}_{name}_differential_results.csv"
        _ensure_parent(path)
        results.to_csv(path, index=False)
        exported_files[name] = path
        if verbose:
            print(f"Differential results exported to: {path}")
    return exported_files


def export_enrichment_results(
    enrichment_by_contrast: Dict[str, Dict[str, pd.DataFrame]],
    output_prefix: str,
    verbose: bool = True,
) -> Dict[str, str]:
    """
    Write the enrichment tables of each contrast to one CSV with a 'Group' column.

    Contrasts without any significant term are skipped.
    """

    exported_files = {}
    for name, by_direction in enrichment_by_contrast.items():
        merged = merge_enrichment_results(by_direction)
        if merged.empty:
            continue
        path = f"{output_prefix}_{name}_enrichment.csv"
        _ensure_parent(path)
        merged.to_csv(path, index=False)
        exported_files[name] = path
        if verbose:
            print(f"Enrichment results exported to: {path}")
    return exported_files


def _ensure_parent(path: str) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)


# Sections written to the timestamped configuration, in order
CONFIG_SECTIONS = [
    ("INPUT FILES AND PATHS", ["experiment_file", "output_dir", "figures_dir"]),
    ("EXPERIMENTAL DESIGN", ["group_column", "reference_level", "contrasts", "contrast_titles"]),
    ("EXPRESSION FILTER", ["counts_layer", "tpm_layer", "n_mixture_components", "random_seed"]),
    ("QUALITY CONTROL", ["n_top_variable_genes", "correlation_method"]),
    (
        "SIGNIFICANCE THRESHOLDS",
        ["logfc_threshold", "p_value_threshold", "p_value_column", "alpha", "label_overrides"],
    ),
    ("ENRICHMENT", ["run_enrichment", "enrichr_libraries", "enrichment_pvalue_cutoff", "enrichment_min_genes"]),
    ("OUTPUT AND EXPORT SETTINGS", ["output_prefix", "figure_suffix", "figure_width", "figure_height", "n_cpus"]),
]


def export_timestamped_config(
    config_dict: Dict[str, Any],
    output_prefix: str = "rnaseq_analysis",
    analysis_description: str = "RNA-seq analysis",
    computed_values: Optional[Dict[str, Any]] = None,
    verbose: bool = True,
) -> str:
    """
    Export analysis configuration as a timestamped Python file.

    Parameters:
    -----------
    config_dict : dict
        Dictionary containing all configuration parameters
    output_prefix : str
        Prefix for the configuration filename
    analysis_description : str
        Description of the analysis type
    computed_values : dict, optional
        Additional computed values to include as comments
    verbose : bool
        Print the file name

    Returns:
    --------
    str
        Path to the exported configuration file
    """

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    config_file = f"{output_prefix}_config_{timestamp}.py"
    _ensure_parent(config_file)

    if verbose:
        print(f"Exporting analysis configuration to: {config_file}")

    with open(config_file, "w", encoding="utf-8") as f:
        f.write(
            "# =============================================================================\n"
        )
        f.write("# RNA-SEQ ANALYSIS CONFIGURATION\n")
        f.write(f"# Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"# Analysis: {analysis_description}\n")
        f.write(
            "# =============================================================================\n\n"
        )

        for section_num, (section_name, param_names) in enumerate(CONFIG_SECTIONS, start=1):
            _write_config_section(f, section_name, config_dict, param_names, section_num)

        if computed_values:
            f.write(
                "# =============================================================================\n"
            )
            f.write("# COMPUTED VALUES (for reference)\n")
            f.write(
                "# =============================================================================\n"
            )
            for key, value in computed_values.items():
                f.write(f"# {key}: {value}\n")

    return config_file


def _write_config_section(
    file_handle,
    section_name: str,
    config_dict: Dict[str, Any],
    param_names: List[str],
    section_number: int = 1,
) -> None:
    """Write a configuration section to file."""

    file_handle.write(
        "# =============================================================================\n"
    )
    file_handle.write(f"# {section_number}. {section_name}\n")
    file_handle.write(
        "# =============================================================================\n"
    )

    for param in param_names:
        if param in config_dict:
            file_handle.write(f"{param} = {repr(config_dict[param])}\n")

    file_handle.write("\n")
