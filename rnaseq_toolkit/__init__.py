"""
RNA-seq Analysis Toolkit
========================

A Python library for bulk RNA-seq differential expression analysis of sorted
neuron populations, built around an AnnData experiment (samples x genes with
raw counts and TPM layers). This toolkit provides the workflow from loading a
serialized experiment through DESeq2 statistics, Enrichr enrichment and an
HTML report.

QUICK START EXAMPLE:
-------------------
    import rnaseq_toolkit as rtk

    # 1. Load and validate
    adata = rtk.load_expression_experiment('experiment.h5ad')
    rtk.validate_or_raise(adata, group_column='MFGroup',
                          reference_level='control_vehicle_DA_neuron')

    # 2. Keep expressed genes
    expressed, filter_result = rtk.filter_expressed_genes(adata)

    # 3. Differential expression
    config = rtk.DifferentialExpressionConfig()
    dds, results = rtk.run_differential_expression(
        rtk.get_assay(expressed), rtk.get_sample_metadata(expressed),
        rtk.get_gene_annotations(expressed), config)

    # 4. Or run everything, figures and report included
    rtk.run_analysis(rtk.AnalysisConfig(experiment_file='experiment.h5ad'))

MODULE OVERVIEW:
===============

data_import
    Purpose: Load the experiment (.h5ad or count/annotation tables)
    Key functions: load_expression_experiment(), get_assay()
    Use when: Starting analysis

validation
    Purpose: Check counts, group column and contrast levels before fitting
    Key functions: validate_experiment(), validate_or_raise()
    Use when: Need to catch a malformed experiment early

preprocessing
    Purpose: Gaussian-mixture expression filter and reference level handling
    Key functions: filter_expressed_genes(), set_reference_level()
    Use when: Removing unexpressed genes before DESeq2

normalization
    Purpose: TPM/log2 TPM helpers and the DESeq2 variance stabilizing transform
    Key functions: variance_stabilize(), log2_tpm()
    Use when: Need a normalized matrix for QC or export

qc
    Purpose: Library sizes, PCA and sample correlation
    Key functions: compute_pca(), compute_library_summary()
    Use when: Checking sample quality

statistical_analysis
    Purpose: DESeq2 fit, contrast extraction and up/down classification
    Key functions: run_differential_expression(), DifferentialExpressionConfig()
    Use when: Comparing groups

enrichment
    Purpose: Enrichr queries on up- and down-regulated gene lists
    Key functions: run_differential_enrichment()
    Use when: Interpreting differential genes

visualization
    Purpose: Volcano and QC figures, SVG output
    Key functions: plot_volcano(), save_figure()

report / export
    Purpose: HTML report, Excel workbook, CSV tables and timestamped configuration
    Key functions: render_html_report(), export_normalized_expression(), export_timestamped_config()

pipeline
    Purpose: The complete analysis from one configuration
    Key functions: run_analysis(), load_config_file(), AnalysisConfig()

ERROR HANDLING:
==============
- ExperimentStructureError: counts or sample annotation unusable for DESeq2
- ReferenceLevelError: reference or contrast level absent from the group column
- EnrichmentServiceError: Enrichr answered without a result
- HTTP failures from Enrichr are raised as requests exceptions
"""

# =============================================================================
# MODULE IMPORTS - Core functionality organized by analysis stage
# =============================================================================

from . import data_import           # Experiment loading
from . import validation            # Structural checks
from . import preprocessing         # Expression filter, reference level
from . import normalization         # TPM and VST
from . import qc                    # Library sizes, PCA, correlation
from . import statistical_analysis  # DESeq2
from . import enrichment            # Enrichr
from . import visualization         # Figures
from . import report                # HTML report
from . import export                # Excel, CSV, configuration
from . import pipeline              # End-to-end run

__version__ = "1.0.0"

# =============================================================================
# CONVENIENCE IMPORTS - Most commonly used functions available at top level
# =============================================================================

from .data_import import (
    load_expression_experiment,   # Main function: read the .h5ad experiment
    load_experiment_from_tables,  # Build the experiment from CSV/TSV tables
    get_assay,                    # Genes x samples matrix of one layer
    get_sample_metadata,
    get_gene_annotations,
)

from .validation import (
    validate_experiment,
    validate_or_raise,
    ExperimentStructureError,
    ReferenceLevelError,
)

from .preprocessing import (
    filter_expressed_genes,       # Gaussian mixture on median log2 counts
    set_reference_level,
    ExpressionFilterResult,
)

from .normalization import (
    variance_stabilize,
    log2_tpm,
    select_highly_variable_genes,
)

from .qc import (
    compute_library_summary,
    compute_pca,
    sample_correlation_matrix,
)

from .statistical_analysis import (
    DifferentialExpressionConfig,  # Thresholds, contrasts and DESeq2 options
    run_differential_expression,   # Main function: fit and extract every contrast
    classify_regulation,
    display_analysis_summary,
)

from .enrichment import (
    EnrichmentConfig,
    run_differential_enrichment,
    EnrichmentServiceError,
)

from .visualization import (
    plot_volcano,
    plot_pca,
    save_figure,
)

from .report import render_html_report
from .export import export_normalized_expression, export_timestamped_config
from .pipeline import AnalysisConfig, load_config_file, run_analysis

# =============================================================================
# PUBLIC API - All functions available for import
# =============================================================================

__all__ = [
    # MODULES
    "data_import",
    "validation",
    "preprocessing",
    "normalization",
    "qc",
    "statistical_analysis",
    "enrichment",
    "visualization",
    "report",
    "export",
    "pipeline",

    # DATA LOADING
    "load_expression_experiment",
    "load_experiment_from_tables",
    "get_assay",
    "get_sample_metadata",
    "get_gene_annotations",

    # VALIDATION
    "validate_experiment",
    "validate_or_raise",
    "ExperimentStructureError",
    "ReferenceLevelError",

    # PREPROCESSING
    "filter_expressed_genes",
    "set_reference_level",
    "ExpressionFilterResult",

    # NORMALIZATION AND QC
    "variance_stabilize",
    "log2_tpm",
    "select_highly_variable_genes",
    "compute_library_summary",
    "compute_pca",
    "sample_correlation_matrix",

    # STATISTICAL ANALYSIS
    "DifferentialExpressionConfig",
    "run_differential_expression",
    "classify_regulation",
    "display_analysis_summary",

    # ENRICHMENT
    "EnrichmentConfig",
    "run_differential_enrichment",
    "EnrichmentServiceError",

    # FIGURES, REPORT AND EXPORT
    "plot_volcano",
    "plot_pca",
    "save_figure",
    "render_html_report",
    "export_normalized_expression",
    "export_timestamped_config",

    # PIPELINE
    "AnalysisConfig",            # MAIN ENTRY: settings for one run
    "load_config_file",
    "run_analysis",              # MAIN ENTRY: complete analysis
]
