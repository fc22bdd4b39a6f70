"""
Pipeline Module for RNA-seq Analysis Toolkit

Runs the complete analysis in one pass: load the experiment, filter
expressed genes, fit DESeq2, transform for QC, extract each contrast, query
Enrichr and write the SVG figures, Excel workbook, CSV tables, HTML report
and timestamped configuration.
"""

import os
import runpy
import sys
import matplotlib.pyplot as plt
from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, List, Optional, Tuple

from .data_import import (
    COUNTS_LAYER,
    TPM_LAYER,
    load_expression_experiment,
    get_assay,
    get_sample_metadata,
    get_gene_annotations,
)
from .validation import validate_or_raise, summarize_groups
from .preprocessing import filter_expressed_genes, set_reference_level, calculate_group_colors
from .normalization import variance_stabilize, select_highly_variable_genes
from .qc import compute_library_summary, compute_pca, sample_correlation_matrix
from .statistical_analysis import (
    DifferentialExpressionConfig,
    run_differential_expression,
    contrast_name,
)
from .enrichment import EnrichmentConfig, run_differential_enrichment, plot_enrichment_barplot
from .visualization import (
    plot_volcano,
    plot_expression_filter,
    plot_library_sizes,
    plot_pca,
    plot_sample_correlation_heatmap,
    save_figure,
    volcano_filename,
)
from .report import build_report_context, render_html_report
from .export import (
    export_normalized_expression,
    export_differential_results,
    export_enrichment_results,
    export_timestamped_config,
)


@dataclass
class AnalysisConfig:
    """Settings for one run of the analysis.

    Field names match the variables of the Python configuration files read by
    load_config_file and written by export.export_timestamped_config.
    """

    # Input and output locations
    experiment_file: str = "data/SummExp_1191_CNS_CSS_VTA_neurons_VEH_Pryce.h5ad"
    output_dir: str = "results"
    figures_dir: str = "figs"

    # Experimental design
    group_column: str = "MFGroup"
    reference_level: str = "control_vehicle_DA_neuron"
    contrasts: List[Tuple[str, str]] = field(default_factory=lambda: [
        ("CSS_vehicle_DA_neuron", "control_vehicle_DA_neuron"),
    ])
    contrast_titles: Dict[str, str] = field(default_factory=lambda: {
        "CSS_vehicle_DA_neuron_vs_control_vehicle_DA_neuron": "CSS Vehicle vs Control Vehicle",
    })

    # Expression filter
    counts_layer: str = COUNTS_LAYER
    tpm_layer: str = TPM_LAYER
    n_mixture_components: int = 2
    random_seed: int = 42

    # Quality control
    n_top_variable_genes: int = 500
    correlation_method: str = "pearson"

    # Significance thresholds
    logfc_threshold: float = 0.5
    p_value_threshold: float = 0.001
    p_value_column: str = "pvalue"
    alpha: float = 0.05
    label_overrides: Dict[str, str] = field(default_factory=lambda: {
        "ENSMUSG00000110038": "Gm45570",
    })

    # Enrichment
    run_enrichment: bool = True
    enrichr_libraries: List[str] = field(default_factory=lambda: EnrichmentConfig().enrichr_libraries)
    enrichment_pvalue_cutoff: float = 0.05
    enrichment_min_genes: int = 5

    # Output
    output_prefix: str = "DA_neurons_VEH"
    figure_suffix: str = "VEH"
    figure_width: float = 7
    figure_height: float = 6
    n_cpus: int = 1

    def __post_init__(self):
        self.contrasts = [tuple(c) for c in self.contrasts]

    def to_de_config(self) -> DifferentialExpressionConfig:
        de_config = DifferentialExpressionConfig()
        de_config.group_column = self.group_column
        de_config.reference_level = self.reference_level
        de_config.contrasts = list(self.contrasts)
        de_config.contrast_titles = dict(self.contrast_titles)
        de_config.logfc_threshold = self.logfc_threshold
        de_config.p_value_threshold = self.p_value_threshold
        de_config.p_value_column = self.p_value_column
        de_config.alpha = self.alpha
        de_config.label_overrides = dict(self.label_overrides)
        de_config.n_cpus = self.n_cpus
        de_config.validate()
        return de_config

    def to_enrichment_config(self) -> EnrichmentConfig:
        return EnrichmentConfig(
            enrichr_libraries=list(self.enrichr_libraries),
            pvalue_cutoff=self.enrichment_pvalue_cutoff,
            min_genes=self.enrichment_min_genes,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def output_path_prefix(self) -> str:
        return os.path.join(self.output_dir, self.output_prefix)


def load_config_file(path: str, verbose: bool = True) -> AnalysisConfig:
    """
    Build an AnalysisConfig from a Python configuration file.

    The file is executed and every top-level variable whose name matches an
    AnalysisConfig field is used; other variables are ignored.
    """

    if not os.path.exists(path):
        raise FileNotFoundError(f"Configuration file not found: {path}")

    namespace = runpy.run_path(path)
    known = {f.name for f in fields(AnalysisConfig)}
    values = {k: v for k, v in namespace.items() if k in known}

    if verbose:
        print(f"✓ Loaded configuration from {path} ({len(values)} settings)")
    return AnalysisConfig(**values)


def run_analysis(config: Optional[AnalysisConfig] = None, verbose: bool = True) -> Dict[str, Any]:
    """
    Run the full analysis.

    Parameters:
    -----------
    config : AnalysisConfig, optional
        Settings; defaults reproduce the VTA vehicle analysis
    verbose : bool
        Print progress

    Returns:
    --------
    dict with keys 'filter_result', 'results', 'enrichment', 'vst',
    'pca_scores', 'library_summary' and 'files' (every path written)
    """

    if config is None:
        config = AnalysisConfig()
    de_config = config.to_de_config()
    files: Dict[str, Any] = {}

    # 1. Load and validate
    adata = load_expression_experiment(config.experiment_file, verbose=verbose)
    validate_or_raise(
        adata,
        group_column=config.group_column,
        reference_level=config.reference_level,
        contrasts=config.contrasts,
        verbose=verbose,
    )
    n_genes_total = adata.n_vars
    all_counts = get_assay(adata, config.counts_layer)

    # 2. Expression filter and design factor
    expressed, filter_result = filter_expressed_genes(
        adata,
        layer=config.counts_layer,
        n_components=config.n_mixture_components,
        random_state=config.random_seed,
        verbose=verbose,
    )
    set_reference_level(expressed, config.group_column, config.reference_level)

    counts = get_assay(expressed, config.counts_layer)
    metadata = get_sample_metadata(expressed)
    gene_annotations = get_gene_annotations(expressed)
    group_colors = calculate_group_colors(
        list(metadata[config.group_column].astype(str)), config.reference_level
    )

    # 3. Differential expression
    dds, results_by_contrast = run_differential_expression(
        counts, metadata, gene_annotations, de_config, verbose=verbose
    )

    # 4. Blind VST for QC, after contrasts have been extracted
    vst = variance_stabilize(dds, use_design=False)

    library_summary = compute_library_summary(all_counts, metadata, group_column=config.group_column)
    pca_scores, explained = compute_pca(
        vst, metadata, config.group_column, n_top=config.n_top_variable_genes
    )
    corr = sample_correlation_matrix(
        select_highly_variable_genes(vst, n_top=config.n_top_variable_genes),
        method=config.correlation_method,
    )

    qc_figures = {
        "filter": plot_expression_filter(filter_result),
        "library": plot_library_sizes(library_summary, config.group_column, group_colors),
        "pca": plot_pca(pca_scores, explained, config.group_column, group_colors),
        "correlation": plot_sample_correlation_heatmap(corr, metadata, config.group_column),
    }

    # 5. Volcano figures, one SVG per contrast
    volcano_figures = {}
    contrast_titles = {}
    files["figures"] = {}
    for numerator, denominator in config.contrasts:
        name = contrast_name(numerator, denominator)
        title = de_config.title_for(numerator, denominator)
        contrast_titles[name] = title

        fig = plot_volcano(
            results_by_contrast[name],
            de_config,
            title=title,
            figsize=(config.figure_width, config.figure_height),
        )
        path = os.path.join(
            config.figures_dir,
            volcano_filename(title, config.figure_suffix, config.figure_width, config.figure_height),
        )
        files["figures"][name] = save_figure(fig, path, config.figure_width, config.figure_height)
        volcano_figures[name] = fig
        if verbose:
            print(f"✓ Volcano plot saved to: {path}")

    # 6. Enrichment
    enrichment_by_contrast = {}
    enrichment_figures = {}
    if config.run_enrichment:
        enrichment_config = config.to_enrichment_config()
        for name, classified in results_by_contrast.items():
            if verbose:
                print(f"\n=== ENRICHMENT: {contrast_titles[name]} ===")
            enrichment_by_contrast[name] = run_differential_enrichment(
                classified, enrichment_config, verbose=verbose
            )
            enrichment_figures[name] = {
                direction: plot_enrichment_barplot(
                    table, title=f"{contrast_titles[name]}: {direction}", config=enrichment_config, verbose=verbose
                )
                for direction, table in enrichment_by_contrast[name].items()
            }

    # 7. Tables, workbook, report, configuration
    tpm = get_assay(expressed, config.tpm_layer) if config.tpm_layer in expressed.layers else None
    files["excel"] = export_normalized_expression(
        tpm, vst, gene_annotations, metadata,
        f"{config.output_path_prefix}_normalized_expression.xlsx",
        verbose=verbose,
    )
    files["differential_results"] = export_differential_results(
        results_by_contrast, config.output_path_prefix, verbose=verbose
    )
    files["enrichment"] = export_enrichment_results(
        enrichment_by_contrast, config.output_path_prefix, verbose=verbose
    )

    context = build_report_context(
        title=f"{config.output_prefix}: differential expression report",
        input_file=config.experiment_file,
        config=de_config,
        group_counts=summarize_groups(metadata, config.group_column),
        n_genes_total=n_genes_total,
        n_samples=adata.n_obs,
        filter_threshold=filter_result.threshold,
        n_genes_expressed=filter_result.n_expressed,
        library_summary=library_summary,
        figures=qc_figures,
        results_by_contrast=results_by_contrast,
        volcano_figures=volcano_figures,
        contrast_titles=contrast_titles,
        enrichment_by_contrast=enrichment_by_contrast,
        enrichment_figures=enrichment_figures,
        n_components=config.n_mixture_components,
        n_hvg=config.n_top_variable_genes,
    )
    files["report"] = render_html_report(
        context, f"{config.output_path_prefix}_report.html", verbose=verbose
    )

    files["configuration"] = export_timestamped_config(
        config.to_dict(),
        output_prefix=config.output_path_prefix,
        analysis_description="Expression filter, DESeq2 contrasts and Enrichr enrichment",
        computed_values={
            "Genes in experiment": n_genes_total,
            "Genes expressed": filter_result.n_expressed,
            "Samples": adata.n_obs,
        },
        verbose=verbose,
    )

    enrichment_plots = [fig for by_direction in enrichment_figures.values() for fig in by_direction.values()]
    for fig in list(qc_figures.values()) + list(volcano_figures.values()) + enrichment_plots:
        if fig is not None:
            plt.close(fig)

    if verbose:
        print("\n" + "=" * 60)
        print("✓ Analysis complete. Files written:")
        print(f"  • {files['report']}")
        print(f"  • {files['excel']}")
        for path in files["figures"].values():
            print(f"  • {path}")
        print("=" * 60)

    return {
        "filter_result": filter_result,
        "results": results_by_contrast,
        "enrichment": enrichment_by_contrast,
        "vst": vst,
        "pca_scores": pca_scores,
        "library_summary": library_summary,
        "files": files,
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry: ``rnaseq-analysis [config.py]``."""
    argv = sys.argv[1:] if argv is None else argv
    config = load_config_file(argv[0]) if argv else AnalysisConfig()
    run_analysis(config)
    return 0
