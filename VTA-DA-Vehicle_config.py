# =============================================================================
# RNA-SEQ ANALYSIS CONFIGURATION
# Generated: 2025-09-03 10:27:14
# Analysis: Expression filter, DESeq2 contrasts and Enrichr enrichment
# =============================================================================

# =============================================================================
# 1. INPUT FILES AND PATHS
# =============================================================================
experiment_file = 'data/SummExp_1191_CNS_CSS_VTA_neurons_VEH_Pryce.h5ad'
output_dir = 'results'
figures_dir = 'figs'

# =============================================================================
# 2. EXPERIMENTAL DESIGN
# =============================================================================
group_column = 'MFGroup'
reference_level = 'control_vehicle_DA_neuron'
contrasts = [('CSS_vehicle_DA_neuron', 'control_vehicle_DA_neuron')]
contrast_titles = {'CSS_vehicle_DA_neuron_vs_control_vehicle_DA_neuron': 'CSS Vehicle vs Control Vehicle'}

# =============================================================================
# 3. EXPRESSION FILTER
# =============================================================================
counts_layer = 'counts'
tpm_layer = 'tpm'
n_mixture_components = 2
random_seed = 42

# =============================================================================
# 4. QUALITY CONTROL
# =============================================================================
n_top_variable_genes = 500
correlation_method = 'pearson'

# =============================================================================
# 5. SIGNIFICANCE THRESHOLDS
# =============================================================================
logfc_threshold = 0.5
p_value_threshold = 0.001
p_value_column = 'pvalue'
alpha = 0.05
label_overrides = {'ENSMUSG00000110038': 'Gm45570'}

# =============================================================================
# 6. ENRICHMENT
# =============================================================================
run_enrichment = True
enrichr_libraries = ['GO_Biological_Process_2023', 'GO_Molecular_Function_2023', 'GO_Cellular_Component_2023', 'KEGG_2019_Mouse', 'WikiPathways_2019_Mouse', 'Reactome_2022']
enrichment_pvalue_cutoff = 0.05
enrichment_min_genes = 5

# =============================================================================
# 7. OUTPUT AND EXPORT SETTINGS
# =============================================================================
output_prefix = 'DA_neurons_VEH'
figure_suffix = 'VEH'
figure_width = 7
figure_height = 6
n_cpus = 1
