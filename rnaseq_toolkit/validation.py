"""
Data Validation Module for RNA-seq Analysis Toolkit

Functions for checking that an expression experiment has the structure the
analysis expects and for producing interpretable error messages when the
group column, reference level or count matrix are not usable.
"""

import numpy as np
import pandas as pd
import anndata as ad
from typing import Dict, List, Optional, Tuple

from .data_import import COUNTS_LAYER, get_assay


class ExperimentStructureError(Exception):
    """Custom exception for malformed expression experiments."""
    def __init__(self, message):
        super().__init__(message)


class ReferenceLevelError(Exception):
    """Custom exception for missing reference or contrast levels."""
    def __init__(self, message):
        super().__init__(message)


def validate_experiment(
    adata: ad.AnnData,
    group_column: str,
    reference_level: Optional[str] = None,
    contrasts: Optional[List[Tuple[str, str]]] = None,
    min_replicates: int = 2,
    verbose: bool = True,
) -> Dict:
    """
    Validate an expression experiment before differential analysis.

    Parameters:
    -----------
    adata : ad.AnnData
        Expression experiment
    group_column : str
        Sample metadata column holding the group labels
    reference_level : str, optional
        Level every contrast is expressed against
    contrasts : List[Tuple[str, str]], optional
        (numerator, denominator) level pairs that will be tested
    min_replicates : int
        Groups with fewer samples than this produce a warning
    verbose : bool, default True
        Whether to print detailed validation results

    Returns:
    --------
    Dict containing validation results and diagnostic information
    """

    results = {
        'is_valid': True,
        'errors': [],
        'warnings': [],
        'diagnostics': {}
    }

    if verbose:
        print("EXPERIMENT STRUCTURE VALIDATION")
        print("=" * 50)

    # 1. Count matrix
    if COUNTS_LAYER not in adata.layers and adata.X is None:
        results['errors'].append("Experiment has neither a 'counts' layer nor an X matrix")
        results['is_valid'] = False
    else:
        counts = get_assay(adata, COUNTS_LAYER)
        values = counts.to_numpy(dtype=np.float64)

        if not np.isfinite(values).all():
            results['errors'].append(
                f"Count matrix contains {int((~np.isfinite(values)).sum())} missing or infinite values"
            )
            results['is_valid'] = False
        elif (values < 0).any():
            results['errors'].append(
                f"Count matrix contains {int((values < 0).sum())} negative values"
            )
            results['is_valid'] = False
        elif not np.allclose(values, np.round(values)):
            results['warnings'].append(
                "Count matrix contains non-integer values; they will be rounded before model fitting"
            )

        results['diagnostics']['n_genes'] = counts.shape[0]
        results['diagnostics']['n_samples'] = counts.shape[1]

    # 2. Gene annotations
    if 'symbol' not in adata.var.columns:
        results['warnings'].append("Gene annotations have no 'symbol' column; gene ids will be used as labels")

    if adata.var_names.has_duplicates:
        results['errors'].append(
            f"Gene identifiers are not unique ({int(adata.var_names.duplicated().sum())} duplicates)"
        )
        results['is_valid'] = False

    # 3. Group column and levels
    if group_column not in adata.obs.columns:
        results['errors'].append(
            f"Group column '{group_column}' not found in sample metadata. "
            f"Available columns: {list(adata.obs.columns)}"
        )
        results['is_valid'] = False
        levels = []
    else:
        groups = adata.obs[group_column]
        if groups.isna().any():
            results['errors'].append(
                f"{int(groups.isna().sum())} samples have no value in group column '{group_column}'"
            )
            results['is_valid'] = False

        group_counts = groups.astype(str).value_counts()
        levels = list(group_counts.index)
        results['diagnostics']['group_counts'] = group_counts.to_dict()

        small_groups = group_counts[group_counts < min_replicates]
        for level, n in small_groups.items():
            results['warnings'].append(
                f"Group '{level}' has only {n} sample(s); dispersion estimates will be unreliable"
            )

    missing_levels = []
    if levels:
        if reference_level is not None and reference_level not in levels:
            missing_levels.append(reference_level)
        for numerator, denominator in contrasts or []:
            for level in (numerator, denominator):
                if level not in levels and level not in missing_levels:
                    missing_levels.append(level)

    if missing_levels:
        results['errors'].append(
            f"Levels not present in group column '{group_column}': {missing_levels}. "
            f"Available levels: {levels}"
        )
        results['is_valid'] = False
    results['diagnostics']['missing_levels'] = missing_levels

    if verbose:
        _print_validation_summary(results)

    return results


def validate_or_raise(
    adata: ad.AnnData,
    group_column: str,
    reference_level: Optional[str] = None,
    contrasts: Optional[List[Tuple[str, str]]] = None,
    verbose: bool = True,
) -> Dict:
    """
    Run validate_experiment and raise on the first error.

    Missing levels raise ReferenceLevelError, everything else raises
    ExperimentStructureError.
    """

    results = validate_experiment(
        adata,
        group_column=group_column,
        reference_level=reference_level,
        contrasts=contrasts,
        verbose=verbose,
    )

    if results['is_valid']:
        return results

    if results['diagnostics'].get('missing_levels'):
        level_errors = [e for e in results['errors'] if e.startswith("Levels not present")]
        raise ReferenceLevelError(level_errors[0])

    raise ExperimentStructureError(results['errors'][0])


def _print_validation_summary(results: Dict) -> None:
    diagnostics = results['diagnostics']
    if 'n_genes' in diagnostics:
        print(f"Genes: {diagnostics['n_genes']}, samples: {diagnostics['n_samples']}")
    if 'group_counts' in diagnostics:
        print("Samples per group:")
        for level, n in diagnostics['group_counts'].items():
            print(f"  {level}: {n}")

    for warning in results['warnings']:
        print(f"WARNING: {warning}")
    for error in results['errors']:
        print(f"ERROR: {error}")

    if results['is_valid']:
        print("✓ Experiment passed validation")
    else:
        print(f"✗ Experiment failed validation with {len(results['errors'])} error(s)")


def summarize_groups(metadata: pd.DataFrame, group_column: str) -> pd.Series:
    """Number of samples per group level, in category order when defined."""
    groups = metadata[group_column]
    if isinstance(groups.dtype, pd.CategoricalDtype):
        return groups.value_counts(sort=False)
    return groups.value_counts().sort_index()
