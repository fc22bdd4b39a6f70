"""
Gene Set Enrichment Analysis Module

This module submits gene-symbol lists to the Enrichr web service and returns
the enriched terms as tidy tables. It is used on the up- and down-regulated
genes of each differential expression contrast.

Failures talking to the service (HTTP errors, timeouts, connection errors)
are raised to the caller; nothing is retried.
"""

import re
import time
import json
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from matplotlib.patches import Rectangle
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import requests

from .statistical_analysis import UP_REGULATED, DOWN_REGULATED


ENRICHR_URL = "https://maayanlab.cloud/Enrichr"


class EnrichmentServiceError(Exception):
    """Raised when Enrichr answers with something that is not a result."""
    def __init__(self, message):
        super().__init__(message)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class EnrichmentConfig:
    """Configuration for gene set enrichment analysis.

    Attributes
    ----------
    enrichr_libraries : List[str]
        Gene set libraries to query from Enrichr
    pvalue_cutoff : float
        P-value threshold for significant enrichment
    top_n : int
        Maximum number of top terms to return per library
    min_genes : int
        Minimum number of genes required to run enrichment
    rate_limit_delay : float
        Delay between API requests (seconds)
    timeout : int
        Request timeout in seconds
    base_url : str
        Enrichr endpoint
    bar_figsize : Tuple[float, float]
        Default size in inches of the enrichment bar plots
    """

    enrichr_libraries: List[str] = field(default_factory=lambda: [
        'GO_Biological_Process_2023',
        'GO_Molecular_Function_2023',
        'GO_Cellular_Component_2023',
        'KEGG_2019_Mouse',
        'WikiPathways_2019_Mouse',
        'Reactome_2022',
    ])

    pvalue_cutoff: float = 0.05
    top_n: int = 20

    min_genes: int = 5

    rate_limit_delay: float = 0.5
    timeout: int = 30
    base_url: str = ENRICHR_URL

    bar_figsize: Tuple[float, float] = (10, 6)


LIBRARY_COLORS = {
    'GO_Biological_Process_2023': '#1f77b4',
    'GO_Molecular_Function_2023': '#2ca02c',
    'GO_Cellular_Component_2023': '#17becf',
    'KEGG_2019_Mouse': '#d62728',
    'WikiPathways_2019_Mouse': '#ff7f0e',
    'Reactome_2022': '#9467bd',
    'MSigDB_Hallmark_2020': '#8c564b',
}


# =============================================================================
# ENRICHR API FUNCTIONS
# =============================================================================

def clean_gene_list(gene_list: List[str]) -> List[str]:
    """Drop missing, blank and duplicated symbols, keeping first-seen order."""
    clean_genes = []
    for g in gene_list:
        if pd.notna(g):
            gene_str = str(g).strip()
            if gene_str and gene_str.lower() not in ['nan', 'none'] and gene_str not in clean_genes:
                clean_genes.append(gene_str)
    return clean_genes


def query_enrichr(
    gene_list: List[str],
    config: Optional[EnrichmentConfig] = None,
    description: str = 'Gene Set Enrichment Analysis'
) -> Dict[str, List]:
    """
    Query the Enrichr API for gene set enrichment.

    Parameters
    ----------
    gene_list : List[str]
        Gene symbols (e.g. ['Th', 'Slc6a3', 'Ddc'])
    config : EnrichmentConfig, optional
        Configuration object. Uses defaults if not provided.
    description : str
        Description for the gene list submission

    Returns
    -------
    Dict[str, List]
        Library name -> list of results. Each result is a list:
        [rank, term, pval, zscore, combined_score, genes, adj_pval, ...].
        Empty dict when fewer than ``config.min_genes`` symbols are given.

    Raises
    ------
    requests.HTTPError, requests.ConnectionError, requests.Timeout
        When the service cannot be reached or answers with an error status
    EnrichmentServiceError
        When the submission response has no user list id
    """
    if config is None:
        config = EnrichmentConfig()

    clean_genes = clean_gene_list(gene_list)

    if len(clean_genes) < config.min_genes:
        print(f"  Warning: Only {len(clean_genes)} genes provided, need at least {config.min_genes}")
        return {}

    payload = {
        'list': (None, '\n'.join(clean_genes)),
        'description': (None, description)
    }

    response = requests.post(f'{config.base_url}/addList', files=payload, timeout=config.timeout)
    response.raise_for_status()

    data = json.loads(response.text)
    if 'userListId' not in data:
        raise EnrichmentServiceError(f"Enrichr did not return a userListId: {data}")
    user_list_id = data['userListId']

    results = {}
    for library in config.enrichr_libraries:
        time.sleep(config.rate_limit_delay)
        response = requests.get(
            f'{config.base_url}/enrich',
            params={'userListId': user_list_id, 'backgroundType': library},
            timeout=config.timeout
        )
        response.raise_for_status()

        enrichment_results = json.loads(response.text)
        if library in enrichment_results:
            results[library] = enrichment_results[library]

    return results


def parse_enrichr_results(
    results: Dict[str, List],
    config: Optional[EnrichmentConfig] = None
) -> pd.DataFrame:
    """
    Parse Enrichr API results into a tidy DataFrame.

    Parameters
    ----------
    results : Dict[str, List]
        Raw results from query_enrichr()
    config : EnrichmentConfig, optional
        Configuration object for filtering thresholds

    Returns
    -------
    pd.DataFrame
        Columns Library, Term, P_Value, Adj_P_Value, Z_Score, Combined_Score,
        Genes (semicolon-separated overlap) and N_Genes, sorted by
        Combined_Score descending. Empty when nothing passes the cutoff.
    """
    if config is None:
        config = EnrichmentConfig()

    parsed_results = []

    for library, terms in results.items():
        for term_data in terms[:config.top_n]:
            if len(term_data) < 7:
                continue
            pval = term_data[2]
            if pval > config.pvalue_cutoff:
                continue
            overlap = term_data[5] if isinstance(term_data[5], list) else [term_data[5]]
            parsed_results.append({
                'Library': library,
                'Term': term_data[1],
                'P_Value': pval,
                'Adj_P_Value': term_data[6],
                'Z_Score': term_data[3],
                'Combined_Score': term_data[4],
                'Genes': ';'.join(overlap),
                'N_Genes': len(overlap),
            })

    if parsed_results:
        return pd.DataFrame(parsed_results).sort_values('Combined_Score', ascending=False).reset_index(drop=True)
    return pd.DataFrame()


# =============================================================================
# HIGH-LEVEL ENRICHMENT FUNCTIONS
# =============================================================================

def run_enrichment_analysis(
    gene_list: List[str],
    config: Optional[EnrichmentConfig] = None,
    description: str = 'Gene Set Enrichment Analysis',
    verbose: bool = True
) -> pd.DataFrame:
    """
    Query Enrichr and parse the answer in one call.

    Examples
    --------
    >>> up = classified.loc[classified['status'] == 'Up-regulated', 'symbol'].tolist()
    >>> enrichment = run_enrichment_analysis(up, description='Up-regulated genes')
    """
    if config is None:
        config = EnrichmentConfig()

    if verbose:
        print(f"Running enrichment on {len(clean_gene_list(gene_list))} genes...", flush=True)

    raw_results = query_enrichr(gene_list, config, description)

    if not raw_results:
        if verbose:
            print("  No results returned from Enrichr", flush=True)
        return pd.DataFrame()

    enrichment_df = parse_enrichr_results(raw_results, config)

    if verbose:
        if not enrichment_df.empty:
            print(f"  Found {len(enrichment_df)} significant terms", flush=True)
        else:
            print("  No significant enrichment found", flush=True)

    return enrichment_df


def run_differential_enrichment(
    classified: pd.DataFrame,
    config: Optional[EnrichmentConfig] = None,
    gene_column: str = 'symbol',
    status_column: str = 'status',
    verbose: bool = True
) -> Dict[str, pd.DataFrame]:
    """
    Run enrichment on the up- and down-regulated genes of one contrast.

    Parameters
    ----------
    classified : pd.DataFrame
        Result table from statistical_analysis.classify_regulation
    config : EnrichmentConfig, optional
        Configuration object
    gene_column : str
        Column containing gene symbols
    status_column : str
        Column containing the regulation status
    verbose : bool
        Whether to print progress messages

    Returns
    -------
    Dict[str, pd.DataFrame]
        Keys 'Up-regulated' and 'Down-regulated'; groups below
        ``config.min_genes`` map to an empty DataFrame
    """
    if config is None:
        config = EnrichmentConfig()

    enrichment_results = {}

    for direction in (UP_REGULATED, DOWN_REGULATED):
        genes = classified.loc[classified[status_column] == direction, gene_column].dropna().tolist()

        if verbose:
            print(f"\n{direction} ({len(genes)} genes):", flush=True)

        if len(genes) >= config.min_genes:
            enrichment_results[direction] = run_enrichment_analysis(
                genes, config, description=f'{direction} genes', verbose=verbose
            )
        else:
            enrichment_results[direction] = pd.DataFrame()
            if verbose:
                print(f"  Skipping - need at least {config.min_genes} genes", flush=True)

    return enrichment_results


def merge_enrichment_results(
    enrichment_dict: Dict[str, pd.DataFrame],
    add_group_column: bool = True
) -> pd.DataFrame:
    """
    Merge multiple enrichment result DataFrames into one.

    Parameters
    ----------
    enrichment_dict : Dict[str, pd.DataFrame]
        Group name -> enrichment DataFrame
    add_group_column : bool
        Whether to add a 'Group' column with the group name

    Returns
    -------
    pd.DataFrame
    """
    all_dfs = []
    for group_name, df in enrichment_dict.items():
        if not df.empty:
            df_copy = df.copy()
            if add_group_column:
                df_copy['Group'] = group_name
            all_dfs.append(df_copy)

    if all_dfs:
        return pd.concat(all_dfs, ignore_index=True)
    return pd.DataFrame()


# =============================================================================
# VISUALIZATION
# =============================================================================

def _short_term(term: str, width: int = 55) -> str:
    """Term name without its trailing GO id, cut to ``width`` characters."""
    term = re.sub(r"\s*\(GO:\d+\)$", "", term)
    return term if len(term) <= width else term[:width - 3] + "..."


def plot_enrichment_barplot(
    enrichment_df: pd.DataFrame,
    title: str = 'Gene Set Enrichment',
    top_n: int = 15,
    config: Optional[EnrichmentConfig] = None,
    figsize: Optional[Tuple[float, float]] = None,
    verbose: bool = True,
) -> Optional[Figure]:
    """
    Horizontal bar plot of the most enriched terms.

    Bars show the Enrichr combined score, are coloured by library and carry
    the number of overlapping genes. The highest-scoring term is on top.

    Parameters
    ----------
    enrichment_df : pd.DataFrame
        Parsed results from run_enrichment_analysis
    title : str
        Plot title, typically the contrast and direction
    top_n : int
        Number of terms shown
    config : EnrichmentConfig, optional
        Supplies the default figure size (``bar_figsize``)
    figsize : Tuple[float, float], optional
        Overrides ``config.bar_figsize``

    Returns
    -------
    Figure or None
        None when there is nothing to plot
    """
    if enrichment_df is None or enrichment_df.empty:
        if verbose:
            print(f"  No significant enrichment results for: {title}")
        return None

    if config is None:
        config = EnrichmentConfig()
    if figsize is None:
        figsize = config.bar_figsize

    top = enrichment_df.nlargest(top_n, 'Combined_Score').iloc[::-1]
    positions = np.arange(len(top))
    colors = top['Library'].map(LIBRARY_COLORS).fillna('grey').tolist()

    fig, ax = plt.subplots(figsize=figsize)
    ax.barh(positions, top['Combined_Score'], color=colors, alpha=0.85)
    ax.set_yticks(positions)
    ax.set_yticklabels([_short_term(t) for t in top['Term']], fontsize=9)
    ax.set_xlabel('Enrichr combined score')
    ax.set_title(title, fontweight='bold')

    offset = 0.01 * top['Combined_Score'].max()
    for y, (score, n_genes) in enumerate(zip(top['Combined_Score'], top['N_Genes'])):
        ax.text(score + offset, y, str(n_genes), va='center', fontsize=8, color='dimgrey')

    handles = [
        Rectangle((0, 0), 1, 1, facecolor=LIBRARY_COLORS.get(lib, 'grey'), alpha=0.85,
                  label=lib.replace('_', ' '))
        for lib in pd.unique(top['Library'])[::-1]
    ]
    ax.legend(handles=handles, loc='lower right', fontsize=8, frameon=False)

    fig.tight_layout()
    return fig
