"""
Over-Representation Analysis (ORA) for the DEG Report Enrichment Engine

Hypergeometric test of a gene list against every term of a gene set
catalog, with multiple testing correction.
"""

import logging
from typing import Iterable, List, Optional

import pandas as pd
from scipy.stats import hypergeom
from statsmodels.stats.multitest import multipletests

from .gene_sets import GeneSetCatalog

logger = logging.getLogger("DEGReport.Enrichment.ORA")

# User-facing adjustment names -> statsmodels methods
ADJUST_METHODS = {
    'fdr': 'fdr_bh',
    'BH': 'fdr_bh',
    'BY': 'fdr_by',
    'bonferroni': 'bonferroni',
    'holm': 'holm',
    'hochberg': 'simes-hochberg',
    'hommel': 'hommel',
}

ORA_COLUMNS = ['ID', 'Term_Description', 'Fold_Enrichment', 'p_value', 'adj_p', 'support', 'genes']


def hypergeometric_test(
    hit_in_pathway: int,
    pathway_size: int,
    hit_size: int,
    background_size: int
) -> float:
    """
    Perform hypergeometric test for enrichment.

    P(X >= k) where:
    - k: genes in both input and pathway
    - M: background size
    - n: pathway size
    - N: input size

    Returns:
        P-value
    """
    # P(X >= k) = 1 - P(X <= k-1)
    return float(hypergeom.sf(hit_in_pathway - 1, background_size, pathway_size, hit_size))


def adjust_p_values(p_values: List[float], method: str = 'fdr') -> List[float]:
    """
    Apply multiple testing correction to p-values.

    Args:
        p_values: List of p-values
        method: One of ADJUST_METHODS or 'none'

    Returns:
        List of adjusted p-values
    """
    if method == 'none' or not p_values:
        return list(p_values)

    if method not in ADJUST_METHODS:
        raise ValueError(
            f"Unknown adjustment method '{method}'. "
            f"Choose from: {', '.join(list(ADJUST_METHODS) + ['none'])}"
        )

    _, adjusted, _, _ = multipletests(p_values, method=ADJUST_METHODS[method])
    return [float(p) for p in adjusted]


def run_ora(
    gene_list: Iterable[str],
    catalog: GeneSetCatalog,
    background: Optional[Iterable[str]] = None,
    adjust_method: str = 'fdr',
    threshold: float = 0.05,
    min_overlap: int = 1
) -> pd.DataFrame:
    """
    Run Over-Representation Analysis.

    Args:
        gene_list: Input genes (e.g. an active subnetwork)
        catalog: Gene set catalog
        background: Background genes (default: all catalog genes)
        adjust_method: Multiple testing correction
        threshold: Keep terms with adjusted p <= threshold
        min_overlap: Minimum genes required in overlap

    Returns:
        DataFrame with ORA_COLUMNS sorted by adjusted p-value
    """
    background_set = set(background) if background is not None else catalog.universe()
    gene_set = set(gene_list) & background_set
    background_size = len(background_set)

    if not gene_set or background_size == 0:
        return pd.DataFrame(columns=ORA_COLUMNS)

    rows = []
    for term_id, members in catalog.gene_sets.items():
        pathway_set = set(members) & background_set
        if not pathway_set:
            continue

        hit_genes = gene_set & pathway_set
        if len(hit_genes) < min_overlap:
            continue

        p_value = hypergeometric_test(len(hit_genes), len(pathway_set), len(gene_set), background_size)
        fold = (len(hit_genes) / len(gene_set)) / (len(pathway_set) / background_size)

        rows.append({
            'ID': term_id,
            'Term_Description': catalog.describe(term_id),
            'Fold_Enrichment': fold,
            'p_value': p_value,
            'support': len(hit_genes),
            'genes': sorted(hit_genes),
        })

    if not rows:
        return pd.DataFrame(columns=ORA_COLUMNS)

    result = pd.DataFrame(rows)
    result['adj_p'] = adjust_p_values(result['p_value'].tolist(), method=adjust_method)
    result = result.loc[result['adj_p'] <= threshold, ORA_COLUMNS]
    result = result.sort_values('adj_p', kind='mergesort').reset_index(drop=True)

    logger.debug(
        f"ORA: {len(gene_set)} genes, {len(catalog)} terms, background={background_size}, "
        f"{len(result)} significant"
    )
    return result
