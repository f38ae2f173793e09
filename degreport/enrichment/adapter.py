"""
Enrichment adapter.

Reshapes validated comparison tables into the Enrichment Input Table,
invokes the engine once per comparison and merges the results of two
comparisons into one table.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Mapping, Sequence

import numpy as np
import pandas as pd
from scipy.stats import combine_pvalues

from ..errors import EnrichmentError
from ..normalizer import ComparisonTable
from .engine import INPUT_COLUMNS, EnrichmentEngine, EnrichmentOptions

logger = logging.getLogger("DEGReport.Enrichment.Adapter")

_MERGED_FIELDS = ['Fold_Enrichment', 'occurrence', 'support', 'lowest_p', 'highest_p',
                  'Up_regulated', 'Down_regulated']


def to_enrichment_input(table: ComparisonTable) -> pd.DataFrame:
    """
    Project a comparison table to (Gene_symbol, logFC, FDR_adj_p).

    Returns:
        Flat DataFrame with exactly INPUT_COLUMNS, original row order
    """
    c = table.columns
    projected = table.frame[[c.gene, c.log2fc, c.padj]].copy()
    projected.columns = INPUT_COLUMNS
    return projected.reset_index(drop=True)


def run_enrichment(
    table: ComparisonTable,
    options: EnrichmentOptions,
    engine: EnrichmentEngine
) -> pd.DataFrame:
    """
    Run the enrichment engine once for one comparison.

    No retries and no caching: a stochastic search gives a fresh result on
    every call. Files the engine writes are its own business.

    Args:
        table: Validated comparison table
        options: Enrichment parameters
        engine: Enrichment engine

    Returns:
        The engine's result, unmodified

    Raises:
        EnrichmentError: Wrapping any exception raised by the engine
    """
    input_table = to_enrichment_input(table)
    logger.info(f"Running enrichment for '{table.name}' ({len(input_table)} genes)")

    try:
        return engine.run(input_table, options)
    except Exception as e:
        raise EnrichmentError(f"{type(e).__name__}: {e}", comparison=table.name) from e


def cluster_result(name: str, result: pd.DataFrame, engine: EnrichmentEngine) -> pd.DataFrame:
    """Cluster an enrichment result with the engine, errors wrapped as EnrichmentError"""
    try:
        return engine.cluster(result)
    except Exception as e:
        raise EnrichmentError(f"clustering failed: {type(e).__name__}: {e}", comparison=name) from e


def run_selected(
    tables: Mapping[str, ComparisonTable],
    names: Sequence[str],
    options: EnrichmentOptions,
    engine: EnrichmentEngine,
    max_workers: int = 1
) -> Dict[str, pd.DataFrame]:
    """
    Run enrichment for the selected comparisons.

    The calls are independent (disjoint input tables), so with
    max_workers > 1 they run in a thread pool. Results are joined by
    comparison name.

    Returns:
        Comparison name -> enrichment result, in the order of names
    """
    missing = [n for n in names if n not in tables]
    if missing:
        raise KeyError(f"Comparison(s) not loaded: {', '.join(missing)}")

    if max_workers <= 1 or len(names) <= 1:
        return {name: run_enrichment(tables[name], options, engine) for name in names}

    with ThreadPoolExecutor(max_workers=min(max_workers, len(names))) as executor:
        futures = {name: executor.submit(run_enrichment, tables[name], options, engine) for name in names}
        return {name: futures[name].result() for name in names}


def _fisher_combined(p_a: float, p_b: float) -> float:
    available = [p for p in (p_a, p_b) if pd.notna(p)]
    if len(available) == 1:
        return float(available[0])
    clipped = np.clip(available, np.finfo(float).tiny, 1.0)
    return float(combine_pvalues(clipped, method='fisher')[1])


def combine_results(
    result_a: pd.DataFrame,
    result_b: pd.DataFrame,
    name_a: str = "A",
    name_b: str = "B"
) -> pd.DataFrame:
    """
    Merge two enrichment results into one comparison table.

    Terms are matched on ID. Per-comparison fields get _A / _B suffixes.
    combined_p is Fisher's combination of the two lowest_p values for common
    terms and the single available lowest_p otherwise. status is 'common',
    '<name_a> only' or '<name_b> only'.

    Returns:
        Merged DataFrame sorted ascending by combined_p (stable)
    """
    def _prepare(result: pd.DataFrame, suffix: str) -> pd.DataFrame:
        keep = ['ID', 'Term_Description'] + [f for f in _MERGED_FIELDS if f in result.columns]
        renamed = result[keep].rename(columns={f: f"{f}_{suffix}" for f in _MERGED_FIELDS})
        return renamed.drop_duplicates('ID')

    merged = pd.merge(
        _prepare(result_a, 'A'), _prepare(result_b, 'B'),
        on='ID', how='outer', suffixes=('', '_other'), sort=False
    )
    merged['Term_Description'] = merged['Term_Description'].fillna(merged.pop('Term_Description_other'))

    in_a = merged['lowest_p_A'].notna()
    in_b = merged['lowest_p_B'].notna()
    merged['status'] = np.select([in_a & in_b, in_a], ['common', 'A only'], default='B only')
    merged['combined_p'] = [
        _fisher_combined(pa, pb) for pa, pb in zip(merged['lowest_p_A'], merged['lowest_p_B'])
    ]

    merged['status'] = merged['status'].replace({'A only': f"{name_a} only", 'B only': f"{name_b} only"})

    merged = merged.sort_values('combined_p', kind='mergesort').reset_index(drop=True)
    logger.info(
        f"Combined results: {int((in_a & in_b).sum())} common, "
        f"{int((in_a & ~in_b).sum())} {name_a} only, {int((~in_a & in_b).sum())} {name_b} only"
    )
    return merged
