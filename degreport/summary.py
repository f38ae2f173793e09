"""
Quality filter and summarizer.

Descriptive statistics per comparison (a human quality check), the filtered
views used for plotting, and the pure filters applied to clustered
enrichment results.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from .config import COMPARISON, ColumnNames, DEFAULT_COLUMNS
from .normalizer import ComparisonTable

logger = logging.getLogger("DEGReport.Summary")

DIRECTIONS = ("up", "down")
REPRESENTATIVE = "Representative"


@dataclass
class QuantileSummary:
    """Five-number summary of a numeric column"""

    min: float
    q1: float
    median: float
    q3: float
    max: float

    @classmethod
    def of(cls, values: pd.Series) -> "QuantileSummary":
        values = pd.to_numeric(values, errors="coerce").dropna()
        if values.empty:
            return cls(*([float("nan")] * 5))
        q = values.quantile([0.0, 0.25, 0.5, 0.75, 1.0]).tolist()
        return cls(*(float(v) for v in q))


@dataclass
class ComparisonSummary:
    """Summary statistics for one comparison table"""

    comparison: str
    n_genes: int
    p_value: QuantileSummary
    fold_change: QuantileSummary
    direction_counts: Dict[str, int]
    warnings: List[str] = field(default_factory=list)

    @property
    def is_suspect(self) -> bool:
        return bool(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        """Flat dictionary, one key per statistic"""
        row: Dict[str, Any] = {"comparison": self.comparison, "n_genes": self.n_genes}
        for prefix, summary in (("p", self.p_value), ("fc", self.fold_change)):
            for key, value in asdict(summary).items():
                row[f"{prefix}_{key}"] = value
        for direction, count in self.direction_counts.items():
            row[f"n_{direction}"] = count
        row["warnings"] = "; ".join(self.warnings)
        return row


def summarize_comparison(table: ComparisonTable) -> ComparisonSummary:
    """
    Compute descriptive statistics for one comparison.

    A comparison where every gene moves in the same direction is flagged
    with a warning (likely inadequate upstream filtering). It is never
    rejected.

    Args:
        table: Validated comparison table

    Returns:
        ComparisonSummary
    """
    c = table.columns
    df = table.frame

    counts = df[c.direction].value_counts()
    direction_counts = {d: int(counts.get(d, 0)) for d in DIRECTIONS}
    for other, count in counts.items():
        if other not in direction_counts:
            direction_counts[str(other)] = int(count)

    warnings: List[str] = []
    empty = [d for d in DIRECTIONS if direction_counts[d] == 0]
    if len(df) and len(empty) == 1:
        present = DIRECTIONS[1 - DIRECTIONS.index(empty[0])]
        msg = (
            f"All {len(df)} genes in '{table.name}' are '{present}'-regulated; "
            f"no '{empty[0]}' genes. Check upstream filtering."
        )
        warnings.append(msg)
        logger.warning(msg)
    elif len(empty) == 2:
        msg = f"No 'up' or 'down' genes in '{table.name}'"
        warnings.append(msg)
        logger.warning(msg)

    return ComparisonSummary(
        comparison=table.name,
        n_genes=int(df[c.gene].nunique()),
        p_value=QuantileSummary.of(df[c.padj]),
        fold_change=QuantileSummary.of(df[c.log2fc]),
        direction_counts=direction_counts,
        warnings=warnings
    )


def summarize_all(tables: Mapping[str, ComparisonTable]) -> pd.DataFrame:
    """One summary row per comparison"""
    rows = [summarize_comparison(table).to_dict() for table in tables.values()]
    return pd.DataFrame(rows)


def filter_significant(
    combined: pd.DataFrame,
    p_cutoff: float = 0.05,
    fc_cutoff: Optional[float] = None,
    columns: ColumnNames = DEFAULT_COLUMNS
) -> pd.DataFrame:
    """
    Filter the Combined Table to significant genes.

    Args:
        combined: Combined Table
        p_cutoff: Keep padj < p_cutoff
        fc_cutoff: If given, also require |log2FC| >= fc_cutoff

    Returns:
        Filtered copy, original row order
    """
    mask = combined[columns.padj] < p_cutoff
    if fc_cutoff is not None:
        mask &= combined[columns.log2fc].abs() >= fc_cutoff

    filtered = combined.loc[mask].copy()
    if COMPARISON in filtered.columns:
        per = filtered[COMPARISON].value_counts().to_dict()
        logger.info(f"Significant genes (padj < {p_cutoff}, |log2FC| >= {fc_cutoff}): {per}")
    return filtered


def flag_emphasis(
    frame: pd.DataFrame,
    p_cutoff: float = 0.05,
    fc_cutoff: float = 2.0,
    columns: ColumnNames = DEFAULT_COLUMNS
) -> pd.Series:
    """Boolean mask of genes to highlight in a volcano plot"""
    return (frame[columns.padj] < p_cutoff) & (frame[columns.log2fc].abs() >= fc_cutoff)


def clip_neg_log_p(values: pd.Series, ceiling: Optional[float] = None) -> pd.Series:
    """
    Replace the infinite negLogP sentinel (p == 0) by a finite value.

    Args:
        values: negLogP values
        ceiling: Replacement value; default is one above the largest finite
            value (at least 1), or -log10 of the smallest positive float
            when nothing is finite

    Returns:
        Series without +inf (NaN is left as is)
    """
    finite = values[np.isfinite(values)]
    if ceiling is None:
        if finite.empty:
            ceiling = float(-np.log10(np.finfo(float).tiny))
        else:
            ceiling = max(float(finite.max()), 0.0) + 1.0
    return values.where(~np.isposinf(values), ceiling)


def select_representative_terms(
    result: pd.DataFrame,
    min_enrichment: float = 1.5,
    max_p: float = 0.01
) -> pd.DataFrame:
    """
    Keep cluster representatives that are strongly and significantly enriched.

    Filter: Status == "Representative" and Fold_Enrichment > min_enrichment
    and lowest_p < max_p. Both thresholds are strict.

    Args:
        result: Clustered enrichment result
        min_enrichment: Exclusive lower bound on Fold_Enrichment
        max_p: Exclusive upper bound on lowest_p

    Returns:
        Filtered copy preserving input row order
    """
    mask = (
        (result["Status"] == REPRESENTATIVE)
        & (result["Fold_Enrichment"] > min_enrichment)
        & (result["lowest_p"] < max_p)
    )
    return result.loc[mask].copy()


def select_cluster_terms(result: pd.DataFrame, cluster_id: int) -> pd.DataFrame:
    """All terms of one cluster, input row order preserved"""
    return result.loc[result["Cluster"] == cluster_id].copy()
