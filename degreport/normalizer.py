"""
Validation and normalization of comparison tables.

Every table coming out of the loader passes through here exactly once:
required columns and gene-identifier uniqueness are checked, the derived
negLogP column is appended, and the tables are merged into one long-form
Combined Table tagged by comparison.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping

import numpy as np
import pandas as pd

from .config import COMPARISON, DEFAULT_COLUMNS, NEG_LOG_P, ColumnNames
from .errors import DuplicateKeyError, SchemaError, SchemaMismatchError

logger = logging.getLogger("DEGReport.Normalizer")


@dataclass(frozen=True)
class DEGRecord:
    """One validated row of a comparison table"""

    gene: str
    log2_fold_change: float
    adjusted_p: float
    direction: str
    neg_log_p: float


@dataclass
class ComparisonTable:
    """
    A validated comparison table.

    Only built by validate_table(), so holding one means the required
    columns exist, gene identifiers are unique and negLogP is present.
    """

    name: str
    frame: pd.DataFrame
    columns: ColumnNames = DEFAULT_COLUMNS

    def __len__(self) -> int:
        return len(self.frame)

    def records(self) -> Iterator[DEGRecord]:
        """Iterate rows as typed records"""
        c = self.columns
        for gene, fc, padj, direction, nlp in zip(
            self.frame[c.gene], self.frame[c.log2fc], self.frame[c.padj],
            self.frame[c.direction], self.frame[NEG_LOG_P]
        ):
            yield DEGRecord(
                gene=str(gene),
                log2_fold_change=float(fc),
                adjusted_p=float(padj),
                direction=str(direction),
                neg_log_p=float(nlp)
            )


def neg_log10_p(p_values: pd.Series) -> pd.Series:
    """
    Compute -log10(p).

    p == 0 gives +inf (kept as a sentinel for plotting code to clip).
    Values outside [0, 1] or missing give NaN.

    Args:
        p_values: Adjusted p-values

    Returns:
        Series of -log10(p) with the same index
    """
    p = pd.to_numeric(p_values, errors="coerce").astype(float)
    valid = p.between(0.0, 1.0)

    with np.errstate(divide="ignore"):
        result = -np.log10(p.where(valid))

    # -log10(1) is -0.0
    return result + 0.0


def validate_table(
    name: str,
    df: pd.DataFrame,
    columns: ColumnNames = DEFAULT_COLUMNS
) -> ComparisonTable:
    """
    Validate one comparison table and append negLogP.

    Args:
        name: Comparison name (sheet name)
        df: Raw table from the loader
        columns: Required column names

    Returns:
        ComparisonTable wrapping a new DataFrame

    Raises:
        SchemaError: Required column(s) missing
        DuplicateKeyError: Gene identifiers are not unique
    """
    missing = [col for col in columns.required() if col not in df.columns]
    if missing:
        raise SchemaError(missing, comparison=name)

    genes = df[columns.gene].astype(str).str.strip()
    duplicated = genes.duplicated(keep="first")
    if duplicated.any():
        examples = sorted(set(genes[duplicated]))
        raise DuplicateKeyError(int(duplicated.sum()), comparison=name, examples=examples)

    frame = df.copy()
    frame[columns.gene] = genes
    frame[columns.direction] = frame[columns.direction].astype(str).str.strip().str.lower()
    frame[NEG_LOG_P] = neg_log10_p(frame[columns.padj])

    invalid_p = frame[NEG_LOG_P].isna().sum()
    if invalid_p:
        logger.warning(f"[{name}] {invalid_p} adjusted p-value(s) missing or outside [0, 1]")

    zero_p = np.isinf(frame[NEG_LOG_P]).sum()
    if zero_p:
        logger.warning(f"[{name}] {zero_p} adjusted p-value(s) equal 0, negLogP is infinite")

    logger.debug(f"Validated '{name}': {len(frame)} genes")
    return ComparisonTable(name=name, frame=frame, columns=columns)


def validate_all(
    tables: Mapping[str, pd.DataFrame],
    columns: ColumnNames = DEFAULT_COLUMNS
) -> Dict[str, ComparisonTable]:
    """Validate every loaded table, keeping comparison order"""
    return {name: validate_table(name, df, columns) for name, df in tables.items()}


def combine_tables(tables: Mapping[str, ComparisonTable]) -> pd.DataFrame:
    """
    Concatenate validated tables into the Combined Table.

    Args:
        tables: Comparison name -> ComparisonTable

    Returns:
        Long-form DataFrame with a leading 'comparison' column

    Raises:
        SchemaMismatchError: Tables do not share the same column set
        ValueError: No tables given
    """
    if not tables:
        raise ValueError("No comparison tables to combine")

    names: List[str] = list(tables)
    reference_name = names[0]
    reference = set(tables[reference_name].frame.columns)

    for name in names[1:]:
        cols = set(tables[name].frame.columns)
        if cols != reference:
            extra = sorted(cols - reference)
            absent = sorted(reference - cols)
            raise SchemaMismatchError(
                f"Columns of '{name}' differ from '{reference_name}': "
                f"extra={extra}, missing={absent}"
            )

    ordered_cols = list(tables[reference_name].frame.columns)
    frames: List[pd.DataFrame] = []
    for name in names:
        frame = tables[name].frame[ordered_cols].copy()
        frame.insert(0, COMPARISON, name)
        frames.append(frame)

    combined = pd.concat(frames, ignore_index=True)
    logger.info(f"Combined table: {len(combined)} rows from {len(names)} comparison(s)")
    return combined
