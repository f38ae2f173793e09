"""
DEG Report

Loads per-comparison differential-expression tables from an Excel workbook,
validates and normalizes them, summarizes each comparison, runs network-based
enrichment for two selected comparisons and draws the report figures.

- Loader / normalizer / summarizer for comparison tables
- Enrichment adapter and the active-subnetwork engine
- Figures (matplotlib, seaborn, networkx)
"""

from .config import ColumnNames, ReportConfig
from .errors import (
    DataLoadError,
    DegReportError,
    DuplicateKeyError,
    EnrichmentError,
    SchemaError,
    SchemaMismatchError,
)
from .loader import load_workbook
from .normalizer import ComparisonTable, combine_tables, validate_all, validate_table
from .report import ReportResult, run_report

__version__ = "0.1.0"
__all__ = [
    "ColumnNames",
    "ComparisonTable",
    "DataLoadError",
    "DegReportError",
    "DuplicateKeyError",
    "EnrichmentError",
    "ReportConfig",
    "ReportResult",
    "SchemaError",
    "SchemaMismatchError",
    "combine_tables",
    "load_workbook",
    "run_report",
    "validate_all",
    "validate_table",
]
