"""
Error taxonomy for the DEG report pipeline.

Every error here is fatal for a run: the pipeline reports it with enough
context (comparison, column, duplicate count) to diagnose without re-running.
"""

from typing import Iterable, List, Optional


class DegReportError(Exception):
    """Base class for all pipeline errors"""


class DataLoadError(DegReportError):
    """Workbook or one of its sheets could not be read"""

    def __init__(self, message: str, sheet: Optional[str] = None):
        self.sheet = sheet
        if sheet is not None:
            message = f"[{sheet}] {message}"
        super().__init__(message)


class SchemaError(DegReportError):
    """A comparison table is missing one or more required columns"""

    def __init__(self, missing: Iterable[str], comparison: Optional[str] = None):
        self.missing: List[str] = list(missing)
        self.comparison = comparison
        where = f" in comparison '{comparison}'" if comparison else ""
        super().__init__(
            f"Missing required column(s){where}: {', '.join(self.missing)}"
        )


class DuplicateKeyError(DegReportError):
    """Gene identifiers are not unique within a comparison table"""

    def __init__(self, duplicate_count: int, comparison: Optional[str] = None,
                 examples: Optional[List[str]] = None):
        self.duplicate_count = duplicate_count
        self.comparison = comparison
        self.examples = examples or []
        where = f" in comparison '{comparison}'" if comparison else ""
        message = f"Found {duplicate_count} duplicate gene identifier(s){where}"
        if self.examples:
            message += f" (e.g. {', '.join(self.examples[:5])})"
        super().__init__(message)


class SchemaMismatchError(DegReportError):
    """Validated comparison tables do not share one column set"""


class EnrichmentError(DegReportError):
    """The enrichment engine failed; the original exception is chained as __cause__"""

    def __init__(self, message: str, comparison: Optional[str] = None):
        self.comparison = comparison
        if comparison is not None:
            message = f"Enrichment failed for '{comparison}': {message}"
        super().__init__(message)
