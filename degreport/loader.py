"""
Workbook loader for the DEG report.

Reads a multi-sheet spreadsheet (one sheet per comparison) into an ordered
mapping of comparison name -> DataFrame. Sheets are parsed one at a time so a
failure can be reported with the sheet that caused it.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from .errors import DataLoadError

logger = logging.getLogger("DEGReport.Loader")


def load_workbook(
    path: Union[str, Path],
    sheets: Optional[Sequence[str]] = None
) -> Dict[str, pd.DataFrame]:
    """
    Load every comparison sheet from an Excel workbook.

    Args:
        path: Path to the .xlsx workbook
        sheets: Optional subset of sheet names to load (in the given order)

    Returns:
        Dict of sheet name -> DataFrame, in workbook order

    Raises:
        DataLoadError: If the file cannot be opened, a sheet cannot be parsed,
            a requested sheet is absent or the workbook has no sheets
    """
    path = Path(path)

    if not path.exists():
        raise DataLoadError(f"Workbook not found: {path}")

    try:
        workbook = pd.ExcelFile(path, engine="openpyxl")
    except Exception as e:
        raise DataLoadError(f"Cannot open workbook {path}: {e}") from e

    with workbook:
        available: List[str] = [str(name) for name in workbook.sheet_names]

        if not available:
            raise DataLoadError(f"No sheets found in {path}")

        if sheets is None:
            selected = available
        else:
            missing = [name for name in sheets if name not in available]
            if missing:
                raise DataLoadError(
                    f"Sheet(s) not found in {path.name}: {', '.join(missing)}. "
                    f"Available: {', '.join(available)}",
                    sheet=missing[0]
                )
            selected = list(sheets)

        tables: Dict[str, pd.DataFrame] = {}
        for name in selected:
            tables[name] = _parse_sheet(workbook, name)

    logger.info(
        f"Loaded {len(tables)} comparison(s) from {path.name}: "
        + ", ".join(f"{name} ({len(df)} rows)" for name, df in tables.items())
    )

    return tables


def _parse_sheet(workbook: pd.ExcelFile, name: str) -> pd.DataFrame:
    """Parse a single sheet, first row is the header"""
    try:
        df = workbook.parse(name, header=0)
    except Exception as e:
        raise DataLoadError(f"Cannot parse sheet: {e}", sheet=name) from e

    if df.columns.empty:
        raise DataLoadError("Sheet has no header row", sheet=name)

    # Header cells may be read as non-strings (e.g. numbers)
    df.columns = [str(c).strip() for c in df.columns]
    return df
