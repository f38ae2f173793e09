"""
Unit tests for the workbook loader.
"""

import openpyxl
import pandas as pd
import pytest

from degreport.errors import DataLoadError
from degreport.loader import load_workbook

from conftest import make_table, write_workbook


class TestLoadWorkbook:
    """Test reading comparison sheets from an Excel workbook."""

    def test_loads_every_sheet_in_order(self, workbook):
        """Sheets come back keyed by name, in workbook order."""
        tables = load_workbook(workbook)

        assert list(tables) == ["FEvsFC", "MEvsMC"]
        assert len(tables["FEvsFC"]) == 5
        assert len(tables["MEvsMC"]) == 4
        assert list(tables["FEvsFC"].columns) == ["Gene", "log2FoldChange", "padj", "Direction"]

    def test_accepts_string_path(self, workbook):
        tables = load_workbook(str(workbook))
        assert set(tables) == {"FEvsFC", "MEvsMC"}

    def test_sheet_subset(self, workbook):
        """Only the requested sheets are parsed, in the requested order."""
        tables = load_workbook(workbook, sheets=["MEvsMC"])
        assert list(tables) == ["MEvsMC"]

    def test_empty_sheet(self, workdir):
        """A blank sheet fails with the sheet name attached."""
        path = workdir / "empty.xlsx"
        wb = openpyxl.Workbook()
        wb.active.title = "Empty"
        wb.save(path)

        with pytest.raises(DataLoadError) as exc_info:
            load_workbook(path)

        assert exc_info.value.sheet == "Empty"
        assert "no header row" in str(exc_info.value)

    def test_missing_sheet(self, workbook):
        with pytest.raises(DataLoadError) as exc_info:
            load_workbook(workbook, sheets=["MEvsMC", "KOvsWT"])

        assert exc_info.value.sheet == "KOvsWT"
        assert "KOvsWT" in str(exc_info.value)

    def test_nonexistent_file(self, workdir):
        with pytest.raises(DataLoadError, match="not found"):
            load_workbook(workdir / "missing.xlsx")

    def test_not_a_workbook(self, workdir):
        """A file that is not a spreadsheet is a load error, not a crash."""
        path = workdir / "broken.xlsx"
        path.write_text("this is not a zip archive")

        with pytest.raises(DataLoadError) as exc_info:
            load_workbook(path)
        assert exc_info.value.__cause__ is not None

    def test_values_preserved(self, workdir):
        path = write_workbook(workdir / "one.xlsx", {
            "KOvsWT": make_table(["Trem2", "Apoe"], [1.25, -0.5], [0.001, 0.2])
        })

        df = load_workbook(path)["KOvsWT"]

        assert df["Gene"].tolist() == ["Trem2", "Apoe"]
        assert df["log2FoldChange"].tolist() == pytest.approx([1.25, -0.5])
        assert df["padj"].tolist() == pytest.approx([0.001, 0.2])

    def test_numeric_header_becomes_string(self, workdir):
        path = write_workbook(workdir / "numeric.xlsx", {
            "S1": pd.DataFrame({"Gene": ["A"], 2020: [1.0]})
        })

        df = load_workbook(path)["S1"]
        assert "2020" in df.columns
