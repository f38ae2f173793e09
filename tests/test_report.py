"""
End-to-end tests for the report runner and the command line (stub engine).
"""

import logging

import pandas as pd
import pytest

from degreport import cli
from degreport.config import ReportConfig
from degreport.enrichment.engine import EnrichmentEngine
from degreport.errors import EnrichmentError, SchemaError
from degreport.report import enrichment_options, run_report

from conftest import make_table, write_workbook


class StubEngine(EnrichmentEngine):
    """Same three terms for every comparison"""

    def __init__(self):
        self.calls = 0

    def run(self, input_table, options):
        self.calls += 1
        return pd.DataFrame({
            "ID": ["T1", "T2", "T3"],
            "Term_Description": ["MHC class II", "Antigen presentation", "Lipid transport"],
            "Fold_Enrichment": [2.0, 1.8, 1.6],
            "occurrence": [1, 1, 1],
            "support": [2, 3, 2],
            "lowest_p": [0.001, 0.02, 0.005],
            "highest_p": [0.001, 0.02, 0.005],
            "Up_regulated": ["a, b", "a, b", "x"],
            "Down_regulated": ["", "c", "y"],
        })


class BrokenEngine(EnrichmentEngine):
    def run(self, input_table, options):
        raise ValueError("No genes pass the significance threshold")


class TestRunReport:
    """Test the staged pipeline."""

    def test_full_run(self, raw_tables):
        engine = StubEngine()
        result = run_report(ReportConfig(), engine=engine, tables=raw_tables)

        assert engine.calls == 2
        assert list(result.tables) == ["FEvsFC", "MEvsMC"]
        assert len(result.combined) == 9
        assert result.summaries["comparison"].tolist() == ["FEvsFC", "MEvsMC"]
        assert (result.significant["padj"] < 0.05).all()

        clustered = result.enrichment["FEvsFC"]
        assert clustered["ID"].tolist() == ["T1", "T2", "T3"]
        assert clustered["Cluster"].tolist() == [1, 1, 2]
        assert clustered["Status"].tolist() == ["Representative", "Member", "Representative"]

        assert result.representative_terms["FEvsFC"]["ID"].tolist() == ["T1", "T3"]
        assert set(result.combined_enrichment["status"]) == {"common"}
        assert result.figures == []

    def test_reads_workbook(self, workbook):
        result = run_report(ReportConfig(workbook=workbook), engine=StubEngine())
        assert set(result.enrichment) == {"FEvsFC", "MEvsMC"}

    def test_without_enrichment(self, raw_tables):
        result = run_report(ReportConfig(), tables=raw_tables, enrich=False)

        assert result.enrichment == {}
        assert result.combined_enrichment is None

    def test_schema_error_stops_run(self, raw_tables):
        engine = StubEngine()
        raw_tables["MEvsMC"] = raw_tables["MEvsMC"].drop(columns="padj")

        with pytest.raises(SchemaError):
            run_report(ReportConfig(), engine=engine, tables=raw_tables)
        assert engine.calls == 0

    def test_unknown_comparison(self, raw_tables):
        config = ReportConfig(comparisons=("FEvsFC", "KOvsWT"))
        with pytest.raises(ValueError, match="KOvsWT"):
            run_report(config, engine=StubEngine(), tables=raw_tables)

    @pytest.mark.parametrize("comparisons", [("FEvsFC",), ("FEvsFC", "MEvsMC", "FEvsFC")])
    def test_requires_two_comparisons(self, raw_tables, comparisons):
        engine = StubEngine()
        with pytest.raises(ValueError, match="Exactly two comparisons"):
            run_report(ReportConfig(comparisons=comparisons), engine=engine, tables=raw_tables)
        assert engine.calls == 0

    def test_engine_failure(self, raw_tables):
        with pytest.raises(EnrichmentError) as exc_info:
            run_report(ReportConfig(), engine=BrokenEngine(), tables=raw_tables)
        assert exc_info.value.comparison == "FEvsFC"

    def test_no_workbook_configured(self):
        with pytest.raises(ValueError, match="No workbook"):
            run_report(ReportConfig())

    def test_figures_written(self, raw_tables, workdir):
        config = ReportConfig(figure_dir=workdir / "figures")
        result = run_report(config, engine=StubEngine(), tables=raw_tables)

        names = {p.name for p in result.figures}
        assert {"qc_distributions.png", "volcano_FEvsFC.png", "enrichment_MEvsMC.png",
                "term_gene_network_FEvsFC.png", "combined_FEvsFC_MEvsMC.png"} <= names
        assert all(p.exists() for p in result.figures)

    def test_enrichment_options_from_config(self):
        config = ReportConfig(adjust_method="holm", iterations=3, seed=42)
        options = enrichment_options(config)

        assert options.adjust_method == "holm"
        assert options.iterations == 3
        assert options.seed == 42

    def test_invalid_option_rejected(self, raw_tables):
        with pytest.raises(ValueError):
            run_report(ReportConfig(enrichment_threshold=1.5), engine=StubEngine(), tables=raw_tables)


class TestCommandLine:
    """Test the deg-report entry point."""

    def test_summary_only(self, workbook, workdir, clean_env, capsys):
        out_dir = workdir / "out"
        code = cli.main([
            "--workbook", str(workbook), "--env-file", str(clean_env),
            "--no-enrichment", "--output-dir", str(out_dir),
        ])

        assert code == 0
        assert "FEvsFC" in capsys.readouterr().out
        assert (out_dir / "summary.csv").exists()
        assert pd.read_csv(out_dir / "summary.csv")["n_genes"].tolist() == [5, 4]

    def test_missing_workbook_exits_1(self, workdir, clean_env, caplog):
        with caplog.at_level(logging.ERROR):
            code = cli.main(["--workbook", str(workdir / "missing.xlsx"), "--env-file", str(clean_env)])

        assert code == 1
        assert any("Workbook not found" in r.getMessage() for r in caplog.records)

    def test_schema_error_exits_1(self, workdir, clean_env):
        path = write_workbook(workdir / "bad.xlsx", {
            "FEvsFC": make_table(["A"], [1.0], [0.01]).drop(columns="Direction"),
        })
        assert cli.main(["--workbook", str(path), "--env-file", str(clean_env), "--no-enrichment"]) == 1

    def test_flags_override_environment(self, clean_env, monkeypatch):
        monkeypatch.setenv("DEG_ITERATIONS", "5")
        args = cli.build_parser().parse_args([
            "--iterations", "7", "--comparisons", "KOvsWT,HETvsWT", "--env-file", str(clean_env)
        ])

        config = cli.config_from_args(args)

        assert config.iterations == 7
        assert config.comparisons == ("KOvsWT", "HETvsWT")

    def test_bad_comparisons_flag(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--comparisons", "only_one"])
