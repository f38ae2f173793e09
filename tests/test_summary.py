"""
Unit tests for the summarizer and the result filters.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from degreport.config import COMPARISON
from degreport.normalizer import combine_tables, validate_all, validate_table
from degreport.summary import (
    QuantileSummary,
    clip_neg_log_p,
    filter_significant,
    flag_emphasis,
    select_cluster_terms,
    select_representative_terms,
    summarize_all,
    summarize_comparison,
)

from conftest import make_table


def clustered_result():
    return pd.DataFrame({
        "ID": ["T1", "T2", "T3"],
        "Term_Description": ["Antigen presentation", "Complement", "Lysosome"],
        "Fold_Enrichment": [2.0, 1.2, 1.6],
        "lowest_p": [0.001, 0.02, 0.005],
        "Cluster": [1, 2, 1],
        "Status": ["Representative", "Representative", "Member"],
    })


class TestSummarizeComparison:
    """Test descriptive statistics per comparison."""

    def test_counts_and_quantiles(self):
        table = validate_table("X", make_table(["A", "B", "C", "D"], [1.0, 2.0, -1.0, 3.0], [0.1, 0.2, 0.3, 0.4]))
        summary = summarize_comparison(table)

        assert summary.n_genes == 4
        assert summary.direction_counts == {"up": 3, "down": 1}
        assert summary.p_value.min == pytest.approx(0.1)
        assert summary.p_value.max == pytest.approx(0.4)
        assert summary.fold_change.median == pytest.approx(1.5)
        assert not summary.is_suspect

    def test_single_direction_warns(self, caplog):
        """Every gene up-regulated is flagged, not rejected."""
        table = validate_table("FEvsFC", make_table(["A", "B", "C"], [1.0, 2.0, 3.0], [0.01, 0.02, 0.03]))

        with caplog.at_level(logging.WARNING, logger="DEGReport.Summary"):
            summary = summarize_comparison(table)

        assert summary.is_suspect
        assert len(summary.warnings) == 1
        assert "FEvsFC" in summary.warnings[0]
        assert any("no 'down' genes" in r.getMessage() for r in caplog.records)

    def test_only_down_warns(self):
        table = validate_table("X", make_table(["A", "B"], [-1.0, -2.0], [0.01, 0.02]))
        summary = summarize_comparison(table)
        assert summary.is_suspect
        assert "no 'up' genes" in summary.warnings[0]

    def test_unexpected_direction_counted(self):
        table = validate_table("X", make_table(["A", "B"], [1.0, 0.0], [0.01, 0.9], ["up", "ns"]))
        summary = summarize_comparison(table)
        assert summary.direction_counts["ns"] == 1

    def test_to_dict_is_flat(self):
        table = validate_table("X", make_table(["A", "B"], [1.0, -1.0], [0.01, 0.02]))
        row = summarize_comparison(table).to_dict()

        assert row["comparison"] == "X"
        assert row["n_up"] == 1
        assert row["n_down"] == 1
        assert row["warnings"] == ""
        assert {"p_min", "p_q1", "p_median", "p_q3", "p_max", "fc_min", "fc_max"} <= set(row)

    def test_summarize_all(self, raw_tables):
        summaries = summarize_all(validate_all(raw_tables))
        assert summaries["comparison"].tolist() == ["FEvsFC", "MEvsMC"]
        assert summaries["n_genes"].tolist() == [5, 4]

    def test_quantile_summary_empty(self):
        summary = QuantileSummary.of(pd.Series([], dtype=float))
        assert np.isnan(summary.median)


class TestFilters:
    """Test filtered views of the combined table."""

    def test_filter_significant(self, raw_tables):
        combined = combine_tables(validate_all(raw_tables))
        filtered = filter_significant(combined, p_cutoff=0.05)

        assert (filtered["padj"] < 0.05).all()
        assert len(filtered) == 7
        assert filtered.index.is_monotonic_increasing

    def test_filter_significant_with_fold_change(self, raw_tables):
        combined = combine_tables(validate_all(raw_tables))
        filtered = filter_significant(combined, p_cutoff=0.05, fc_cutoff=2.0)

        assert (filtered["log2FoldChange"].abs() >= 2.0).all()
        assert set(filtered["Gene"]) == {"Cd74", "H2-Aa", "Apod", "Cxcl13", "Mgp"}
        assert set(filtered[COMPARISON]) == {"FEvsFC", "MEvsMC"}

    def test_flag_emphasis(self):
        frame = make_table(["A", "B", "C"], [3.0, 0.5, -2.0], [0.01, 0.001, 0.2])
        assert flag_emphasis(frame, 0.05, 2.0).tolist() == [True, False, False]

    def test_clip_neg_log_p(self):
        values = pd.Series([1.0, np.inf, 5.0, np.nan])
        clipped = clip_neg_log_p(values)

        assert clipped.iloc[1] == 6.0
        assert np.isnan(clipped.iloc[3])

    def test_clip_zero_p_above_p_one(self):
        table = validate_table("X", make_table(["A", "B"], [2.0, -1.0], [0.0, 1.0]))
        clipped = clip_neg_log_p(table.frame["negLogP"])

        assert clipped.tolist() == [1.0, 0.0]

    def test_clip_all_zero_p(self):
        table = validate_table("X", make_table(["A", "B"], [2.0, -1.0], [0.0, 0.0]))
        clipped = clip_neg_log_p(table.frame["negLogP"])

        assert np.isfinite(clipped).all()
        assert (clipped > 300).all()

    def test_clip_neg_log_p_explicit_ceiling(self):
        clipped = clip_neg_log_p(pd.Series([np.inf, 2.0]), ceiling=300.0)
        assert clipped.tolist() == [300.0, 2.0]


class TestSelectTerms:
    """Test selection of clustered enrichment terms."""

    def test_representative_filter(self):
        """Only strong, significant representatives survive."""
        selected = select_representative_terms(clustered_result())
        assert selected["ID"].tolist() == ["T1"]

    def test_thresholds_are_strict(self):
        result = clustered_result()
        result.loc[0, "Fold_Enrichment"] = 1.5
        assert select_representative_terms(result).empty

        result = clustered_result()
        result.loc[0, "lowest_p"] = 0.01
        assert select_representative_terms(result).empty

    def test_idempotent(self):
        once = select_representative_terms(clustered_result())
        twice = select_representative_terms(once)
        pd.testing.assert_frame_equal(once, twice)

    def test_input_not_modified(self):
        result = clustered_result()
        select_representative_terms(result)
        pd.testing.assert_frame_equal(result, clustered_result())

    def test_select_cluster(self):
        selected = select_cluster_terms(clustered_result(), 1)
        assert selected["ID"].tolist() == ["T1", "T3"]
