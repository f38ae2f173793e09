"""
Shared fixtures: comparison tables, workbooks and tiny GMT / SIF files.
"""

import tempfile
from pathlib import Path

import matplotlib
import pandas as pd
import pytest

matplotlib.use("Agg")


def make_table(genes, log2fc, padj, direction=None):
    """Comparison table with the default column names"""
    if direction is None:
        direction = ["up" if fc > 0 else "down" for fc in log2fc]
    return pd.DataFrame({
        "Gene": genes,
        "log2FoldChange": log2fc,
        "padj": padj,
        "Direction": direction,
    })


def write_workbook(path, tables):
    """Write {sheet name: DataFrame} to an .xlsx file"""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, df in tables.items():
            df.to_excel(writer, sheet_name=name, index=False)
    return Path(path)


@pytest.fixture
def workdir():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def raw_tables():
    return {
        "FEvsFC": make_table(
            ["Cd74", "H2-Aa", "Lyz2", "Saa3", "Apod"],
            [3.1, 2.4, -1.2, 4.0, -2.5],
            [0.0, 1e-8, 0.03, 0.2, 1e-4],
        ),
        "MEvsMC": make_table(
            ["Cd74", "Cxcl13", "Lyz2", "Mgp"],
            [1.5, 5.2, -0.8, -3.3],
            [0.004, 1e-12, 0.6, 0.01],
        ),
    }


@pytest.fixture
def workbook(workdir, raw_tables):
    return write_workbook(workdir / "deg.xlsx", raw_tables)


@pytest.fixture
def subnetwork_files(workdir):
    """
    A PIN where G1..G5 form a clique connected to 20 background genes, and a
    GMT in which TERM1 holds the whole clique.
    """
    background = [f"B{i}" for i in range(1, 21)]
    clique = [f"G{i}" for i in range(1, 6)]

    sif = workdir / "pin.sif"
    with open(sif, "w") as f:
        for i, a in enumerate(clique):
            for b in clique[i + 1:]:
                f.write(f"{a}\tpp\t{b}\n")
        f.write("G5\tpp\tB1\n")
        for a, b in zip(background, background[1:]):
            f.write(f"{a}\tpp\t{b}\n")

    gmt = workdir / "sets.gmt"
    with open(gmt, "w") as f:
        f.write("TERM1\tClique pathway\t" + "\t".join(clique + ["B1", "B2", "B3"]) + "\n")
        f.write("TERM2\tBackground pathway\t" + "\t".join(background[3:12]) + "\n")
        f.write("TERM3\tMixed pathway\t" + "\t".join(["G1"] + background[12:18]) + "\n")

    input_table = pd.DataFrame({
        "Gene_symbol": clique + ["B5", "B6", "NOT_IN_PIN"],
        "logFC": [2.0, 1.5, 1.1, -1.4, -2.2, 0.3, -0.2, 1.0],
        "FDR_adj_p": [1e-6, 1e-6, 1e-6, 1e-6, 1e-6, 0.6, 0.8, 1e-3],
    })
    return sif, gmt, input_table


ENV_VARS = [
    "DEG_WORKBOOK", "DEG_PVALUE_CUTOFF", "DEG_FC_CUTOFF", "DEG_ENRICHMENT_THRESHOLD",
    "DEG_ADJUST_METHOD", "DEG_GENE_SETS", "DEG_PIN", "DEG_SEARCH_METHOD", "DEG_ITERATIONS",
    "DEG_CUSTOM_GENE_SETS", "DEG_CUSTOM_PIN", "DEG_SEED", "DEG_CACHE_DIR", "DEG_FIGURE_DIR",
    "DEG_MAX_WORKERS", "DEG_COMPARISONS",
]


@pytest.fixture
def clean_env(monkeypatch, workdir):
    """No DEG_* variables; returns the path of a not-yet-existing .env file"""
    for var in ENV_VARS:
        # setenv registers the variable for restore
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    return workdir / "test.env"
