"""
Figures for the DEG report.

Quality-control panels, volcano plots, enrichment bar charts and term-gene
networks. Every function draws on a given Axes (or creates one) and returns
the Figure; saving is left to the caller (see save_figure).
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import matplotlib.pyplot as plt
import networkx as nx
import numpy as np
import pandas as pd
import seaborn as sns

from .config import COMPARISON, DEFAULT_COLUMNS, NEG_LOG_P, ColumnNames
from .enrichment.clustering import term_gene_sets
from .summary import clip_neg_log_p, flag_emphasis

logger = logging.getLogger("DEGReport.Plotting")

UP_COLOR = "#d62728"
DOWN_COLOR = "#1f77b4"
NS_COLOR = "#b0b0b0"


def _axes(ax: Optional[plt.Axes], figsize=(6, 4)) -> plt.Axes:
    if ax is None:
        _, ax = plt.subplots(figsize=figsize)
    return ax


def _despine(ax: plt.Axes):
    ax.spines['top'].set_visible(False)
    ax.spines['right'].set_visible(False)


def plot_distributions(
    combined: pd.DataFrame,
    columns: ColumnNames = DEFAULT_COLUMNS
) -> plt.Figure:
    """
    Adjusted p-value and log2 fold-change distributions, one row per comparison.

    Args:
        combined: Combined Table

    Returns:
        Figure with a (n_comparisons x 2) grid
    """
    comparisons = list(dict.fromkeys(combined[COMPARISON]))
    fig, axes = plt.subplots(len(comparisons), 2, figsize=(10, 2.6 * len(comparisons)), squeeze=False)

    for row, name in enumerate(comparisons):
        subset = combined.loc[combined[COMPARISON] == name]
        sns.histplot(subset[columns.padj].dropna(), bins=40, ax=axes[row, 0], color="steelblue")
        sns.histplot(subset[columns.log2fc].dropna(), bins=40, ax=axes[row, 1], color="darkorange")
        axes[row, 0].set_title(f"{name}: adjusted p-value", fontsize=11)
        axes[row, 1].set_title(f"{name}: log2 fold-change", fontsize=11)
        for ax in axes[row]:
            _despine(ax)

    fig.tight_layout()
    return fig


def plot_direction_counts(
    combined: pd.DataFrame,
    columns: ColumnNames = DEFAULT_COLUMNS,
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """Bar chart of up/down gene counts per comparison"""
    ax = _axes(ax, figsize=(8, 4))
    counts = combined.groupby([COMPARISON, columns.direction], sort=False).size().reset_index(name="n_genes")
    palette = {
        d: {"up": UP_COLOR, "down": DOWN_COLOR}.get(d, NS_COLOR)
        for d in counts[columns.direction].unique()
    }
    sns.barplot(data=counts, x=COMPARISON, y="n_genes", hue=columns.direction, palette=palette, ax=ax)
    ax.set_xlabel("Comparison", fontsize=11)
    ax.set_ylabel("Number of genes", fontsize=11)
    ax.set_title("Regulation direction per comparison", fontsize=12)
    _despine(ax)
    return ax.figure


def plot_volcano(
    frame: pd.DataFrame,
    title: str = "",
    p_cutoff: float = 0.05,
    fc_cutoff: float = 2.0,
    columns: ColumnNames = DEFAULT_COLUMNS,
    label_top: int = 10,
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """
    Volcano plot of one comparison.

    Infinite negLogP values (p == 0) are drawn one unit above the largest finite value.

    Args:
        frame: Validated comparison frame (with negLogP)
        title: Plot title
        p_cutoff: Significance cutoff for emphasis
        fc_cutoff: |log2FC| cutoff for emphasis
        label_top: Label the N most significant emphasized genes

    Returns:
        Figure
    """
    ax = _axes(ax, figsize=(6, 5))
    y = clip_neg_log_p(frame[NEG_LOG_P])
    x = frame[columns.log2fc]
    emphasis = flag_emphasis(frame, p_cutoff, fc_cutoff, columns)

    colors = np.where(~emphasis, NS_COLOR, np.where(x > 0, UP_COLOR, DOWN_COLOR))
    ax.scatter(x, y, c=colors, s=8, alpha=0.7, linewidths=0)

    ax.axhline(-np.log10(p_cutoff), color="grey", linestyle="--", linewidth=0.8)
    ax.axvline(fc_cutoff, color="grey", linestyle="--", linewidth=0.8)
    ax.axvline(-fc_cutoff, color="grey", linestyle="--", linewidth=0.8)

    if label_top > 0 and emphasis.any():
        top = y[emphasis].sort_values(ascending=False).head(label_top).index
        for idx in top:
            ax.text(x[idx], y[idx], str(frame.at[idx, columns.gene]), fontsize=7, ha="left", va="bottom")

    ax.set_xlabel("log2 fold-change", fontsize=11)
    ax.set_ylabel("-log10 adjusted p-value", fontsize=11)
    ax.set_title(title, fontsize=12)
    _despine(ax)
    return ax.figure


def plot_enrichment_bars(
    result: pd.DataFrame,
    title: str = "",
    top_n: int = 20,
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """
    Horizontal bar chart of the top terms by lowest_p.

    Bar length is Fold_Enrichment, colour is -log10(lowest_p).
    """
    top = result.sort_values("lowest_p", kind="mergesort").head(top_n)
    ax = _axes(ax, figsize=(8, max(3, 0.3 * len(top) + 1)))
    if top.empty:
        ax.text(0.5, 0.5, "No enriched terms", ha="center", va="center")
        ax.axis("off")
        return ax.figure

    significance = -np.log10(top["lowest_p"].clip(lower=np.finfo(float).tiny))
    low, high = significance.min(), significance.max()
    norm = plt.Normalize(low, high if high > low else low + 1)
    cmap = plt.get_cmap("viridis")

    positions = np.arange(len(top))[::-1]
    ax.barh(positions, top["Fold_Enrichment"], color=cmap(norm(significance)))
    ax.set_yticks(positions)
    ax.set_yticklabels(top["Term_Description"], fontsize=8)
    ax.set_xlabel("Fold enrichment", fontsize=11)
    ax.set_title(title, fontsize=12)

    mappable = plt.cm.ScalarMappable(norm=norm, cmap=cmap)
    ax.figure.colorbar(mappable, ax=ax, label="-log10(lowest p)")
    _despine(ax)
    return ax.figure


def plot_combined_results(
    combined: pd.DataFrame,
    name_a: str,
    name_b: str,
    top_n: int = 20,
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """Top-N merged terms (already sorted by combined_p) with the two comparisons side by side"""
    top = combined.head(top_n)
    ax = _axes(ax, figsize=(8, max(3, 0.3 * len(top) + 1)))

    positions = np.arange(len(top))[::-1]
    height = 0.4
    ax.barh(positions + height / 2, top["Fold_Enrichment_A"].fillna(0), height, label=name_a, color="#4c78a8")
    ax.barh(positions - height / 2, top["Fold_Enrichment_B"].fillna(0), height, label=name_b, color="#f58518")
    ax.set_yticks(positions)
    ax.set_yticklabels(top["Term_Description"], fontsize=8)
    ax.set_xlabel("Fold enrichment", fontsize=11)
    ax.set_title(f"{name_a} vs {name_b}", fontsize=12)
    ax.legend(frameon=False)
    _despine(ax)
    return ax.figure


def plot_term_gene_network(
    result: pd.DataFrame,
    term_ids: Optional[Sequence[str]] = None,
    top_n: int = 10,
    ax: Optional[plt.Axes] = None,
    seed: int = 0
) -> plt.Figure:
    """
    Bipartite network of terms and their input genes.

    Genes are coloured by direction (up/down), terms sized by -log10(lowest_p).

    Args:
        result: Enrichment result
        term_ids: Terms to draw (default: top_n by lowest_p)
        seed: Layout seed
    """
    if term_ids is not None:
        terms = result.loc[result["ID"].isin(term_ids)]
    else:
        terms = result.sort_values("lowest_p", kind="mergesort").head(top_n)

    ax = _axes(ax, figsize=(9, 7))
    graph = nx.Graph()
    up_genes, down_genes = set(), set()
    for (_, row), genes in zip(terms.iterrows(), term_gene_sets(terms)):
        term = row["Term_Description"]
        graph.add_node(term, kind="term", p=row["lowest_p"])
        for gene in genes:
            graph.add_edge(term, gene)
        up_genes.update(g.strip() for g in str(row["Up_regulated"]).split(",") if g.strip())
        down_genes.update(g.strip() for g in str(row["Down_regulated"]).split(",") if g.strip())

    if graph.number_of_nodes() == 0:
        ax.text(0.5, 0.5, "No terms to draw", ha="center", va="center")
        ax.axis("off")
        return ax.figure

    pos = nx.spring_layout(graph, seed=seed)
    term_nodes = [n for n, d in graph.nodes(data=True) if d.get("kind") == "term"]
    gene_nodes = [n for n in graph.nodes if n not in term_nodes]
    term_sizes = [
        200 + 60 * -np.log10(max(graph.nodes[n]["p"], np.finfo(float).tiny)) for n in term_nodes
    ]
    gene_colors = [UP_COLOR if g in up_genes else DOWN_COLOR if g in down_genes else NS_COLOR for g in gene_nodes]

    nx.draw_networkx_edges(graph, pos, ax=ax, edge_color="#9aa0a6", alpha=0.6)
    nx.draw_networkx_nodes(graph, pos, nodelist=term_nodes, node_size=term_sizes, node_color="#f2c14e", ax=ax)
    nx.draw_networkx_nodes(graph, pos, nodelist=gene_nodes, node_size=80, node_color=gene_colors, ax=ax)
    nx.draw_networkx_labels(graph, pos, labels={n: n for n in term_nodes}, font_size=8, ax=ax)
    nx.draw_networkx_labels(graph, pos, labels={n: n for n in gene_nodes}, font_size=6, ax=ax)
    ax.axis("off")
    return ax.figure


def save_figure(fig: plt.Figure, out_dir: Path, name: str, dpi: int = 150) -> Path:
    """Save as PNG in out_dir and close the figure"""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"{name}.png"
    fig.tight_layout()
    fig.savefig(out_path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved figure {out_path}")
    return out_path
