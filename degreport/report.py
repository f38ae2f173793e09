"""
Report runner.

Runs the pipeline stages strictly in order: load, validate/normalize,
summarize, enrich the two selected comparisons, then draw figures.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from . import plotting
from .config import ReportConfig
from .enrichment import (
    ActiveSubnetworkEngine,
    EnrichmentEngine,
    EnrichmentOptions,
    GeneSetSourceManager,
    InteractionNetworkManager,
    cluster_result,
    combine_results,
    run_selected,
)
from .loader import load_workbook
from .normalizer import ComparisonTable, combine_tables, validate_all
from .summary import filter_significant, select_representative_terms, summarize_all

logger = logging.getLogger("DEGReport.Report")


@dataclass
class ReportResult:
    """Everything one report run produced (in memory)"""

    tables: Dict[str, ComparisonTable]
    combined: pd.DataFrame
    significant: pd.DataFrame
    summaries: pd.DataFrame
    enrichment: Dict[str, pd.DataFrame] = field(default_factory=dict)
    representative_terms: Dict[str, pd.DataFrame] = field(default_factory=dict)
    combined_enrichment: Optional[pd.DataFrame] = None
    figures: List[Path] = field(default_factory=list)


def enrichment_options(config: ReportConfig) -> EnrichmentOptions:
    """Enrichment options from the run configuration"""
    return EnrichmentOptions(
        adjust_method=config.adjust_method,
        gene_sets=config.gene_sets,
        pin=config.pin,
        search_method=config.search_method,
        enrichment_threshold=config.enrichment_threshold,
        iterations=config.iterations,
        custom_gene_sets=config.custom_gene_sets,
        custom_pin=config.custom_pin,
        seed=config.seed,
    )


def default_engine(config: ReportConfig) -> ActiveSubnetworkEngine:
    """Active subnetwork engine using the configured cache directory"""
    cache_dir = Path(config.cache_dir) if config.cache_dir else None
    return ActiveSubnetworkEngine(
        gene_set_manager=GeneSetSourceManager(cache_dir / 'genesets' if cache_dir else None),
        network_manager=InteractionNetworkManager(cache_dir / 'pin' if cache_dir else None),
    )


def run_report(
    config: ReportConfig,
    engine: Optional[EnrichmentEngine] = None,
    tables: Optional[Dict[str, pd.DataFrame]] = None,
    enrich: bool = True
) -> ReportResult:
    """
    Run the whole report.

    Args:
        config: Run configuration
        engine: Enrichment engine (default: ActiveSubnetworkEngine)
        tables: Pre-loaded raw tables; the workbook is read when omitted
        enrich: Run the enrichment stage

    Returns:
        ReportResult

    Raises:
        DataLoadError, SchemaError, DuplicateKeyError, SchemaMismatchError,
        EnrichmentError: All fatal for the run
    """
    logger.info("Stage 1/4: Loading workbook")
    if tables is None:
        if config.workbook is None:
            raise ValueError("No workbook configured (set DEG_WORKBOOK or pass --workbook)")
        tables = load_workbook(config.workbook)

    logger.info("Stage 2/4: Validating and normalizing")
    validated = validate_all(tables, config.columns)
    combined = combine_tables(validated)

    logger.info("Stage 3/4: Summary statistics")
    summaries = summarize_all(validated)
    significant = filter_significant(combined, config.p_cutoff, columns=config.columns)

    result = ReportResult(tables=validated, combined=combined, significant=significant, summaries=summaries)

    if enrich:
        logger.info(f"Stage 4/4: Enrichment for {', '.join(config.comparisons)}")
        if len(config.comparisons) != 2:
            raise ValueError(
                f"Exactly two comparisons must be selected, got {len(config.comparisons)}: "
                f"{', '.join(config.comparisons)}"
            )
        missing = [name for name in config.comparisons if name not in validated]
        if missing:
            raise ValueError(
                f"Selected comparison(s) not in workbook: {', '.join(missing)} "
                f"(available: {', '.join(validated)})"
            )
        engine = engine or default_engine(config)
        raw = run_selected(
            validated, config.comparisons, enrichment_options(config), engine,
            max_workers=config.max_workers
        )
        for name, enriched in raw.items():
            clustered = cluster_result(name, enriched, engine)
            result.enrichment[name] = clustered
            result.representative_terms[name] = select_representative_terms(
                clustered, config.min_fold_enrichment, config.max_term_p
            )

        name_a, name_b = config.comparisons
        result.combined_enrichment = combine_results(raw[name_a], raw[name_b], name_a, name_b)
    else:
        logger.info("Stage 4/4: Enrichment skipped")

    if config.figure_dir:
        result.figures = draw_figures(result, config)

    return result


def draw_figures(result: ReportResult, config: ReportConfig) -> List[Path]:
    """Draw and save every report figure, returns the written paths"""
    out_dir = Path(config.figure_dir)
    paths = [
        plotting.save_figure(plotting.plot_distributions(result.combined, config.columns), out_dir, "qc_distributions"),
        plotting.save_figure(plotting.plot_direction_counts(result.combined, config.columns), out_dir, "qc_directions"),
    ]

    for name, table in result.tables.items():
        fig = plotting.plot_volcano(
            table.frame, title=name, p_cutoff=config.p_cutoff, fc_cutoff=config.fc_cutoff, columns=config.columns
        )
        paths.append(plotting.save_figure(fig, out_dir, f"volcano_{name}"))

    for name, enriched in result.enrichment.items():
        paths.append(plotting.save_figure(
            plotting.plot_enrichment_bars(enriched, title=f"{name}: enriched terms"), out_dir, f"enrichment_{name}"
        ))
        representatives = result.representative_terms.get(name)
        if representatives is not None and not representatives.empty:
            paths.append(plotting.save_figure(
                plotting.plot_term_gene_network(representatives), out_dir, f"term_gene_network_{name}"
            ))

    if result.combined_enrichment is not None and not result.combined_enrichment.empty:
        name_a, name_b = config.comparisons
        paths.append(plotting.save_figure(
            plotting.plot_combined_results(result.combined_enrichment, name_a, name_b),
            out_dir, f"combined_{name_a}_{name_b}"
        ))

    return paths
