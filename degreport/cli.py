"""
Command-line entry point: deg-report

Usage:
    deg-report --workbook deg.xlsx --comparisons FEvsFC,MEvsMC --figure-dir figures/
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .config import ADJUST_METHODS, GENE_SET_CATALOGS, PIN_CATALOGS, SEARCH_METHODS, ReportConfig, parse_comparisons
from .errors import DegReportError
from .report import ReportResult, run_report

logger = logging.getLogger("DEGReport.CLI")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deg-report",
        description="Summarize DEG comparison tables and run network-based enrichment"
    )
    parser.add_argument("--workbook", type=Path, help="Excel workbook, one sheet per comparison")
    parser.add_argument("--comparisons", type=parse_comparisons,
                        help="Two comparison names for enrichment, comma separated")
    parser.add_argument("--env-file", help="Path to a .env file with DEG_* settings")

    group = parser.add_argument_group("emphasis")
    group.add_argument("--p-cutoff", type=float, help="Adjusted p-value cutoff (default 0.05)")
    group.add_argument("--fc-cutoff", type=float, help="|log2FC| cutoff (default 2)")

    group = parser.add_argument_group("enrichment")
    group.add_argument("--enrichment-threshold", type=float, help="Gene and term threshold (default 0.05)")
    group.add_argument("--adjust-method", choices=ADJUST_METHODS)
    group.add_argument("--gene-sets", choices=GENE_SET_CATALOGS)
    group.add_argument("--pin", choices=PIN_CATALOGS)
    group.add_argument("--search-method", choices=SEARCH_METHODS)
    group.add_argument("--iterations", type=int)
    group.add_argument("--custom-gene-sets", type=Path, help="GMT file (with --gene-sets Custom)")
    group.add_argument("--custom-pin", type=Path, help="SIF file (with --pin Custom)")
    group.add_argument("--seed", type=int)
    group.add_argument("--max-workers", type=int, help="Run the two comparisons in parallel when > 1")
    group.add_argument("--no-enrichment", action="store_true", help="Stop after the summary stage")

    group = parser.add_argument_group("output")
    group.add_argument("--cache-dir", type=Path)
    group.add_argument("--figure-dir", type=Path, help="Write PNG figures here")
    group.add_argument("--output-dir", type=Path, help="Write summary and enrichment tables (CSV) here")
    group.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def config_from_args(args: argparse.Namespace) -> ReportConfig:
    """Environment first, CLI flags win"""
    return ReportConfig.from_env(
        env_path=args.env_file,
        workbook=args.workbook,
        comparisons=args.comparisons,
        p_cutoff=args.p_cutoff,
        fc_cutoff=args.fc_cutoff,
        enrichment_threshold=args.enrichment_threshold,
        adjust_method=args.adjust_method,
        gene_sets=args.gene_sets,
        pin=args.pin,
        search_method=args.search_method,
        iterations=args.iterations,
        custom_gene_sets=args.custom_gene_sets,
        custom_pin=args.custom_pin,
        seed=args.seed,
        cache_dir=args.cache_dir,
        figure_dir=args.figure_dir,
        max_workers=args.max_workers,
    )


def write_tables(result: ReportResult, out_dir: Path) -> List[Path]:
    """Write the summary and enrichment tables as CSV"""
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []

    def _write(frame: pd.DataFrame, name: str):
        path = out_dir / f"{name}.csv"
        frame.to_csv(path, index=False)
        written.append(path)

    _write(result.summaries, "summary")
    _write(result.significant, "significant_genes")
    for name, enriched in result.enrichment.items():
        _write(enriched, f"enrichment_{name}")
        _write(result.representative_terms[name], f"representative_{name}")
    if result.combined_enrichment is not None:
        _write(result.combined_enrichment, "enrichment_combined")

    logger.info(f"Wrote {len(written)} table(s) to {out_dir}")
    return written


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = config_from_args(args)
        result = run_report(config, enrich=not args.no_enrichment)
    except (DegReportError, ValueError) as e:
        logging.error(str(e))
        return 1

    with pd.option_context("display.max_columns", None, "display.width", 160):
        print(result.summaries.to_string(index=False))

    if args.output_dir:
        write_tables(result, args.output_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
