"""
Run configuration for the DEG report.

All values are run parameters, nothing is persisted. Defaults can be
overridden from a .env file / DEG_* environment variables and then by CLI flags.
"""

import os
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger("DEGReport.Config")


@dataclass(frozen=True)
class ColumnNames:
    """Names of the four required columns in every comparison sheet"""

    gene: str = "Gene"
    log2fc: str = "log2FoldChange"
    padj: str = "padj"
    direction: str = "Direction"

    def required(self) -> List[str]:
        return [self.gene, self.log2fc, self.padj, self.direction]


DEFAULT_COLUMNS = ColumnNames()

# Derived and tagging columns added by the normalizer
NEG_LOG_P = "negLogP"
COMPARISON = "comparison"

ADJUST_METHODS = ("fdr", "BH", "BY", "bonferroni", "holm", "hochberg", "hommel", "none")
GENE_SET_CATALOGS = ("KEGG", "Reactome", "GO-BP", "WikiPathways", "Custom")
PIN_CATALOGS = ("KEGG", "STRING", "Biogrid", "Custom")
SEARCH_METHODS = ("greedy", "annealing")


@dataclass
class ReportConfig:
    """Every tunable parameter of one report run"""

    workbook: Optional[Path] = None
    comparisons: Tuple[str, ...] = ("FEvsFC", "MEvsMC")

    # Visualization emphasis
    p_cutoff: float = 0.05
    fc_cutoff: float = 2.0

    # Enrichment
    enrichment_threshold: float = 0.05
    adjust_method: str = "fdr"
    gene_sets: str = "KEGG"
    pin: str = "KEGG"
    search_method: str = "greedy"
    iterations: int = 10
    custom_gene_sets: Optional[Path] = None
    custom_pin: Optional[Path] = None
    seed: Optional[int] = None

    # Term selection
    min_fold_enrichment: float = 1.5
    max_term_p: float = 0.01

    cache_dir: Optional[Path] = None
    figure_dir: Optional[Path] = None
    max_workers: int = 1
    columns: ColumnNames = field(default_factory=ColumnNames)

    @classmethod
    def from_env(cls, env_path: Optional[str] = None, **overrides: Any) -> "ReportConfig":
        """
        Build a config from DEG_* environment variables.

        Args:
            env_path: Optional .env file; defaults to ./.env when present
            **overrides: Explicit values that win over the environment

        Returns:
            ReportConfig
        """
        load_dotenv(env_path or os.path.join(os.getcwd(), ".env"), override=False)

        values: Dict[str, Any] = {}
        env_map = {
            "DEG_WORKBOOK": ("workbook", Path),
            "DEG_PVALUE_CUTOFF": ("p_cutoff", float),
            "DEG_FC_CUTOFF": ("fc_cutoff", float),
            "DEG_ENRICHMENT_THRESHOLD": ("enrichment_threshold", float),
            "DEG_ADJUST_METHOD": ("adjust_method", str),
            "DEG_GENE_SETS": ("gene_sets", str),
            "DEG_PIN": ("pin", str),
            "DEG_SEARCH_METHOD": ("search_method", str),
            "DEG_ITERATIONS": ("iterations", int),
            "DEG_CUSTOM_GENE_SETS": ("custom_gene_sets", Path),
            "DEG_CUSTOM_PIN": ("custom_pin", Path),
            "DEG_SEED": ("seed", int),
            "DEG_CACHE_DIR": ("cache_dir", Path),
            "DEG_FIGURE_DIR": ("figure_dir", Path),
            "DEG_MAX_WORKERS": ("max_workers", int),
        }
        for var, (attr, cast) in env_map.items():
            raw = os.getenv(var)
            if raw is None or raw.strip() == "":
                continue
            try:
                values[attr] = cast(raw.strip())
            except ValueError as e:
                raise ValueError(f"Invalid value for {var}: {raw!r} ({e})")

        raw_comparisons = os.getenv("DEG_COMPARISONS")
        if raw_comparisons:
            values["comparisons"] = parse_comparisons(raw_comparisons)

        values.update({k: v for k, v in overrides.items() if v is not None})
        config = cls(**values)
        logger.debug(f"Loaded configuration: {config}")
        return config

    def with_overrides(self, **overrides: Any) -> "ReportConfig":
        """Copy with the non-None overrides applied"""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def parse_comparisons(raw: str) -> Tuple[str, ...]:
    """Parse 'FEvsFC,MEvsMC' into a tuple of two comparison names"""
    names = tuple(part.strip() for part in raw.split(",") if part.strip())
    if len(names) != 2:
        raise ValueError(f"Exactly two comparisons must be selected, got {len(names)}: {raw!r}")
    return names
