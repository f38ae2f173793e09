"""
Enrichment engine interface and the default active-subnetwork engine.

The report talks to enrichment only through EnrichmentEngine.run(): an
Enrichment Input Table (Gene_symbol, logFC, FDR_adj_p) plus options in, a
table of enriched terms out. ActiveSubnetworkEngine is the implementation
used by default; tests substitute deterministic engines.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..config import ADJUST_METHODS, GENE_SET_CATALOGS, PIN_CATALOGS, SEARCH_METHODS
from .clustering import cluster_enriched_terms
from .gene_sets import GeneSetSourceManager, filter_by_size
from .network import InteractionNetworkManager
from .ora import run_ora
from .subnetwork import (
    annealing_search,
    filter_subnetworks,
    gene_z_scores,
    greedy_search,
    remove_overlapping,
)

logger = logging.getLogger("DEGReport.Enrichment.Engine")

INPUT_COLUMNS = ['Gene_symbol', 'logFC', 'FDR_adj_p']

RESULT_COLUMNS = [
    'ID', 'Term_Description', 'Fold_Enrichment', 'occurrence', 'support',
    'lowest_p', 'highest_p', 'Up_regulated', 'Down_regulated',
]


@dataclass(frozen=True)
class EnrichmentOptions:
    """Parameters of one enrichment run"""

    adjust_method: str = 'fdr'
    gene_sets: str = 'KEGG'
    pin: str = 'KEGG'
    search_method: str = 'greedy'
    enrichment_threshold: float = 0.05
    iterations: int = 10

    organism: str = 'human'
    custom_gene_sets: Optional[Path] = None
    custom_pin: Optional[Path] = None
    seed: Optional[int] = None
    min_gset_size: int = 10
    max_gset_size: int = 300

    def __post_init__(self):
        if self.adjust_method not in ADJUST_METHODS:
            raise ValueError(f"adjust_method must be one of {ADJUST_METHODS}, got '{self.adjust_method}'")
        if self.gene_sets not in GENE_SET_CATALOGS:
            raise ValueError(f"gene_sets must be one of {GENE_SET_CATALOGS}, got '{self.gene_sets}'")
        if self.pin not in PIN_CATALOGS:
            raise ValueError(f"pin must be one of {PIN_CATALOGS}, got '{self.pin}'")
        if self.search_method not in SEARCH_METHODS:
            raise ValueError(f"search_method must be one of {SEARCH_METHODS}, got '{self.search_method}'")
        if not 0.0 < self.enrichment_threshold < 1.0:
            raise ValueError(f"enrichment_threshold must be in (0, 1), got {self.enrichment_threshold}")
        if isinstance(self.iterations, bool) or not isinstance(self.iterations, int) or self.iterations < 1:
            raise ValueError(f"iterations must be a positive integer, got {self.iterations!r}")
        if self.gene_sets == 'Custom' and self.custom_gene_sets is None:
            raise ValueError("gene_sets='Custom' requires custom_gene_sets")
        if self.pin == 'Custom' and self.custom_pin is None:
            raise ValueError("pin='Custom' requires custom_pin")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EnrichmentEngine(ABC):
    """
    Abstract enrichment engine.
    """

    @abstractmethod
    def run(self, input_table: pd.DataFrame, options: EnrichmentOptions) -> pd.DataFrame:
        """
        Run enrichment for one comparison.

        Args:
            input_table: Enrichment Input Table (Gene_symbol, logFC, FDR_adj_p)
            options: Enrichment parameters

        Returns:
            Enrichment result, one row per enriched term
        """
        pass

    def cluster(self, result: pd.DataFrame) -> pd.DataFrame:
        """Add Cluster and Status columns to a result"""
        return cluster_enriched_terms(result)


class ActiveSubnetworkEngine(EnrichmentEngine):
    """
    Network-based enrichment.

    Significant genes are mapped onto an interaction network, active
    subnetworks are searched, and each subnetwork is tested for
    over-representation against the gene set catalog. Terms are aggregated
    over subnetworks and search iterations.
    """

    def __init__(
        self,
        gene_set_manager: Optional[GeneSetSourceManager] = None,
        network_manager: Optional[InteractionNetworkManager] = None,
        greedy_max_depth: int = 1,
        overlap_threshold: float = 0.5,
        score_quantile: float = 0.8,
        sig_gene_fraction: float = 0.02,
        annealing_steps: int = 1000
    ):
        self._gene_set_manager = gene_set_manager
        self.network_manager = network_manager or InteractionNetworkManager()
        self.greedy_max_depth = greedy_max_depth
        self.overlap_threshold = overlap_threshold
        self.score_quantile = score_quantile
        self.sig_gene_fraction = sig_gene_fraction
        self.annealing_steps = annealing_steps

    @property
    def gene_set_manager(self) -> GeneSetSourceManager:
        if self._gene_set_manager is None:
            self._gene_set_manager = GeneSetSourceManager()
        return self._gene_set_manager

    def run(self, input_table: pd.DataFrame, options: EnrichmentOptions) -> pd.DataFrame:
        missing = [c for c in INPUT_COLUMNS if c not in input_table.columns]
        if missing:
            raise ValueError(f"Enrichment input is missing column(s): {', '.join(missing)}")

        table = input_table.dropna(subset=INPUT_COLUMNS)
        if len(table) < len(input_table):
            logger.warning(f"Dropped {len(input_table) - len(table)} input row(s) with missing values")

        significant = table.loc[table['FDR_adj_p'] < options.enrichment_threshold]
        if significant.empty:
            raise ValueError(
                f"No genes pass the significance threshold (FDR_adj_p < {options.enrichment_threshold})"
            )

        p_values = dict(zip(significant['Gene_symbol'].astype(str), significant['FDR_adj_p'].astype(float)))
        fold_changes = dict(zip(significant['Gene_symbol'].astype(str), significant['logFC'].astype(float)))
        sig_genes = sorted(p_values)

        logger.info(
            f"Step 1/4: {len(sig_genes)}/{len(table)} input genes significant "
            f"(FDR_adj_p < {options.enrichment_threshold})"
        )

        logger.info(f"Step 2/4: Loading gene sets ({options.gene_sets}) and PIN ({options.pin})")
        catalog = self.gene_set_manager.load(
            options.gene_sets, organism=options.organism, custom_path=options.custom_gene_sets
        )
        catalog = filter_by_size(catalog, options.min_gset_size, options.max_gset_size)
        pin = self.network_manager.load(
            options.pin, genes=sig_genes, species=options.organism, custom_path=options.custom_pin
        )

        mapped = [g for g in sig_genes if g in pin]
        if not mapped:
            raise ValueError(f"None of the {len(sig_genes)} significant genes are in the {options.pin} PIN")
        logger.info(f"{len(mapped)}/{len(sig_genes)} significant genes found in the PIN")

        z_scores = gene_z_scores(p_values)
        background = set(pin.nodes)

        iterations = options.iterations
        if options.search_method == 'greedy' and iterations > 1:
            logger.info("Greedy search is deterministic, running a single iteration")
            iterations = 1
        rng = np.random.default_rng(options.seed)

        logger.info(f"Step 3/4: Active subnetwork search ({options.search_method}, {iterations} iteration(s))")
        hits: List[pd.DataFrame] = []
        for iteration in range(iterations):
            if options.search_method == 'greedy':
                found = greedy_search(pin, z_scores, mapped, max_depth=self.greedy_max_depth)
            else:
                found = annealing_search(pin, z_scores, mapped, steps=self.annealing_steps, rng=rng)

            found = remove_overlapping(found, z_scores, self.overlap_threshold)
            found = filter_subnetworks(found, z_scores, mapped, self.score_quantile, self.sig_gene_fraction)
            logger.debug(f"Iteration {iteration + 1}: {len(found)} active subnetwork(s)")

            for subnetwork in found:
                enriched = run_ora(
                    subnetwork, catalog, background=background,
                    adjust_method=options.adjust_method, threshold=options.enrichment_threshold
                )
                if not enriched.empty:
                    enriched['iteration'] = iteration
                    hits.append(enriched)

        logger.info("Step 4/4: Aggregating enriched terms")
        if not hits:
            logger.warning("No enriched terms found")
            return pd.DataFrame(columns=RESULT_COLUMNS)

        result = self._aggregate(pd.concat(hits, ignore_index=True), catalog.gene_sets, fold_changes)
        logger.info(f"Enrichment complete: {len(result)} terms")
        return result

    @staticmethod
    def _aggregate(
        hits: pd.DataFrame,
        gene_sets: Dict[str, List[str]],
        fold_changes: Dict[str, float]
    ) -> pd.DataFrame:
        """Collapse subnetwork-level hits to one row per term"""
        # Best hit per (iteration, term)
        per_iteration = (
            hits.sort_values('adj_p', kind='mergesort')
            .groupby(['iteration', 'ID'], sort=False)
            .agg(
                Term_Description=('Term_Description', 'first'),
                Fold_Enrichment=('Fold_Enrichment', 'first'),
                support=('support', 'first'),
                lowest_p=('adj_p', 'min'),
                highest_p=('adj_p', 'max'),
            )
            .reset_index()
        )

        result = (
            per_iteration.groupby('ID', sort=False)
            .agg(
                Term_Description=('Term_Description', 'first'),
                Fold_Enrichment=('Fold_Enrichment', 'mean'),
                occurrence=('iteration', 'nunique'),
                support=('support', 'median'),
                lowest_p=('lowest_p', 'min'),
                highest_p=('highest_p', 'max'),
            )
            .reset_index()
        )

        up, down = [], []
        for term_id in result['ID']:
            members = set(gene_sets.get(term_id, ()))
            in_term = sorted(g for g in fold_changes if g in members)
            up.append(", ".join(g for g in in_term if fold_changes[g] > 0))
            down.append(", ".join(g for g in in_term if fold_changes[g] < 0))
        result['Up_regulated'] = up
        result['Down_regulated'] = down

        result = result.sort_values('lowest_p', kind='mergesort').reset_index(drop=True)
        return result[RESULT_COLUMNS]
