"""
Enrichment analysis for the DEG report.

- Adapter: Enrichment Input Table projection, one engine call per comparison,
  merge of two comparisons
- Engine: active subnetwork search on an interaction network + ORA
- Term clustering (kappa similarity, hierarchical)
"""

from .adapter import (
    cluster_result,
    combine_results,
    run_enrichment,
    run_selected,
    to_enrichment_input,
)
from .clustering import cluster_enriched_terms
from .engine import ActiveSubnetworkEngine, EnrichmentEngine, EnrichmentOptions
from .gene_sets import GeneSetCatalog, GeneSetSourceManager, load_gmt
from .network import InteractionNetworkManager, STRINGClient, load_sif

__all__ = [
    "ActiveSubnetworkEngine",
    "EnrichmentEngine",
    "EnrichmentOptions",
    "GeneSetCatalog",
    "GeneSetSourceManager",
    "InteractionNetworkManager",
    "STRINGClient",
    "cluster_enriched_terms",
    "cluster_result",
    "combine_results",
    "load_gmt",
    "load_sif",
    "run_enrichment",
    "run_selected",
    "to_enrichment_input",
]
