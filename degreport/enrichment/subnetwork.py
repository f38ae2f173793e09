"""
Active subnetwork search.

Maps significant genes onto the interaction network and looks for connected
groups of genes whose combined significance is high. Two searches are
available:

- greedy: deterministic, one seed per significant gene, neighbours within
  max_depth of the seed are added while they improve the score
- annealing: simulated annealing over node on/off states, stochastic

Scoring: each gene gets z = Phi^-1(1 - p); a subnetwork of k genes scores
sum(z) / sqrt(k). Genes absent from the input (linkers) score 0.
"""

import math
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional

import networkx as nx
import numpy as np
from scipy.stats import norm

logger = logging.getLogger("DEGReport.Enrichment.Subnetwork")

Subnetwork = FrozenSet[str]

_P_FLOOR = 1e-15


def gene_z_scores(p_values: Dict[str, float]) -> Dict[str, float]:
    """Convert adjusted p-values to z-scores (p clipped away from 0 and 1)"""
    genes = list(p_values)
    p = np.clip(np.array([p_values[g] for g in genes], dtype=float), _P_FLOOR, 1 - _P_FLOOR)
    z = norm.ppf(1 - p)
    return dict(zip(genes, z.tolist()))


def subnetwork_score(genes: Iterable[str], z_scores: Dict[str, float]) -> float:
    """sum(z) / sqrt(k)"""
    genes = list(genes)
    if not genes:
        return float('-inf')
    return sum(z_scores.get(g, 0.0) for g in genes) / math.sqrt(len(genes))


def greedy_search(
    graph: nx.Graph,
    z_scores: Dict[str, float],
    seeds: Iterable[str],
    max_depth: int = 1
) -> List[Subnetwork]:
    """
    Greedy seeded expansion.

    Args:
        graph: Interaction network
        z_scores: Gene -> z-score
        seeds: Significant genes to start from (absent ones are skipped)
        max_depth: Maximum distance from the seed a gene may have

    Returns:
        One subnetwork per seed that has at least one neighbour
    """
    subnetworks: List[Subnetwork] = []

    for seed in sorted(set(seeds)):
        if seed not in graph:
            continue

        allowed = set(nx.single_source_shortest_path_length(graph, seed, cutoff=max_depth))
        members = {seed}
        score = subnetwork_score(members, z_scores)

        while True:
            frontier = set()
            for gene in members:
                frontier.update(n for n in graph.neighbors(gene) if n in allowed)
            frontier -= members
            if not frontier:
                break

            best_gene, best_score = None, score
            for candidate in sorted(frontier):
                candidate_score = subnetwork_score(members | {candidate}, z_scores)
                if candidate_score > best_score:
                    best_gene, best_score = candidate, candidate_score

            if best_gene is None:
                break
            members.add(best_gene)
            score = best_score

        if len(members) > 1:
            subnetworks.append(frozenset(members))

    return subnetworks


def _best_component_score(graph: nx.Graph, on_nodes: set, z_scores: Dict[str, float]) -> float:
    if not on_nodes:
        return float('-inf')
    sub = graph.subgraph(on_nodes)
    return max(subnetwork_score(c, z_scores) for c in nx.connected_components(sub))


def annealing_search(
    graph: nx.Graph,
    z_scores: Dict[str, float],
    seeds: Iterable[str],
    steps: int = 1000,
    start_temp: float = 1.0,
    end_temp: float = 0.01,
    rng: Optional[np.random.Generator] = None
) -> List[Subnetwork]:
    """
    Simulated annealing over the seeds and their direct neighbours.

    Every step toggles one random node; worse states are accepted with
    probability exp(delta / T), T decaying geometrically from start_temp to
    end_temp.

    Returns:
        Connected components (size > 1) of the final 'on' node set
    """
    rng = rng if rng is not None else np.random.default_rng()

    seeds = [s for s in sorted(set(seeds)) if s in graph]
    if not seeds:
        return []

    nodes = set(seeds)
    for s in seeds:
        nodes.update(graph.neighbors(s))
    nodes = sorted(nodes)
    search_graph = graph.subgraph(nodes)

    on_nodes = {n for n in nodes if rng.random() < 0.5}
    current = _best_component_score(search_graph, on_nodes, z_scores)
    decay = (end_temp / start_temp) ** (1.0 / max(steps - 1, 1))
    temperature = start_temp

    for _ in range(steps):
        node = nodes[int(rng.integers(len(nodes)))]
        candidate = on_nodes ^ {node}
        candidate_score = _best_component_score(search_graph, candidate, z_scores)
        delta = candidate_score - current

        if delta >= 0 or (math.isfinite(delta) and rng.random() < math.exp(delta / temperature)):
            on_nodes, current = candidate, candidate_score
        temperature *= decay

    if not on_nodes:
        return []
    components = nx.connected_components(search_graph.subgraph(on_nodes))
    return [frozenset(c) for c in components if len(c) > 1]


def remove_overlapping(
    subnetworks: List[Subnetwork],
    z_scores: Dict[str, float],
    overlap_threshold: float = 0.5
) -> List[Subnetwork]:
    """
    Drop subnetworks that overlap a higher-scoring one.

    Overlap is |A & B| / |B| where B is the lower-scoring subnetwork.
    """
    ranked = sorted(set(subnetworks), key=lambda s: (-subnetwork_score(s, z_scores), sorted(s)))
    kept: List[Subnetwork] = []
    for candidate in ranked:
        if all(len(candidate & k) / len(candidate) < overlap_threshold for k in kept):
            kept.append(candidate)
    return kept


def filter_subnetworks(
    subnetworks: List[Subnetwork],
    z_scores: Dict[str, float],
    significant: Iterable[str],
    score_quantile: float = 0.8,
    sig_gene_fraction: float = 0.02
) -> List[Subnetwork]:
    """
    Keep high-scoring subnetworks holding enough significant genes.

    A subnetwork is kept if its score is at or above the score_quantile of
    all subnetwork scores and it holds at least
    max(2, sig_gene_fraction * n_significant) significant genes.
    """
    if not subnetworks:
        return []

    significant = set(significant)
    min_sig = max(2, int(math.ceil(sig_gene_fraction * len(significant))))
    scores = np.array([subnetwork_score(s, z_scores) for s in subnetworks])
    cutoff = float(np.quantile(scores, score_quantile))

    kept = [
        s for s, score in zip(subnetworks, scores)
        if score >= cutoff and len(s & significant) >= min_sig
    ]
    logger.debug(
        f"Subnetwork filter: {len(kept)}/{len(subnetworks)} kept "
        f"(score >= {cutoff:.3f}, >= {min_sig} significant genes)"
    )
    return kept
