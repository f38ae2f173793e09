"""
Clustering of enriched terms.

Groups terms whose member genes overlap into functional clusters so that
redundant pathways can be reviewed through one representative each.

Similarity between two terms is Cohen's kappa over their gene membership
vectors. Terms are clustered hierarchically (average linkage on 1 - kappa)
and the tree is cut at the number of clusters with the best average
silhouette width. In every cluster the term with the lowest p-value is the
Representative; the others are Members.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import squareform
from sklearn.metrics import silhouette_score

logger = logging.getLogger("DEGReport.Enrichment.Clustering")

REPRESENTATIVE = "Representative"
MEMBER = "Member"


def term_gene_sets(result: pd.DataFrame) -> List[Set[str]]:
    """Input genes of every term (Up_regulated + Down_regulated), row order"""
    sets = []
    for up, down in zip(result['Up_regulated'], result['Down_regulated']):
        genes: Set[str] = set()
        for field_value in (up, down):
            if isinstance(field_value, str) and field_value:
                genes.update(g.strip() for g in field_value.split(',') if g.strip())
        sets.append(genes)
    return sets


def kappa_matrix(gene_sets: Sequence[Set[str]]) -> np.ndarray:
    """
    Pairwise Cohen's kappa between binary gene membership vectors.

    Args:
        gene_sets: One gene set per term

    Returns:
        Symmetric (n_terms x n_terms) matrix with 1.0 on the diagonal
    """
    universe = sorted(set().union(*gene_sets)) if gene_sets else []
    n_terms = len(gene_sets)
    if not universe:
        return np.eye(n_terms)

    index = {g: i for i, g in enumerate(universe)}
    membership = np.zeros((n_terms, len(universe)), dtype=float)
    for row, genes in enumerate(gene_sets):
        for g in genes:
            membership[row, index[g]] = 1.0

    n = float(len(universe))
    both = membership @ membership.T
    neither = (1 - membership) @ (1 - membership).T
    observed = (both + neither) / n

    frac = membership.sum(axis=1) / n
    expected = np.outer(frac, frac) + np.outer(1 - frac, 1 - frac)

    with np.errstate(divide='ignore', invalid='ignore'):
        kappa = (observed - expected) / (1 - expected)
    # expected == 1 only when both vectors are constant: agreement is total
    kappa = np.where(np.isclose(expected, 1.0), np.where(np.isclose(observed, 1.0), 1.0, 0.0), kappa)
    np.fill_diagonal(kappa, 1.0)
    return kappa


def choose_clusters(distance: np.ndarray, max_clusters: Optional[int] = None) -> np.ndarray:
    """
    Average-linkage clustering cut at the best silhouette.

    Args:
        distance: Square distance matrix
        max_clusters: Largest number of clusters to try (default n - 1)

    Returns:
        1-based cluster label per term
    """
    n = distance.shape[0]
    if n == 1:
        return np.array([1])
    if n == 2:
        return np.array([1, 1]) if distance[0, 1] < 1.0 else np.array([1, 2])

    condensed = squareform(distance, checks=False)
    tree = linkage(condensed, method='average')

    upper = min(max_clusters or (n - 1), n - 1)
    best_labels = fcluster(tree, 1, criterion='maxclust')
    best_score = -np.inf
    for k in range(2, upper + 1):
        labels = fcluster(tree, k, criterion='maxclust')
        n_labels = len(set(labels))
        if n_labels < 2 or n_labels > n - 1:
            continue
        score = silhouette_score(distance, labels, metric='precomputed')
        if score > best_score:
            best_labels, best_score = labels, score

    logger.debug(f"Term clustering: {len(set(best_labels))} clusters (silhouette={best_score:.3f})")
    return np.asarray(best_labels)


def cluster_enriched_terms(
    result: pd.DataFrame,
    max_clusters: Optional[int] = None
) -> pd.DataFrame:
    """
    Assign Cluster and Status columns to an enrichment result.

    Clusters are renumbered 1..K in order of their representative's
    lowest_p. The output is sorted by Cluster, then lowest_p.

    Args:
        result: Enrichment result with lowest_p, Up_regulated, Down_regulated
        max_clusters: Largest number of clusters to try

    Returns:
        New DataFrame with Cluster (int) and Status columns
    """
    clustered = result.copy().reset_index(drop=True)
    if clustered.empty:
        clustered['Cluster'] = pd.Series(dtype=int)
        clustered['Status'] = pd.Series(dtype=object)
        return clustered

    distance = 1.0 - kappa_matrix(term_gene_sets(clustered))
    distance = np.clip((distance + distance.T) / 2.0, 0.0, 2.0)
    np.fill_diagonal(distance, 0.0)

    labels = choose_clusters(distance, max_clusters)
    clustered['_raw'] = labels

    representatives: Dict[int, int] = {}
    for raw, group in clustered.groupby('_raw'):
        representatives[raw] = group['lowest_p'].idxmin()

    order = sorted(representatives, key=lambda raw: clustered.loc[representatives[raw], 'lowest_p'])
    renumber = {raw: i + 1 for i, raw in enumerate(order)}

    clustered['Cluster'] = clustered['_raw'].map(renumber).astype(int)
    clustered['Status'] = MEMBER
    clustered.loc[list(representatives.values()), 'Status'] = REPRESENTATIVE
    clustered = clustered.drop(columns='_raw')

    clustered = clustered.sort_values(['Cluster', 'lowest_p'], kind='mergesort').reset_index(drop=True)
    logger.info(
        f"Clustered {len(clustered)} terms into {clustered['Cluster'].nunique()} clusters"
    )
    return clustered
