"""
Unit tests for enriched term clustering.
"""

import numpy as np
import pandas as pd
import pytest

from degreport.enrichment.clustering import (
    MEMBER,
    REPRESENTATIVE,
    choose_clusters,
    cluster_enriched_terms,
    kappa_matrix,
    term_gene_sets,
)


def enriched_terms():
    return pd.DataFrame({
        "ID": ["T1", "T2", "T3", "T4"],
        "Term_Description": ["MHC class II", "Antigen presentation", "Fatty acid", "Lipid transport"],
        "Fold_Enrichment": [3.0, 2.5, 1.8, 2.2],
        "lowest_p": [0.001, 0.01, 0.02, 0.005],
        "Up_regulated": ["a, b", "a, b", "", "x"],
        "Down_regulated": ["c", "c, d", "x, y, z", "y, z, w"],
    })


class TestKappa:
    """Test kappa similarity between gene sets."""

    def test_identical_sets(self):
        kappa = kappa_matrix([{"a", "b"}, {"a", "b"}, {"c"}])
        assert kappa[0, 1] == pytest.approx(1.0)

    def test_disjoint_sets_negative(self):
        kappa = kappa_matrix([{"a", "b"}, {"c", "d"}])
        assert kappa[0, 1] < 0

    def test_symmetric_unit_diagonal(self):
        kappa = kappa_matrix([{"a", "b", "c"}, {"a", "b", "c", "d"}, {"x", "y"}])
        assert np.allclose(kappa, kappa.T)
        assert np.allclose(np.diag(kappa), 1.0)

    def test_term_gene_sets(self):
        sets = term_gene_sets(enriched_terms())
        assert sets[1] == {"a", "b", "c", "d"}
        assert sets[2] == {"x", "y", "z"}


class TestChooseClusters:
    """Test tree cutting by silhouette."""

    def test_single_term(self):
        assert choose_clusters(np.zeros((1, 1))).tolist() == [1]

    def test_two_similar_terms(self):
        assert choose_clusters(np.array([[0.0, 0.2], [0.2, 0.0]])).tolist() == [1, 1]

    def test_two_dissimilar_terms(self):
        assert choose_clusters(np.array([[0.0, 1.5], [1.5, 0.0]])).tolist() == [1, 2]

    def test_two_groups(self):
        distance = np.array([
            [0.0, 0.1, 1.8, 1.9],
            [0.1, 0.0, 1.7, 1.8],
            [1.8, 1.7, 0.0, 0.2],
            [1.9, 1.8, 0.2, 0.0],
        ])
        labels = choose_clusters(distance)
        assert labels[0] == labels[1]
        assert labels[2] == labels[3]
        assert labels[0] != labels[2]


class TestClusterEnrichedTerms:
    """Test Cluster / Status assignment."""

    def test_groups_and_representatives(self):
        clustered = cluster_enriched_terms(enriched_terms())

        assert clustered["ID"].tolist() == ["T1", "T2", "T4", "T3"]
        assert clustered["Cluster"].tolist() == [1, 1, 2, 2]
        assert clustered["Status"].tolist() == [REPRESENTATIVE, MEMBER, REPRESENTATIVE, MEMBER]

    def test_one_representative_per_cluster(self):
        clustered = cluster_enriched_terms(enriched_terms())
        reps = clustered.loc[clustered["Status"] == REPRESENTATIVE]
        assert reps["Cluster"].is_unique
        assert set(reps["Cluster"]) == set(clustered["Cluster"])

    def test_input_not_modified(self):
        terms = enriched_terms()
        cluster_enriched_terms(terms)
        assert "Cluster" not in terms.columns

    def test_empty_result(self):
        empty = enriched_terms().iloc[0:0]
        clustered = cluster_enriched_terms(empty)
        assert clustered.empty
        assert {"Cluster", "Status"} <= set(clustered.columns)
