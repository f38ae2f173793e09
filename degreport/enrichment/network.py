"""
Protein-protein interaction networks (PIN) for active subnetwork search.

Networks come from:
- STRING DB (https://string-db.org/) REST API, cached locally as JSON
- KEGG / Biogrid interaction files supplied by the user (SIF format)
- Custom SIF files

SIF format: one interaction per line, "<gene_a>\tpp\t<gene_b>" (the middle
column is optional).
"""

import os
import json
import logging
import hashlib
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import networkx as nx
import requests

logger = logging.getLogger("DEGReport.Enrichment.Network")


def load_sif(file_path: str) -> nx.Graph:
    """
    Load an undirected interaction network from a SIF file.

    Self-loops and duplicate edges are dropped.

    Args:
        file_path: Path to SIF file

    Returns:
        networkx.Graph

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file holds no interactions
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Interaction file not found: {file_path}")

    graph = nx.Graph()
    skipped = 0
    with open(file_path, 'r', encoding='utf-8') as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            parts = line.split('\t') if '\t' in line else line.split()
            if len(parts) == 2:
                a, b = parts
            elif len(parts) == 3:
                a, _, b = parts
            else:
                skipped += 1
                continue
            a, b = a.strip(), b.strip()
            if a and b and a != b:
                graph.add_edge(a, b)

    if skipped:
        logger.warning(f"Skipped {skipped} malformed line(s) in {file_path.name}")
    if graph.number_of_edges() == 0:
        raise ValueError(f"No interactions found in {file_path}")

    logger.info(
        f"Loaded PIN from {file_path.name}: {graph.number_of_nodes()} genes, "
        f"{graph.number_of_edges()} interactions"
    )
    return graph


class STRINGClient:
    """
    Client for STRING DB API (https://string-db.org/).
    """

    API_URL = "https://string-db.org/api"

    def __init__(self, cache_dir: Optional[str] = None, timeout: int = 30):
        """
        Initialize STRING client.

        Args:
            cache_dir: Directory for caching API responses.
            timeout: Request timeout in seconds
        """
        if cache_dir is None:
            self.cache_dir = os.path.expanduser("~/.deg_report/cache/string")
        else:
            self.cache_dir = str(cache_dir)
        os.makedirs(self.cache_dir, exist_ok=True)
        self.timeout = timeout

        self.taxon_map = {
            'human': 9606,
            'homo sapiens': 9606,
            'mouse': 10090,
            'mus musculus': 10090,
            'rat': 10116,
            'rattus norvegicus': 10116,
        }

    def get_interactions(self,
                         genes: List[str],
                         species: str = 'human',
                         score_threshold: int = 400,
                         add_nodes: int = 0) -> List[Dict]:
        """
        Get interactions between a set of genes.

        Args:
            genes: List of gene symbols
            species: Species name or taxon ID
            score_threshold: Confidence score threshold (0-1000)
            add_nodes: Number of extra interactors STRING may add

        Returns:
            List of interaction dictionaries (source, target, score)

        Raises:
            requests.RequestException: If the API call fails
        """
        if not genes:
            return []

        taxon_id = self._get_taxon_id(species)

        digest = hashlib.sha1("\n".join(sorted(genes)).encode("utf-8")).hexdigest()[:16]
        cache_key = f"interactions_{taxon_id}_{digest}_{score_threshold}_{add_nodes}"
        cached = self._load_from_cache(cache_key)
        if cached is not None:
            return cached

        logger.info(
            f"Fetching STRING interactions for {len(genes)} genes "
            f"(species={species}, threshold={score_threshold})"
        )

        params = {
            "identifiers": "\r".join(genes),
            "species": taxon_id,
            "required_score": score_threshold,
            "add_nodes": add_nodes,
            "caller_identity": "deg_report"
        }

        response = requests.post(f"{self.API_URL}/json/network", data=params, timeout=self.timeout)
        response.raise_for_status()

        result = []
        seen_pairs = set()
        for inter in response.json():
            g1 = inter.get('preferredName_A')
            g2 = inter.get('preferredName_B')
            if not g1 or not g2 or g1 == g2:
                continue

            pair = tuple(sorted([g1, g2]))
            if pair in seen_pairs:
                continue
            seen_pairs.add(pair)

            result.append({'source': g1, 'target': g2, 'score': inter.get('score')})

        self._save_to_cache(cache_key, result)
        return result

    def _get_taxon_id(self, species: str) -> int:
        """Map species name to taxon ID."""
        if isinstance(species, int) or (isinstance(species, str) and species.isdigit()):
            return int(species)

        low_species = species.lower()
        if low_species in self.taxon_map:
            return self.taxon_map[low_species]

        raise ValueError(f"Unknown species '{species}' for STRING")

    def _load_from_cache(self, key: str) -> Optional[List]:
        """Load data from local JSON cache (30 day expiry)."""
        cache_file = os.path.join(self.cache_dir, f"{key}.json")
        if not os.path.exists(cache_file):
            return None

        mtime = os.path.getmtime(cache_file)
        if (datetime.now().timestamp() - mtime) > 86400 * 30:
            return None

        try:
            with open(cache_file, 'r') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache file {cache_file}: {e}")
            return None

    def _save_to_cache(self, key: str, data: List):
        """Save data to local JSON cache."""
        cache_file = os.path.join(self.cache_dir, f"{key}.json")
        try:
            with open(cache_file, 'w') as f:
                json.dump(data, f)
        except OSError as e:
            logger.warning(f"Failed to save cache: {e}")


class InteractionNetworkManager:
    """
    Resolves a PIN catalog name to a networkx graph.

    KEGG and Biogrid interaction data cannot be redistributed, so those
    catalogs are read from '<pin_dir>/<name>.sif' which the user provides.
    """

    SOURCES = {
        'STRING': {'display_name': 'STRING', 'auto_download': True},
        'KEGG': {'display_name': 'KEGG PIN', 'auto_download': False, 'file': 'KEGG.sif'},
        'Biogrid': {'display_name': 'BioGRID', 'auto_download': False, 'file': 'Biogrid.sif'},
    }

    def __init__(self, pin_dir: Optional[Path] = None, string_client: Optional[STRINGClient] = None):
        self.pin_dir = Path(pin_dir) if pin_dir else Path.home() / '.deg_report' / 'pin'
        self._string_client = string_client

    @property
    def string_client(self) -> STRINGClient:
        if self._string_client is None:
            self._string_client = STRINGClient()
        return self._string_client

    def load(
        self,
        source_key: str,
        genes: Iterable[str] = (),
        species: str = 'human',
        custom_path: Optional[Path] = None
    ) -> nx.Graph:
        """
        Load the interaction network.

        Args:
            source_key: 'STRING', 'KEGG', 'Biogrid' or 'Custom'
            genes: Input genes (STRING only fetches around these)
            species: Organism for STRING
            custom_path: SIF file, required for 'Custom'

        Returns:
            networkx.Graph
        """
        if custom_path is not None:
            return load_sif(str(custom_path))

        if source_key == 'Custom':
            raise ValueError("PIN 'Custom' requires a SIF file path")

        if source_key not in self.SOURCES:
            raise ValueError(
                f"Unknown interaction network '{source_key}'. "
                f"Choose from: {', '.join(list(self.SOURCES) + ['Custom'])}"
            )

        if source_key == 'STRING':
            genes = sorted(set(genes))
            interactions = self.string_client.get_interactions(
                genes, species=species, add_nodes=len(genes)
            )
            graph = nx.Graph()
            graph.add_edges_from((i['source'], i['target']) for i in interactions)
            if graph.number_of_edges() == 0:
                raise ValueError("STRING returned no interactions for the input genes")
            logger.info(
                f"STRING PIN: {graph.number_of_nodes()} genes, {graph.number_of_edges()} interactions"
            )
            return graph

        sif_path = self.pin_dir / self.SOURCES[source_key]['file']
        if not sif_path.exists():
            raise ValueError(
                f"Interaction network '{source_key}' requires a local SIF file at {sif_path}. "
                f"Download it and place it there, or pass a custom SIF path."
            )
        return load_sif(str(sif_path))
