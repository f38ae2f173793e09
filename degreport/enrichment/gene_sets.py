"""
Gene Set Catalogs for the DEG Report Enrichment Engine

Loads pathway gene sets from:
- KEGG, Reactome, GO Biological Process, WikiPathways (Enrichr libraries via gseapy)
- Custom GMT files

Downloaded libraries are cached as GMT files with a small metadata index.
"""

import re
import json
import hashlib
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import gseapy as gp

logger = logging.getLogger("DEGReport.Enrichment.GeneSets")

# Term identifiers embedded in Enrichr term names
_ID_PATTERNS = [
    re.compile(r"\((GO:\d+)\)\s*$"),
    re.compile(r"\b(R-[A-Z]{3}-\d+)\s*$"),
    re.compile(r"\b(WP\d+)\s*$"),
    re.compile(r"\b(hsa\d{5})\s*$"),
]


@dataclass
class GeneSetCatalog:
    """Gene sets keyed by term ID, plus a human-readable description per term"""

    gene_sets: Dict[str, List[str]]
    descriptions: Dict[str, str] = field(default_factory=dict)
    source: str = "custom"
    version: str = "unknown"

    def __len__(self) -> int:
        return len(self.gene_sets)

    def describe(self, term_id: str) -> str:
        return self.descriptions.get(term_id, term_id)

    def universe(self) -> set:
        genes = set()
        for members in self.gene_sets.values():
            genes.update(members)
        return genes


def load_gmt(file_path: str) -> GeneSetCatalog:
    """
    Load gene sets from GMT (Gene Matrix Transposed) format file.

    GMT Format: Each line is tab-separated:
    <term_id> <description> <gene1> <gene2> ... <geneN>

    Args:
        file_path: Path to GMT file

    Returns:
        GeneSetCatalog

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is invalid
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"GMT file not found: {file_path}")

    gene_sets: Dict[str, List[str]] = {}
    descriptions: Dict[str, str] = {}
    line_num = 0

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            for line in f:
                line_num += 1
                line = line.rstrip('\n').rstrip('\r')

                if not line.strip() or line.startswith('#'):
                    continue

                parts = line.split('\t')

                if len(parts) < 3:
                    logger.warning(
                        f"Line {line_num}: Expected at least 3 fields (id, description, genes), "
                        f"got {len(parts)}. Skipping."
                    )
                    continue

                term_id = parts[0].strip()
                description = parts[1].strip() or term_id
                genes = [g.strip() for g in parts[2:] if g.strip()]

                if not genes:
                    logger.warning(f"Line {line_num}: Gene set '{term_id}' has no genes. Skipping.")
                    continue

                if term_id in gene_sets:
                    logger.warning(f"Line {line_num}: Duplicate gene set '{term_id}'. Merging genes.")
                    gene_sets[term_id] = sorted(set(gene_sets[term_id]) | set(genes))
                else:
                    gene_sets[term_id] = list(dict.fromkeys(genes))
                    descriptions[term_id] = description

    except UnicodeDecodeError as e:
        raise ValueError(f"Invalid file encoding. Expected UTF-8: {e}")

    logger.info(f"Loaded {len(gene_sets)} gene sets from {file_path}")
    return GeneSetCatalog(gene_sets=gene_sets, descriptions=descriptions,
                          source='custom', version=file_path.name)


def save_gmt(catalog: GeneSetCatalog, file_path: str) -> None:
    """Save a catalog to GMT format"""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    with open(file_path, 'w', encoding='utf-8') as f:
        for term_id, genes in catalog.gene_sets.items():
            line = f"{term_id}\t{catalog.describe(term_id)}\t" + "\t".join(genes)
            f.write(line + "\n")

    logger.info(f"Saved {len(catalog)} gene sets to {file_path}")


def get_gene_set_stats(gene_sets: Dict[str, List[str]]) -> Dict[str, Any]:
    """
    Get statistics about gene sets.

    Returns:
        Dictionary with stats: total_sets, unique_genes, avg_size, min_size, max_size
    """
    if not gene_sets:
        return {"total_sets": 0, "unique_genes": 0, "avg_size": 0, "min_size": 0, "max_size": 0}

    sizes = [len(genes) for genes in gene_sets.values()]
    all_genes = set()
    for genes in gene_sets.values():
        all_genes.update(genes)

    return {
        "total_sets": len(gene_sets),
        "unique_genes": len(all_genes),
        "avg_size": sum(sizes) / len(sizes),
        "min_size": min(sizes),
        "max_size": max(sizes)
    }


def filter_by_size(catalog: GeneSetCatalog, min_size: int = 10, max_size: int = 300) -> GeneSetCatalog:
    """Drop gene sets outside [min_size, max_size]"""
    kept = {
        term_id: genes for term_id, genes in catalog.gene_sets.items()
        if min_size <= len(genes) <= max_size
    }
    dropped = len(catalog) - len(kept)
    if dropped:
        logger.info(f"Excluded {dropped}/{len(catalog)} gene sets outside size range [{min_size}, {max_size}]")
    return GeneSetCatalog(
        gene_sets=kept,
        descriptions={k: catalog.describe(k) for k in kept},
        source=catalog.source,
        version=catalog.version
    )


def split_term_name(name: str) -> Tuple[str, str]:
    """
    Split an Enrichr term name into (ID, description).

    'Apoptosis (GO:0006915)' -> ('GO:0006915', 'Apoptosis'). Names without
    an embedded identifier are used as both.
    """
    for pattern in _ID_PATTERNS:
        match = pattern.search(name)
        if match:
            description = name[:match.start()].strip().rstrip('(').strip()
            return match.group(1), description or name
    return name, name


class GeneSetSourceManager:
    """
    Manages gene set library downloads and caching.

    Uses simple file-based cache with version tracking.
    """

    # Catalog name -> Enrichr library per organism
    SOURCES = {
        'KEGG': {
            'display_name': 'KEGG Pathways',
            'libraries': {'human': 'KEGG_2021_Human', 'mouse': 'KEGG_2019_Mouse'},
            'cache_days': 180,
        },
        'Reactome': {
            'display_name': 'Reactome Pathways',
            'libraries': {'human': 'Reactome_2022', 'mouse': 'Reactome_2022'},
            'cache_days': 30,
        },
        'GO-BP': {
            'display_name': 'GO Biological Process',
            'libraries': {'human': 'GO_Biological_Process_2023', 'mouse': 'GO_Biological_Process_2023'},
            'cache_days': 30,
        },
        'WikiPathways': {
            'display_name': 'WikiPathways',
            'libraries': {'human': 'WikiPathway_2023_Human', 'mouse': 'WikiPathways_2019_Mouse'},
            'cache_days': 30,
        },
    }

    def __init__(self, cache_dir: Optional[Path] = None):
        """
        Initialize source manager.

        Args:
            cache_dir: Directory for caching gene sets
        """
        self.cache_dir = Path(cache_dir) if cache_dir else Path.home() / '.deg_report' / 'cache' / 'genesets'
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        self.metadata_file = self.cache_dir / 'metadata.json'
        self.metadata = self._load_metadata()
        # Guards the cache and metadata.json when comparisons run in threads
        self._lock = threading.Lock()

    def _load_metadata(self) -> Dict:
        """Load cache metadata"""
        if self.metadata_file.exists():
            try:
                with open(self.metadata_file, 'r') as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load metadata: {e}")
        return {}

    def _save_metadata(self):
        """Save cache metadata"""
        with open(self.metadata_file, 'w') as f:
            json.dump(self.metadata, f, indent=2)

    def _calculate_hash(self, file_path: Path) -> str:
        """Calculate SHA256 hash of a file"""
        sha256 = hashlib.sha256()
        with open(file_path, 'rb') as f:
            for chunk in iter(lambda: f.read(8192), b''):
                sha256.update(chunk)
        return sha256.hexdigest()[:16]

    def _cache_key(self, source_key: str, organism: str) -> str:
        return f"{source_key}_{organism}"

    def _is_cache_valid(self, cache_key: str, source_key: str) -> bool:
        """Check if cached gene set is still valid"""
        meta = self.metadata.get(cache_key)
        if not meta:
            return False

        if not Path(meta.get('cache_file', '')).exists():
            return False

        cached_date = datetime.fromisoformat(meta.get('download_date', '2000-01-01'))
        if datetime.now() - cached_date > timedelta(days=self.SOURCES[source_key]['cache_days']):
            logger.info(f"Cache expired for {cache_key}")
            return False

        return True

    def load(
        self,
        source_key: str,
        organism: str = 'human',
        custom_path: Optional[Path] = None
    ) -> GeneSetCatalog:
        """
        Load a gene set catalog.

        Args:
            source_key: One of SOURCES or 'Custom'
            organism: 'human' or 'mouse'
            custom_path: GMT file, required for 'Custom'

        Returns:
            GeneSetCatalog
        """
        if custom_path is not None:
            catalog = load_gmt(str(custom_path))
            catalog.source = source_key
            return catalog

        if source_key == 'Custom':
            raise ValueError("Gene set catalog 'Custom' requires a GMT file path")

        if source_key not in self.SOURCES:
            raise ValueError(
                f"Unknown gene set catalog '{source_key}'. "
                f"Choose from: {', '.join(list(self.SOURCES) + ['Custom'])}"
            )

        libraries = self.SOURCES[source_key]['libraries']
        if organism not in libraries:
            raise ValueError(f"Catalog '{source_key}' is not available for organism '{organism}'")

        cache_key = self._cache_key(source_key, organism)
        with self._lock:
            if self._is_cache_valid(cache_key, source_key):
                logger.info(f"Loading {cache_key} from cache")
                catalog = load_gmt(self.metadata[cache_key]['cache_file'])
                catalog.source = source_key
                catalog.version = self.metadata[cache_key].get('version', 'unknown')
                return catalog

            return self._download_and_cache(source_key, organism, libraries[organism])

    def _download_and_cache(self, source_key: str, organism: str, library_name: str) -> GeneSetCatalog:
        """Download an Enrichr library with gseapy and cache it as GMT"""
        logger.info(f"Downloading {library_name} via gseapy")
        try:
            library = gp.get_library(name=library_name, organism=organism.capitalize())
        except Exception as e:
            raise RuntimeError(f"Failed to download {source_key} ({library_name}): {e}") from e

        gene_sets: Dict[str, List[str]] = {}
        descriptions: Dict[str, str] = {}
        for term_name, genes_data in library.items():
            if isinstance(genes_data, str):
                genes_data = genes_data.split('\t')
            genes = [str(g).strip() for g in genes_data if str(g).strip()]
            if not genes:
                continue
            term_id, description = split_term_name(str(term_name))
            gene_sets[term_id] = list(dict.fromkeys(genes))
            descriptions[term_id] = description

        catalog = GeneSetCatalog(gene_sets=gene_sets, descriptions=descriptions,
                                 source=source_key, version=library_name)

        cache_key = self._cache_key(source_key, organism)
        cache_file = self.cache_dir / f"{cache_key}.gmt"
        save_gmt(catalog, str(cache_file))

        self.metadata[cache_key] = {
            'cache_file': str(cache_file),
            'download_date': datetime.now().isoformat(),
            'hash': self._calculate_hash(cache_file),
            'version': library_name,
            'stats': get_gene_set_stats(gene_sets)
        }
        self._save_metadata()

        logger.info(f"Downloaded {len(gene_sets)} gene sets from {library_name}")
        return catalog

    def clear_cache(self, source_key: Optional[str] = None):
        """
        Clear cached gene sets.

        Args:
            source_key: Specific catalog to clear, or None for all
        """
        for cache_key in list(self.metadata):
            if source_key and not cache_key.startswith(f"{source_key}_"):
                continue
            Path(self.metadata[cache_key]['cache_file']).unlink(missing_ok=True)
            del self.metadata[cache_key]
        self._save_metadata()
        logger.info(f"Cleared gene set cache ({source_key or 'all'})")
