"""
Similarity indexes over the pattern matrix.

``LSHIndex`` is a random-hyperplane locality-sensitive hash with several
tables and multi-probe lookup: a query visits its own bucket plus every
bucket within ``probe_radius`` bit flips in each table. It only narrows
the candidate set; ranking is always exact and shared with brute force
(see ``rank_rows``), so both produce the same order for the candidates
they see. ``BruteForceIndex`` scans everything.

Recall target: the LSH top-k overlaps the brute-force top-k by at least
95% on clustered pattern data.
"""

import hashlib
import itertools
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

SCORE_DECIMALS = 9


def rank_rows(
    matrix: np.ndarray,
    query: np.ndarray,
    rows: np.ndarray,
    successes: np.ndarray,
    ids: np.ndarray,
    k: int,
    min_similarity: Optional[float] = None,
) -> List[Tuple[int, float]]:
    """
    Exact ranking of ``rows`` against a unit query vector.
    
    Order: similarity (descending, rounded to 9 decimals), then successful
    patterns first, then newer patterns first.
    
    Returns:
        Up to ``k`` (row, similarity) pairs
    """
    if len(rows) == 0 or k <= 0:
        return []
    scores = np.round(matrix[rows].astype(np.float64) @ query.astype(np.float64), SCORE_DECIMALS)
    if min_similarity is not None:
        keep = scores >= min_similarity
        rows, scores = rows[keep], scores[keep]
        if len(rows) == 0:
            return []
    order = np.lexsort((-ids[rows], ~successes[rows], -scores))[:k]
    return [(int(rows[i]), float(scores[i])) for i in order]


class BruteForceIndex:
    """Linear scan; no structure to maintain."""
    
    kind = "brute_force"
    
    def __init__(self, dimension: int):
        self.dimension = dimension
        self.count = 0
    
    def add(self, row: int, vector: np.ndarray) -> None:
        self.count = max(self.count, row + 1)
    
    def candidates(self, query: np.ndarray) -> Optional[np.ndarray]:
        """None means every row is a candidate."""
        return None
    
    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "dimension": self.dimension, "count": self.count}
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BruteForceIndex":
        index = cls(int(data["dimension"]))
        index.count = int(data["count"])
        return index


def auto_bits(count: int, min_bits: int = 4, max_bits: int = 20) -> int:
    """About log2(count / 16) hyperplanes, so buckets hold ~16 rows."""
    if count <= 16:
        return min_bits
    return max(min_bits, min(max_bits, round(math.log2(count / 16))))


class LSHIndex:
    """
    Random-hyperplane LSH with multi-probe lookup.
    
    Args:
        dimension: Vector dimensionality
        tables: Number of independent hash tables
        bits: Hyperplanes per table
        probe_radius: Hamming radius probed around the query's bucket
        seed: Seed for the hyperplanes
    """
    
    kind = "lsh"
    
    def __init__(
        self,
        dimension: int,
        tables: int = 16,
        bits: int = 8,
        probe_radius: int = 1,
        seed: int = 1729,
    ):
        self.dimension = dimension
        self.tables = tables
        self.bits = bits
        self.probe_radius = probe_radius
        self.seed = seed
        self.count = 0
        rng = np.random.default_rng(seed)
        self._planes = rng.standard_normal((tables, bits, dimension))
        self._weights = 1 << np.arange(bits, dtype=np.int64)
        self._buckets: List[Dict[int, List[int]]] = [{} for _ in range(tables)]
        self._probes = self._probe_masks()
    
    @property
    def planes_digest(self) -> str:
        return hashlib.blake2b(self._planes.tobytes(), digest_size=8).hexdigest()
    
    def _probe_masks(self) -> List[int]:
        masks = [0]
        for radius in range(1, self.probe_radius + 1):
            for flipped in itertools.combinations(range(self.bits), radius):
                masks.append(sum(1 << b for b in flipped))
        return masks
    
    def codes(self, vectors: np.ndarray) -> np.ndarray:
        """Bucket codes, shape (n, tables) for (n, dimension) input."""
        projections = np.einsum("tbd,nd->ntb", self._planes, vectors.astype(np.float64))
        return (projections > 0).astype(np.int64) @ self._weights
    
    def add(self, row: int, vector: np.ndarray) -> None:
        for table, code in enumerate(self.codes(vector[None, :])[0]):
            self._buckets[table].setdefault(int(code), []).append(row)
        self.count = max(self.count, row + 1)
    
    def add_many(self, matrix: np.ndarray, start: int = 0) -> None:
        if len(matrix) == 0:
            return
        all_codes = self.codes(matrix)
        for offset, row_codes in enumerate(all_codes):
            row = start + offset
            for table, code in enumerate(row_codes):
                self._buckets[table].setdefault(int(code), []).append(row)
        self.count = max(self.count, start + len(matrix))
    
    def candidates(self, query: np.ndarray) -> np.ndarray:
        """Rows sharing a probed bucket with ``query`` in any table."""
        found = set()
        for table, code in enumerate(self.codes(query[None, :])[0]):
            buckets = self._buckets[table]
            for mask in self._probes:
                rows = buckets.get(int(code) ^ mask)
                if rows:
                    found.update(rows)
        return np.fromiter(sorted(found), dtype=np.int64, count=len(found))
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "dimension": self.dimension,
            "tables": self.tables,
            "bits": self.bits,
            "probe_radius": self.probe_radius,
            "seed": self.seed,
            "planes_digest": self.planes_digest,
            "count": self.count,
            "buckets": [
                {str(code): rows for code, rows in table.items()}
                for table in self._buckets
            ],
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LSHIndex":
        index = cls(
            dimension=int(data["dimension"]),
            tables=int(data["tables"]),
            bits=int(data["bits"]),
            probe_radius=int(data["probe_radius"]),
            seed=int(data["seed"]),
        )
        if data.get("planes_digest") != index.planes_digest:
            raise ValueError("Hyperplanes do not match the serialized buckets")
        if len(data["buckets"]) != index.tables:
            raise ValueError("Bucket table count mismatch")
        index._buckets = [
            {int(code): [int(r) for r in rows] for code, rows in table.items()}
            for table in data["buckets"]
        ]
        index.count = int(data["count"])
        return index


def build_index(
    kind: str,
    matrix: np.ndarray,
    dimension: int,
    tables: int = 16,
    bits: int = 0,
    probe_radius: int = 1,
    seed: int = 1729,
):
    """Build an index over the rows of ``matrix``."""
    if kind == BruteForceIndex.kind:
        index = BruteForceIndex(dimension)
        index.count = len(matrix)
        return index
    index = LSHIndex(
        dimension,
        tables=tables,
        bits=bits or auto_bits(len(matrix)),
        probe_radius=probe_radius,
        seed=seed,
    )
    index.add_many(matrix)
    logger.debug(f"Built LSH index: {len(matrix)} rows, {index.tables} tables x {index.bits} bits")
    return index


def index_from_dict(data: Dict[str, Any]):
    if not isinstance(data, dict):
        raise ValueError(f"Index data must be an object, got {type(data).__name__}")
    kind = data.get("kind")
    if kind == LSHIndex.kind:
        return LSHIndex.from_dict(data)
    if kind == BruteForceIndex.kind:
        return BruteForceIndex.from_dict(data)
    raise ValueError(f"Unknown index kind: {kind!r}")
