"""
Pattern Memory Store - append-only vector memory of action outcomes.

The append log (a list of patterns plus a float32 matrix of their
vectors) is the source of truth; the similarity index is derived from it
and rebuilt as the log grows.

Writers are serialized behind one lock. Readers take no lock: every
write ends by publishing a new immutable ``StoreView``, and a reader
works entirely from the view it picked up, so it never sees a half
written entry.
"""

import json
import logging
import os
import tempfile
import threading
import time
from collections import Counter
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from resilient_agent.config.settings import MemorySettings
from resilient_agent.exceptions import PatternStoreError, PatternStoreIOError
from resilient_agent.memory.embedding import FeatureHashEmbedder
from resilient_agent.memory.filters import PatternFilter, excluding
from resilient_agent.memory.index import (
    BruteForceIndex,
    LSHIndex,
    build_index,
    index_from_dict,
    rank_rows,
)
from resilient_agent.memory.snapshot import decode_snapshot, encode_snapshot
from resilient_agent.models import ActionOutcome, ActionPattern

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1
_MIN_REBUILD_ROWS = 32


@dataclass(frozen=True)
class StoreView:
    """
    A consistent read-only view of the store.
    
    ``patterns`` and the arrays may be longer than ``count`` (the writer
    keeps appending); only the first ``count`` rows belong to the view.
    """
    count: int
    patterns: List[ActionPattern]
    matrix: np.ndarray
    successes: np.ndarray
    ids: np.ndarray
    index: Union[LSHIndex, BruteForceIndex]
    row_of: Dict[int, int]


class PatternMemoryStore:
    """
    Append-only memory of ActionPatterns with k-NN lookup.
    
    Example:
        >>> store = PatternMemoryStore()
        >>> pattern = store.record(outcome)
        >>> store.query_similar(pattern.vector, k=5, filter=success_only)
    """
    
    def __init__(
        self,
        settings: Optional[MemorySettings] = None,
        embedder: Optional[FeatureHashEmbedder] = None,
    ):
        self.settings = settings or MemorySettings()
        self.dimension = self.settings.dimension
        self.embedder = embedder or FeatureHashEmbedder(self.dimension)
        if self.embedder.dimension != self.dimension:
            raise PatternStoreError(
                "Embedder dimension does not match store dimension",
                {"embedder": self.embedder.dimension, "store": self.dimension},
            )
        self._lock = threading.Lock()
        self._in_memory_only = False
        self._embed_ms_total = 0.0
        self._embed_count = 0
        self._reset([], None, next_id=1)
    
    @classmethod
    def from_settings(cls, settings: MemorySettings) -> "PatternMemoryStore":
        """Create a store, loading ``settings.snapshot_path`` if it exists."""
        store = cls(settings)
        path = settings.snapshot_path
        if path and Path(path).expanduser().exists():
            store.load(path)
        return store
    
    # -- writer side -------------------------------------------------------
    
    def _reset(self, patterns: List[ActionPattern], index_data: Optional[Dict[str, Any]], next_id: int) -> None:
        """Replace all state. Caller holds the lock (or is __init__)."""
        capacity = max(64, 1 << max(0, len(patterns) - 1).bit_length())
        self._patterns: List[ActionPattern] = list(patterns)
        self._matrix = np.zeros((capacity, self.dimension), dtype=np.float32)
        self._successes = np.zeros(capacity, dtype=bool)
        self._ids = np.zeros(capacity, dtype=np.int64)
        self._row_of: Dict[int, int] = {}
        for row, pattern in enumerate(patterns):
            self._matrix[row] = pattern.vector
            self._successes[row] = pattern.success
            self._ids[row] = pattern.id
            self._row_of[pattern.id] = row
        self._next_id = next_id
        
        index = None
        if index_data is not None:
            index = self._load_index(index_data, len(patterns))
        if index is None:
            index = self._build_index(len(patterns))
        self._index = index
        self._indexed_at = max(len(patterns), _MIN_REBUILD_ROWS // 2)
        self._publish()
    
    def _load_index(self, data: Dict[str, Any], count: int):
        try:
            index = index_from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Snapshot index unusable ({e}); rebuilding from the append log")
            return None
        if index.kind != self.settings.index or index.count != count or index.dimension != self.dimension:
            logger.warning("Snapshot index does not match the append log; rebuilding")
            return None
        return index
    
    def _build_index(self, count: int):
        return build_index(
            self.settings.index,
            self._matrix[:count],
            self.dimension,
            tables=self.settings.lsh_tables,
            bits=self.settings.lsh_bits,
            probe_radius=self.settings.lsh_probe_radius,
            seed=self.settings.lsh_seed,
        )
    
    def _publish(self) -> None:
        self._view = StoreView(
            count=len(self._patterns),
            patterns=self._patterns,
            matrix=self._matrix,
            successes=self._successes,
            ids=self._ids,
            index=self._index,
            row_of=self._row_of,
        )
    
    def _grow(self) -> None:
        capacity = self._matrix.shape[0] * 2
        matrix = np.zeros((capacity, self.dimension), dtype=np.float32)
        successes = np.zeros(capacity, dtype=bool)
        ids = np.zeros(capacity, dtype=np.int64)
        count = len(self._patterns)
        matrix[:count] = self._matrix[:count]
        successes[:count] = self._successes[:count]
        ids[:count] = self._ids[:count]
        self._matrix, self._successes, self._ids = matrix, successes, ids
    
    def _append(self, pattern: ActionPattern) -> ActionPattern:
        if pattern.supersedes is not None and pattern.supersedes not in self._row_of:
            raise PatternStoreError(
                f"Pattern {pattern.supersedes} does not exist",
                {"supersedes": pattern.supersedes},
            )
        vector = np.asarray(pattern.vector, dtype=np.float32)
        if vector.shape != (self.dimension,):
            raise PatternStoreError(
                "Pattern vector has the wrong dimension",
                {"expected": self.dimension, "found": list(vector.shape)},
            )
        norm = float(np.linalg.norm(vector))
        if norm > 0 and abs(norm - 1.0) > 1e-4:
            vector = (vector / norm).astype(np.float32)
        if vector.flags.writeable:
            vector = vector.copy()
            vector.setflags(write=False)
        
        stored = replace(pattern, id=self._next_id, vector=vector)
        self._next_id += 1
        row = len(self._patterns)
        if row >= self._matrix.shape[0]:
            self._grow()
        self._matrix[row] = vector
        self._successes[row] = stored.success
        self._ids[row] = stored.id
        self._row_of[stored.id] = row
        self._patterns.append(stored)
        
        count = row + 1
        if count >= max(_MIN_REBUILD_ROWS, self._indexed_at * self.settings.rebuild_growth_factor):
            self._index = self._build_index(count)
            self._indexed_at = count
        else:
            self._index.add(row, vector)
        return stored
    
    def insert(self, pattern: ActionPattern) -> ActionPattern:
        """
        Append a pattern. The store assigns the id; the given one is ignored.
        
        Returns:
            The stored pattern, carrying its assigned id
        """
        with self._lock:
            stored = self._append(pattern)
            self._publish()
        logger.debug(f"Inserted pattern {stored.id} ({stored.action_kind.value} {stored.outcome.locator})")
        return stored
    
    def record(self, outcome: ActionOutcome, supersedes: Optional[int] = None) -> ActionPattern:
        """Embed an outcome and insert it."""
        start = time.perf_counter()
        vector = self.embedder.embed_outcome(outcome)
        self._embed_ms_total += (time.perf_counter() - start) * 1000
        self._embed_count += 1
        return self.insert(ActionPattern(id=0, vector=vector, outcome=outcome, supersedes=supersedes))
    
    # -- reader side -------------------------------------------------------
    
    @property
    def view(self) -> StoreView:
        return self._view
    
    def __len__(self) -> int:
        return self._view.count
    
    def get(self, pattern_id: int) -> Optional[ActionPattern]:
        view = self._view
        row = view.row_of.get(pattern_id)
        if row is None or row >= view.count:
            return None
        return view.patterns[row]
    
    def patterns(self) -> Tuple[ActionPattern, ...]:
        view = self._view
        return tuple(view.patterns[:view.count])
    
    def query_similar(
        self,
        vector: np.ndarray,
        k: Optional[int] = None,
        filter: Optional[PatternFilter] = None,
        min_similarity: Optional[float] = None,
    ) -> List[Tuple[ActionPattern, float]]:
        """
        The k patterns most similar to ``vector``.
        
        Args:
            vector: Query embedding (normalized here)
            k: Result count; defaults to ``settings.k``
            filter: Predicate applied before ranking
            min_similarity: Drop results below this cosine similarity
            
        Returns:
            (pattern, similarity) pairs, most similar first; ties go to
            successful patterns, then to newer ones
        """
        k = self.settings.k if k is None else k
        view = self._view
        if view.count == 0 or k <= 0:
            return []
        query = np.asarray(vector, dtype=np.float64)
        if query.shape != (self.dimension,):
            raise PatternStoreError(
                "Query vector has the wrong dimension",
                {"expected": self.dimension, "found": list(query.shape)},
            )
        norm = np.linalg.norm(query)
        if norm == 0:
            return []
        query = query / norm
        
        ranked = None
        candidates = view.index.candidates(query)
        if candidates is not None:
            candidates = candidates[candidates < view.count]
            rows = self._apply_filter(view, candidates, filter)
            ranked = rank_rows(view.matrix, query, rows, view.successes, view.ids, k, min_similarity)
            if len(ranked) < k:
                ranked = None
        if ranked is None:
            rows = self._apply_filter(view, np.arange(view.count, dtype=np.int64), filter)
            ranked = rank_rows(view.matrix, query, rows, view.successes, view.ids, k, min_similarity)
        return [(view.patterns[row], score) for row, score in ranked]
    
    @staticmethod
    def _apply_filter(view: StoreView, rows: np.ndarray, filter: Optional[PatternFilter]) -> np.ndarray:
        if filter is None:
            return rows
        patterns = view.patterns
        kept = [row for row in rows.tolist() if filter(patterns[row])]
        return np.asarray(kept, dtype=np.int64)
    
    def lineage(self, pattern_id: int) -> List[ActionPattern]:
        """
        The supersede chain starting at ``pattern_id``.
        
        Returns:
            The pattern followed by each pattern it (transitively)
            supersedes, newest first
        """
        chain = []
        current = self.get(pattern_id)
        while current is not None:
            chain.append(current)
            current = self.get(current.supersedes) if current.supersedes is not None else None
        return chain
    
    def superseded_ids(self) -> frozenset:
        return frozenset(p.supersedes for p in self.patterns() if p.supersedes is not None)
    
    def current_only(self) -> PatternFilter:
        """Filter that hides patterns superseded by a later one."""
        return excluding(self.superseded_ids())
    
    # -- snapshot / restore ------------------------------------------------
    
    def snapshot(self) -> bytes:
        """Serialize header, index and the append log. Blocks inserts while running."""
        with self._lock:
            view = self._view
            return encode_snapshot(
                self.dimension,
                view.patterns[:view.count],
                view.index.to_dict(),
                self._next_id,
            )
    
    def restore(self, blob: bytes) -> None:
        """
        Replace the store's contents with a snapshot.
        
        Raises:
            SnapshotFormatError: The blob is not a valid snapshot for this
                store's dimension; the store is left unchanged
        """
        decoded = decode_snapshot(blob, self.dimension)
        with self._lock:
            next_id = int(decoded.header.get("next_id", 1))
            if decoded.patterns:
                next_id = max(next_id, decoded.patterns[-1].id + 1)
            self._reset(decoded.patterns, decoded.index, next_id)
        logger.info(f"Restored {len(decoded.patterns)} patterns")
    
    @property
    def in_memory_only(self) -> bool:
        return self._in_memory_only
    
    def _io_failure(self, action: str, path: Path, error: OSError) -> PatternStoreIOError:
        self._in_memory_only = True
        logger.warning(
            f"Pattern store {action} failed for {path}: {error}; "
            f"continuing in memory with {len(self)} patterns"
        )
        return PatternStoreIOError(f"Could not {action} pattern store: {error}", path=str(path))
    
    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """
        Write a snapshot atomically (temp file, then rename).
        
        Raises:
            PatternStoreIOError: The write failed; the store switches to
                in-memory operation and keeps every pattern
        """
        target = self._resolve_path(path)
        blob = self.snapshot()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=target.name, suffix=".tmp", dir=target.parent)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(blob)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, target)
            except OSError:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise self._io_failure("save", target, e) from e
        self._in_memory_only = False
        logger.debug(f"Saved {len(self)} patterns to {target}")
        return target
    
    def load(self, path: Optional[Union[str, Path]] = None) -> None:
        """
        Restore from a snapshot file.
        
        Raises:
            PatternStoreIOError: The file could not be read
            SnapshotFormatError: The file is not a valid snapshot
        """
        target = self._resolve_path(path)
        try:
            blob = target.read_bytes()
        except OSError as e:
            raise self._io_failure("load", target, e) from e
        self.restore(blob)
    
    def flush(self) -> Optional[Path]:
        """Save to the configured snapshot path, if any and if persistence still works."""
        if not self.settings.snapshot_path or self._in_memory_only:
            return None
        return self.save()
    
    def _resolve_path(self, path: Optional[Union[str, Path]]) -> Path:
        path = path or self.settings.snapshot_path
        if not path:
            raise PatternStoreError("No snapshot path given or configured")
        return Path(path).expanduser()
    
    # -- statistics and exchange -------------------------------------------
    
    def get_statistics(self) -> Dict[str, Any]:
        """Totals, success rate and breakdowns of the stored patterns."""
        patterns = self.patterns()
        total = len(patterns)
        successes = sum(1 for p in patterns if p.success)
        return {
            "total_patterns": total,
            "successful": successes,
            "failed": total - successes,
            "success_rate": successes / total if total else 0.0,
            "superseded": len(self.superseded_ids()),
            "domains": len({p.domain for p in patterns}),
            "by_action": dict(Counter(p.action_kind.value for p in patterns)),
            "by_locator_kind": dict(Counter(p.locator_kind.value for p in patterns)),
            "avg_embed_ms": self._embed_ms_total / self._embed_count if self._embed_count else 0.0,
            "index": self._view.index.kind,
            "dimension": self.dimension,
            "in_memory_only": self._in_memory_only,
        }
    
    def top_patterns(self, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Most frequently recorded ``action:locator`` pairs.
        
        Returns:
            Dicts with ``pattern``, ``count``, ``successes`` and
            ``success_rate``, most frequent first
        """
        counts: Counter = Counter()
        wins: Counter = Counter()
        for p in self.patterns():
            key = f"{p.action_kind.value}:{p.outcome.locator}"
            counts[key] += 1
            if p.success:
                wins[key] += 1
        return [
            {
                "pattern": key,
                "count": count,
                "successes": wins[key],
                "success_rate": wins[key] / count,
            }
            for key, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
        ]
    
    def export_json(self) -> str:
        """Export every pattern as JSON training data."""
        return json.dumps({
            "version": EXPORT_VERSION,
            "dimension": self.dimension,
            "patterns": [p.to_record() for p in self.patterns()],
        })
    
    def import_json(self, text: str) -> int:
        """
        Append patterns from ``export_json`` output.
        
        Imported patterns get new ids; ``supersedes`` links between them
        are remapped. Vectors of another dimension are re-embedded.
        
        Returns:
            Number of patterns imported
        """
        try:
            data = json.loads(text)
            records = data["patterns"]
        except (ValueError, KeyError, TypeError) as e:
            raise PatternStoreError(f"Invalid pattern export: {e}")
        
        id_map: Dict[int, int] = {}
        with self._lock:
            try:
                for record in records:
                    try:
                        pattern = ActionPattern.from_record(record)
                    except (ValueError, KeyError, TypeError) as e:
                        raise PatternStoreError(f"Invalid pattern record: {e}", {"id": record.get("id")})
                    if pattern.vector.shape != (self.dimension,):
                        pattern = replace(pattern, vector=self.embedder.embed_outcome(pattern.outcome))
                    stored = self._append(replace(pattern, supersedes=id_map.get(pattern.supersedes)))
                    id_map[pattern.id] = stored.id
            finally:
                self._publish()
        logger.info(f"Imported {len(id_map)} patterns")
        return len(id_map)
