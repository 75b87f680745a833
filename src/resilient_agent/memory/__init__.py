"""
Memory module - Vector memory of past action outcomes.

Outcomes are embedded with a deterministic feature hash, indexed for
approximate nearest-neighbour lookup and persisted as versioned snapshots.
"""

from resilient_agent.memory.fingerprint import fingerprint_context, layout_hash, normalize_path
from resilient_agent.memory.embedding import FeatureHashEmbedder, tokenize, cosine_similarity
from resilient_agent.memory.index import LSHIndex, BruteForceIndex, build_index, rank_rows
from resilient_agent.memory.filters import (
    PatternFilter,
    success_only,
    failures_only,
    same_domain,
    action_is,
    locator_kind_is,
    excluding,
    all_of,
)
from resilient_agent.memory.snapshot import encode_snapshot, decode_snapshot, MAGIC, FORMAT_VERSION
from resilient_agent.memory.store import PatternMemoryStore, StoreView

__all__ = [
    "fingerprint_context",
    "layout_hash",
    "normalize_path",
    "FeatureHashEmbedder",
    "tokenize",
    "cosine_similarity",
    "LSHIndex",
    "BruteForceIndex",
    "build_index",
    "rank_rows",
    "PatternFilter",
    "success_only",
    "failures_only",
    "same_domain",
    "action_is",
    "locator_kind_is",
    "excluding",
    "all_of",
    "encode_snapshot",
    "decode_snapshot",
    "MAGIC",
    "FORMAT_VERSION",
    "PatternMemoryStore",
    "StoreView",
]
