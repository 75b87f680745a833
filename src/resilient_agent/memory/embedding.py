"""
Feature-hash embeddings for action patterns.

A vector is split into disjoint blocks, one per feature group (domain,
locator kind, action kind, field-name tokens). Features only ever land in
their own block, so a domain can never collide with a token. Locator and
action kinds are closed vocabularies and get fixed slots; domains and
tokens are hashed with blake2b for both bucket and sign.

The result is a pure function of its inputs: the same inputs produce a
bit-identical float32 vector in every process.
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np

from resilient_agent.interfaces.driver import LocatorKind
from resilient_agent.models import ActionKind, ActionOutcome, ElementQuery

STOPWORDS = {
    "the", "a", "an", "on", "in", "to", "for", "of", "and", "or", "is", "are",
    "id", "css", "btn", "div", "span", "input", "button", "field", "data", "testid",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_NON_WORD = re.compile(r"[^0-9a-zA-Z]+")


def tokenize(text: Optional[str]) -> List[str]:
    """
    Normalized field-name tokens.
    
    Splits camelCase, snake_case, kebab-case and punctuation, lowercases
    and drops stopwords and single characters. Order is kept and
    duplicates are removed.
    
    >>> tokenize("submitButton #login_form")
    ['submit', 'login', 'form']
    """
    if not text:
        return []
    tokens: List[str] = []
    for chunk in _NON_WORD.split(text):
        for word in _CAMEL_BOUNDARY.split(chunk):
            word = word.lower()
            if len(word) > 1 and word not in STOPWORDS and word not in tokens:
                tokens.append(word)
    return tokens


def _hash(namespace: str, value: str) -> int:
    digest = hashlib.blake2b(f"{namespace}\x1f{value}".encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big")


@dataclass(frozen=True)
class BlockLayout:
    """Offsets and sizes of the feature blocks for one dimension."""
    dimension: int
    
    def __post_init__(self) -> None:
        if self.dimension < 16 or self.dimension % 16:
            raise ValueError("Embedding dimension must be a positive multiple of 16")
    
    @property
    def domain(self) -> slice:
        return slice(0, self.dimension // 4)
    
    @property
    def locator_kind(self) -> slice:
        start = self.dimension // 4
        return slice(start, start + self.dimension // 16)
    
    @property
    def action_kind(self) -> slice:
        start = self.dimension // 4 + self.dimension // 16
        return slice(start, start + self.dimension // 16)
    
    @property
    def tokens(self) -> slice:
        return slice(self.dimension // 4 + self.dimension // 8, self.dimension)


class FeatureHashEmbedder:
    """
    Deterministic embedder.
    
    Example:
        >>> embedder = FeatureHashEmbedder(256)
        >>> v = embedder.embed("example.com", LocatorKind.IDENTIFIER, ActionKind.CLICK, ["submit"])
        >>> v.shape, v.dtype
        ((256,), dtype('float32'))
    """
    
    def __init__(self, dimension: int = 256):
        self.layout = BlockLayout(dimension)
        self.dimension = dimension
    
    def _slot(self, block: slice, position: int) -> int:
        return block.start + position % (block.stop - block.start)
    
    def embed(
        self,
        domain: Optional[str],
        locator_kind: Optional[LocatorKind],
        action_kind: Optional[ActionKind],
        tokens: Sequence[str] = (),
    ) -> np.ndarray:
        """
        Embed one context. Any feature group may be omitted.
        
        Returns:
            Read-only unit-length float32 vector (all zeros if every group
            is empty)
        """
        vector = np.zeros(self.dimension, dtype=np.float64)
        layout = self.layout
        
        if domain:
            h = _hash("domain", domain.lower())
            vector[self._slot(layout.domain, h >> 1)] += 1.0 if h & 1 else -1.0
        if locator_kind is not None:
            vector[self._slot(layout.locator_kind, LocatorKind(locator_kind).rank)] += 1.0
        if action_kind is not None:
            kinds = list(ActionKind)
            vector[self._slot(layout.action_kind, kinds.index(ActionKind(action_kind)))] += 1.0
        
        tokens = [t for t in tokens if t]
        if tokens:
            weight = 1.0 / np.sqrt(len(tokens))
            for token in tokens:
                h = _hash("token", token)
                vector[self._slot(layout.tokens, h >> 1)] += weight if h & 1 else -weight
        
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        result = vector.astype(np.float32)
        result.setflags(write=False)
        return result
    
    def embed_outcome(self, outcome: ActionOutcome) -> np.ndarray:
        """Embed a recorded outcome: domain, winning locator kind, action, field tokens."""
        return self.embed(
            outcome.context.domain,
            outcome.locator.kind,
            outcome.action.kind,
            tokenize(outcome.query.field_text),
        )
    
    def embed_context(
        self,
        domain: str,
        action_kind: Optional[ActionKind] = None,
        query: Optional[ElementQuery] = None,
        extra_tokens: Iterable[str] = (),
    ) -> np.ndarray:
        """Embed a lookup context; the locator kind is left open."""
        tokens = tokenize(query.field_text) if query is not None else []
        tokens += [t for t in extra_tokens if t not in tokens]
        return self.embed(domain, None, action_kind, tokens)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity computed in float64."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom == 0:
        return 0.0
    return float(np.dot(a, b) / denom)
