"""
Resolution module - Multi-strategy element resolution.
"""

from resilient_agent.resolution.strategies import (
    ResolutionStrategy,
    Candidate,
    StrategyMatch,
    STRATEGY_TYPES,
    build_strategies,
    fuzzy_score,
    normalize_text,
)
from resilient_agent.resolution.engine import (
    SelectorResolutionEngine,
    AttemptOutcome,
)

__all__ = [
    "ResolutionStrategy",
    "Candidate",
    "StrategyMatch",
    "STRATEGY_TYPES",
    "build_strategies",
    "fuzzy_score",
    "normalize_text",
    "SelectorResolutionEngine",
    "AttemptOutcome",
]
