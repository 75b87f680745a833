"""
Predicates for ``PatternMemoryStore.query_similar``.

Filters run before ranking, so a query asking for k results gets up to k
patterns that pass the filter.
"""

from typing import Callable, Iterable

from resilient_agent.interfaces.driver import LocatorKind
from resilient_agent.models import ActionKind, ActionPattern

PatternFilter = Callable[[ActionPattern], bool]


def success_only(pattern: ActionPattern) -> bool:
    return pattern.success


def failures_only(pattern: ActionPattern) -> bool:
    return not pattern.success


def same_domain(domain: str) -> PatternFilter:
    domain = domain.lower()
    return lambda pattern: pattern.domain.lower() == domain


def action_is(kind: ActionKind) -> PatternFilter:
    kind = ActionKind(kind)
    return lambda pattern: pattern.action_kind == kind


def locator_kind_is(kind: LocatorKind) -> PatternFilter:
    kind = LocatorKind(kind)
    return lambda pattern: pattern.locator_kind == kind


def excluding(superseded_ids: Iterable[int]) -> PatternFilter:
    """Drop patterns that a later pattern supersedes."""
    ids = frozenset(superseded_ids)
    return lambda pattern: pattern.id not in ids


def all_of(*filters: PatternFilter) -> PatternFilter:
    active = [f for f in filters if f is not None]
    return lambda pattern: all(f(pattern) for f in active)
