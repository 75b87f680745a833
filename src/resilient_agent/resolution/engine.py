"""
Selector Resolution Engine - ranked multi-strategy element resolution.

Locators are tried primary first, then fallbacks in the caller's order.
Each one gets a time slice of ``remaining_budget / remaining_locators``
(capped per strategy), so a fast exact match leaves its unused time to
the slower strategies after it.

The first candidate at or above the confident threshold wins. Otherwise
the best candidate seen across all strategies is returned if it clears
the acceptable floor. Failing that, resolution raises
``ResolutionTimeoutError`` when any locator ran out of time, else
``ElementNotResolvedError``; both carry the per-strategy trail.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from resilient_agent.config.settings import ResolutionSettings
from resilient_agent.exceptions import ElementNotResolvedError, ResolutionTimeoutError
from resilient_agent.interfaces.driver import IDriver, Locator, LocatorKind
from resilient_agent.models import ElementQuery, ResolutionResult, StrategyAttempt
from resilient_agent.resolution.strategies import (
    Candidate,
    ResolutionStrategy,
    build_strategies,
)
from resilient_agent.utils.timeouts import Deadline, with_timeout

logger = logging.getLogger(__name__)


class AttemptOutcome:
    """Values of ``StrategyAttempt.outcome``."""
    CONFIDENT = "confident"
    LOW_CONFIDENCE = "low_confidence"
    NO_MATCH = "no_match"
    TIMEOUT = "timeout"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class ResolutionStats:
    """Counters kept across resolve() calls."""
    total_queries: int = 0
    successful_queries: int = 0
    timeouts: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)
    by_index: Dict[int, int] = field(default_factory=dict)


@dataclass
class _Best:
    candidate: Candidate
    index: int
    locator: Locator
    candidate_count: int
    generation: int


class SelectorResolutionEngine:
    """
    Resolves an ElementQuery to a single element.
    
    Example:
        >>> engine = SelectorResolutionEngine(driver)
        >>> result = await engine.resolve(ElementQuery.of("id:submit", "text:Submit"))
        >>> result.strategy_index, result.confidence
        (0, 1.0)
    """
    
    def __init__(
        self,
        driver: IDriver,
        settings: Optional[ResolutionSettings] = None,
    ):
        self.driver = driver
        self.settings = settings or ResolutionSettings()
        self._strategies: Dict[LocatorKind, ResolutionStrategy] = build_strategies(self.settings)
        self._stats = ResolutionStats()
    
    async def resolve(
        self,
        query: ElementQuery,
        budget_ms: Optional[float] = None,
    ) -> ResolutionResult:
        """
        Resolve a query within a time budget.
        
        Args:
            query: Primary and fallback locators
            budget_ms: Overall budget; defaults to ``settings.budget_ms``
            
        Returns:
            The winning element and how it was found
            
        Raises:
            ElementNotResolvedError: Every locator was tried without an
                acceptable candidate
            ResolutionTimeoutError: Nothing acceptable was found and at least
                one locator timed out or was skipped for lack of budget
        """
        budget = float(budget_ms if budget_ms is not None else self.settings.budget_ms)
        deadline = Deadline(budget)
        locators = query.locators
        trail: List[StrategyAttempt] = []
        best: Optional[_Best] = None
        self._stats.total_queries += 1
        
        for index, locator in enumerate(locators):
            if deadline.expired:
                for skipped_index in range(index, len(locators)):
                    trail.append(StrategyAttempt(
                        index=skipped_index,
                        locator=locators[skipped_index],
                        outcome=AttemptOutcome.SKIPPED,
                        detail="budget exhausted",
                    ))
                break
            
            slice_ms = deadline.slice(len(locators) - index, self.settings.per_strategy_timeout_ms)
            attempt, found = await self._attempt(index, locator, slice_ms)
            trail.append(attempt)
            logger.debug(f"Resolution attempt {attempt}")
            
            if found is not None and (best is None or found.candidate.confidence > best.candidate.confidence):
                best = found
            if attempt.outcome == AttemptOutcome.CONFIDENT:
                return self._success(query, best, deadline, trail)
        
        if best is not None and best.candidate.confidence >= self.settings.acceptable_floor:
            return self._success(query, best, deadline, trail)
        
        if any(a.outcome in (AttemptOutcome.TIMEOUT, AttemptOutcome.SKIPPED) for a in trail):
            self._stats.timeouts += 1
            raise ResolutionTimeoutError(
                f"Resolution of {query.primary} ran out of time within a {budget:.0f}ms budget",
                timeout_ms=budget,
                operation="resolve",
                trail=trail,
            )
        raise ElementNotResolvedError(
            f"No acceptable element for {query.primary} after {len(trail)} strategies",
            trail=trail,
        )
    
    async def _attempt(
        self,
        index: int,
        locator: Locator,
        slice_ms: float,
    ) -> Tuple[StrategyAttempt, Optional[_Best]]:
        strategy = self._strategies[locator.kind]
        generation = self.driver.generation()
        start = time.monotonic()
        
        def attempt(outcome: str, count: int = 0, confidence: float = 0.0, detail: Optional[str] = None) -> StrategyAttempt:
            return StrategyAttempt(
                index=index,
                locator=locator,
                outcome=outcome,
                candidate_count=count,
                best_confidence=confidence,
                elapsed_ms=(time.monotonic() - start) * 1000,
                detail=detail,
            )
        
        try:
            match = await with_timeout(strategy.find(self.driver, locator), slice_ms)
        except asyncio.TimeoutError:
            return attempt(AttemptOutcome.TIMEOUT, detail=f"slice of {slice_ms:.0f}ms exceeded"), None
        except Exception as e:
            # Driver errors are diagnostics for this strategy only
            return attempt(AttemptOutcome.ERROR, detail=f"{type(e).__name__}: {e}"), None
        
        if match.best is None:
            return attempt(AttemptOutcome.NO_MATCH), None
        
        confidence = match.best.confidence
        outcome = (
            AttemptOutcome.CONFIDENT
            if confidence >= self.settings.confident_threshold
            else AttemptOutcome.LOW_CONFIDENCE
        )
        detail = "ambiguous" if match.ambiguous else None
        found = _Best(match.best, index, locator, match.candidate_count, generation)
        return attempt(outcome, match.candidate_count, confidence, detail), found
    
    def _success(
        self,
        query: ElementQuery,
        best: _Best,
        deadline: Deadline,
        trail: List[StrategyAttempt],
    ) -> ResolutionResult:
        self._stats.successful_queries += 1
        kind = best.locator.kind.value
        self._stats.by_kind[kind] = self._stats.by_kind.get(kind, 0) + 1
        self._stats.by_index[best.index] = self._stats.by_index.get(best.index, 0) + 1
        
        logger.info(
            f"Resolved {query.primary} via #{best.index} {best.locator} "
            f"(confidence={best.candidate.confidence:.2f}, {deadline.elapsed_ms:.0f}ms)"
        )
        return ResolutionResult(
            handle=best.candidate.handle,
            locator=best.locator,
            strategy_index=best.index,
            confidence=best.candidate.confidence,
            elapsed_ms=deadline.elapsed_ms,
            candidate_count=best.candidate_count,
            generation=best.generation,
            query=query,
            trail=tuple(trail),
        )
    
    def get_stats(self) -> Dict[str, Any]:
        """
        Resolution statistics.
        
        Returns:
            Totals, success rate, timeouts and the share of successes won
            by each locator kind and by each query position
        """
        stats = self._stats
        successes = stats.successful_queries
        
        def breakdown(counts: Dict[Any, int]) -> Dict[str, Dict[str, float]]:
            return {
                str(key): {
                    "count": count,
                    "percentage": (count / successes * 100) if successes else 0.0,
                }
                for key, count in sorted(counts.items(), key=lambda item: str(item[0]))
            }
        
        return {
            "total_queries": stats.total_queries,
            "successful_queries": successes,
            "success_rate": (successes / stats.total_queries) if stats.total_queries else 0.0,
            "timeouts": stats.timeouts,
            "by_kind": breakdown(stats.by_kind),
            "by_index": breakdown(stats.by_index),
        }
    
    def reset_stats(self) -> None:
        self._stats = ResolutionStats()
