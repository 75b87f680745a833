"""
Healing Coordinator - memory-informed recovery from failed resolutions.

On failure, similar successful patterns from the same domain are looked
up, skipping any that a later pattern supersedes. For each (most similar
first) the locator kind that worked before is promoted to the front of
the query and resolution is retried. The first success is returned and
recorded as a new pattern superseding the one that informed it. If
nothing works the original error is raised again, unchanged.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Set, Tuple

from resilient_agent.config.settings import HealingSettings
from resilient_agent.exceptions import (
    ElementNotResolvedError,
    ResolutionTimeoutError,
)
from resilient_agent.memory.filters import all_of, same_domain, success_only
from resilient_agent.memory.store import PatternMemoryStore
from resilient_agent.models import ActionOutcome, ElementQuery, ResolutionResult
from resilient_agent.resolution.engine import SelectorResolutionEngine

logger = logging.getLogger(__name__)


@dataclass
class HealingStats:
    attempts: int = 0
    healed: int = 0
    failed: int = 0
    no_history: int = 0


class HealingCoordinator:
    """
    Retries a failed resolution using historical evidence.
    
    Args:
        engine: Resolution engine to re-run
        store: Pattern memory to consult and record into
        settings: Healing settings
    """
    
    def __init__(
        self,
        engine: SelectorResolutionEngine,
        store: PatternMemoryStore,
        settings: Optional[HealingSettings] = None,
    ):
        self.engine = engine
        self.store = store
        self.settings = settings or HealingSettings()
        self._stats = HealingStats()
    
    def _original_error(self, failed_outcome: ActionOutcome) -> Exception:
        if failed_outcome.error is not None:
            return failed_outcome.error
        return ElementNotResolvedError(failed_outcome.failure_reason or "Interaction failed")
    
    async def heal(self, query: ElementQuery, failed_outcome: ActionOutcome) -> ResolutionResult:
        """
        Try to recover a failed resolution or interaction.
        
        Returns:
            A new resolution, with ``healed_from`` set to the pattern that
            informed it and ``healed_pattern_id`` to the pattern recorded
            for it
            
        Raises:
            The failed outcome's original error when no historical pattern
            leads to a resolution
        """
        self._stats.attempts += 1
        domain = failed_outcome.context.domain
        vector = self.store.embedder.embed_context(domain, failed_outcome.action.kind, query)
        candidates = self.store.query_similar(
            vector,
            k=self.settings.max_candidates,
            filter=all_of(success_only, same_domain(domain), self.store.current_only()),
            min_similarity=self.settings.similarity_threshold,
        )
        if not candidates:
            self._stats.no_history += 1
            self._stats.failed += 1
            logger.info(f"No healing history for {query.primary} on {domain}")
            raise self._original_error(failed_outcome)
        
        tried: Set[Tuple[str, ...]] = set()
        for pattern, similarity in candidates:
            historical = pattern.outcome.locator
            promoted = query.promote(historical.kind, historical)
            key = tuple(str(loc) for loc in promoted.locators)
            if key in tried:
                continue
            tried.add(key)
            logger.debug(
                f"Healing {query.primary} with {historical.kind.value} first "
                f"(pattern {pattern.id}, similarity={similarity:.3f})"
            )
            try:
                result = await self.engine.resolve(promoted, self.settings.budget_ms)
            except (ElementNotResolvedError, ResolutionTimeoutError) as e:
                logger.debug(f"Healing candidate {pattern.id} failed: {e.message}")
                continue
            
            healed_outcome = replace(
                failed_outcome,
                success=True,
                query=promoted,
                resolution=result,
                latency_ms=result.elapsed_ms,
                failure_reason=None,
                error=None,
                healed=True,
            )
            recorded = self.store.record(healed_outcome, supersedes=pattern.id)
            self._stats.healed += 1
            logger.info(
                f"Healed {query.primary} via {result.locator} "
                f"(informed by pattern {pattern.id}, recorded {recorded.id})"
            )
            return replace(result, healed_from=pattern.id, healed_pattern_id=recorded.id)
        
        self._stats.failed += 1
        logger.info(f"Healing exhausted {len(tried)} candidates for {query.primary}")
        raise self._original_error(failed_outcome)
    
    def get_stats(self) -> Dict[str, Any]:
        stats = self._stats
        return {
            "attempts": stats.attempts,
            "healed": stats.healed,
            "failed": stats.failed,
            "no_history": stats.no_history,
            "healing_rate": stats.healed / stats.attempts if stats.attempts else 0.0,
        }
