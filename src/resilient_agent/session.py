"""
Automation Session - the resolve, interact, record, heal pipeline.

One session drives one page with its own BehaviorProfile. Many sessions
may run concurrently on different pages and share one PatternMemoryStore.

Pipeline for each action:
1. Resolve the ElementQuery
2. Interact using the session's behaviour profile
3. Record the outcome (success or failure) in pattern memory
4. On failure, heal once and interact again

Navigation during an interaction raises BehaviorInterruptedError and is
never recorded.
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Union

from resilient_agent.behavior.executor import InteractionExecutor, SleepFn
from resilient_agent.behavior.profile import BehaviorProfile
from resilient_agent.config.settings import Settings
from resilient_agent.exceptions import (
    BehaviorInterruptedError,
    ElementStaleError,
    ResilientAgentError,
    ResolutionError,
)
from resilient_agent.healing.coordinator import HealingCoordinator
from resilient_agent.interfaces.driver import IDriver, Locator
from resilient_agent.memory.fingerprint import fingerprint_context
from resilient_agent.memory.store import PatternMemoryStore
from resilient_agent.models import ActionOutcome, ActionSpec, ElementQuery, ResolutionResult
from resilient_agent.resolution.engine import SelectorResolutionEngine

logger = logging.getLogger(__name__)

QueryLike = Union[ElementQuery, Locator, str]


@dataclass
class SessionStats:
    actions: int = 0
    succeeded: int = 0
    failed: int = 0
    healed: int = 0
    interrupted: int = 0


class AutomationSession:
    """
    Runs actions against one page.
    
    Example:
        >>> store = PatternMemoryStore()
        >>> session = AutomationSession(driver, store)
        >>> outcome = await session.click(ElementQuery.of("id:submit", "text:Submit"))
        >>> outcome.success
        True
    """
    
    def __init__(
        self,
        driver: IDriver,
        store: PatternMemoryStore,
        settings: Optional[Settings] = None,
        profile: Optional[BehaviorProfile] = None,
        sleep: Optional[SleepFn] = None,
    ):
        self.driver = driver
        self.store = store
        self.settings = settings or Settings()
        self.profile = profile or BehaviorProfile.generate(self.settings.behavior)
        self.engine = SelectorResolutionEngine(driver, self.settings.resolution)
        self.executor = InteractionExecutor(
            driver,
            self.profile,
            resolver=self.engine,
            constraint_timeout_ms=self.settings.resolution.per_strategy_timeout_ms,
            settings=self.settings.behavior,
            sleep=sleep,
        )
        self.healer = HealingCoordinator(self.engine, store, self.settings.healing)
        self._stats = SessionStats()
    
    @staticmethod
    def _as_query(query: QueryLike) -> ElementQuery:
        if isinstance(query, ElementQuery):
            return query
        return ElementQuery.of(query)
    
    async def _failed(
        self,
        query: ElementQuery,
        spec: ActionSpec,
        error: ResilientAgentError,
        start: float,
        resolution: Optional[ResolutionResult] = None,
    ) -> ActionOutcome:
        return ActionOutcome(
            success=False,
            action=spec,
            query=query,
            context=fingerprint_context(await self.driver.current_url()),
            resolution=resolution,
            latency_ms=(time.monotonic() - start) * 1000,
            failure_reason=error.message,
            error=error,
        )
    
    async def _attempt(self, query: ElementQuery, spec: ActionSpec, result: Optional[ResolutionResult]) -> ActionOutcome:
        """Resolve (unless already resolved) and interact; failures become outcomes."""
        start = time.monotonic()
        try:
            if result is None:
                result = await self.engine.resolve(query)
            return await self.executor.interact(result, spec, self.profile)
        except (ResolutionError, ElementStaleError) as e:
            return await self._failed(query, spec, e, start, resolution=result)
    
    async def perform(self, query: QueryLike, spec: ActionSpec) -> ActionOutcome:
        """
        Resolve and act, healing once on failure.
        
        Returns:
            The final outcome. Failures carry their typed error in
            ``outcome.error``.
            
        Raises:
            BehaviorInterruptedError: The page navigated mid-action
        """
        query = self._as_query(query)
        self._stats.actions += 1
        try:
            outcome = await self._attempt(query, spec, None)
        except BehaviorInterruptedError:
            self._stats.interrupted += 1
            raise
        
        pattern = self.store.record(outcome)
        if outcome.success:
            self._stats.succeeded += 1
            return outcome
        
        logger.info(f"{spec.kind.value} on {query.primary} failed: {outcome.failure_reason}")
        if not self.settings.healing.enabled:
            self._stats.failed += 1
            return outcome
        
        try:
            healed = await self.healer.heal(query, outcome)
        except ResilientAgentError:
            self._stats.failed += 1
            return outcome
        
        try:
            retry = await self._attempt(healed.query, spec, healed)
        except BehaviorInterruptedError:
            self._stats.interrupted += 1
            raise
        
        if retry.success:
            self._stats.healed += 1
            return replace(retry, healed=True)
        
        # The healing pattern claimed success before the interaction ran
        self.store.record(retry, supersedes=healed.healed_pattern_id or pattern.id)
        self._stats.failed += 1
        return retry
    
    async def click(self, query: QueryLike, **constraints: bool) -> ActionOutcome:
        return await self.perform(query, ActionSpec.click(**constraints))
    
    async def type(self, query: QueryLike, text: str, **constraints: bool) -> ActionOutcome:
        return await self.perform(query, ActionSpec.type(text, **constraints))
    
    async def select(self, query: QueryLike, value: str, **constraints: bool) -> ActionOutcome:
        return await self.perform(query, ActionSpec.select(value, **constraints))
    
    async def scroll(self, query: QueryLike, pixels: float = 300, **constraints: bool) -> ActionOutcome:
        return await self.perform(query, ActionSpec.scroll(pixels, **constraints))
    
    def get_stats(self) -> Dict[str, Any]:
        stats = self._stats
        return {
            "actions": stats.actions,
            "succeeded": stats.succeeded,
            "failed": stats.failed,
            "healed": stats.healed,
            "interrupted": stats.interrupted,
            "resolution": self.engine.get_stats(),
            "healing": self.healer.get_stats(),
        }
