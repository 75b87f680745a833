"""
Interaction Executor - performs an action on a resolved element with
human-like input.

Before acting, and again right before the terminal event, the executor
compares the driver's generation with the one the element was resolved
at. The first mismatch re-resolves the original query once; a second one
raises ``ElementStaleError``. A navigation observed at any point aborts
the action with ``BehaviorInterruptedError``.
"""

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, List, Optional

from resilient_agent.behavior.profile import BehaviorProfile
from resilient_agent.behavior.trajectory import click_point, pointer_path, scroll_deltas
from resilient_agent.config.settings import BehaviorSettings
from resilient_agent.exceptions import (
    BehaviorInterruptedError,
    ElementStaleError,
    InteractionError,
)
from resilient_agent.interfaces.driver import (
    ElementState,
    IDriver,
    KeyEventKind,
    Point,
    PointerEventKind,
    WaitCondition,
)
from resilient_agent.memory.fingerprint import fingerprint_context
from resilient_agent.models import ActionKind, ActionOutcome, ActionSpec, ResolutionResult
from resilient_agent.utils.timeouts import sleep_ms, with_timeout

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class _Stale(Exception):
    """Internal signal: the element was invalidated since it was resolved."""


class InteractionExecutor:
    """
    Executes ActionSpecs against resolved elements.
    
    Args:
        driver: The page driver
        profile: Session behaviour profile
        resolver: Engine used for the single transparent re-resolution
        constraint_timeout_ms: How long to wait for visible/enabled
        settings: Supplies the initial pointer position
        sleep: Awaitable delay in milliseconds (injectable for tests)
    """
    
    def __init__(
        self,
        driver: IDriver,
        profile: BehaviorProfile,
        resolver=None,
        constraint_timeout_ms: float = 2000,
        settings: Optional[BehaviorSettings] = None,
        sleep: Optional[SleepFn] = None,
    ):
        self.driver = driver
        self.profile = profile
        self.resolver = resolver
        self.constraint_timeout_ms = constraint_timeout_ms
        settings = settings or BehaviorSettings()
        self.pointer = Point(*settings.pointer_start)
        self._sleep = sleep or sleep_ms
        self._interactions = 0
    
    async def interact(
        self,
        result: ResolutionResult,
        spec: ActionSpec,
        profile: Optional[BehaviorProfile] = None,
    ) -> ActionOutcome:
        """
        Perform ``spec`` on the resolved element.
        
        Returns:
            A successful outcome, or a failed one when a constraint was not
            met or the element could not be acted on
            
        Raises:
            ElementStaleError: The element went stale twice
            BehaviorInterruptedError: The page navigated mid-action
            ElementNotResolvedError: The transparent re-resolution failed
        """
        profile = profile or self.profile
        stream = self._interactions
        self._interactions += 1
        start = time.monotonic()
        nav_start = self.driver.navigation_count()
        url_before = await self.driver.current_url()
        context = fingerprint_context(url_before)
        stale_count = 0
        
        def outcome(success: bool, resolution: ResolutionResult, error: Optional[InteractionError] = None) -> ActionOutcome:
            return ActionOutcome(
                success=success,
                action=spec,
                query=result.query,
                context=context,
                resolution=resolution,
                latency_ms=(time.monotonic() - start) * 1000,
                failure_reason=error.message if error else None,
                error=error,
            )
        
        current = result
        while True:
            try:
                if self._is_stale(current):
                    raise _Stale()
                failure = await self._check_constraints(current, spec, nav_start, url_before)
                if failure is not None:
                    logger.info(f"Constraint failed for {current.locator}: {failure.message}")
                    return outcome(False, current, failure)
                await self._perform(current, spec, profile, stream, nav_start, url_before)
                return outcome(True, current)
            except BehaviorInterruptedError:
                raise
            except InteractionError as e:
                logger.info(f"Interaction with {current.locator} failed: {e.message}")
                return outcome(False, current, e)
            except _Stale:
                stale_count += 1
                if stale_count >= 2 or self.resolver is None:
                    raise ElementStaleError(
                        f"Element for {current.query.primary} went stale {stale_count} times",
                        stale_count=stale_count,
                    )
                logger.debug(f"Element for {current.locator} is stale, re-resolving once")
                current = await self.resolver.resolve(current.query)
    
    def _is_stale(self, result: ResolutionResult) -> bool:
        return self.driver.generation() != result.generation
    
    async def _check_navigation(self, nav_start: int, url_before: str) -> None:
        if self.driver.navigation_count() != nav_start:
            url_after = await self.driver.current_url()
            logger.warning(f"Navigation during interaction: {url_before} -> {url_after}")
            raise BehaviorInterruptedError(
                "Page navigated during interaction",
                url_before=url_before,
                url_after=url_after,
            )
    
    async def _pause(self, ms: float, nav_start: int, url_before: str) -> None:
        await self._sleep(ms)
        await self._check_navigation(nav_start, url_before)
    
    async def _wait(self, result: ResolutionResult, state: ElementState) -> bool:
        try:
            return await with_timeout(
                self.driver.wait_for(WaitCondition(result.handle, state), self.constraint_timeout_ms),
                self.constraint_timeout_ms + 250,
            )
        except asyncio.TimeoutError:
            return False
    
    async def _check_constraints(
        self,
        result: ResolutionResult,
        spec: ActionSpec,
        nav_start: int,
        url_before: str,
    ) -> Optional[InteractionError]:
        if spec.must_be_visible and not await self.driver.is_visible(result.handle):
            if not await self._wait(result, ElementState.VISIBLE):
                await self._check_navigation(nav_start, url_before)
                if self._is_stale(result):
                    raise _Stale()
                return InteractionError("Element is not visible", {"locator": str(result.locator)})
        if spec.must_be_enabled and not await self.driver.is_enabled(result.handle):
            if not await self._wait(result, ElementState.ENABLED):
                await self._check_navigation(nav_start, url_before)
                if self._is_stale(result):
                    raise _Stale()
                return InteractionError("Element is not enabled", {"locator": str(result.locator)})
        await self._check_navigation(nav_start, url_before)
        return None
    
    async def _approach(
        self,
        result: ResolutionResult,
        profile: BehaviorProfile,
        rng: random.Random,
        nav_start: int,
        url_before: str,
    ) -> Point:
        """Move the pointer onto the element and dwell; returns the target point."""
        box = await self.driver.bounding_box(result.handle)
        if box is None:
            if self._is_stale(result):
                raise _Stale()
            raise InteractionError("Element has no bounding box", {"locator": str(result.locator)})
        target = click_point(box, rng)
        for point in pointer_path(self.pointer, target, profile, rng):
            await self.driver.dispatch_pointer_event(point, PointerEventKind.MOVE)
            self.pointer = point
            await self._check_navigation(nav_start, url_before)
            await self._pause(profile.step_delay(rng), nav_start, url_before)
        await self._pause(profile.dwell(rng), nav_start, url_before)
        if self._is_stale(result):
            raise _Stale()
        return target
    
    async def _click(self, target: Point, nav_start: int, url_before: str) -> None:
        await self.driver.dispatch_pointer_event(target, PointerEventKind.DOWN)
        await self._check_navigation(nav_start, url_before)
        await self.driver.dispatch_pointer_event(target, PointerEventKind.UP)
    
    async def _perform(
        self,
        result: ResolutionResult,
        spec: ActionSpec,
        profile: BehaviorProfile,
        stream: int,
        nav_start: int,
        url_before: str,
    ) -> None:
        rng = profile.rng("pointer", spec.kind.value, stream)
        target = await self._approach(result, profile, rng, nav_start, url_before)
        
        if spec.kind == ActionKind.SCROLL:
            for delta in scroll_deltas(spec.scroll_distance, profile, rng):
                await self.driver.dispatch_pointer_event(target, PointerEventKind.WHEEL, delta=(0.0, delta))
                await self._check_navigation(nav_start, url_before)
                await self._pause(profile.step_delay(rng) * 8, nav_start, url_before)
            return
        
        await self._click(target, nav_start, url_before)
        
        if spec.kind == ActionKind.TYPE:
            await self._type(spec.payload, profile, stream, nav_start, url_before)
        elif spec.kind == ActionKind.SELECT:
            await self._check_navigation(nav_start, url_before)
            if not await self.driver.select_option(result.handle, spec.payload):
                raise InteractionError(f"No option matching {spec.payload!r}", {"locator": str(result.locator)})
        await self._check_navigation(nav_start, url_before)
    
    async def _type(
        self,
        text: str,
        profile: BehaviorProfile,
        stream: int,
        nav_start: int,
        url_before: str,
    ) -> List[float]:
        delays = []
        for keystroke in profile.typing_sequence(text, stream):
            await self.driver.dispatch_key_event(keystroke.char, KeyEventKind.PRESS)
            await self._check_navigation(nav_start, url_before)
            await self._pause(keystroke.total_ms, nav_start, url_before)
            delays.append(keystroke.total_ms)
        return delays
