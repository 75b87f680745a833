"""
Playwright Driver - IDriver adapter over a caller-owned Playwright page.

The adapter never launches or closes a browser. It listens for main-frame
navigations and, through an exposed binding fed by a MutationObserver,
for DOM removals; both advance the generation counter that invalidates
previously resolved handles.
"""

import logging
from typing import Any, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from resilient_agent.interfaces.driver import (
    BoundingBox,
    ElementHandle,
    ElementState,
    IDriver,
    KeyEventKind,
    Locator,
    LocatorKind,
    Point,
    PointerEventKind,
    WaitCondition,
)

logger = logging.getLogger(__name__)

BINDING_NAME = "__resilientAgentDetached"

# Reports node removals to the binding, at most once per animation frame
MUTATION_OBSERVER_JS = """
(() => {
    if (window.__resilientAgentObserver) return;
    let pending = false;
    const report = () => {
        pending = false;
        if (typeof window.%(binding)s === 'function') window.%(binding)s();
    };
    const observer = new MutationObserver((mutations) => {
        if (pending) return;
        if (mutations.some(m => m.removedNodes && m.removedNodes.length)) {
            pending = true;
            requestAnimationFrame(report);
        }
    });
    const start = () => observer.observe(document.documentElement, {childList: true, subtree: true});
    if (document.documentElement) start();
    else document.addEventListener('DOMContentLoaded', start);
    window.__resilientAgentObserver = observer;
})();
""" % {"binding": BINDING_NAME}

FUZZY_POOL_SELECTOR = (
    "button, a, input, select, textarea, label, "
    "[role=button], [role=link], [role=tab], [role=menuitem], [role=checkbox], [onclick]"
)

_WAIT_STATES = {
    ElementState.VISIBLE: "visible",
    ElementState.ENABLED: "enabled",
}


def _css_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class PlaywrightDriver(IDriver):
    """
    IDriver implementation for a Playwright async Page.
    
    Example:
        >>> driver = await PlaywrightDriver.attach(page)
        >>> session = AutomationSession(driver, store)
    """
    
    select_timeout_ms = 1000
    
    def __init__(self, page: Any):
        self._page = page
        self._navigations = 0
        self._generation = 0
        self._attached = False
    
    @classmethod
    async def attach(cls, page: Any) -> "PlaywrightDriver":
        """Wrap ``page`` and install the navigation and mutation listeners."""
        driver = cls(page)
        await driver.install()
        return driver
    
    async def install(self) -> None:
        if self._attached:
            return
        self._page.on("framenavigated", self._on_frame_navigated)
        await self._page.expose_binding(BINDING_NAME, self._on_detached)
        await self._page.add_init_script(MUTATION_OBSERVER_JS)
        try:
            await self._page.evaluate(MUTATION_OBSERVER_JS)
        except PlaywrightError as e:
            # The init script covers the next document
            logger.debug(f"Could not install mutation observer on current document: {e}")
        self._attached = True
    
    def detach(self) -> None:
        """Stop listening for navigations. The page itself stays open."""
        if self._attached:
            self._page.remove_listener("framenavigated", self._on_frame_navigated)
            self._attached = False
    
    def _on_frame_navigated(self, frame: Any) -> None:
        if frame == self._page.main_frame:
            self._navigations += 1
            self._generation += 1
            logger.debug(f"Navigation #{self._navigations} to {frame.url}")
    
    def _on_detached(self, source: Any = None) -> None:
        self._generation += 1
    
    def navigation_count(self) -> int:
        return self._navigations
    
    def generation(self) -> int:
        return self._generation
    
    def _locator(self, locator: Locator) -> Any:
        page = self._page
        if locator.kind == LocatorKind.IDENTIFIER:
            return page.locator(f"id={locator.value}")
        if locator.kind == LocatorKind.ATTRIBUTE:
            name, value = locator.attribute_pair()
            if name == "data-testid":
                return page.get_by_test_id(value)
            return page.locator(f"[{name}={_css_string(value)}]")
        if locator.kind == LocatorKind.ROLE:
            if locator.name:
                return page.get_by_role(locator.value, name=locator.name)
            return page.get_by_role(locator.value)
        if locator.kind == LocatorKind.TEXT:
            return page.get_by_text(locator.value)
        if locator.kind == LocatorKind.STRUCTURAL:
            return page.locator(locator.value)
        return page.locator(FUZZY_POOL_SELECTOR)
    
    async def find_elements(self, locator: Locator) -> List[ElementHandle]:
        return await self._locator(locator).element_handles()
    
    async def is_visible(self, handle: ElementHandle) -> bool:
        return await handle.is_visible()
    
    async def is_enabled(self, handle: ElementHandle) -> bool:
        return await handle.is_enabled()
    
    async def bounding_box(self, handle: ElementHandle) -> Optional[BoundingBox]:
        try:
            box = await handle.bounding_box()
        except PlaywrightError:
            return None
        if not box:
            return None
        return BoundingBox(box["x"], box["y"], box["width"], box["height"])
    
    async def element_text(self, handle: ElementHandle) -> str:
        text = await handle.text_content()
        return text or ""
    
    async def get_attribute(self, handle: ElementHandle, name: str) -> Optional[str]:
        return await handle.get_attribute(name)
    
    async def dispatch_pointer_event(
        self,
        point: Point,
        kind: PointerEventKind,
        delta: Optional[Tuple[float, float]] = None,
    ) -> None:
        mouse = self._page.mouse
        if kind == PointerEventKind.MOVE:
            await mouse.move(point.x, point.y)
        elif kind == PointerEventKind.DOWN:
            await mouse.down()
        elif kind == PointerEventKind.UP:
            await mouse.up()
        elif kind == PointerEventKind.WHEEL:
            dx, dy = delta or (0.0, 0.0)
            await mouse.wheel(dx, dy)
    
    async def dispatch_key_event(self, char: str, kind: KeyEventKind) -> None:
        keyboard = self._page.keyboard
        if kind == KeyEventKind.PRESS:
            await keyboard.type(char)
        elif kind == KeyEventKind.DOWN:
            await keyboard.down(char)
        else:
            await keyboard.up(char)
    
    async def select_option(self, handle: ElementHandle, value: str) -> bool:
        for option in ({"value": value}, {"label": value}):
            try:
                if await handle.select_option(**option, timeout=self.select_timeout_ms):
                    return True
            except PlaywrightError:
                continue
        return False
    
    async def wait_for(self, condition: WaitCondition, timeout_ms: float) -> bool:
        handle = condition.handle
        try:
            if condition.state == ElementState.ATTACHED:
                return bool(await handle.evaluate("e => e.isConnected"))
            await handle.wait_for_element_state(_WAIT_STATES[condition.state], timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            logger.debug(f"Wait for {condition.state.value} failed: {e}")
            return False
    
    async def current_url(self) -> str:
        return self._page.url
