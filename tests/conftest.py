"""
Pytest configuration and fixtures.

``FakeDriver`` is an in-memory page implementing the IDriver contract:
elements are plain dataclasses in DOM order, and tests can detach
elements, mutate the DOM or navigate at any point, including from an
``on_event`` hook that runs after every dispatched input event.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import pytest

from resilient_agent.config import Settings, reset_settings
from resilient_agent.interfaces.driver import (
    BoundingBox,
    ElementState,
    IDriver,
    KeyEventKind,
    Locator,
    LocatorKind,
    Point,
    PointerEventKind,
    WaitCondition,
)
from resilient_agent.models import ActionKind, ActionOutcome, ActionSpec, ContextFingerprint, ElementQuery


@dataclass(eq=False)
class FakeElement:
    """A DOM element in the fake page."""
    id: Optional[str] = None
    text: str = ""
    role: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    selectors: Set[str] = field(default_factory=set)
    visible: bool = True
    enabled: bool = True
    box: Optional[BoundingBox] = field(default_factory=lambda: BoundingBox(100, 200, 80, 30))
    options: List[str] = field(default_factory=list)
    interactive: bool = True
    attached: bool = True
    selected: Optional[str] = None


@dataclass
class Event:
    kind: str
    value: Any


class FakeDriver(IDriver):
    """In-memory IDriver for tests."""
    
    def __init__(self, elements: Optional[List[FakeElement]] = None, url: str = "https://example.com/login"):
        self.elements: List[FakeElement] = list(elements or [])
        self.url = url
        self._generation = 0
        self._navigations = 0
        self.events: List[Event] = []
        self.find_delays: Dict[LocatorKind, float] = {}
        self.find_errors: Dict[LocatorKind, Exception] = {}
        self.find_calls: List[Locator] = []
        self.on_event: Optional[Callable[["FakeDriver", Event], None]] = None
        self.active_waits = 0
        self.wait_calls = 0
    
    # -- test controls -----------------------------------------------------
    
    def add(self, element: FakeElement) -> FakeElement:
        self.elements.append(element)
        self._generation += 1
        return element
    
    def detach(self, element: FakeElement) -> None:
        element.attached = False
        self._generation += 1
    
    def replace(self, old: FakeElement, new: FakeElement) -> None:
        """Re-render: ``new`` takes the place of ``old`` in DOM order."""
        index = self.elements.index(old)
        old.attached = False
        self.elements[index] = new
        self._generation += 1
    
    def mutate(self) -> None:
        self._generation += 1
    
    def navigate(self, url: str) -> None:
        self.url = url
        self._navigations += 1
        self._generation += 1
    
    def _record(self, kind: str, value: Any) -> None:
        event = Event(kind, value)
        self.events.append(event)
        if self.on_event:
            self.on_event(self, event)
    
    def pointer_events(self, kind: PointerEventKind) -> List[Event]:
        return [e for e in self.events if e.kind == kind.value]
    
    def typed_text(self) -> str:
        return "".join(e.value for e in self.events if e.kind == "press")
    
    # -- IDriver -----------------------------------------------------------
    
    def _matches(self, element: FakeElement, locator: Locator) -> bool:
        kind = locator.kind
        if kind == LocatorKind.IDENTIFIER:
            return element.id == locator.value
        if kind == LocatorKind.ATTRIBUTE:
            name, value = locator.attribute_pair()
            return element.attributes.get(name) == value
        if kind == LocatorKind.ROLE:
            if element.role != locator.value:
                return False
            if not locator.name:
                return True
            label = element.attributes.get("aria-label") or element.text
            return locator.name.lower() in label.lower()
        if kind == LocatorKind.TEXT:
            return locator.value.lower() in element.text.lower()
        if kind == LocatorKind.STRUCTURAL:
            return locator.value in element.selectors
        return element.interactive
    
    async def find_elements(self, locator: Locator) -> List[FakeElement]:
        self.find_calls.append(locator)
        delay = self.find_delays.get(locator.kind)
        if delay:
            await asyncio.sleep(delay)
        error = self.find_errors.get(locator.kind)
        if error is not None:
            raise error
        return [e for e in self.elements if e.attached and self._matches(e, locator)]
    
    async def is_visible(self, handle: FakeElement) -> bool:
        return handle.attached and handle.visible
    
    async def is_enabled(self, handle: FakeElement) -> bool:
        return handle.attached and handle.enabled
    
    async def bounding_box(self, handle: FakeElement) -> Optional[BoundingBox]:
        return handle.box if handle.attached and handle.visible else None
    
    async def element_text(self, handle: FakeElement) -> str:
        return handle.text
    
    async def get_attribute(self, handle: FakeElement, name: str) -> Optional[str]:
        if name == "id":
            return handle.id
        return handle.attributes.get(name)
    
    async def dispatch_pointer_event(
        self,
        point: Point,
        kind: PointerEventKind,
        delta: Optional[Tuple[float, float]] = None,
    ) -> None:
        self._record(kind.value, delta if kind == PointerEventKind.WHEEL else point)
    
    async def dispatch_key_event(self, char: str, kind: KeyEventKind) -> None:
        self._record(kind.value, char)
    
    async def select_option(self, handle: FakeElement, value: str) -> bool:
        if value in handle.options:
            handle.selected = value
            self._record("select", value)
            return True
        return False
    
    async def wait_for(self, condition: WaitCondition, timeout_ms: float) -> bool:
        self.wait_calls += 1
        self.active_waits += 1
        element = condition.handle
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        try:
            while True:
                if condition.state == ElementState.VISIBLE and element.attached and element.visible:
                    return True
                if condition.state == ElementState.ENABLED and element.attached and element.enabled:
                    return True
                if condition.state == ElementState.ATTACHED and element.attached:
                    return True
                if loop.time() >= deadline:
                    return False
                await asyncio.sleep(0.005)
        finally:
            self.active_waits -= 1
    
    async def current_url(self) -> str:
        return self.url
    
    def navigation_count(self) -> int:
        return self._navigations
    
    def generation(self) -> int:
        return self._generation


class SleepRecorder:
    """Stand-in for the executor's sleep: records delays, yields once."""
    
    def __init__(self):
        self.delays: List[float] = []
    
    async def __call__(self, ms: float) -> None:
        self.delays.append(ms)
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch):
    """Isolate tests from the developer's environment and the settings singleton."""
    import os
    for key in list(os.environ):
        if key.startswith("RESILIENT_AGENT"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> Settings:
    """Provide test settings: fixed seed, short budgets, brute force index."""
    return Settings(
        behavior={"seed": 1234},
        resolution={"budget_ms": 2000, "per_strategy_timeout_ms": 500},
        memory={"index": "brute_force", "dimension": 256},
    )


@pytest.fixture
def login_page() -> FakeDriver:
    """A small login form."""
    return FakeDriver([
        FakeElement(id="email", role="textbox", attributes={"name": "email", "placeholder": "Email"},
                    selectors={"form input[type=email]"}),
        FakeElement(id="password", role="textbox", attributes={"name": "password", "placeholder": "Password"},
                    selectors={"form input[type=password]"}),
        FakeElement(id="submit", text="Sign in", role="button",
                    attributes={"data-testid": "login-submit", "type": "submit"},
                    selectors={"form button"}),
        FakeElement(text="Forgot password?", role="link", attributes={"href": "/reset"}),
    ])


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


def make_outcome(
    locator: str = "id:submit",
    action: str = "click",
    success: bool = True,
    domain: str = "example.com",
    field_name: Optional[str] = None,
    fallbacks: Tuple[str, ...] = (),
) -> ActionOutcome:
    """An outcome as the executor would produce it, without a live element."""
    kind = ActionKind(action)
    payload = "value" if kind in (ActionKind.TYPE, ActionKind.SELECT) else None
    return ActionOutcome(
        success=success,
        action=ActionSpec(kind, payload),
        query=ElementQuery.of(locator, *fallbacks, field_name=field_name),
        context=ContextFingerprint(domain, "0123456789ab"),
        failure_reason=None if success else "Element not found",
    )
