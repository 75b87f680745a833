"""
Driver Interface - The contract this library requires from a browser driver.

The driver executes DOM queries, dispatches input events and waits on page
state. Element handles are opaque: they are owned by the driver and only
ever passed back to it.

Example:
    >>> from resilient_agent.drivers import PlaywrightDriver
    >>> driver = await PlaywrightDriver.attach(page)
    >>> handles = await driver.find_elements(Locator.parse("id:submit"))
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple


ElementHandle = Any


class LocatorKind(str, Enum):
    """Locator kinds, in descending order of reliability."""
    IDENTIFIER = "identifier"   # element id
    ATTRIBUTE = "attribute"     # attr=value, e.g. data-testid=submit
    ROLE = "role"               # ARIA role + accessible name
    TEXT = "text"               # visible text
    STRUCTURAL = "structural"   # CSS selector / DOM position
    FUZZY = "fuzzy"             # approximate text similarity
    
    @property
    def rank(self) -> int:
        return list(LocatorKind).index(self)


_PREFIXES = {
    "id": LocatorKind.IDENTIFIER,
    "attr": LocatorKind.ATTRIBUTE,
    "role": LocatorKind.ROLE,
    "text": LocatorKind.TEXT,
    "css": LocatorKind.STRUCTURAL,
    "fuzzy": LocatorKind.FUZZY,
}
_KIND_PREFIX = {kind: prefix for prefix, kind in _PREFIXES.items()}


@dataclass(frozen=True)
class Locator:
    """
    A (kind, value) pair identifying elements.
    
    Attributes:
        kind: How ``value`` is interpreted
        value: Identifier, ``attr=value`` pair, role, text, CSS selector
            or free text, depending on ``kind``
        name: Accessible name for role locators
    """
    kind: LocatorKind
    value: str
    name: Optional[str] = None
    
    def __post_init__(self) -> None:
        if not isinstance(self.kind, LocatorKind):
            object.__setattr__(self, "kind", LocatorKind(self.kind))
        if not self.value or not self.value.strip():
            raise ValueError("Locator value must not be empty")
    
    @classmethod
    def parse(cls, text: str) -> "Locator":
        """
        Parse the short form ``prefix:value``.
        
        Prefixes are ``id``, ``attr``, ``role``, ``text``, ``css`` and
        ``fuzzy``; role locators take an optional name after a ``|``
        (``role:button|Submit``).
        """
        prefix, sep, value = text.partition(":")
        kind = _PREFIXES.get(prefix.strip().lower()) if sep else None
        if kind is None:
            raise ValueError(f"Unknown locator prefix in {text!r}")
        name = None
        if kind == LocatorKind.ROLE and "|" in value:
            value, name = value.split("|", 1)
        return cls(kind, value, name)
    
    def attribute_pair(self) -> Tuple[str, str]:
        """Split an attribute locator into (name, value)."""
        attr, sep, value = self.value.partition("=")
        if not sep:
            return "data-testid", self.value
        return attr.strip(), value.strip().strip("'\"")
    
    def __str__(self) -> str:
        text = f"{_KIND_PREFIX[self.kind]}:{self.value}"
        if self.name:
            text += f"|{self.name}"
        return text


@dataclass(frozen=True)
class Point:
    """A viewport coordinate in CSS pixels."""
    x: float
    y: float
    
    def distance_to(self, other: "Point") -> float:
        return ((self.x - other.x) ** 2 + (self.y - other.y) ** 2) ** 0.5


@dataclass(frozen=True)
class BoundingBox:
    """An element's position and size in the viewport."""
    x: float
    y: float
    width: float
    height: float
    
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)
    
    def point_at(self, fx: float, fy: float) -> Point:
        """Point at fractional offsets (0..1) inside the box."""
        return Point(self.x + self.width * fx, self.y + self.height * fy)


class PointerEventKind(str, Enum):
    MOVE = "move"
    DOWN = "down"
    UP = "up"
    WHEEL = "wheel"


class KeyEventKind(str, Enum):
    DOWN = "down"
    UP = "up"
    PRESS = "press"


class ElementState(str, Enum):
    """States a driver can wait for."""
    ATTACHED = "attached"
    VISIBLE = "visible"
    ENABLED = "enabled"


@dataclass(frozen=True)
class WaitCondition:
    """Wait until ``handle`` reaches ``state``."""
    handle: ElementHandle
    state: ElementState


class IDriver(ABC):
    """
    Abstract interface for the host automation driver.
    
    Implementations must keep two counters: ``navigation_count()``
    increases on every top-level navigation and ``generation()`` increases
    whenever elements may have been detached (navigation or DOM removal).
    Handles obtained at one generation are treated as stale at any other.
    """
    
    @abstractmethod
    async def find_elements(self, locator: Locator) -> List[ElementHandle]:
        """
        Find elements matching a locator, in DOM traversal order.
        
        For fuzzy locators the driver returns the pool of candidate
        elements to be scored; filtering is left to the caller.
        """
        ...
    
    @abstractmethod
    async def is_visible(self, handle: ElementHandle) -> bool:
        ...
    
    @abstractmethod
    async def is_enabled(self, handle: ElementHandle) -> bool:
        ...
    
    @abstractmethod
    async def bounding_box(self, handle: ElementHandle) -> Optional[BoundingBox]:
        """Get the element's box, or None if it is not rendered."""
        ...
    
    @abstractmethod
    async def element_text(self, handle: ElementHandle) -> str:
        """Get the element's visible text content."""
        ...
    
    @abstractmethod
    async def get_attribute(self, handle: ElementHandle, name: str) -> Optional[str]:
        ...
    
    @abstractmethod
    async def dispatch_pointer_event(
        self,
        point: Point,
        kind: PointerEventKind,
        delta: Optional[Tuple[float, float]] = None,
    ) -> None:
        """
        Dispatch a pointer event at a viewport point.
        
        Args:
            point: Where the event happens
            kind: Move, button down/up or wheel
            delta: (dx, dy) scroll amounts for wheel events
        """
        ...
    
    @abstractmethod
    async def dispatch_key_event(self, char: str, kind: KeyEventKind) -> None:
        ...
    
    @abstractmethod
    async def select_option(self, handle: ElementHandle, value: str) -> bool:
        """Select an option of a <select> element; returns False if no option matched."""
        ...
    
    @abstractmethod
    async def wait_for(self, condition: WaitCondition, timeout_ms: float) -> bool:
        """
        Wait for a condition.
        
        Returns:
            True if the condition was met, False on timeout
        """
        ...
    
    @abstractmethod
    async def current_url(self) -> str:
        ...
    
    @abstractmethod
    def navigation_count(self) -> int:
        ...
    
    @abstractmethod
    def generation(self) -> int:
        ...
