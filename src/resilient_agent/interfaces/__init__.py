"""
Interfaces module - The driver contract consumed by this library.
"""

from resilient_agent.interfaces.driver import (
    IDriver,
    ElementHandle,
    Locator,
    LocatorKind,
    Point,
    BoundingBox,
    PointerEventKind,
    KeyEventKind,
    ElementState,
    WaitCondition,
)

__all__ = [
    "IDriver",
    "ElementHandle",
    "Locator",
    "LocatorKind",
    "Point",
    "BoundingBox",
    "PointerEventKind",
    "KeyEventKind",
    "ElementState",
    "WaitCondition",
]
