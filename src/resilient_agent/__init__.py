"""
Resilient Agent - adaptive element resolution and pattern memory for
browser automation.

Locates on-page elements through ranked fallback strategies, performs
interactions with seeded human-like input timing, remembers what worked
in a vector-indexed pattern memory and uses that memory to heal failed
resolutions.

Example:
    >>> from resilient_agent import AutomationSession, ElementQuery, PatternMemoryStore
    >>> from resilient_agent.drivers import PlaywrightDriver
    >>> driver = await PlaywrightDriver.attach(page)
    >>> session = AutomationSession(driver, PatternMemoryStore())
    >>> await session.click(ElementQuery.of("id:submit", "text:Submit"))
"""

__version__ = "0.1.0"

from resilient_agent.config import Settings, get_settings, load_config
from resilient_agent.interfaces import IDriver, Locator, LocatorKind
from resilient_agent.models import (
    ElementQuery,
    ResolutionResult,
    ActionKind,
    ActionSpec,
    ActionOutcome,
    ActionPattern,
    ContextFingerprint,
)
from resilient_agent.resolution import SelectorResolutionEngine
from resilient_agent.behavior import BehaviorProfile, InteractionExecutor
from resilient_agent.memory import PatternMemoryStore, FeatureHashEmbedder
from resilient_agent.healing import HealingCoordinator
from resilient_agent.session import AutomationSession

__all__ = [
    "Settings",
    "get_settings",
    "load_config",
    "IDriver",
    "Locator",
    "LocatorKind",
    "ElementQuery",
    "ResolutionResult",
    "ActionKind",
    "ActionSpec",
    "ActionOutcome",
    "ActionPattern",
    "ContextFingerprint",
    "SelectorResolutionEngine",
    "BehaviorProfile",
    "InteractionExecutor",
    "PatternMemoryStore",
    "FeatureHashEmbedder",
    "HealingCoordinator",
    "AutomationSession",
    "__version__",
]
