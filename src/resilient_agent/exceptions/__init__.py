"""
Exceptions module - Custom exception hierarchy.

This module defines all custom exceptions used throughout Resilient Agent,
providing clear error types for resolution, interaction and pattern
memory failures.
"""

from resilient_agent.exceptions.base import (
    ResilientAgentError,
    ConfigurationError,
)
from resilient_agent.exceptions.resolution import (
    ResolutionError,
    ElementNotResolvedError,
    TimeoutError as ResolutionTimeoutError,
)
from resilient_agent.exceptions.interaction import (
    InteractionError,
    ActionValidationError,
    ElementStaleError,
    BehaviorInterruptedError,
)
from resilient_agent.exceptions.memory import (
    PatternStoreError,
    PatternStoreIOError,
    SnapshotFormatError,
)

__all__ = [
    # Base exceptions
    "ResilientAgentError",
    "ConfigurationError",
    # Resolution exceptions
    "ResolutionError",
    "ElementNotResolvedError",
    "ResolutionTimeoutError",
    # Interaction exceptions
    "InteractionError",
    "ActionValidationError",
    "ElementStaleError",
    "BehaviorInterruptedError",
    # Pattern memory exceptions
    "PatternStoreError",
    "PatternStoreIOError",
    "SnapshotFormatError",
]
