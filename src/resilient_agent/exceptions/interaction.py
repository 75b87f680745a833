"""
Interaction-related exceptions.
"""

from resilient_agent.exceptions.base import ResilientAgentError


class InteractionError(ResilientAgentError):
    """Base exception for errors while acting on a resolved element."""
    pass


class ActionValidationError(InteractionError):
    """
    Action spec is invalid.
    
    Raised when an action is missing its payload or carries one
    that makes no sense for its kind.
    """
    
    def __init__(self, message: str, action_kind: str):
        super().__init__(message, {"action_kind": action_kind})
        self.action_kind = action_kind


class ElementStaleError(InteractionError):
    """
    The element went stale a second time within one interaction.
    
    The first staleness is absorbed by a transparent re-resolution;
    a second one is fatal for the call.
    """
    
    def __init__(self, message: str, stale_count: int = 2):
        super().__init__(message, {"stale_count": stale_count})
        self.stale_count = stale_count


class BehaviorInterruptedError(InteractionError):
    """
    A page navigation happened while an action was in flight.
    
    The partial action is discarded and never recorded as evidence,
    since the cause is external to resolution quality.
    """
    
    def __init__(self, message: str, url_before: str | None = None, url_after: str | None = None):
        super().__init__(message, {"url_before": url_before, "url_after": url_after})
        self.url_before = url_before
        self.url_after = url_after
