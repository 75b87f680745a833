"""
Resolution-related exceptions.
"""

from typing import Any, List, Optional

from resilient_agent.exceptions.base import ResilientAgentError


class ResolutionError(ResilientAgentError):
    """Base exception for element resolution errors."""
    pass


class ElementNotResolvedError(ResolutionError):
    """
    Every locator of a query was exhausted without an acceptable candidate.
    
    Recoverable: the caller may retry, or hand the failure to healing.
    
    Attributes:
        trail: Per-strategy diagnostics (``StrategyAttempt`` records),
            in the order the strategies were tried
    """
    
    def __init__(self, message: str, trail: Optional[List[Any]] = None):
        trail = list(trail or [])
        super().__init__(message, {"trail": [str(attempt) for attempt in trail]} if trail else None)
        self.trail = trail


class TimeoutError(ResolutionError):
    """
    A per-strategy slice or the overall resolution budget ran out.
    
    Attributes:
        timeout_ms: The budget that was exceeded
        operation: What was being waited on
        trail: Diagnostics collected before the budget ran out
    """
    
    def __init__(
        self,
        message: str,
        timeout_ms: float,
        operation: Optional[str] = None,
        trail: Optional[List[Any]] = None,
    ):
        super().__init__(message, {"timeout_ms": timeout_ms, "operation": operation})
        self.timeout_ms = timeout_ms
        self.operation = operation
        self.trail = list(trail or [])
