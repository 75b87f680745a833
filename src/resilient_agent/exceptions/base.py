"""
Root of the Resilient Agent exception hierarchy.
"""

from typing import Any, Dict, Optional


class ResilientAgentError(Exception):
    """
    Common parent of every error the library raises on purpose.

    Attributes:
        message: Short text, suitable for ``ActionOutcome.failure_reason``
        details: Structured context; entries set to None are left out of str()
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        shown = {k: v for k, v in self.details.items() if v is not None}
        if not shown:
            return self.message
        return f"{self.message} - Details: {shown}"


class ConfigurationError(ResilientAgentError):
    """Settings, environment variables or a config file could not be used."""
