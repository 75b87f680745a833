"""
Pattern memory exceptions.
"""

from typing import Any

from resilient_agent.exceptions.base import ResilientAgentError


class PatternStoreError(ResilientAgentError):
    """Base exception for pattern memory errors."""
    pass


class PatternStoreIOError(PatternStoreError):
    """
    Snapshot or restore I/O failed.
    
    The store keeps operating in memory when this is raised; the
    append log is never dropped.
    """
    
    def __init__(self, message: str, path: str | None = None):
        super().__init__(message, {"path": path})
        self.path = path


class SnapshotFormatError(PatternStoreError):
    """
    A snapshot blob cannot be loaded.
    
    Raised for a bad magic number, an unknown format version, a
    mismatched embedding dimension or truncated sections.
    """
    
    def __init__(self, message: str, expected: Any = None, found: Any = None):
        super().__init__(message, {"expected": expected, "found": found})
        self.expected = expected
        self.found = found
