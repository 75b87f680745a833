"""
Utilities module - Shared helpers.
"""

from resilient_agent.utils.logging import setup_logging, setup_logging_from_settings, get_logger
from resilient_agent.utils.timeouts import Deadline, with_timeout, cancel_and_wait, sleep_ms

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "get_logger",
    "Deadline",
    "with_timeout",
    "cancel_and_wait",
    "sleep_ms",
]
