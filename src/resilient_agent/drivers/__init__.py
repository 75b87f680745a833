"""
Drivers module - IDriver adapters for browser automation libraries.
"""

from resilient_agent.drivers.playwright_driver import PlaywrightDriver

__all__ = ["PlaywrightDriver"]
