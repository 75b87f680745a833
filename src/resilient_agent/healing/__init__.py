"""
Healing module - Memory-informed recovery of failed resolutions.
"""

from resilient_agent.healing.coordinator import HealingCoordinator, HealingStats

__all__ = ["HealingCoordinator", "HealingStats"]
