"""
Settings for resolution, pattern memory, healing, behavior and logging.

    from resilient_agent.config import get_settings, load_config

    settings = get_settings()                                  # process-wide, loaded once
    tuned = load_config(resolution={"budget_ms": 2000})        # fresh, with overrides

Every field can also be set from the environment, nested with ``__``:

    RESILIENT_AGENT__RESOLUTION__CONFIDENT_THRESHOLD=0.75
    RESILIENT_AGENT__MEMORY__INDEX=brute_force
    RESILIENT_AGENT__BEHAVIOR__SEED=42
    RESILIENT_AGENT_CONFIG=/etc/resilient-agent.yaml
"""

from typing import Optional

from resilient_agent.config.settings import (
    Settings,
    ResolutionSettings,
    MemorySettings,
    HealingSettings,
    BehaviorSettings,
    LoggingSettings,
    DEFAULT_BASE_SCORES,
)
from resilient_agent.config.loader import ConfigLoader, load_config

_cached: Optional[Settings] = None


def get_settings() -> Settings:
    """Settings shared by the process; built on first use."""
    global _cached
    if _cached is None:
        _cached = load_config()
    return _cached


def reset_settings() -> None:
    """Drop the shared settings so the next get_settings() reloads them."""
    global _cached
    _cached = None


__all__ = [
    "Settings",
    "ResolutionSettings",
    "MemorySettings",
    "HealingSettings",
    "BehaviorSettings",
    "LoggingSettings",
    "DEFAULT_BASE_SCORES",
    "ConfigLoader",
    "load_config",
    "get_settings",
    "reset_settings",
]
