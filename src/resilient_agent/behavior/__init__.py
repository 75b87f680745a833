"""
Behavior module - Human-like interaction synthesis.
"""

from resilient_agent.behavior.profile import BehaviorProfile, Keystroke
from resilient_agent.behavior.trajectory import (
    pointer_path,
    click_point,
    scroll_deltas,
    ease_in_out_cubic,
    bernstein_curve,
)
from resilient_agent.behavior.executor import InteractionExecutor

__all__ = [
    "BehaviorProfile",
    "Keystroke",
    "pointer_path",
    "click_point",
    "scroll_deltas",
    "ease_in_out_cubic",
    "bernstein_curve",
    "InteractionExecutor",
]
