"""
Behavior Profile - seeded, session-scoped human timing and motion parameters.

A profile never holds a mutable RNG. Every draw derives a fresh
``random.Random`` from ``(seed, purpose, payload, stream)``, so the same
profile replays the same sequence for the same inputs while the session's
interaction counter (``stream``) keeps repeated interactions from being
identical.
"""

import hashlib
import random
import secrets
from dataclasses import dataclass
from typing import List, Optional, Tuple

from resilient_agent.config.settings import BehaviorSettings


@dataclass(frozen=True)
class Keystroke:
    """One typed character and the pauses that follow it."""
    char: str
    delay_ms: float
    thinking_ms: float = 0.0
    
    @property
    def total_ms(self) -> float:
        return self.delay_ms + self.thinking_ms


@dataclass(frozen=True)
class BehaviorProfile:
    """
    Session-scoped behaviour parameters.
    
    Create one per session with :meth:`generate`; never share it between
    sessions.
    """
    seed: int
    typing_delay_mean_ms: float = 110.0
    typing_delay_stddev_ms: float = 35.0
    typing_delay_min_ms: float = 25.0
    thinking_probability: float = 0.08
    thinking_pause_ms: Tuple[float, float] = (200.0, 600.0)
    path_points: Tuple[int, int] = (18, 32)
    path_jitter_px: float = 2.5
    path_curvature: float = 0.25
    step_delay_ms: Tuple[float, float] = (2.0, 8.0)
    dwell_ms: Tuple[float, float] = (80.0, 250.0)
    scroll_steps: Tuple[int, int] = (8, 14)
    
    @classmethod
    def generate(
        cls,
        settings: Optional[BehaviorSettings] = None,
        seed: Optional[int] = None,
    ) -> "BehaviorProfile":
        """
        Build a profile from settings.
        
        The seed is taken from the argument, then the settings, and is
        drawn from ``secrets`` when neither provides one.
        """
        settings = settings or BehaviorSettings()
        if seed is None:
            seed = settings.seed
        if seed is None:
            seed = secrets.randbits(64)
        return cls(
            seed=seed,
            typing_delay_mean_ms=settings.typing_delay_mean_ms,
            typing_delay_stddev_ms=settings.typing_delay_stddev_ms,
            typing_delay_min_ms=settings.typing_delay_min_ms,
            thinking_probability=settings.thinking_probability,
            thinking_pause_ms=tuple(settings.thinking_pause_ms),
            path_points=tuple(settings.path_points),
            path_jitter_px=settings.path_jitter_px,
            path_curvature=settings.path_curvature,
            step_delay_ms=tuple(settings.step_delay_ms),
            dwell_ms=tuple(settings.dwell_ms),
            scroll_steps=tuple(settings.scroll_steps),
        )
    
    def rng(self, purpose: str, payload: str = "", stream: int = 0) -> random.Random:
        """Deterministic RNG for one purpose within one interaction."""
        material = f"{self.seed}\x1f{purpose}\x1f{payload}\x1f{stream}".encode("utf-8")
        digest = hashlib.blake2b(material, digest_size=8).digest()
        return random.Random(int.from_bytes(digest, "big"))
    
    def typing_sequence(self, text: str, stream: int = 0) -> List[Keystroke]:
        """
        Per-character delays for typing ``text``.
        
        Delays are gaussian around the mean, floored at the minimum;
        with ``thinking_probability`` a thinking pause follows a keystroke.
        """
        rng = self.rng("type", text, stream)
        low, high = self.thinking_pause_ms
        keystrokes = []
        for char in text:
            delay = max(
                self.typing_delay_min_ms,
                rng.gauss(self.typing_delay_mean_ms, self.typing_delay_stddev_ms),
            )
            thinking = rng.uniform(low, high) if rng.random() < self.thinking_probability else 0.0
            keystrokes.append(Keystroke(char, delay, thinking))
        return keystrokes
    
    def typing_delays(self, text: str, stream: int = 0) -> List[float]:
        """Total pause after each character of ``text``."""
        return [k.total_ms for k in self.typing_sequence(text, stream)]
    
    def dwell(self, rng: random.Random) -> float:
        return rng.uniform(*self.dwell_ms)
    
    def step_delay(self, rng: random.Random) -> float:
        return rng.uniform(*self.step_delay_ms)
