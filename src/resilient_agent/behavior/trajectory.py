"""
Pointer trajectories and scroll profiles.

Paths are cubic Bezier curves evaluated with Bernstein polynomials. The
control points project onto the start-to-target axis in increasing order,
so progress toward the target never goes backwards; jitter is applied
perpendicular to that axis only and tapers to zero at both ends.
"""

import math
import random
from typing import List

import numpy as np

from resilient_agent.behavior.profile import BehaviorProfile
from resilient_agent.interfaces.driver import BoundingBox, Point


def ease_in_out_cubic(t: float) -> float:
    if t < 0.5:
        return 4 * t * t * t
    return 1 - (-2 * t + 2) ** 3 / 2


def bernstein_curve(control_points: np.ndarray, ts: np.ndarray) -> np.ndarray:
    """
    Evaluate a Bezier curve.
    
    B(t) = sum_i C(n, i) * t^i * (1 - t)^(n - i) * P_i
    
    Args:
        control_points: (n + 1, 2) array
        ts: Curve parameters in [0, 1]
        
    Returns:
        (len(ts), 2) array of points
    """
    n = len(control_points) - 1
    ts = ts[:, None]
    basis = np.hstack([
        math.comb(n, i) * ts ** i * (1 - ts) ** (n - i)
        for i in range(n + 1)
    ])
    return basis @ control_points


def pointer_path(
    start: Point,
    end: Point,
    profile: BehaviorProfile,
    rng: random.Random,
) -> List[Point]:
    """
    Intermediate pointer positions from ``start`` to ``end``.
    
    The start point is excluded and the last point is exactly ``end``.
    """
    a = np.array([start.x, start.y], dtype=np.float64)
    b = np.array([end.x, end.y], dtype=np.float64)
    distance = float(np.linalg.norm(b - a))
    if distance < 1.0:
        return [end]
    
    axis = (b - a) / distance
    normal = np.array([-axis[1], axis[0]])
    bend = profile.path_curvature * distance
    controls = np.array([
        a,
        a + axis * distance * rng.uniform(0.2, 0.4) + normal * rng.uniform(-bend, bend),
        a + axis * distance * rng.uniform(0.6, 0.8) + normal * rng.uniform(-bend, bend),
        b,
    ])
    
    count = rng.randint(*profile.path_points)
    ts = np.array([ease_in_out_cubic(i / count) for i in range(1, count + 1)])
    points = bernstein_curve(controls, ts)
    
    jitter = profile.path_jitter_px
    if jitter > 0:
        for i in range(len(points) - 1):
            taper = math.sin(math.pi * (i + 1) / count)
            offset = max(-jitter, min(jitter, rng.gauss(0.0, jitter / 2)))
            points[i] += normal * offset * taper
    
    path = [Point(float(x), float(y)) for x, y in points[:-1]]
    path.append(end)
    return path


def click_point(box: BoundingBox, rng: random.Random) -> Point:
    """A point in the central 30-70% of the box."""
    return box.point_at(rng.uniform(0.3, 0.7), rng.uniform(0.3, 0.7))


def scroll_deltas(total: float, profile: BehaviorProfile, rng: random.Random) -> List[float]:
    """
    Wheel deltas that add up to ``total``, eased in and out.
    
    Each step is jittered by up to 15% and the sequence is rescaled so the
    sum is exact.
    """
    if total == 0:
        return []
    steps = rng.randint(*profile.scroll_steps)
    eased = [ease_in_out_cubic(i / steps) for i in range(steps + 1)]
    raw = [(eased[i + 1] - eased[i]) * rng.uniform(0.85, 1.15) for i in range(steps)]
    scale = total / sum(raw)
    deltas = [r * scale for r in raw]
    deltas[-1] = total - sum(deltas[:-1])
    return deltas
