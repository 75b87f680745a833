"""
Budget and timeout utilities.

Every driver wait and artificial delay goes through these helpers so a
timeout or cancellation always tears down the pending wait before the
error propagates.
"""

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class Deadline:
    """
    A monotonic-clock budget shared by a sequence of operations.
    
    Example:
        >>> deadline = Deadline(5000)
        >>> slice_ms = deadline.slice(remaining_parts=3, cap_ms=2000)
    """
    
    def __init__(self, budget_ms: float):
        self.budget_ms = float(budget_ms)
        self._start = time.monotonic()
    
    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._start) * 1000
    
    @property
    def remaining_ms(self) -> float:
        return max(0.0, self.budget_ms - self.elapsed_ms)
    
    @property
    def expired(self) -> bool:
        return self.remaining_ms <= 0
    
    def slice(self, remaining_parts: int, cap_ms: Optional[float] = None) -> float:
        """
        Fair share of what is left for the next of ``remaining_parts``.
        
        Parts that finish early leave their unused time in the pool,
        so later parts get a larger share.
        """
        share = self.remaining_ms / max(1, remaining_parts)
        if cap_ms is not None:
            share = min(share, cap_ms)
        return share


async def cancel_and_wait(task: "asyncio.Future") -> None:
    """Cancel a pending task and wait until it has actually finished."""
    if task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


async def with_timeout(
    awaitable: Awaitable[T],
    timeout_ms: float,
) -> T:
    """
    Await with a timeout, cancelling the inner task on timeout or cancellation.
    
    Raises:
        asyncio.TimeoutError if the timeout is exceeded
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=max(0.0, timeout_ms) / 1000)
    except asyncio.CancelledError:
        await cancel_and_wait(task)
        raise
    if task not in done:
        await cancel_and_wait(task)
        raise asyncio.TimeoutError(f"Operation timed out after {timeout_ms:.0f}ms")
    return task.result()


async def sleep_ms(ms: float) -> None:
    """Sleep for ``ms`` milliseconds (no-op for non-positive values)."""
    if ms > 0:
        await asyncio.sleep(ms / 1000)
