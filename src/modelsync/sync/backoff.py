"""Exponential backoff delay calculation."""

import random
from typing import Optional


def compute_backoff_delay(attempt: int, base_delay_ms: float, max_delay_ms: float,
                          jitter: bool = True, rng: Optional[random.Random] = None) -> float:
    """Calculate the delay before a retry using exponential backoff.

    The delay is ``base * 2 ** attempt`` capped at ``max``. With jitter enabled a
    uniformly random amount in ``[0, 0.5 * capped)`` is added, so the result never
    exceeds ``max * 1.5``.

    Args:
        attempt: Zero-based retry index
        base_delay_ms: Delay for the first retry in milliseconds
        max_delay_ms: Cap applied before jitter in milliseconds
        jitter: Whether to add random jitter
        rng: Random source; the module-level generator is used when omitted

    Returns:
        Delay in milliseconds
    """
    if attempt < 0:
        raise ValueError(f"Attempt must be non-negative, got {attempt}")

    # 2 ** attempt overflows float for large attempts; the cap applies long before that
    if attempt >= 64:
        capped_delay = max_delay_ms
    else:
        capped_delay = min(base_delay_ms * (2 ** attempt), max_delay_ms)

    if not jitter:
        return capped_delay

    source = rng or random
    return capped_delay + capped_delay * 0.5 * source.random()
