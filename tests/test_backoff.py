"""Property-based tests for the backoff delay calculation."""

import random

import pytest
from hypothesis import given, strategies as st

from modelsync.sync.backoff import compute_backoff_delay


attempts = st.integers(min_value=0, max_value=200)
bases = st.floats(min_value=1, max_value=10_000, allow_nan=False, allow_infinity=False)
caps = st.floats(min_value=1, max_value=100_000, allow_nan=False, allow_infinity=False)


class TestBackoffBounds:
    """Delays stay inside [0, max * 1.5] for every input."""

    @given(attempts, bases, caps, st.booleans(), st.integers(min_value=0, max_value=2**32))
    def test_delay_within_bounds(self, attempt, base, cap, jitter, seed):
        """Test that no delay is negative or exceeds 1.5 times the cap."""
        delay = compute_backoff_delay(attempt, base, cap, jitter, random.Random(seed))

        assert 0 <= delay <= cap * 1.5

    @given(attempts, bases, caps)
    def test_without_jitter_delay_is_capped_exponential(self, attempt, base, cap):
        """Test that without jitter the delay is exactly min(base * 2^attempt, cap)."""
        delay = compute_backoff_delay(attempt, base, cap, jitter=False)

        assert delay <= cap
        if attempt < 64:
            assert delay == min(base * 2 ** attempt, cap)

    @given(attempts, bases, caps, st.integers(min_value=0, max_value=2**32))
    def test_jitter_adds_at_most_half(self, attempt, base, cap, seed):
        """Test that jitter adds between zero and half of the capped delay."""
        plain = compute_backoff_delay(attempt, base, cap, jitter=False)
        jittered = compute_backoff_delay(attempt, base, cap, True, random.Random(seed))

        assert plain <= jittered <= plain * 1.5


class TestBackoffShape:

    def test_default_schedule(self):
        """Test the 1s base, 30s cap schedule used for reconnection."""
        delays = [compute_backoff_delay(a, 1000, 30000, jitter=False) for a in range(7)]

        assert delays == [1000, 2000, 4000, 8000, 16000, 30000, 30000]

    @given(bases, caps)
    def test_non_decreasing_until_cap(self, base, cap):
        """Test that delays never shrink as the attempt number grows."""
        delays = [compute_backoff_delay(a, base, cap, jitter=False) for a in range(20)]

        assert delays == sorted(delays)
        assert delays[-1] == min(base * 2 ** 19, cap)

    def test_deterministic_with_seeded_random(self):
        """Test that a fixed random source gives repeatable jitter."""
        first = [compute_backoff_delay(a, 1000, 30000, True, random.Random(42)) for a in range(5)]
        second = [compute_backoff_delay(a, 1000, 30000, True, random.Random(42)) for a in range(5)]

        assert first == second

    def test_huge_attempt_does_not_overflow(self):
        """Test that very large attempt numbers return the cap."""
        assert compute_backoff_delay(10_000, 1000, 30000, jitter=False) == 30000

    def test_negative_attempt_rejected(self):
        """Test that a negative attempt number raises ValueError."""
        with pytest.raises(ValueError):
            compute_backoff_delay(-1, 1000, 30000)
