"""Generic retry driver with exponential backoff and jitter."""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .backoff import compute_backoff_delay
from .config import SyncConfig
from .logging_config import get_logger
from .models import RetryAttemptContext


T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry limits and backoff shape."""
    max_attempts: int = 5
    base_delay_ms: float = 1000.0
    max_delay_ms: float = 30000.0
    jitter: bool = True

    @classmethod
    def from_config(cls, config: SyncConfig) -> "RetryPolicy":
        """Build the reconnection policy from the sync configuration."""
        return cls(
            max_attempts=config.max_reconnection_attempts,
            base_delay_ms=config.initial_reconnection_delay_ms,
            max_delay_ms=config.max_reconnection_delay_ms,
            jitter=config.reconnection_jitter,
        )


class RetryExecutor:
    """Runs an async operation until it succeeds or attempts are exhausted.

    The executor holds no per-call state, so one instance can serve any number
    of concurrent ``execute`` calls.
    """

    def __init__(self, sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
                 rng: Optional[random.Random] = None):
        """Initialize the executor.

        Args:
            sleep: Coroutine function awaited with the delay in seconds
                (defaults to ``asyncio.sleep``)
            rng: Random source for jitter
        """
        self._sleep = sleep or asyncio.sleep
        self._rng = rng
        self.logger = get_logger(__name__)

    async def execute(self, operation: Callable[[], Awaitable[T]],
                      policy: Optional[RetryPolicy] = None,
                      should_retry: Optional[Callable[[BaseException], bool]] = None,
                      on_retry: Optional[Callable[[RetryAttemptContext], None]] = None) -> T:
        """Attempt ``operation`` up to ``policy.max_attempts + 1`` times.

        Args:
            operation: Zero-argument coroutine function to run
            policy: Retry limits; defaults to 5 retries, 1s base, 30s cap, jitter on
            should_retry: Returns False for errors that must propagate immediately
            on_retry: Observer called before each retry delay

        Returns:
            The operation's result

        Raises:
            The last failure, unchanged, once attempts are exhausted.
        """
        policy = policy or RetryPolicy()
        attempt = 0

        while True:
            try:
                return await operation()
            except Exception as error:
                if attempt >= policy.max_attempts:
                    self.logger.debug(f"Giving up after {attempt + 1} attempts: {error}")
                    raise

                if should_retry is not None and not should_retry(error):
                    raise

                delay_ms = compute_backoff_delay(
                    attempt, policy.base_delay_ms, policy.max_delay_ms,
                    policy.jitter, self._rng
                )
                attempt += 1

                if on_retry is not None:
                    context = RetryAttemptContext(
                        attempt_number=attempt,
                        error=error,
                        computed_delay=delay_ms,
                    )
                    try:
                        on_retry(context)
                    except Exception as e:
                        self.logger.error(f"Error in retry observer: {e}")

                self.logger.debug(f"Retry {attempt}/{policy.max_attempts} in {delay_ms:.0f}ms: {error}")
                await self._sleep(delay_ms / 1000.0)
