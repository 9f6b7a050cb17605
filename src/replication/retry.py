"""Bounded retry around a single idempotent async operation.

Policy:
- up to `max_attempts` calls of the operation
- wait `base_delay * k` seconds after the k-th failure (linear, no jitter)
- no wait after the final failure
- the last error is re-raised unchanged; earlier errors are only logged

Only wrap operations that are safe to repeat (a full-resource PUT is).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

_R = TypeVar("_R")


class RetryingExecutor:
    """Runs an operation until it succeeds or the attempt budget is spent."""

    def __init__(self, *, max_attempts: int = 3, base_delay: float = 0.5) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1. Got: {max_attempts}")
        if base_delay < 0:
            raise ValueError(f"base_delay must be >= 0. Got: {base_delay}")
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return self.base_delay * attempt

    async def execute(
        self,
        operation: Callable[[], Awaitable[_R]],
        *,
        description: str = "operation",
    ) -> tuple[_R, int]:
        """Run `operation`, returning `(result, attempts_used)`.

        Every failed attempt is logged. After `max_attempts` failures the last
        exception propagates.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await operation()
            except Exception as exc:  # noqa: BLE001 - classify and retry/raise
                logger.warning(
                    "Attempt %d/%d for %s failed: %s", attempt, self.max_attempts, description, exc
                )
                if attempt >= self.max_attempts:
                    logger.error("Giving up on %s after %d attempts", description, attempt)
                    raise
                await asyncio.sleep(self.delay_for(attempt))
            else:
                if attempt > 1:
                    logger.info("%s succeeded on attempt %d", description, attempt)
                return result, attempt
