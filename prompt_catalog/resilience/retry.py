# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Retry Policy & Manager — Bounded retries with exponential backoff.

Used by the Catalog Writer to retry optimistic-concurrency conflicts.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("catalog.retry")


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    backoff_base: float = 0.05       # seconds
    backoff_multiplier: float = 2.0  # exponential factor
    max_backoff: float = 1.0         # cap

    def next_delay(self, attempt: int) -> float:
        """Calculate delay before next retry (exponential backoff)."""
        delay = self.backoff_base * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_backoff)


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryManager:
    """Decides whether a failed attempt is retried and waits in between."""

    def __init__(self, policy: Optional[RetryPolicy] = None):
        self._policy = policy or DEFAULT_RETRY_POLICY

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def should_retry(self, attempt: int) -> bool:
        """Check if we should retry based on attempt count."""
        return attempt < self._policy.max_attempts

    async def wait_before_retry(self, attempt: int) -> None:
        """Wait with exponential backoff before retrying."""
        delay = self._policy.next_delay(attempt)
        if delay > 0:
            logger.debug("Retry: waiting %.2fs before attempt %d", delay, attempt + 1)
            await asyncio.sleep(delay)

    def handle_conflict(self, prompt_id: str, attempt: int, error: Exception) -> str:
        """
        Decide what to do after a write conflict.

        Returns: "retry" | "give_up"
        """
        if self.should_retry(attempt):
            logger.warning(
                "Write conflict on %s#%d: %s — will retry",
                prompt_id, attempt, error,
                extra={"prompt_id": prompt_id, "error_kind": "write_conflict"},
            )
            return "retry"
        logger.error(
            "Write conflict on %s#%d: %s — retry budget exhausted",
            prompt_id, attempt, error,
            extra={"prompt_id": prompt_id, "error_kind": "write_conflict"},
        )
        return "give_up"
