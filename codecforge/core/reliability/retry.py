"""
Retry with exponential backoff and jitter — for network operations only.

Source fetches retry; builds never do.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Backoff:
    """Retry budget and delay schedule for one operation."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    attempt: int = 0

    @property
    def exhausted(self) -> bool:
        """Whether all retry attempts have been used."""
        return self.attempt >= self.max_attempts

    def next_delay(self) -> float:
        """Advance the attempt counter and return the delay before it."""
        self.attempt += 1
        delay = min(self.base_delay * (2 ** (self.attempt - 1)), self.max_delay)
        jitter = random.uniform(0, delay * 0.3)
        return delay + jitter


def retry_call(
    fn: Callable[[], T],
    *,
    retry_on: tuple[type[BaseException], ...],
    backoff: Backoff,
    label: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds or the backoff budget runs out.

    Only exceptions in ``retry_on`` are retried; anything else propagates
    immediately. After the last attempt the final exception propagates.
    """
    while True:
        try:
            return fn()
        except retry_on as e:
            if backoff.exhausted:
                logger.warning("%s failed after %d retries: %s", label, backoff.attempt, e)
                raise
            delay = backoff.next_delay()
            logger.info(
                "%s failed (%s), retry %d/%d in %.1fs",
                label, e, backoff.attempt, backoff.max_attempts, delay,
            )
            sleep(delay)
