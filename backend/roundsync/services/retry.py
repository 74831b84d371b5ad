"""Retry with exponential backoff for score and round writes."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from .. import config
from ..exceptions import LockContentionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_lock_contention(exc: BaseException) -> bool:
    return isinstance(exc, LockContentionError)


@dataclass
class RetryPolicy:
    """How often and how patiently to retry an async operation.

    ``max_attempts`` counts the first try. The delay before attempt ``n + 1``
    is ``base_delay * multiplier ** (n - 1)`` plus up to 20% jitter, capped at
    ``max_delay``.
    """

    max_attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    is_retryable: Callable[[BaseException], bool] = is_lock_contention
    jitter: float = 0.2
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Return the wait in seconds after failed attempt number ``attempt``."""

        base = self.base_delay * (self.multiplier ** max(attempt - 1, 0))
        if self.jitter:
            base += random.random() * self.jitter * base
        return min(base, self.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        on_retry: Optional[Callable[[BaseException, int, float], None]] = None,
    ) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                if attempt >= self.max_attempts or not self.is_retryable(exc):
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "Retrying after %s (attempt %d of %d, waiting %.2fs)",
                    type(exc).__name__,
                    attempt,
                    self.max_attempts,
                    delay,
                )
                if on_retry is not None:
                    on_retry(exc, attempt, delay)
                # The operation releases any lock it took before raising, so
                # nothing is held across this sleep.
                await self.sleep(delay)


def score_retry_policy(**overrides) -> RetryPolicy:
    """Policy for locked score writes: quicker, gentler, more attempts."""

    options = dict(
        max_attempts=config.SCORE_RETRY_MAX_ATTEMPTS,
        base_delay=config.SCORE_RETRY_BASE_DELAY,
        max_delay=config.SCORE_RETRY_MAX_DELAY,
        multiplier=config.SCORE_RETRY_MULTIPLIER,
    )
    options.update(overrides)
    return RetryPolicy(**options)


def db_retry_policy(**overrides) -> RetryPolicy:
    """Policy for bulk round-list writes."""

    options = dict(
        max_attempts=config.DB_RETRY_MAX_ATTEMPTS,
        base_delay=config.DB_RETRY_BASE_DELAY,
        max_delay=config.DB_RETRY_MAX_DELAY,
        multiplier=config.DB_RETRY_MULTIPLIER,
    )
    options.update(overrides)
    return RetryPolicy(**options)
