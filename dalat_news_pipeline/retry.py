from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from dalat_news_pipeline.errors import is_retryable_error


logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    base_delay_seconds: float

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows ``attempt`` (1-based)."""
        return self.base_delay_seconds * (2 ** (attempt - 1))


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "call",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``fn`` until it succeeds, retrying transient service errors only.

    Anything that is not a rate-limit/server error is raised immediately; when
    the attempts run out the last error is raised.
    """

    attempts = max(1, int(policy.max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not is_retryable_error(exc) or attempt >= attempts:
                raise
            delay = policy.delay_for(attempt)
            logger.warning("[%s] Retry %d/%d after %.1fs: %s", label, attempt, attempts, delay, exc)
            await sleep(delay)

    raise AssertionError("unreachable")
