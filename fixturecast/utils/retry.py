"""
Reusable retry-with-backoff policy.

One policy type is injected into both the provider HTTP client and the
forecast oracle loop, so every call site shares the same semantics:

- attempts run sequentially (no racing)
- the delay before attempt N+1 follows the configured backoff
- the final attempt's exception is re-raised unchanged
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget plus backoff schedule for one kind of call."""

    max_attempts: int = 3
    base_delay: float = 2.0  # Seconds before the second attempt
    backoff: str = "exponential"  # "exponential" | "linear"
    max_delay: float = 60.0
    timeout: float = 20.0  # Per-attempt timeout, consumed by the wrapped client
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff not in ("exponential", "linear"):
            raise ValueError(f"Unknown backoff mode: {self.backoff}")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (0-based) failed attempt."""
        if self.backoff == "linear":
            delay = self.base_delay * (attempt + 1)
        else:
            delay = self.base_delay * (2**attempt)
        return min(delay, self.max_delay)

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        label: str = "call",
        on_retry: Optional[Callable[[int, BaseException], None]] = None,
    ) -> T:
        """
        Call fn until it succeeds or the attempt budget is spent.

        Exceptions outside retry_on propagate immediately.
        """
        for attempt in range(self.max_attempts):
            try:
                return await fn()
            except retry_on as e:
                if attempt >= self.max_attempts - 1:
                    logger.warning(f"[RETRY] {label} failed after {self.max_attempts} attempts: {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    f"[RETRY] {label} attempt {attempt + 1}/{self.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                if on_retry is not None:
                    on_retry(attempt, e)
                await self.sleep(delay)

        raise RuntimeError("unreachable")  # pragma: no cover
