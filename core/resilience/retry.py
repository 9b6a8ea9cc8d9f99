"""
Bounded retry with exponential backoff for store round trips.

Protects against:
- Transient store failures (retry with exponential backoff)
- Unbounded retry loops (fixed attempt cap, then the last error surfaces)

Only the exception types listed in ``retry_on`` are retried; anything else
propagates on the first attempt.
"""
from __future__ import annotations
from typing import Any, Awaitable, Callable
import asyncio
import logging

logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Retry an async callable a fixed number of times.

    Usage::

        policy = RetryPolicy(max_attempts=3, retry_on=(TransientStoreError,))
        row = await policy.call(ledger_step, book_id)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base: float = 0.05,
        backoff_max: float = 1.0,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.retry_on = retry_on

    @classmethod
    def from_config(cls, config: Any, retry_on: tuple[type[BaseException], ...]) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            backoff_base=config.backoff_base,
            backoff_max=config.backoff_max,
            retry_on=retry_on,
        )

    def backoff(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (0-based)."""
        return min(self.backoff_base * (2 ** attempt), self.backoff_max)

    async def call(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        **kwargs,
    ) -> Any:
        """Await ``func`` until it succeeds or attempts run out."""
        for attempt in range(self.max_attempts):
            try:
                return await func(*args, **kwargs)
            except self.retry_on as e:
                if attempt == self.max_attempts - 1:
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                    getattr(func, "__qualname__", func),
                    attempt + 1,
                    self.max_attempts,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
