"""Exponential-backoff retry for awaitable remote operations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    backoff_factor: float = 2.0,
    *,
    sleep: Sleep = asyncio.sleep,
    description: Optional[str] = None,
) -> T:
    """Await ``operation`` until it succeeds or ``max_attempts`` is exhausted.

    The delay before attempt ``n + 1`` is ``initial_delay * backoff_factor ** (n - 1)``.
    The last error is re-raised unchanged so callers decide the fallback.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1.")

    label = description or getattr(operation, "__name__", "operation")
    delay = initial_delay
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:  # noqa: BLE001
            if attempt >= max_attempts:
                logger.debug("%s failed after %s attempt(s): %s", label, attempt, exc)
                raise
            logger.info(
                "%s failed (attempt %s/%s), retrying in %.2fs: %s",
                label,
                attempt,
                max_attempts,
                delay,
                exc,
            )
        await sleep(delay)
        delay *= backoff_factor
        attempt += 1


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 0.5
    backoff_factor: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            backoff_factor=settings.retry_backoff_factor,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: Optional[str] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> T:
        return await retry(
            operation,
            self.max_attempts,
            self.initial_delay,
            self.backoff_factor,
            sleep=sleep,
            description=description,
        )


__all__ = ["RetryPolicy", "Sleep", "retry"]
