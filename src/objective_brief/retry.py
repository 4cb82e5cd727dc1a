"""Retry policy shared by the completion client and the objectivity stage."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _always(_exc: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """
    Re-run a coroutine factory with exponential backoff.

    Attempt ``n`` (0-based) that fails with a retryable error waits
    ``base_delay * 2**n`` before attempt ``n + 1``. The last failure is
    re-raised unchanged once ``max_attempts`` calls have been made.
    """

    max_attempts: int = 4
    base_delay: float = 1.0
    retryable: Callable[[BaseException], bool] = _always
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1.")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0.")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    async def run(self, operation: Callable[[], Awaitable[T]], *, label: str = "call") -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as exc:
                if attempt + 1 >= self.max_attempts or not self.retryable(exc):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    label,
                    attempt + 1,
                    self.max_attempts,
                    exc,
                    delay,
                )
                await self.sleep(delay)
                attempt += 1
