"""Retry logic for failed operations."""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from docdialogue.core.config import settings
from docdialogue.monitoring.metrics import retry_attempts_total

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Bounded exponential backoff around an async call.

    The wait before retry ``n`` (0-based) is ``base_delay * 2**n`` plus a
    uniform jitter in ``[0, jitter)``. No wait follows the last attempt.
    """

    max_attempts: int = field(default_factory=lambda: settings.retry_max_attempts)
    base_delay: float = field(
        default_factory=lambda: settings.retry_base_delay_seconds)
    jitter: float = field(default_factory=lambda: settings.retry_jitter_seconds)
    exceptions: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    name: str = "call"

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt."""
        return self.base_delay * (2 ** attempt) + random.uniform(0, self.jitter)

    async def run(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Call ``func`` until it succeeds or attempts are exhausted.

        Args:
            func: Zero-argument coroutine function.

        Returns:
            Result of the first successful call.

        Raises:
            The last exception if every attempt fails.
        """
        last_exception: Optional[BaseException] = None

        for attempt in range(self.max_attempts):
            retry_attempts_total.labels(operation=self.name).inc()
            try:
                return await func()
            except self.exceptions as e:
                last_exception = e
                if attempt < self.max_attempts - 1:
                    wait_time = self.backoff(attempt)
                    logger.warning(
                        f"{self.name}: attempt {attempt + 1}/{self.max_attempts} "
                        f"failed: {str(e)}. Retrying in {wait_time:.2f}s..."
                    )
                    await self.sleep(wait_time)
                else:
                    logger.error(
                        f"{self.name}: all {self.max_attempts} attempts failed. "
                        f"Last error: {str(e)}")

        if last_exception is None:
            raise ValueError("max_attempts must be at least 1")
        raise last_exception
