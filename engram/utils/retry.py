"""
Retry with exponential backoff for provider calls.

Only transient provider failures are retried. Validation errors and
permanent provider errors surface on the first attempt.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from engram.config import RetryConfig
from engram.utils.exceptions import EngramError, ProviderTransientError
from engram.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Retry policy driven by RetryConfig.

    Backoff for attempt ``n`` (zero-based) is
    ``min(max_delay, base_delay * multiplier**n)`` plus uniform jitter in
    ``[0, jitter * delay]``.
    """

    def __init__(self, config: RetryConfig | None = None, sleep=asyncio.sleep):
        self.config = config or RetryConfig()
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1``."""
        delay = min(
            self.config.max_delay,
            self.config.base_delay * (self.config.multiplier**attempt),
        )
        if self.config.jitter > 0:
            delay += random.uniform(0, self.config.jitter * delay)
        return delay

    def is_retryable(self, error: BaseException) -> bool:
        """Whether the error kind is configured as retryable."""
        if isinstance(error, EngramError):
            return error.kind in self.config.retryable_kinds
        return False

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
    ) -> T:
        """
        Execute an async operation, retrying transient failures.

        Args:
            operation: Zero-argument coroutine factory
            operation_name: Name used in log lines

        Returns:
            Result of the operation

        Raises:
            ProviderTransientError: If every attempt failed transiently
            EngramError: Non-retryable errors, raised immediately
        """
        last_error: BaseException | None = None
        attempts = max(1, self.config.max_attempts)

        for attempt in range(attempts):
            try:
                return await operation()
            except EngramError as e:
                if not self.is_retryable(e):
                    raise
                last_error = e
                if attempt < attempts - 1:
                    wait_time = self.backoff(attempt)
                    logger.warning(
                        f"{operation_name} attempt {attempt + 1}/{attempts} failed, "
                        f"retrying in {wait_time:.2f}s",
                        extra={"error": str(e), "kind": e.kind},
                    )
                    await self._sleep(wait_time)

        logger.error(
            f"{operation_name} failed after {attempts} attempts",
            extra={"error": str(last_error)},
        )
        if isinstance(last_error, ProviderTransientError):
            raise last_error
        raise ProviderTransientError(
            f"{operation_name} failed after {attempts} attempts: {last_error}",
            {"operation": operation_name, "attempts": attempts},
        ) from last_error
