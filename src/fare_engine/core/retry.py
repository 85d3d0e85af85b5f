"""Retry with exponential backoff under one overall deadline."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .exceptions import FareTimeout, TransientError

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Backoff policy for fare requests.

    ``fatal_exceptions`` are raised on first sight even when they are also
    retryable. ``deadline`` bounds every attempt and backoff sleep together.
    """

    max_attempts: int = 3
    base_delay: float = 0.25
    multiplier: float = 2.0
    max_delay: float = 5.0
    deadline: float | None = None
    retryable_exceptions: tuple[type[Exception], ...] = field(
        default_factory=lambda: (TransientError,)
    )
    fatal_exceptions: tuple[type[Exception], ...] = field(
        default_factory=lambda: (FareTimeout,)
    )

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (self.multiplier**attempt), self.max_delay)


async def _attempts(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    operation_name: str,
    on_retry: Callable[[Exception, int], None] | None,
) -> T:
    attempts = max(config.max_attempts, 1)
    attempt = 0
    while True:
        try:
            return await operation()
        except config.retryable_exceptions as e:
            if isinstance(e, config.fatal_exceptions):
                logger.error(f"{operation_name} gave up without retrying: {e}")
                raise
            if attempt >= attempts - 1:
                logger.error(f"{operation_name} failed after {attempts} attempts: {e}")
                raise

            delay = config.delay_for(attempt)
            logger.warning(
                f"{operation_name} failed (attempt {attempt + 1}/{attempts}), "
                f"retrying in {delay:.2f}s: {e}"
            )
            if on_retry:
                on_retry(e, attempt)

            await asyncio.sleep(delay)
            attempt += 1


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
    on_retry: Callable[[Exception, int], None] | None = None,
) -> T:
    """Execute async operation with exponential backoff retry.

    When the config carries a deadline, the running attempt is cancelled once
    it elapses and FareTimeout is raised.
    """
    if config is None:
        config = RetryConfig()
    if config.deadline is None:
        return await _attempts(operation, config, operation_name, on_retry)

    try:
        async with asyncio.timeout(config.deadline):
            return await _attempts(operation, config, operation_name, on_retry)
    except TimeoutError as e:
        logger.error(f"{operation_name} exceeded its {config.deadline}s deadline")
        raise FareTimeout(
            f"{operation_name} exceeded its {config.deadline}s deadline",
            details={"deadline": config.deadline},
        ) from e
