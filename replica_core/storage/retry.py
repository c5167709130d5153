"""
Bounded retry with exponential backoff.

Shared by the target adapter and the batch processor so both layers retry
transient backend errors the same way.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from ..exceptions import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryConfig:
    """Retry configuration for backend operations"""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_factor: float = 2.0,
        jitter: bool = False,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        should_retry: Optional[Callable[[BaseException], bool]] = None
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self.retry_on = retry_on
        self.should_retry = should_retry

    def get_delay(self, attempt: int) -> float:
        """Calculate delay after the given zero-based attempt"""
        delay = self.initial_delay * (self.backoff_factor ** attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            # Up to 20% jitter
            delay += delay * 0.2 * random.random()

        return delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    description: str = "operation",
    on_retry: Optional[Callable[[int, BaseException], None]] = None
) -> T:
    """
    Run ``operation`` until it succeeds or the attempt ceiling is reached.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        config: Attempt ceiling, backoff, and retryable exception types
        description: Human readable name used in log messages
        on_retry: Optional callback receiving (attempt, error) before each wait

    Returns:
        The operation's result

    Raises:
        RetryExhaustedError: every attempt raised a retryable exception
    """
    last_error: Optional[BaseException] = None

    for attempt in range(config.max_attempts):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except config.retry_on as e:
            if config.should_retry is not None and not config.should_retry(e):
                raise
            last_error = e
            logger.warning(
                f"{description} attempt {attempt + 1}/{config.max_attempts} failed: {e}"
            )

            if attempt < config.max_attempts - 1:
                if on_retry:
                    on_retry(attempt + 1, e)
                delay = config.get_delay(attempt)
                if delay > 0:
                    await asyncio.sleep(delay)

    raise RetryExhaustedError(description, config.max_attempts, last_error)
