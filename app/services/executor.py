"""
Retry/timeout executor for network operations.

Each attempt races the operation against a timer; a timeout cancels the
in-flight attempt. Retryable failures are retried with exponential backoff
and, once retries are exhausted, surfaced as OperationFailed.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Optional, TypeVar

import httpx

from app.core.exceptions import (
    AttemptTimeoutError,
    OperationFailed,
    ResponseParseError,
    UpstreamHttpError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Timeout and backoff parameters for one kind of call.

    Attributes:
        timeout: Seconds allowed per attempt
        max_retries: Additional attempts after the first one
        retry_delay: Delay before the first retry; doubles after each retry
        backoff_factor: Multiplier applied to the delay after each retry
    """

    timeout: float = 45.0
    max_retries: int = 2
    retry_delay: float = 1.0
    backoff_factor: float = 2.0

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must not be negative")

    def delays(self) -> Iterator[float]:
        """Delays to wait before each retry: base, base*2, base*4, ..."""
        return backoff_delays(self.retry_delay, self.max_retries, self.backoff_factor)


def backoff_delays(base: float, retries: int, factor: float = 2.0) -> Iterator[float]:
    delay = base
    for _ in range(retries):
        yield delay
        delay *= factor


def is_retryable(error: BaseException) -> bool:
    """Transient failures are retried; definitive answers are not."""
    if isinstance(error, (AttemptTimeoutError, ResponseParseError)):
        return True
    if isinstance(error, UpstreamHttpError):
        return error.retryable
    if isinstance(error, httpx.TransportError):
        return True
    return False


class RetryExecutor:
    """
    Runs an async operation under a RetryPolicy.

    The sleep function is injectable so backoff can be tested without
    real waiting.
    """

    def __init__(
        self,
        default_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.default_policy = default_policy or RetryPolicy()
        self._sleep = sleep

    async def _attempt(self, operation: Callable[[], Awaitable[T]], timeout: float) -> T:
        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except asyncio.TimeoutError as e:
            # wait_for has already cancelled the pending request
            raise AttemptTimeoutError(
                f"Attempt exceeded {timeout:.1f}s", timeout=timeout
            ) from e

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        description: str = "operation"
    ) -> T:
        """
        Execute an operation with timeout and retry logic.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            policy: Timeout/backoff parameters, defaults to the executor's policy
            description: Label used in log messages

        Returns:
            The operation's result

        Raises:
            OperationFailed: When every attempt failed with a retryable error
            Exception: Non-retryable errors propagate unchanged on first occurrence
        """
        policy = policy or self.default_policy
        delays = policy.delays()
        attempt = 0

        while True:
            attempt += 1
            started = time.monotonic()
            try:
                result = await self._attempt(operation, policy.timeout)
                logger.debug(
                    f"{description} succeeded on attempt {attempt} "
                    f"({time.monotonic() - started:.2f}s)"
                )
                return result
            except Exception as e:
                if not is_retryable(e):
                    logger.warning(f"{description} failed with non-retryable error: {e}")
                    raise
                delay = next(delays, None)
                if delay is None:
                    logger.error(f"All retries exhausted for {description} after {attempt} attempt(s): {e}")
                    raise OperationFailed(e, attempt) from e
                logger.info(
                    f"{description} attempt {attempt} failed ({type(e).__name__}: {e}), "
                    f"retrying in {delay:.2f} seconds"
                )
                await self._sleep(delay)
