"""
ospolicy.orchestration.retry - Bounded Retry with Exponential Backoff
=======================================================================

This module implements the retry discipline used around each artifact's
staging attempt: a fixed budget of retries, exponentially growing delays
capped at a maximum, and "last error only" reporting.

Retry Flow:

    attempt 0 ──fail──> sleep(d0) ──> attempt 1 ──fail──> sleep(d1) ──> ...
        │                                 │
      success                          success
        │                                 │
        v                                 v
     return                            return

    After attempt ``max_retries`` fails, the most recent error is raised.
    Errors from earlier attempts are logged and discarded.

Delay Progression (default settings):
    Retry 0: 2.0s   (2.0 * 2^0)
    Retry 1: 4.0s   (2.0 * 2^1)
    Retry 2: 8.0s   (2.0 * 2^2)
    Retry N: capped at 30.0s (max_delay)

Retryability:
    Pipeline errors (OSPolicyError) are retried when their error_code is in
    ``retryable_errors``. Errors raised by third-party clients carry no code
    and are treated as transient unless ``retry_unclassified`` is off.
    ``asyncio.CancelledError`` is never retried: cancellation always wins.

    The default list contains NO_ARTIFACTS_FOUND, so an empty catalog result
    consumes the retry budget exactly like a network failure. Remove the code
    from ``retryable_errors`` to fail fast on empty filters instead.

Usage:
    >>> policy = RetryPolicy(max_retries=3, initial_delay=2.0, max_delay=30.0)
    >>> result = await retry_async(lambda attempt: stage(attempt), policy)
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field

from ospolicy.core.exceptions import OSPolicyError


logger = structlog.get_logger()

T = TypeVar("T")


# =============================================================================
# RetryPolicy (Pydantic BaseModel)
# =============================================================================
# A BaseModel so it can live inside DeployConfig and be loaded from YAML or
# environment variables like any other setting.
#
#   delay = min(initial_delay * (backoff_multiplier ^ retry) + jitter, max_delay)
# =============================================================================
class RetryPolicy(BaseModel):
    """Configuration for bounded retries with exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt. 3 means 4 attempts.
        initial_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for any single delay.
        backoff_multiplier: Growth factor between consecutive delays.
        jitter_ratio: Fraction of the base delay added as random jitter.
            Zero gives a deterministic schedule.
        retryable_errors: Error codes of OSPolicyError subclasses that are
            retried. Other codes fail immediately.
        retry_unclassified: Whether errors that are not OSPolicyError
            (opaque client exceptions) are retried.

    Example:
        >>> policy = RetryPolicy()
        >>> policy.total_attempts
        4
        >>> policy.calculate_delay(1)
        4.0
    """

    max_retries: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Retries after the first attempt",
    )
    initial_delay: float = Field(
        default=2.0,
        ge=0,
        le=60.0,
        description="Delay in seconds before the first retry",
    )
    max_delay: float = Field(
        default=30.0,
        ge=0,
        le=600.0,
        description="Maximum delay cap in seconds",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Multiplier applied to the delay after every retry",
    )
    jitter_ratio: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Fraction of the base delay added as random jitter",
    )
    retryable_errors: list[str] = Field(
        default=[
            "CATALOG_ERROR",
            "NO_ARTIFACTS_FOUND",
            "STORAGE_ERROR",
            "TRANSFER_FAILED",
            "UPLOAD_FAILED",
            "VERIFY_FAILED",
            "SIZE_MISMATCH",
        ],
        description="Error codes that are worth retrying",
    )
    retry_unclassified: bool = Field(
        default=True,
        description="Retry exceptions that carry no error code",
    )

    @property
    def total_attempts(self) -> int:
        """Number of attempts including the first one."""
        return self.max_retries + 1

    def calculate_delay(self, retry: int) -> float:
        """Delay before retry number ``retry`` (zero-based).

        Args:
            retry: 0 for the first retry, 1 for the second, and so on.

        Returns:
            Delay in seconds, never above ``max_delay``.
        """
        base_delay = self.initial_delay * (self.backoff_multiplier ** retry)
        jitter = random.uniform(0, base_delay * self.jitter_ratio) if self.jitter_ratio else 0.0
        return min(base_delay + jitter, self.max_delay)

    def is_retryable(self, error: BaseException) -> bool:
        """Whether ``error`` should consume another attempt."""
        if isinstance(error, asyncio.CancelledError):
            return False
        if isinstance(error, OSPolicyError):
            return error.error_code in self.retryable_errors
        return self.retry_unclassified


# =============================================================================
# retry_async
# =============================================================================
async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    *,
    on_retry: Optional[Callable[[int, BaseException, float], Any]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    log_context: Optional[dict[str, Any]] = None,
) -> T:
    """Run ``operation`` until it succeeds or the retry budget is spent.

    Args:
        operation: Coroutine factory receiving the zero-based attempt number.
        policy: Retry budget and backoff schedule.
        on_retry: Called as ``on_retry(next_attempt, error, delay)`` before
            each backoff sleep.
        sleep: Awaitable sleep, replaceable in tests.
        log_context: Extra key/value pairs bound to retry log events.

    Returns:
        Whatever the successful attempt returned.

    Raises:
        The error of the final attempt, or the first non-retryable error.
        asyncio.CancelledError propagates untouched.
    """
    log = logger.bind(component="retry", **(log_context or {}))

    attempt = 0
    while True:
        try:
            return await operation(attempt)
        except asyncio.CancelledError:
            raise
        except Exception as error:
            if attempt >= policy.max_retries or not policy.is_retryable(error):
                log.warning(
                    "retry_gave_up",
                    attempts=attempt + 1,
                    error=str(error),
                    error_type=type(error).__name__,
                )
                raise

            delay = policy.calculate_delay(attempt)
            log.info(
                "retry_scheduled",
                attempt=attempt + 1,
                delay_seconds=round(delay, 3),
                error=str(error),
            )
            if on_retry is not None:
                on_retry(attempt + 1, error, delay)

            await sleep(delay)
            attempt += 1
