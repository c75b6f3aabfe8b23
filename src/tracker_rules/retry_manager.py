"""
Retry Manager for the tracker rules pipeline.

This module provides retry logic with exponential backoff for transient fetch
errors. Exhausted retries are reported to the caller, which keeps the
previously applied rules in force.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .config import RetryConfig
from .enums import HTTPClientErrorCode
from .exceptions import TrackerRulesError

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Result of a retry operation."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]


class RetryManager:
    """
    Manages retry logic with exponential backoff.

    Total attempts are 1 initial + max_retries.
    """

    # Error codes that indicate transient errors (should retry)
    TRANSIENT_ERROR_CODES = {
        HTTPClientErrorCode.CONNECTIVITY.value,
        HTTPClientErrorCode.STATUS_CODE.value,
        HTTPClientErrorCode.INVALID_RESPONSE.value,
    }

    def __init__(
        self,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the retry manager.

        Args:
            config: Retry configuration with max_retries, delays, and retryable errors
            sleep: Coroutine used to wait between attempts
        """
        self._config = config
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._config.max_retries + 1

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate wait time with exponential backoff.

        delay(n) = base_delay * 2^n, capped at max_delay.

        Args:
            attempt: The current attempt number (0-indexed)

        Returns:
            The delay in seconds before the next retry
        """
        delay = self._config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._config.max_delay_seconds)

    def is_retryable_error(self, error_code) -> bool:
        """
        Check if an error code indicates a retryable (transient) error.

        Args:
            error_code: The error code to check (string or HTTPClientErrorCode)

        Returns:
            True if the error is transient and should be retried
        """
        if hasattr(error_code, "value"):
            error_code_str = error_code.value
        else:
            error_code_str = str(error_code)

        if error_code_str in self._config.retryable_errors:
            return True
        return error_code_str in self.TRANSIENT_ERROR_CODES

    def is_retryable_exception(self, error: Exception) -> bool:
        """Only pipeline errors carrying a transient code are retried."""
        if isinstance(error, TrackerRulesError):
            return self.is_retryable_error(error.code)
        return False

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> RetryResult[T]:
        """
        Execute an operation with retry logic and exponential backoff.

        Args:
            operation: The async operation to execute
            is_retryable: Optional function to determine if an exception is retryable.
                         If not provided, all exceptions are considered retryable.
            should_continue: Optional check made before each retry; returning
                             False stops retrying (used for cancellation)

        Returns:
            RetryResult containing success status, result, attempts, and last error
        """
        last_error: Optional[Exception] = None
        attempts = 0
        max_attempts = self.max_attempts

        while attempts < max_attempts:
            try:
                result = await operation()
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempts + 1,
                    last_error=None,
                )
            except Exception as e:
                last_error = e
                attempts += 1

                should_retry = is_retryable(e) if is_retryable else True

                if not should_retry or attempts >= max_attempts:
                    break

                await self._sleep(self._calculate_delay(attempts - 1))

                if should_continue is not None and not should_continue():
                    break

        return RetryResult(
            success=False,
            result=None,
            attempts=attempts,
            last_error=last_error,
        )
