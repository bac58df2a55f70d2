"""Retry logic for gravedigger.

This module provides a bounded-attempt retry policy with a fixed delay
between attempts, used for transient file copy failures.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Type, TypeVar

from gravedigger.config import RetryConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to try an operation and how long to wait between tries.

    With retries enabled an operation is tried `attempts + 1` times in
    total; with retries disabled it is tried exactly once.
    """
    enabled: bool = True
    attempts: int = 3
    delay_seconds: float = 300.0

    def __post_init__(self):
        if self.attempts < 0:
            raise ValueError(f"attempts must be non-negative, got {self.attempts}")
        if self.delay_seconds < 0:
            raise ValueError(f"delay_seconds must be non-negative, got {self.delay_seconds}")

    @property
    def max_tries(self) -> int:
        return self.attempts + 1 if self.enabled else 1

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            enabled=config.enabled,
            attempts=config.attempts,
            delay_seconds=config.delay_seconds,
        )


@dataclass
class RetryAttempt:
    """Information about a single failed attempt."""
    attempt_number: int
    error_message: str
    delay_seconds: float


@dataclass
class RetryResult:
    """Result of a retried operation."""
    success: bool
    total_attempts: int
    final_error_message: Optional[str] = None
    attempts: List[RetryAttempt] = field(default_factory=list)

    @property
    def retry_history(self) -> str:
        """Format retry history as a human-readable string."""
        if not self.attempts:
            return "No retries attempted"

        lines = [f"Retry history ({len(self.attempts)} attempts):"]
        for attempt in self.attempts:
            lines.append(
                f"  Attempt {attempt.attempt_number}: {attempt.error_message} "
                f"(waited {attempt.delay_seconds:.1f}s)"
            )
        return "\n".join(lines)


T = TypeVar('T')


def retry_call(
    operation: Callable[[], T],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (OSError,),
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
    on_retry: Optional[Callable[[RetryAttempt], None]] = None,
) -> Tuple[RetryResult, Optional[T]]:
    """
    Call `operation` until it succeeds or the policy's tries run out.

    Exceptions listed in `retry_on` count as failed attempts; anything
    else propagates immediately. The call blocks in `sleep` between
    attempts and cannot be interrupted.

    Args:
        operation: Zero-argument callable to run
        policy: Attempt budget and delay
        retry_on: Exception types treated as transient
        sleep: Blocking sleep function (injectable for tests)
        description: Name used in log messages
        on_retry: Optional callback called before each retry

    Returns:
        Tuple of (RetryResult, operation result or None on failure)
    """
    attempts: List[RetryAttempt] = []
    max_tries = policy.max_tries

    for attempt in range(1, max_tries + 1):
        try:
            value = operation()
        except retry_on as e:
            error_message = str(e)
        else:
            return RetryResult(
                success=True,
                total_attempts=attempt,
                attempts=attempts,
            ), value

        if attempt >= max_tries:
            logger.error(
                f"Failed to {description} after {attempt} attempt(s): {error_message}"
            )
            return RetryResult(
                success=False,
                total_attempts=attempt,
                final_error_message=error_message,
                attempts=attempts,
            ), None

        retry_attempt = RetryAttempt(
            attempt_number=attempt,
            error_message=error_message,
            delay_seconds=policy.delay_seconds,
        )
        attempts.append(retry_attempt)

        logger.warning(
            f"Retry attempt {attempt}/{policy.attempts} for {description}: "
            f"{error_message}. Waiting {policy.delay_seconds:.1f}s before retry."
        )

        if on_retry is not None:
            on_retry(retry_attempt)

        sleep(policy.delay_seconds)

    # Unreachable: max_tries is always at least 1
    return RetryResult(
        success=False,
        total_attempts=max_tries,
        final_error_message="Unexpected retry loop exit",
        attempts=attempts,
    ), None
