"""
Retry policy configuration for skill invocation.

Design Pattern: Strategy Pattern
RetryPolicy encapsulates retry behavior, so the invoker's attempt loop
does not change when a step asks for a different backoff curve.

Design Rationale:
- Safe default for a bare step: one attempt, no retries
- Invoker default: 3 attempts starting at 100ms, doubling, capped at 5s
- Steps opt in per workflow definition via `retry: {max_attempts, backoff}`
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, cast


class BackoffKind(Enum):
    """Shape of the delay curve between attempts."""

    EXPONENTIAL = "exponential"
    """delay = initial_delay * multiplier^(attempt-1)"""

    LINEAR = "linear"
    """delay = initial_delay * attempt"""

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for skill retry behavior.

    Controls how many times an invocation is attempted and how long to
    wait between attempts.

    Examples:
        # Simple: just specify max attempts (uses the default delays)
        policy = RetryPolicy.with_max_attempts(3)

        # Named policy: predefined sensible defaults
        policy = RetryPolicy.STANDARD

        # Custom policy: full control
        policy = RetryPolicy(
            max_attempts=5,
            initial_delay_ms=50,
            max_delay_ms=2000,
            backoff_multiplier=2.0,
        )
    """

    max_attempts: int
    """Maximum number of attempts (including the first try).

    For example, max_attempts = 3 means:
    - Attempt 1: immediate (first try)
    - Attempt 2: after initial_delay
    - Attempt 3: after initial_delay * backoff_multiplier
    """

    initial_delay_ms: int = 100
    """Delay before the first retry in milliseconds."""

    max_delay_ms: int = 5000
    """Maximum delay between retries in milliseconds (caps the backoff)."""

    backoff_multiplier: float = 2.0
    """Multiplier for exponential backoff. Ignored for linear backoff."""

    backoff: BackoffKind = BackoffKind.EXPONENTIAL
    """Delay curve."""

    # =========================================================================
    # Predefined Policies
    # =========================================================================

    if TYPE_CHECKING:
        NONE: RetryPolicy
        STANDARD: RetryPolicy
        AGGRESSIVE: RetryPolicy
    else:
        NONE = cast("RetryPolicy", None)
        STANDARD = cast("RetryPolicy", None)
        AGGRESSIVE = cast("RetryPolicy", None)

    @classmethod
    def with_max_attempts(cls, max_attempts: int) -> RetryPolicy:
        """
        Create a policy with custom max_attempts (uses standard delays).

        Args:
            max_attempts: Maximum number of attempts

        Returns:
            RetryPolicy with standard delays
        """
        return replace(cls.STANDARD, max_attempts=max_attempts)

    def with_backoff(self, backoff: BackoffKind) -> RetryPolicy:
        """Return a copy of this policy using a different delay curve."""
        return replace(self, backoff=backoff)

    def delay_for_attempt(self, attempt: int) -> int | None:
        """
        Calculate the delay before the next attempt.

        Exponential: initial_delay * backoff_multiplier^(attempt-1)
        Linear:      initial_delay * attempt
        Both are capped at max_delay.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Delay in milliseconds before the next attempt, or None if no
            attempts remain.

        Example:
            policy = RetryPolicy(max_attempts=3, initial_delay_ms=50)
            policy.delay_for_attempt(1)  # 50
            policy.delay_for_attempt(2)  # 100
            policy.delay_for_attempt(3)  # None (max attempts)
        """
        if attempt >= self.max_attempts:
            return None

        if self.backoff is BackoffKind.LINEAR:
            delay_ms = self.initial_delay_ms * attempt
        else:
            # attempt=1 (first retry): multiplier^0 → initial_delay
            delay_ms = self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1)

        return int(min(delay_ms, self.max_delay_ms))

    def __repr__(self) -> str:
        """Readable representation for debugging."""
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, "
            f"initial_delay_ms={self.initial_delay_ms}, "
            f"max_delay_ms={self.max_delay_ms}, "
            f"backoff_multiplier={self.backoff_multiplier}, "
            f"backoff={self.backoff.value})"
        )


# Initialize predefined policies after class definition
RetryPolicy.NONE = RetryPolicy(
    max_attempts=1, initial_delay_ms=0, max_delay_ms=0, backoff_multiplier=1.0
)

RetryPolicy.STANDARD = RetryPolicy(
    max_attempts=3,
    initial_delay_ms=100,
    max_delay_ms=5000,
    backoff_multiplier=2.0,
)

RetryPolicy.AGGRESSIVE = RetryPolicy(
    max_attempts=10,
    initial_delay_ms=50,
    max_delay_ms=2000,
    backoff_multiplier=1.5,
)


# =============================================================================
# RetryableError - Fine-grained error retry control
# =============================================================================


class RetryableError(Exception):
    """
    Base class for skill errors that can say whether they should be retried.

    Skills raise a subclass to stop the invoker from spending attempts on
    a failure that cannot succeed on retry.

    Example:
        class QuotaError(RetryableError):
            def __init__(self, message: str, is_retryable: bool = True):
                super().__init__(message)
                self._retryable = is_retryable

            def is_retryable(self) -> bool:
                return self._retryable

        # Transient error - retried per policy
        raise QuotaError("Rate limited", is_retryable=True)

        # Permanent error - surfaced immediately
        raise QuotaError("Monthly quota exhausted", is_retryable=False)
    """

    def is_retryable(self) -> bool:
        """
        Returns True if this error is transient and the call should be retried.

        Returns:
            True if retryable, False if permanent
        """
        return True
