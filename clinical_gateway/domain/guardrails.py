"""Domain Guardrails - Circuit Breaker for Upstream Calls.

This module provides guardrails to protect the backend platform (and the
gateway's own latency) from cascading failures. The CircuitBreaker monitors
the failure rate of recent platform calls and fails fast while the platform
is struggling, probing again after a cool-down.

Security Impact:
    - Prevents hammering a degraded platform with retries
    - Reduces log noise from repeated failures
    - Provides configurable thresholds per guarded call site

Architecture:
    - Pure domain logic with no infrastructure dependencies
    - Works with Result type from ports to monitor success/failure
    - Thread-safe design; the clock is injectable for tests
"""

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional

from clinical_gateway.domain.ports import Result, UpstreamUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class CircuitBreakerConfig:
    """Configuration for CircuitBreaker behavior.

    Attributes:
        failure_threshold_percent: Percentage of failures that triggers circuit open (0-100)
        window_size: Number of calls to evaluate in the sliding window
        min_calls_before_check: Minimum calls recorded before checking threshold
        reset_timeout_seconds: Time the circuit stays open before allowing a trial call
    """
    failure_threshold_percent: float = 50.0
    window_size: int = 20
    min_calls_before_check: int = 10
    reset_timeout_seconds: float = 30.0


class CircuitBreakerOpenError(UpstreamUnavailableError):
    """Raised when a guarded call is rejected because the circuit is open.

    Attributes:
        name: Name of the breaker that rejected the call
        retry_after: Seconds until a trial call will be allowed
    """

    def __init__(self, name: str, retry_after: float):
        super().__init__(
            "Platform service temporarily unavailable",
            details={"breaker": name, "retry_after": round(retry_after, 1)}
        )
        self.name = name
        self.retry_after = retry_after


class CircuitBreaker:
    """Circuit Breaker for monitoring upstream failure rates.

    States:
        - closed: calls flow; results are recorded in a sliding window
        - open: calls are rejected until reset_timeout_seconds elapse
        - half-open: one trial call is allowed; its result closes or reopens the circuit

    Example Usage:
        ```python
        breaker = CircuitBreaker(CircuitBreakerConfig(), name="platform-api")

        breaker.ensure_closed()
        try:
            response = await send()
        except PlatformAPIError as e:
            breaker.record_result(Result.failure_result(e))
            raise
        breaker.record_result(Result.success_result(response))
        ```
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        name: str = "platform",
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize CircuitBreaker.

        Parameters:
            config: CircuitBreaker configuration (uses defaults if None)
            name: Name used in logs and errors
            clock: Monotonic clock in seconds
        """
        self.config = config or CircuitBreakerConfig()
        self.name = name
        self._clock = clock
        self._results: list[bool] = []  # True for success, False for failure
        self._lock = Lock()
        self._is_open = False
        self._opened_at: Optional[float] = None
        self._half_open = False
        self._total_calls = 0
        self._total_failures = 0

    def record_result(self, result: Result) -> None:
        """Record the outcome of a guarded call and update circuit state.

        Parameters:
            result: Result of the upstream call
        """
        with self._lock:
            is_success = result.is_success()
            self._results.append(is_success)
            self._total_calls += 1
            if not is_success:
                self._total_failures += 1

            while len(self._results) > self.config.window_size:
                self._results.pop(0)

            if self._half_open:
                self._half_open = False
                if is_success:
                    self._close()
                else:
                    self._open(reason="trial call failed")
                return

            if len(self._results) >= self.config.min_calls_before_check:
                self._check_threshold()

    def _failure_rate(self) -> float:
        if not self._results:
            return 0.0
        failures_in_window = sum(1 for r in self._results if not r)
        return failures_in_window / len(self._results) * 100.0

    def _check_threshold(self) -> None:
        failure_rate = self._failure_rate()
        if failure_rate >= self.config.failure_threshold_percent and not self._is_open:
            self._open(
                reason=f"failure rate {failure_rate:.1f}% exceeds threshold "
                       f"{self.config.failure_threshold_percent}%"
            )

    def _open(self, reason: str) -> None:
        self._is_open = True
        self._opened_at = self._clock()
        logger.error(
            f"CircuitBreaker '{self.name}' OPEN: {reason} "
            f"(total: {self._total_failures}/{self._total_calls})"
        )

    def _close(self) -> None:
        self._is_open = False
        self._opened_at = None
        self._results.clear()
        logger.info(f"CircuitBreaker '{self.name}' CLOSED after successful trial call")

    def allow_request(self) -> bool:
        """Check whether a call may proceed, moving to half-open after the cool-down.

        Returns:
            bool: True if the call may be attempted
        """
        with self._lock:
            if not self._is_open:
                return True
            if self._half_open:
                return False
            elapsed = self._clock() - (self._opened_at or 0.0)
            if elapsed >= self.config.reset_timeout_seconds:
                self._half_open = True
                logger.info(f"CircuitBreaker '{self.name}' HALF-OPEN: allowing trial call")
                return True
            return False

    def ensure_closed(self) -> None:
        """Raise CircuitBreakerOpenError when a call may not proceed."""
        if not self.allow_request():
            raise CircuitBreakerOpenError(self.name, self.retry_after())

    def retry_after(self) -> float:
        with self._lock:
            if not self._is_open or self._opened_at is None:
                return 0.0
            remaining = self.config.reset_timeout_seconds - (self._clock() - self._opened_at)
            return max(remaining, 0.0)

    def is_open(self) -> bool:
        """Check if circuit breaker is currently open (half-open counts as open).

        Returns:
            bool: True if circuit is open, False otherwise
        """
        with self._lock:
            return self._is_open

    def reset(self) -> None:
        """Reset the circuit breaker to initial state."""
        with self._lock:
            self._results.clear()
            self._is_open = False
            self._half_open = False
            self._opened_at = None
            self._total_calls = 0
            self._total_failures = 0
            logger.info(f"CircuitBreaker '{self.name}' reset")

    def get_statistics(self) -> dict:
        """Get current statistics about the circuit breaker.

        Returns:
            dict: Statistics including state, totals, window contents and thresholds
        """
        with self._lock:
            failures_in_window = sum(1 for r in self._results if not r)
            return {
                'name': self.name,
                'is_open': self._is_open,
                'half_open': self._half_open,
                'total_calls': self._total_calls,
                'total_failures': self._total_failures,
                'window_size': self.config.window_size,
                'calls_in_window': len(self._results),
                'failures_in_window': failures_in_window,
                'failure_rate': self._failure_rate(),
                'threshold': self.config.failure_threshold_percent,
                'min_calls_before_check': self.config.min_calls_before_check,
            }
