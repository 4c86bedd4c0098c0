"""Circuit breaker guarding requests to the remote data API hosts."""

import logging
import threading
import time
from typing import Dict, Optional

from config.api import APIConfig, CircuitBreakerState
from .error_handling import CircuitBreakerOpenException, ErrorCategory, categorize_error

# Client errors (a malformed query, a validation rule on update) say nothing
# about the health of the host and never trip the breaker.
TRIPPING_CATEGORIES = frozenset(
    {ErrorCategory.NETWORK, ErrorCategory.SERVER, ErrorCategory.TIMEOUT}
)


class CircuitBreaker:
    """Circuit breaker for one API host.

    The breaker never retries. It only refuses new requests for
    ``recovery_timeout`` seconds after ``failure_threshold`` consecutive
    host-level failures, then lets one probe through (half-open).
    """

    def __init__(
        self,
        failure_threshold: int = APIConfig.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
        recovery_timeout: int = APIConfig.CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitBreakerState.CLOSED
        self._logger = logging.getLogger(__name__)
        self.successful_calls = 0
        self.failed_calls = 0

    def record_success(self):
        """Record a successful operation."""
        old_state = self.state
        self.failure_count = 0
        self.state = CircuitBreakerState.CLOSED
        self.last_failure_time = None
        self.successful_calls += 1
        if old_state != CircuitBreakerState.CLOSED:
            self._logger.info(f"Circuit breaker state changed to {self.state}")

    def record_failure(self):
        """Record a failed operation."""
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        self.failed_calls += 1

        if self.state == CircuitBreakerState.HALF_OPEN or (
            self.failure_count >= self.failure_threshold and self.state != CircuitBreakerState.OPEN
        ):
            self.state = CircuitBreakerState.OPEN
            self._logger.warning(
                f"Circuit breaker opened after {self.failure_count} failures. State changed to {self.state}"
            )

    def record_exception(self, exception: Exception) -> bool:
        """Record a failure if the exception reflects host health. Returns True if recorded."""
        if categorize_error(exception) not in TRIPPING_CATEGORIES:
            return False
        self.record_failure()
        return True

    def can_attempt(self) -> bool:
        """Check if we can attempt a request."""
        if self.state == CircuitBreakerState.CLOSED:
            return True
        elif self.state == CircuitBreakerState.OPEN:
            if (
                self.last_failure_time is not None
                and time.monotonic() - self.last_failure_time >= self.recovery_timeout
            ):
                old_state = self.state
                self.state = CircuitBreakerState.HALF_OPEN
                self._logger.info(
                    f"Circuit breaker transitioning to half-open. State changed from {old_state} to {self.state}"
                )
                return True
            return False
        else:  # HALF_OPEN
            return True

    def ensure_can_attempt(self, host: str) -> None:
        """Raise CircuitBreakerOpenException if the host is currently blocked."""
        if not self.can_attempt():
            self._logger.warning(f"Circuit breaker is open for {host}. Request skipped.")
            raise CircuitBreakerOpenException(f"Circuit breaker is open for {host}")

    def is_open(self) -> bool:
        """Check if circuit breaker is open."""
        return self.state == CircuitBreakerState.OPEN


class CircuitBreakerManager:
    """Manages circuit breakers for different hosts."""

    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_breaker(
        self,
        host: str,
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[int] = None,
    ) -> CircuitBreaker:
        """Get or create a circuit breaker for a host.

        Optional parameters are only used if a new CircuitBreaker instance is created.
        """
        with self._lock:
            if host not in self._breakers:
                kwargs = {}
                if failure_threshold is not None:
                    kwargs["failure_threshold"] = failure_threshold
                if recovery_timeout is not None:
                    kwargs["recovery_timeout"] = recovery_timeout
                self._breakers[host] = CircuitBreaker(**kwargs)
            return self._breakers[host]

    def reset(self, host: Optional[str] = None) -> None:
        """Forget breaker state for one host, or for all hosts."""
        with self._lock:
            if host is None:
                self._breakers.clear()
            else:
                self._breakers.pop(host, None)


# Global circuit breaker manager
circuit_breaker_manager = CircuitBreakerManager()
