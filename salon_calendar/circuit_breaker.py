"""Circuit breaker for the remote calendar backend.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Backend failing, requests fail immediately
- HALF_OPEN: Timeout elapsed, one trial request allowed
"""
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

from salon_calendar.logging_config import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when the circuit is open (fail fast)."""
    pass


class CircuitBreaker:
    """Circuit breaker for backend calls, safe to share between worker threads."""

    def __init__(self, failure_threshold: int = 5, timeout: int = 60):
        """
        Args:
            failure_threshold: Consecutive failures before opening the circuit
            timeout: Seconds to wait before a half-open trial
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self._state = CircuitState.CLOSED
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state.value

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute func with circuit breaker protection.

        Raises:
            CircuitBreakerOpen: If the circuit is open
            Exception: Whatever func raises
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self._state = CircuitState.HALF_OPEN
                    logger.info("circuit_half_open")
                else:
                    raise CircuitBreakerOpen(
                        f"Circuit breaker is OPEN. "
                        f"Retry after {self._time_until_retry():.1f}s"
                    )

        try:
            result = func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        return time.monotonic() - self.last_failure_time >= self.timeout

    def _time_until_retry(self) -> float:
        if self.last_failure_time is None:
            return 0
        return max(0, self.timeout - (time.monotonic() - self.last_failure_time))

    def _on_success(self):
        with self._lock:
            self.failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                logger.info("circuit_closed")

    def _on_failure(self):
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning("circuit_opened", reason="half_open_trial_failed")
            elif self.failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.error(
                    "circuit_opened",
                    failures=self.failure_count,
                    retry_after_seconds=self.timeout,
                )
