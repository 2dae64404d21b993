"""Tests for the backend circuit breaker."""
import time

import pytest

from salon_calendar.circuit_breaker import CircuitBreaker, CircuitBreakerOpen


class TestCircuitBreaker:
    """Test circuit breaker behavior."""

    def test_allows_requests_when_closed(self):
        cb = CircuitBreaker(failure_threshold=3, timeout=1)

        assert cb.call(lambda: "rows") == "rows"
        assert cb.state == "closed"

    def test_opens_after_threshold_failures(self):
        cb = CircuitBreaker(failure_threshold=3, timeout=1)
        attempts = []

        def failing_call():
            attempts.append(1)
            raise ConnectionError("backend down")

        for _ in range(3):
            with pytest.raises(ConnectionError):
                cb.call(failing_call)

        assert cb.state == "open"

        # Fails fast without touching the backend
        with pytest.raises(CircuitBreakerOpen):
            cb.call(failing_call)
        assert len(attempts) == 3

    def test_failed_half_open_attempt_reopens(self):
        cb = CircuitBreaker(failure_threshold=2, timeout=1)

        def failing_call():
            raise ConnectionError("backend down")

        for _ in range(2):
            with pytest.raises(ConnectionError):
                cb.call(failing_call)

        time.sleep(1.1)

        with pytest.raises(ConnectionError):
            cb.call(failing_call)
        assert cb.state == "open"

    def test_closes_on_successful_half_open_attempt(self):
        cb = CircuitBreaker(failure_threshold=2, timeout=1)
        call_count = [0]

        def flaky_call():
            call_count[0] += 1
            if call_count[0] <= 2:
                raise ConnectionError("backend down")
            return "rows"

        for _ in range(2):
            with pytest.raises(ConnectionError):
                cb.call(flaky_call)

        time.sleep(1.1)

        assert cb.call(flaky_call) == "rows"
        assert cb.state == "closed"

    def test_resets_failure_count_on_success(self):
        cb = CircuitBreaker(failure_threshold=3, timeout=1)

        def failing_call():
            raise ConnectionError("backend down")

        for _ in range(2):
            with pytest.raises(ConnectionError):
                cb.call(failing_call)

        cb.call(lambda: "rows")

        for _ in range(2):
            with pytest.raises(ConnectionError):
                cb.call(failing_call)

        assert cb.state == "closed"
