"""
Tests for retry logic and circuit breaker.
"""

import pytest
from devmonitor.retry import (
    exponential_backoff,
    CircuitBreaker,
    CircuitOpenError,
    should_retry_http_status,
    RetryError,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestExponentialBackoff:
    """Test exponential backoff decorator."""

    def test_success_on_first_try(self):
        """Function that succeeds immediately should not retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.1, sleep=lambda _: None)
        def succeeds():
            call_count[0] += 1
            return "success"

        assert succeeds() == "success"
        assert call_count[0] == 1

    def test_retry_then_succeed(self):
        """Function that fails then succeeds should retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01, sleep=lambda _: None)
        def fails_twice():
            call_count[0] += 1
            if call_count[0] < 3:
                raise ConnectionError("Temporary failure")
            return "success"

        assert fails_twice() == "success"
        assert call_count[0] == 3

    def test_all_retries_exhausted(self):
        """Should raise RetryError after all attempts fail."""
        call_count = [0]

        @exponential_backoff(max_retries=2, base_delay=0.01, sleep=lambda _: None)
        def always_fails():
            call_count[0] += 1
            raise ValueError("Always fails")

        with pytest.raises(RetryError) as excinfo:
            always_fails()

        assert call_count[0] == 3  # Initial + 2 retries
        assert isinstance(excinfo.value.__cause__, ValueError)

    def test_zero_retries(self):
        """max_retries=0 makes a single attempt."""
        call_count = [0]

        @exponential_backoff(max_retries=0, sleep=lambda _: None)
        def always_fails():
            call_count[0] += 1
            raise ConnectionError("down")

        with pytest.raises(RetryError):
            always_fails()
        assert call_count[0] == 1

    def test_only_catches_specified_exceptions(self):
        """Should only retry on specified exception types."""
        call_count = [0]

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exceptions=(ConnectionError,),
            sleep=lambda _: None,
        )
        def raises_value_error():
            call_count[0] += 1
            raise ValueError("Not retryable")

        # Should not retry, raises original exception
        with pytest.raises(ValueError):
            raises_value_error()

        assert call_count[0] == 1

    def test_exponential_delay(self):
        """Delay should increase exponentially."""
        delays = []
        slept = []

        def on_retry_callback(attempt, exception, delay):
            delays.append(delay)

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exponential_base=2.0,
            on_retry=on_retry_callback,
            sleep=slept.append,
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert delays == [0.01, 0.02, 0.04]
        assert slept == delays

    def test_max_delay_cap(self):
        """Delay should not exceed max_delay."""
        slept = []

        @exponential_backoff(
            max_retries=5,
            base_delay=1.0,
            max_delay=2.0,
            exponential_base=3.0,
            sleep=slept.append,
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert slept == [1.0, 2.0, 2.0, 2.0, 2.0]


class TestCircuitBreaker:
    """Test circuit breaker pattern."""

    def failing_func(self):
        raise ConnectionError("Test failure")

    def test_closed_state_allows_calls(self):
        """Circuit starts closed and allows calls."""
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=1)

        assert breaker.call(lambda: "success") == "success"
        assert breaker.state == CircuitBreaker.CLOSED

    def test_passes_arguments(self):
        breaker = CircuitBreaker()
        assert breaker.call(lambda a, b=0: a + b, 2, b=3) == 5

    def test_opens_after_threshold(self):
        """Circuit opens after failure threshold."""
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=1)

        for _ in range(3):
            with pytest.raises(ConnectionError):
                breaker.call(self.failing_func)

        assert breaker.state == CircuitBreaker.OPEN

        with pytest.raises(CircuitOpenError, match="Circuit breaker is OPEN"):
            breaker.call(self.failing_func)

    def test_success_resets_failure_count(self):
        breaker = CircuitBreaker(failure_threshold=2)

        with pytest.raises(ConnectionError):
            breaker.call(self.failing_func)
        breaker.call(lambda: None)

        assert breaker.failure_count == 0
        assert breaker.state == CircuitBreaker.CLOSED

    def test_half_open_after_timeout(self):
        """After the recovery timeout one trial call goes through."""
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=10, clock=clock)

        for _ in range(2):
            with pytest.raises(ConnectionError):
                breaker.call(self.failing_func)

        clock.now += 5
        with pytest.raises(CircuitOpenError):
            breaker.call(self.failing_func)

        clock.now += 6
        with pytest.raises(ConnectionError):
            breaker.call(self.failing_func)

        # failed trial reopens the circuit
        assert breaker.state == CircuitBreaker.OPEN

    def test_closes_on_success_in_half_open(self):
        """Successful call in half-open state closes circuit."""
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=10, clock=clock)

        for _ in range(2):
            with pytest.raises(ConnectionError):
                breaker.call(self.failing_func)

        clock.now += 11
        assert breaker.call(lambda: "success") == "success"
        assert breaker.state == CircuitBreaker.CLOSED

    def test_unexpected_exception_not_counted(self):
        breaker = CircuitBreaker(failure_threshold=1, expected_exception=ConnectionError)

        with pytest.raises(ValueError):
            breaker.call(lambda: int("x"))

        assert breaker.state == CircuitBreaker.CLOSED

    def test_manual_reset(self):
        """Manual reset should close the circuit."""
        breaker = CircuitBreaker(failure_threshold=2)

        for _ in range(2):
            with pytest.raises(ConnectionError):
                breaker.call(self.failing_func)

        assert breaker.state == CircuitBreaker.OPEN

        breaker.reset()
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0


class TestHttpStatus:

    def test_http_status_retry_logic(self):
        """Should correctly identify retryable HTTP status codes."""
        # Retryable
        assert should_retry_http_status(408)  # Timeout
        assert should_retry_http_status(429)  # Rate limit
        assert should_retry_http_status(500)  # Server error
        assert should_retry_http_status(502)  # Bad gateway
        assert should_retry_http_status(503)  # Service unavailable

        # Not retryable
        assert not should_retry_http_status(200)
        assert not should_retry_http_status(404)
        assert not should_retry_http_status(403)
        assert not should_retry_http_status(401)
