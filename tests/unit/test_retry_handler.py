"""
Unit tests for retry handling and the circuit breaker.
"""

import httpx
import pytest

from log_cruncher.monitoring import (
    CircuitBreaker,
    ErrorCategory,
    ErrorClassifier,
    RetryConfig,
    RetryManager,
    with_retry,
)


def status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://example.net/")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError("boom", request=request, response=response)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestErrorClassifier:
    """Tests for error classification."""

    @pytest.mark.parametrize(
        "status,category",
        [
            (429, ErrorCategory.RATE_LIMITED),
            (503, ErrorCategory.SERVICE_UNAVAILABLE),
            (500, ErrorCategory.TRANSIENT),
            (404, ErrorCategory.PERMANENT),
        ],
    )
    def test_http_status(self, status, category):
        assert ErrorClassifier.classify(status_error(status)) == category

    def test_network_errors_are_transient(self):
        error = httpx.ConnectError("connection refused")
        assert ErrorClassifier.classify(error) == ErrorCategory.TRANSIENT

    def test_value_error_is_permanent(self):
        assert ErrorClassifier.classify(ValueError("bad")) == ErrorCategory.PERMANENT

    def test_unknown(self):
        assert ErrorClassifier.classify(RuntimeError("odd")) == ErrorCategory.UNKNOWN


class TestRetryManager:
    """Tests for execute_with_retry."""

    @pytest.fixture
    def sleeps(self) -> list:
        return []

    @pytest.fixture
    def manager(self, sleeps) -> RetryManager:
        return RetryManager(
            config=RetryConfig(max_retries=2, base_delay_seconds=1.0, jitter=False),
            sleep=sleeps.append,
        )

    def test_succeeds_after_transient_failures(self, manager, sleeps):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise status_error(500)
            return "ok"

        result = manager.execute_with_retry(flaky)

        assert result.success
        assert result.result == "ok"
        assert result.attempts == 3
        assert sleeps == [1.0, 2.0]

    def test_permanent_error_not_retried(self, manager, sleeps):
        def missing():
            raise status_error(404)

        result = manager.execute_with_retry(missing)

        assert not result.success
        assert result.attempts == 1
        assert sleeps == []
        assert isinstance(result.last_error, httpx.HTTPStatusError)

    def test_gives_up_after_max_retries(self, manager):
        def down():
            raise status_error(500)

        result = manager.execute_with_retry(down)

        assert not result.success
        assert result.attempts == 3
        assert len(result.errors) == 3


class TestCircuitBreaker:
    """Tests for the circuit breaker."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, clock=FakeClock())
        breaker.record_failure()
        assert not breaker.is_open
        breaker.record_failure()
        assert breaker.is_open

    def test_half_open_after_timeout(self):
        clock = FakeClock()
        breaker = CircuitBreaker(
            failure_threshold=1, recovery_timeout_seconds=30, clock=clock
        )
        breaker.record_failure()
        assert breaker.is_open

        clock.now = 30.0
        assert not breaker.is_open

        breaker.record_success()
        assert breaker.failure_count == 0
        assert breaker.opened_at is None

    def test_open_circuit_skips_calls(self):
        breaker = CircuitBreaker(failure_threshold=1, clock=FakeClock())
        breaker.record_failure()
        manager = RetryManager(circuit_breaker=breaker, sleep=lambda _: None)
        calls = []

        result = manager.execute_with_retry(lambda: calls.append(1))

        assert not result.success
        assert calls == []
        assert result.errors[0]["category"] == "circuit_breaker"


class TestWithRetry:
    def test_reraises_last_error(self):
        @with_retry(RetryConfig(max_retries=0))
        def always_fails():
            raise ValueError("nope")

        with pytest.raises(ValueError, match="nope"):
            always_fails()

    def test_returns_value(self):
        @with_retry(RetryConfig(max_retries=0))
        def works():
            return 42

        assert works() == 42
