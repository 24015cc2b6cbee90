"""
Backoff, error classification and a circuit breaker for outbound lookups.

The ASN enrichment step calls two public services (PeeringDB once per ASN,
Spamhaus once per run). Both are rate limited and occasionally down, so
every call goes through a RetryManager:

- httpx errors are sorted into categories by type and HTTP status
- only transient categories are retried, with exponential backoff and jitter
- a CircuitBreaker stops a per-ASN loop from hammering a dead upstream
"""

import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import httpx

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class ErrorCategory(Enum):
    """How a failed call should be treated."""

    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


DEFAULT_RETRY_ON = (
    ErrorCategory.TRANSIENT,
    ErrorCategory.RATE_LIMITED,
    ErrorCategory.SERVICE_UNAVAILABLE,
)

# Rate limits and outages back off harder than a dropped connection
BACKOFF_MULTIPLIERS = {
    ErrorCategory.RATE_LIMITED: 2.0,
    ErrorCategory.SERVICE_UNAVAILABLE: 3.0,
}


@dataclass
class RetryConfig:
    """
    Backoff policy.

    The n-th retry (0-indexed) waits base_delay_seconds * exponential_base**n,
    capped at max_delay_seconds, plus or minus jitter_factor of that delay.
    """

    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

    def calculate_delay(
        self, attempt: int, category: ErrorCategory = ErrorCategory.TRANSIENT
    ) -> float:
        delay = self.base_delay_seconds * self.exponential_base**attempt
        delay = min(delay, self.max_delay_seconds)
        delay *= BACKOFF_MULTIPLIERS.get(category, 1.0)
        if self.jitter:
            spread = delay * self.jitter_factor
            delay += random.uniform(-spread, spread)
        return max(0.0, delay)


@dataclass
class RetryResult:
    """
    Outcome of a call made through RetryManager.

    `errors` holds one entry per failed attempt, each with the attempt
    number, message and category.
    """

    success: bool = False
    result: Any = None
    attempts: int = 0
    total_delay_seconds: float = 0.0
    last_error: Optional[Exception] = None
    errors: list[dict] = field(default_factory=list)

    def record_error(self, error: Exception, category: str) -> None:
        self.last_error = error
        self.errors.append(
            {
                "attempt": self.attempts,
                "error": str(error),
                "error_type": type(error).__name__,
                "category": category,
            }
        )


class CircuitBreaker:
    """
    Stops calling an upstream after repeated failures.

    After `failure_threshold` consecutive failures the circuit opens and
    calls are refused until `recovery_timeout_seconds` have passed; the next
    call is then let through (half-open) and closes the circuit on success.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout_seconds = recovery_timeout_seconds
        self._clock = clock
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        if self.opened_at is None:
            return False
        if self._clock() - self.opened_at >= self.recovery_timeout_seconds:
            logger.info("Circuit breaker half-open, allowing a trial call")
            return False
        return True

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("Circuit breaker closed after recovery")
        self.reset()

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.failure_count < self.failure_threshold:
            return
        if self.opened_at is None:
            logger.warning(f"Circuit breaker opened after {self.failure_count} failures")
        self.opened_at = self._clock()

    def reset(self) -> None:
        self.failure_count = 0
        self.opened_at = None


class ErrorClassifier:
    """Sorts lookup failures into retry categories."""

    @classmethod
    def classify_status(cls, status_code: int) -> ErrorCategory:
        if status_code == 429:
            return ErrorCategory.RATE_LIMITED
        if status_code in (502, 503, 504):
            return ErrorCategory.SERVICE_UNAVAILABLE
        if status_code >= 500:
            return ErrorCategory.TRANSIENT
        return ErrorCategory.PERMANENT

    @classmethod
    def classify(cls, error: Exception) -> ErrorCategory:
        if isinstance(error, httpx.HTTPStatusError):
            return cls.classify_status(error.response.status_code)
        if isinstance(
            error,
            (httpx.TimeoutException, httpx.NetworkError, TimeoutError, ConnectionError),
        ):
            return ErrorCategory.TRANSIENT
        # Undecodable or unexpected payloads will not improve on retry
        if isinstance(error, (ValueError, TypeError, KeyError)):
            return ErrorCategory.PERMANENT
        return ErrorCategory.UNKNOWN


class RetryManager:
    """
    Runs a callable with backoff, classification and an optional breaker.

    Example:
        manager = RetryManager(RetryConfig(max_retries=3), CircuitBreaker())
        result = manager.execute_with_retry(client.get, url)
        if result.success:
            response = result.result
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or RetryConfig()
        self.circuit_breaker = circuit_breaker
        self._sleep = sleep

    def execute_with_retry(
        self,
        func: Callable[..., Any],
        *args,
        retry_on: tuple[ErrorCategory, ...] = DEFAULT_RETRY_ON,
        **kwargs,
    ) -> RetryResult:
        """
        Call func(*args, **kwargs) until it succeeds or retrying stops.

        Never raises for failures of func; inspect the returned RetryResult.
        """
        result = RetryResult()
        breaker = self.circuit_breaker

        while result.attempts <= self.config.max_retries:
            result.attempts += 1

            if breaker is not None and breaker.is_open:
                logger.warning("Circuit breaker is open, skipping call")
                result.record_error(
                    ConnectionError("Circuit breaker is open"), "circuit_breaker"
                )
                break

            try:
                result.result = func(*args, **kwargs)
            except Exception as e:
                category = ErrorClassifier.classify(e)
                result.record_error(e, category.value)
                logger.warning(
                    f"Attempt {result.attempts} failed: {e} ({category.value})"
                )
                if category not in retry_on:
                    break
                if breaker is not None:
                    breaker.record_failure()
                if result.attempts > self.config.max_retries:
                    logger.error(f"Giving up after {result.attempts} attempts")
                    break
                delay = self.config.calculate_delay(result.attempts - 1, category)
                logger.info(f"Retrying in {delay:.2f}s")
                result.total_delay_seconds += delay
                self._sleep(delay)
                continue

            result.success = True
            if breaker is not None:
                breaker.record_success()
            break

        return result


def with_retry(
    config: Optional[RetryConfig] = None,
    circuit_breaker: Optional[CircuitBreaker] = None,
) -> Callable[[F], F]:
    """
    Decorator form of RetryManager; re-raises the last error on failure.

    Example:
        @with_retry(RetryConfig(max_retries=3))
        def fetch_drop_list():
            return client.get(url)
    """
    manager = RetryManager(config=config, circuit_breaker=circuit_breaker)

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs):
            result = manager.execute_with_retry(func, *args, **kwargs)
            if result.success:
                return result.result
            raise result.last_error or RuntimeError(f"{func.__name__} failed")

        return wrapper  # type: ignore

    return decorator
