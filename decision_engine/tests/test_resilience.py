"""
Unit tests for shared retry, circuit breaker, configuration and errors.
"""

import pytest

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.config import get_config
from shared.errors import ConfigurationError, EnrichmentError, PatternError
from shared.retry import RetryConfig, RetryError, _calculate_delay, retry_on_exception


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestRetry:
    """Test cases for retry_on_exception."""

    def test_retries_until_success(self):
        attempts = []
        delays = []

        @retry_on_exception((ValueError,), RetryConfig(max_attempts=3, base_delay=0.5, jitter=False), sleep=delays.append)
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ValueError("not yet")
            return "ok"

        assert flaky() == "ok"
        assert len(attempts) == 3
        assert delays == [0.5, 1.0]

    def test_exhausted_retries(self):
        @retry_on_exception((ValueError,), RetryConfig(max_attempts=2, base_delay=0, jitter=False), sleep=lambda _: None)
        def always_fails():
            raise ValueError("nope")

        with pytest.raises(RetryError) as exc_info:
            always_fails()

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, ValueError)

    def test_unlisted_exceptions_propagate(self):
        @retry_on_exception((ValueError,), RetryConfig(max_attempts=3), sleep=lambda _: None)
        def wrong_kind():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            wrong_kind()

    @pytest.mark.parametrize("strategy,attempt,expected", [
        ("exponential", 3, 4.0),
        ("linear", 3, 3.0),
        ("fixed", 3, 1.0),
        ("exponential", 10, 5.0),
    ])
    def test_delay_strategies(self, strategy, attempt, expected):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False, backoff_strategy=strategy)
        assert _calculate_delay(attempt, config) == expected


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=10.0, name="test")

        def failing():
            raise RuntimeError("down")

        for _ in range(2):
            with pytest.raises(RuntimeError):
                breaker.call(failing)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpenException):
            breaker.call(lambda: "ok")

    def test_half_open_recovery(self):
        """Test a successful trial call after the timeout closes the circuit."""
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=10.0, name="test", clock=clock)

        def failing():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            breaker.call(failing)
        assert breaker.is_open()

        clock.now = 11.0
        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.get_state()["state"] == "closed"

    def test_half_open_failure_reopens(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=10.0, name="test", clock=clock)

        def failing():
            raise RuntimeError("down")

        for _ in range(3):
            with pytest.raises(RuntimeError):
                breaker.call(failing)

        clock.now = 20.0
        with pytest.raises(RuntimeError):
            breaker.call(failing)
        assert breaker.is_open()


class TestConfigAndErrors:
    """Test cases for configuration and error types."""

    def test_config_from_environment(self, monkeypatch):
        monkeypatch.setenv("DECISION_REDIS_URL", "redis://cache:6379/1")
        monkeypatch.setenv("DECISION_RETRY_ATTEMPTS", "5")

        config = get_config()

        assert config.redis_url == "redis://cache:6379/1"
        assert config.retry_attempts == 5

    def test_config_overrides(self):
        config = get_config(log_level="debug", gateway_timeout=1.5)

        assert config.log_level == "debug"
        assert config.gateway_timeout == 1.5

    def test_error_responses(self):
        error = ConfigurationError("Invalid settings", {"field": "features"})
        response = error.to_response()

        assert response.code == "CONFIGURATION_ERROR"
        assert response.details == {"field": "features"}
        assert EnrichmentError("/check-attribute", "down").message == "/check-attribute: down"
        assert PatternError("[x", "bad").code == "PATTERN_ERROR"
