"""
Unit Tests for CircuitBreaker

Tests the state machine (closed -> open -> half-open -> closed), lazy
reset-timeout transition, trial slot accounting and the registry.
"""

import pytest

from compression_service.core.config.constants import CircuitState
from compression_service.core.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
)
from compression_service.models import CircuitBreakerConfig


@pytest.fixture
def breaker(circuit_config, fake_clock):
    return CircuitBreaker("tinypng", circuit_config, clock=fake_clock)


def trip(breaker, times=3):
    for _ in range(times):
        breaker.record_failure()


@pytest.mark.unit
class TestClosedState:
    def test_initial_state_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.can_attempt() is True
        assert breaker.failures == 0

    def test_failures_below_threshold_keep_circuit_closed(self, breaker):
        trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failures == 2

    def test_success_resets_failure_count(self, breaker):
        trip(breaker, 2)
        breaker.record_success()
        assert breaker.failures == 0
        trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

    def test_threshold_opens_circuit(self, breaker):
        trip(breaker, 3)
        assert breaker.state == CircuitState.OPEN
        assert breaker.can_attempt() is False
        assert breaker.is_available() is False


@pytest.mark.unit
class TestOpenState:
    def test_stays_open_before_reset_timeout(self, breaker, fake_clock):
        trip(breaker)
        fake_clock.advance(59.999)
        assert breaker.state == CircuitState.OPEN

    def test_moves_to_half_open_after_reset_timeout(self, breaker, fake_clock):
        trip(breaker)
        fake_clock.advance(60)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_success_while_open_is_ignored(self, breaker):
        trip(breaker)
        breaker.record_success()
        assert breaker.state == CircuitState.OPEN
        assert breaker.failures == 3

    def test_failure_while_open_restarts_reset_timer(self, breaker, fake_clock):
        trip(breaker)
        fake_clock.advance(30)
        breaker.record_failure()
        fake_clock.advance(30)
        assert breaker.state == CircuitState.OPEN
        fake_clock.advance(30)
        assert breaker.state == CircuitState.HALF_OPEN


@pytest.mark.unit
class TestHalfOpenState:
    @pytest.fixture
    def half_open(self, breaker, fake_clock):
        trip(breaker)
        fake_clock.advance(60)
        assert breaker.state == CircuitState.HALF_OPEN
        return breaker

    def test_grants_exactly_max_trial_attempts(self, half_open):
        assert half_open.can_attempt() is True
        assert half_open.can_attempt() is False

    def test_is_available_does_not_consume_slot(self, half_open):
        assert half_open.is_available() is True
        assert half_open.is_available() is True
        assert half_open.can_attempt() is True
        assert half_open.is_available() is False

    def test_trial_failure_reopens(self, half_open):
        assert half_open.can_attempt()
        half_open.record_failure()
        assert half_open.state == CircuitState.OPEN
        assert half_open.can_attempt() is False

    def test_successes_to_close(self, half_open):
        assert half_open.can_attempt()
        half_open.record_success()
        assert half_open.state == CircuitState.HALF_OPEN

        # Slot released by the successful trial
        assert half_open.can_attempt()
        half_open.record_success()
        assert half_open.state == CircuitState.CLOSED
        assert half_open.failures == 0

    def test_release_trial_frees_slot(self, half_open):
        assert half_open.can_attempt() is True
        assert half_open.is_available() is False

        half_open.release_trial()
        assert half_open.state == CircuitState.HALF_OPEN
        assert half_open.is_available() is True
        assert half_open.can_attempt() is True

    def test_release_trial_outside_half_open_is_noop(self, breaker):
        breaker.release_trial()
        assert breaker.snapshot().half_open_attempts == 0
        trip(breaker)
        breaker.release_trial()
        assert breaker.state == CircuitState.OPEN

    def test_multiple_concurrent_trials(self, fake_clock):
        config = CircuitBreakerConfig(
            failure_threshold=1, reset_timeout_ms=1000, half_open_max_attempts=3
        )
        breaker = CircuitBreaker("cloudinary", config, clock=fake_clock)
        breaker.record_failure()
        fake_clock.advance(1)

        granted = [breaker.can_attempt() for _ in range(5)]
        assert granted == [True, True, True, False, False]

    def test_snapshot_is_a_copy(self, half_open):
        half_open.can_attempt()
        snapshot = half_open.snapshot()
        assert snapshot.state == CircuitState.HALF_OPEN
        assert snapshot.half_open_attempts == 1
        snapshot.half_open_attempts = 99
        assert half_open.snapshot().half_open_attempts == 1


@pytest.mark.unit
class TestCircuitBreakerRegistry:
    def test_get_breaker_returns_existing_instance(self, circuit_config):
        registry = CircuitBreakerRegistry(circuit_config)
        assert registry.get_breaker("tinypng") is registry.get_breaker("tinypng")

    def test_providers_are_registered_up_front(self, circuit_config):
        registry = CircuitBreakerRegistry(circuit_config, providers=["tinypng", "cloudinary"])
        assert registry.get_all_stats() == {
            "tinypng": {"state": "closed", "failures": 0},
            "cloudinary": {"state": "closed", "failures": 0},
        }

    def test_breakers_are_independent(self, circuit_config, fake_clock):
        registry = CircuitBreakerRegistry(
            circuit_config, providers=["tinypng", "cloudinary"], clock=fake_clock
        )
        for _ in range(3):
            registry.record_failure("tinypng")

        assert registry.can_attempt("tinypng") is False
        assert registry.can_attempt("cloudinary") is True
        assert registry.get_state("tinypng").state == CircuitState.OPEN
        assert registry.get_all_stats()["tinypng"] == {"state": "open", "failures": 3}
