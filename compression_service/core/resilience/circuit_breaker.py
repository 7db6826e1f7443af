"""
Circuit Breaker Registry for Compression Providers.

This module implements a small, in-process circuit breaker per provider. The
orchestrator owns one ``CircuitBreakerRegistry``; nothing here is a module
level singleton.

MECHANISM OF ACTION:
-------------------
1.  **CLOSED**: The provider is healthy. Attempts are allowed.
    - On Failure: consecutive failure counter increments.
    - On Success: failure counter resets to 0.
    - Threshold Reached: failures >= failure_threshold opens the circuit.

2.  **OPEN**: The provider is down. Attempts are refused without any I/O.
    - Recovery: the first state query after ``reset_timeout_ms`` since the
      last failure moves the circuit to HALF-OPEN (lazy transition).
    - Successes reported while OPEN (late racing attempts) are ignored.

3.  **HALF-OPEN**: Probing mode.
    - ``can_attempt()`` hands out at most ``half_open_max_attempts`` trial
      slots; the slot is taken at check time.
    - On Success: the slot is released and the success counted;
      ``successes_to_close`` consecutive successes close the circuit.
    - On Failure: straight back to OPEN, and the reset timer restarts.

``half_open_max_attempts`` therefore bounds the number of trials in flight
at once, not the total number of trials in a recovery window.

All mutations happen synchronously between await points, so no lock is
needed under a single event loop.
"""

import time
from collections.abc import Callable, Iterable
from dataclasses import replace

from compression_service.core.config.constants import CircuitState, Stage
from compression_service.core.logging.logger import get_logger
from compression_service.models import CircuitBreakerConfig, CircuitBreakerState

logger = get_logger(__name__)


class CircuitBreaker:
    """
    Failure-isolation state machine for a single provider.

    Args:
        name: Provider name (used in logs)
        config: Thresholds and timeouts
        clock: Monotonic clock in seconds, injectable for tests
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitBreakerState()

    @property
    def state(self) -> CircuitState:
        """Current state, applying the lazy OPEN -> HALF-OPEN transition."""
        self._refresh()
        return self._state.state

    @property
    def failures(self) -> int:
        return self._state.failures

    def snapshot(self) -> CircuitBreakerState:
        """Copy of the full breaker state."""
        self._refresh()
        return replace(self._state)

    def _refresh(self) -> None:
        if self._state.state != CircuitState.OPEN:
            return
        elapsed_ms = (self._clock() - self._state.last_failure_time) * 1000
        if elapsed_ms >= self.config.reset_timeout_ms:
            self._transition(CircuitState.HALF_OPEN, elapsed_ms=round(elapsed_ms, 2))
            self._state.half_open_attempts = 0
            self._state.consecutive_successes = 0

    def _transition(self, new_state: CircuitState, **context) -> None:
        old_state = self._state.state
        self._state.state = new_state
        logger.info(
            "Circuit state changed",
            stage=Stage.CB_TRANSITION.value,
            provider=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
            failures=self._state.failures,
            **context,
        )

    def can_attempt(self) -> bool:
        """
        Decide whether an attempt may start now.

        In HALF-OPEN this consumes a trial slot when it returns True.
        """
        self._refresh()
        state = self._state.state

        if state == CircuitState.CLOSED:
            return True

        if state == CircuitState.OPEN:
            return False

        if self._state.half_open_attempts < self.config.half_open_max_attempts:
            self._state.half_open_attempts += 1
            logger.debug(
                "Half-open trial slot granted",
                stage=Stage.CB_STATE_CHECK.value,
                provider=self.name,
                half_open_attempts=self._state.half_open_attempts,
            )
            return True
        return False

    def is_available(self) -> bool:
        """Same answer as can_attempt() without consuming a trial slot."""
        self._refresh()
        state = self._state.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.OPEN:
            return False
        return self._state.half_open_attempts < self.config.half_open_max_attempts

    def record_success(self) -> None:
        state = self._state.state

        if state == CircuitState.OPEN:
            logger.debug(
                "Ignoring success reported while circuit is open",
                stage=Stage.CB_STATE_CHECK.value,
                provider=self.name,
            )
            return

        self._state.failures = 0

        if state == CircuitState.HALF_OPEN:
            self._state.consecutive_successes += 1
            self._state.half_open_attempts = max(0, self._state.half_open_attempts - 1)
            if self._state.consecutive_successes >= self.config.successes_to_close:
                self._transition(CircuitState.CLOSED)
                self._state.half_open_attempts = 0
                self._state.consecutive_successes = 0

    def release_trial(self) -> None:
        """Give back a half-open trial slot whose attempt ended with no outcome."""
        if self._state.state != CircuitState.HALF_OPEN or self._state.half_open_attempts == 0:
            return
        self._state.half_open_attempts -= 1
        logger.debug(
            "Half-open trial slot released",
            stage=Stage.CB_STATE_CHECK.value,
            provider=self.name,
            half_open_attempts=self._state.half_open_attempts,
        )

    def record_failure(self) -> None:
        self._state.failures += 1
        self._state.last_failure_time = self._clock()

        state = self._state.state
        if state == CircuitState.HALF_OPEN:
            self._state.half_open_attempts = 0
            self._state.consecutive_successes = 0
            self._transition(CircuitState.OPEN, reason="half-open trial failed")
        elif state == CircuitState.CLOSED:
            logger.warning(
                "Circuit recorded failure",
                stage=Stage.CB_STATE_CHECK.value,
                provider=self.name,
                failures=self._state.failures,
                threshold=self.config.failure_threshold,
            )
            if self._state.failures >= self.config.failure_threshold:
                self._transition(CircuitState.OPEN, reason="failure threshold reached")


class CircuitBreakerRegistry:
    """One CircuitBreaker per provider, created on first use."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        providers: Iterable[str] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        for name in providers:
            self.get_breaker(name)

    def get_breaker(self, provider: str) -> CircuitBreaker:
        if provider not in self._breakers:
            self._breakers[provider] = CircuitBreaker(provider, self.config, clock=self._clock)
        return self._breakers[provider]

    def can_attempt(self, provider: str) -> bool:
        return self.get_breaker(provider).can_attempt()

    def is_available(self, provider: str) -> bool:
        return self.get_breaker(provider).is_available()

    def record_success(self, provider: str) -> None:
        self.get_breaker(provider).record_success()

    def record_failure(self, provider: str) -> None:
        self.get_breaker(provider).record_failure()

    def release_trial(self, provider: str) -> None:
        self.get_breaker(provider).release_trial()

    def get_state(self, provider: str) -> CircuitBreakerState:
        return self.get_breaker(provider).snapshot()

    def get_all_stats(self) -> dict[str, dict]:
        """``{provider: {"state": ..., "failures": ...}}`` for every known breaker."""
        return {
            name: {"state": breaker.state.value, "failures": breaker.failures}
            for name, breaker in self._breakers.items()
        }
