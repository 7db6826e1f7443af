"""
Provider Racer

Runs one attempt per eligible provider concurrently and resolves with the
first success. Each attempt is wrapped in its own bounded retry loop, and
its settled outcome (after retries) is recorded against that provider's
circuit breaker.

Attempts still running when a winner is found keep running by default so
their circuit outcome is still recorded; their payload is discarded. With
``cancel_losing_attempts`` they are cancelled instead, and a cancelled
attempt records nothing beyond giving back any half-open trial slot it
held.
"""

import asyncio
import functools
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from compression_service.core.config.constants import CircuitState, Stage
from compression_service.core.exceptions import (
    AllProvidersFailedError,
    NoProviderAvailableError,
    classify_error,
)
from compression_service.core.logging.logger import get_logger, get_request_id
from compression_service.core.resilience.circuit_breaker import CircuitBreakerRegistry
from compression_service.core.resilience.retry import create_retry_decorator
from compression_service.models import CompressionRequest, CompressionResult
from compression_service.monitoring.metrics_collector import MetricsCollector
from compression_service.providers.base_provider import BaseCompressionProvider

logger = get_logger(__name__)


@dataclass
class AttemptOutcome:
    """Settled result of one provider attempt, retries included."""
    provider: str
    result: CompressionResult | None = None
    error: BaseException | None = None
    latency_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.result is not None


@dataclass
class RaceOutcome:
    """Winner of a race plus the failures observed before it won."""
    result: CompressionResult
    failures: dict[str, BaseException] = field(default_factory=dict)


class ProviderRacer:
    """
    First-success race across providers.

    Args:
        circuits: Registry receiving one success/failure per settled attempt
        metrics: Collector receiving per-provider attempt outcomes
        max_attempts: Tries per provider, first one included
        retry_delay_ms: First backoff
        max_retry_delay_ms: Backoff cap
        cancel_losing_attempts: Cancel in-flight losers once a winner exists
    """

    def __init__(
        self,
        circuits: CircuitBreakerRegistry,
        metrics: MetricsCollector | None = None,
        *,
        max_attempts: int,
        retry_delay_ms: int,
        max_retry_delay_ms: int,
        cancel_losing_attempts: bool = False,
    ):
        self._circuits = circuits
        self._metrics = metrics
        self._retry = create_retry_decorator(
            max_attempts=max_attempts,
            base_delay=retry_delay_ms / 1000,
            max_delay=max_retry_delay_ms / 1000,
        )
        self.cancel_losing_attempts = cancel_losing_attempts
        self._detached: set[asyncio.Task] = set()

    async def race(
        self, providers: Sequence[BaseCompressionProvider], request: CompressionRequest
    ) -> RaceOutcome:
        """
        Race ``providers`` on ``request``.

        STAGE-4.0: Provider race

        Raises:
            NoProviderAvailableError: ``providers`` is empty
            AllProvidersFailedError: Every attempt failed; one reason per provider
        """
        if not providers:
            raise NoProviderAvailableError(
                "No compression providers available (all circuits open or unconfigured)",
                request_id=get_request_id(),
            )

        order = [provider.name for provider in providers]
        pending = {self._start_attempt(provider, request) for provider in providers}
        failures: dict[str, BaseException] = {}
        winner: AttemptOutcome | None = None

        logger.info("Racing providers", stage=Stage.PROVIDER_RACE.value, providers=order)

        try:
            while pending and winner is None:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    outcome = task.result()
                    if outcome.succeeded:
                        if winner is None:
                            winner = outcome
                    else:
                        failures[outcome.provider] = outcome.error
        finally:
            if pending:
                self._release_losers(pending)

        if winner is not None:
            logger.info(
                "Race won",
                stage=Stage.PROVIDER_RACE.value,
                provider=winner.provider,
                failed=list(failures),
                still_running=len(pending),
            )
            return RaceOutcome(result=winner.result, failures=failures)

        ordered_failures = {name: failures[name] for name in order if name in failures}
        raise AllProvidersFailedError(ordered_failures, request_id=get_request_id())

    def _start_attempt(
        self, provider: BaseCompressionProvider, request: CompressionRequest
    ) -> asyncio.Task:
        # A half-open provider reached the race by taking a trial slot.
        holds_trial = self._circuits.get_breaker(provider.name).state == CircuitState.HALF_OPEN
        task = asyncio.create_task(
            self._attempt(provider, request), name=f"compress:{provider.name}"
        )
        if holds_trial:
            task.add_done_callback(functools.partial(self._release_if_cancelled, provider.name))
        return task

    def _release_if_cancelled(self, provider: str, task: asyncio.Task) -> None:
        if task.cancelled():
            self._circuits.release_trial(provider)
            logger.info(
                "Cancelled half-open trial released",
                stage=Stage.PROVIDER_RACE.value,
                provider=provider,
            )

    async def _attempt(
        self, provider: BaseCompressionProvider, request: CompressionRequest
    ) -> AttemptOutcome:
        """
        One provider attempt with retries; records its circuit outcome.

        Never raises, except CancelledError when the attempt is cancelled.
        """
        start_time = time.perf_counter()
        call = self._retry(provider.compress)
        try:
            result = await call(request)
        except Exception as e:
            latency_ms = round((time.perf_counter() - start_time) * 1000, 2)
            self._circuits.record_failure(provider.name)
            self._record(provider.name, classify_error(e).value, latency_ms)
            logger.warning(
                "Provider attempt failed",
                stage=Stage.PROVIDER_RACE.value,
                provider=provider.name,
                error_type=classify_error(e).value,
                error=str(e),
                latency_ms=latency_ms,
            )
            return AttemptOutcome(provider=provider.name, error=e, latency_ms=latency_ms)

        latency_ms = round((time.perf_counter() - start_time) * 1000, 2)
        self._circuits.record_success(provider.name)
        self._record(provider.name, "success", latency_ms)
        return AttemptOutcome(provider=provider.name, result=result, latency_ms=latency_ms)

    def _record(self, provider: str, status: str, latency_ms: float) -> None:
        if self._metrics is not None:
            self._metrics.record_provider_attempt(provider, status, latency_ms)
            self._metrics.set_circuit_state(provider, self._circuits.get_breaker(provider).state.value)

    def _release_losers(self, tasks: set[asyncio.Task]) -> None:
        for task in tasks:
            if self.cancel_losing_attempts:
                task.cancel()
            else:
                self._detached.add(task)
                task.add_done_callback(self._detached.discard)

    @property
    def detached_attempts(self) -> int:
        return len(self._detached)

    async def wait_for_detached(self) -> None:
        """Let losing attempts finish recording their outcomes."""
        if self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)
