"""
Unit Tests for CompressionOrchestrator

Exercises the full compress() lifecycle against stub providers: tier
selection, circuit gating, racing, deduplication, failure categories,
metrics and introspection.
"""

import asyncio
import time

import pytest

from compression_service.core.config.constants import CircuitState, FailureCategory, HealthState
from compression_service.core.config.settings import Settings
from compression_service.core.exceptions import (
    AllProvidersFailedError,
    InvalidImageError,
    NoProviderAvailableError,
    ProviderAPIError,
    ProviderTimeoutError,
)
from compression_service.core.logging.logger import get_request_id, set_request_id
from compression_service.models import CircuitBreakerConfig
from compression_service.services.compression_orchestrator import (
    CompressionOrchestrator,
    create_compression_orchestrator,
)
from tests.test_fixtures.provider_factory import StubProvider

KB = 1024
MB = 1024 * KB


@pytest.fixture
def make_orchestrator(make_config, fake_clock):
    def _make(*providers, priority=None, **overrides):
        names = priority or tuple(p.name for p in providers)
        return CompressionOrchestrator(
            make_config(priority=names, **overrides),
            providers={p.name: p for p in providers},
            clock=fake_clock,
        )

    return _make


@pytest.mark.unit
class TestCompressHappyPath:
    @pytest.mark.asyncio
    async def test_tier_drives_request(self, make_orchestrator, provider_factory):
        alpha = provider_factory.success_provider("alpha")
        orchestrator = make_orchestrator(alpha)

        small = await orchestrator.compress(b"x" * (400 * KB))
        large = await orchestrator.compress(b"x" * (2 * MB))

        assert (small.method, small.quality) == ("alpha@1000px", "good")
        assert (large.method, large.quality) == ("alpha@800px", "eco")

    @pytest.mark.asyncio
    async def test_metrics_after_success(self, make_orchestrator, provider_factory, image_bytes):
        orchestrator = make_orchestrator(provider_factory.success_provider("alpha"))

        result = await orchestrator.compress(image_bytes)
        metrics = orchestrator.get_metrics()

        assert result.latency_ms >= 0
        assert metrics["requests_total"] == 1
        assert metrics["requests_success"] == 1
        assert metrics["requests_failed"] == 0
        assert metrics["bytes_processed"] == len(image_bytes)
        assert metrics["bytes_saved"] == len(image_bytes) - len(b"compressed")
        assert metrics["compressions_by_provider"]["alpha"] == 1
        assert metrics["uptime_ms"] >= 0

    @pytest.mark.asyncio
    async def test_empty_input_is_rejected(self, make_orchestrator, provider_factory):
        alpha = provider_factory.success_provider("alpha")
        with pytest.raises(InvalidImageError):
            await make_orchestrator(alpha).compress(b"")
        assert alpha.calls == 0


@pytest.mark.unit
class TestScenarios:
    @pytest.mark.asyncio
    async def test_scenario_c_open_circuit_skips_provider(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        alpha = provider_factory.timeout_provider("alpha")
        beta = provider_factory.slow_provider("beta", delay=0.02)
        orchestrator = make_orchestrator(alpha, beta)

        for _ in range(3):
            result = await orchestrator.compress(image_bytes)
            assert result.provider == "beta"
            await orchestrator.wait_for_background_tasks()

        assert orchestrator.get_circuits()["alpha"]["state"] == CircuitState.OPEN.value
        alpha_calls = alpha.calls

        result = await orchestrator.compress(image_bytes)
        assert result.provider == "beta"
        assert alpha.calls == alpha_calls
        assert beta.calls == 4

    @pytest.mark.asyncio
    async def test_scenario_d_failure_recorded_but_not_surfaced(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        alpha = provider_factory.failing_provider("alpha")
        beta = provider_factory.slow_provider("beta", delay=0.02)
        orchestrator = make_orchestrator(alpha, beta)

        result = await orchestrator.compress(image_bytes)
        await orchestrator.wait_for_background_tasks()

        assert result.provider == "beta"
        assert orchestrator.get_circuits()["alpha"]["failures"] == 1
        metrics = orchestrator.get_metrics()
        assert metrics["failures_by_provider"]["alpha"] == 1
        assert metrics["requests_failed"] == 0

    @pytest.mark.asyncio
    async def test_scenario_e_shared_dedupe_key_runs_once(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        alpha = provider_factory.slow_provider("alpha", delay=0.02)
        orchestrator = make_orchestrator(alpha)

        first, second = await asyncio.gather(
            orchestrator.compress(image_bytes, dedupe_key="img1"),
            orchestrator.compress(image_bytes, dedupe_key="img1"),
        )

        assert alpha.calls == 1
        assert first is second
        assert orchestrator.in_flight == 0
        assert orchestrator.get_metrics()["requests_total"] == 1

    @pytest.mark.asyncio
    async def test_dedupe_shares_failure(self, make_orchestrator, provider_factory, image_bytes):
        alpha = provider_factory.failing_provider("alpha", delay=0.01)
        orchestrator = make_orchestrator(alpha)

        results = await asyncio.gather(
            orchestrator.compress(image_bytes, dedupe_key="img1"),
            orchestrator.compress(image_bytes, dedupe_key="img1"),
            return_exceptions=True,
        )

        assert all(isinstance(r, AllProvidersFailedError) for r in results)
        assert alpha.calls == 2  # one attempt plus one retry, shared by both callers

    @pytest.mark.asyncio
    async def test_distinct_keys_are_independent(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        alpha = provider_factory.slow_provider("alpha", delay=0.01)
        orchestrator = make_orchestrator(alpha)

        await asyncio.gather(
            orchestrator.compress(image_bytes, dedupe_key="a"),
            orchestrator.compress(image_bytes, dedupe_key="b"),
            orchestrator.compress(image_bytes),
        )
        assert alpha.calls == 3

    @pytest.mark.asyncio
    async def test_empty_dedupe_key_is_not_shared(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        alpha = provider_factory.slow_provider("alpha", delay=0.01)
        orchestrator = make_orchestrator(alpha)

        await asyncio.gather(
            orchestrator.compress(image_bytes, dedupe_key=""),
            orchestrator.compress(image_bytes, dedupe_key=""),
        )
        assert alpha.calls == 2
        assert orchestrator.get_metrics()["requests_total"] == 2


@pytest.mark.unit
class TestNoProviderAvailable:
    @pytest.mark.asyncio
    async def test_nothing_configured(self, make_orchestrator, provider_factory, image_bytes):
        orchestrator = make_orchestrator(provider_factory.unconfigured_provider("alpha"))

        with pytest.raises(NoProviderAvailableError) as exc_info:
            await orchestrator.compress(image_bytes)

        error = exc_info.value
        assert error.category == FailureCategory.STRUCTURAL
        assert "suggestion" in error.details
        assert orchestrator.get_metrics()["requests_failed"] == 1

    @pytest.mark.asyncio
    async def test_fast_fail_does_no_provider_io(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        alpha = provider_factory.unconfigured_provider("alpha")
        beta = provider_factory.slow_provider("beta", delay=5)
        orchestrator = make_orchestrator(alpha, beta)
        for _ in range(3):
            orchestrator.circuits.record_failure("beta")

        start = time.perf_counter()
        with pytest.raises(NoProviderAvailableError):
            await orchestrator.compress(image_bytes)
        elapsed_ms = (time.perf_counter() - start) * 1000

        assert elapsed_ms < 50
        assert alpha.calls == 0
        assert beta.calls == 0

    @pytest.mark.asyncio
    async def test_all_circuits_open_fails_without_provider_calls(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        alpha = provider_factory.success_provider("alpha")
        beta = provider_factory.success_provider("beta")
        orchestrator = make_orchestrator(alpha, beta)
        for name in ("alpha", "beta"):
            for _ in range(3):
                orchestrator.circuits.record_failure(name)

        assert orchestrator.has_available_provider() is False
        with pytest.raises(NoProviderAvailableError):
            await orchestrator.compress(image_bytes)
        assert alpha.calls == 0
        assert beta.calls == 0

    @pytest.mark.asyncio
    async def test_provider_outside_priority_is_never_attempted(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        alpha = provider_factory.success_provider("alpha")
        extra = provider_factory.success_provider("extra")
        orchestrator = make_orchestrator(alpha, extra, priority=("alpha",))

        await orchestrator.compress(image_bytes)
        assert orchestrator.get_configured_providers() == ["alpha"]
        assert extra.calls == 0


@pytest.mark.unit
class TestCircuitRecovery:
    @pytest.mark.asyncio
    async def test_half_open_trials_then_close(self, make_config, fake_clock, image_bytes):
        alpha = StubProvider(
            "alpha",
            outcomes=[ProviderTimeoutError("slow"), ProviderTimeoutError("slow")],
            delay=0.01,
        )
        orchestrator = CompressionOrchestrator(
            make_config(
                priority=("alpha",),
                circuit_breaker=CircuitBreakerConfig(
                    failure_threshold=1,
                    reset_timeout_ms=1000,
                    half_open_max_attempts=1,
                    successes_to_close=2,
                ),
            ),
            providers={"alpha": alpha},
            clock=fake_clock,
        )

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.compress(image_bytes)
        assert exc_info.value.category == FailureCategory.TRANSIENT
        assert orchestrator.get_circuits()["alpha"]["state"] == "open"

        with pytest.raises(NoProviderAvailableError):
            await orchestrator.compress(image_bytes)

        fake_clock.advance(1)
        assert orchestrator.get_circuits()["alpha"]["state"] == "half-open"

        # Only one trial may be in flight; the concurrent call fails fast
        results = await asyncio.gather(
            orchestrator.compress(image_bytes),
            orchestrator.compress(image_bytes),
            return_exceptions=True,
        )
        assert results[0].provider == "alpha"
        assert isinstance(results[1], NoProviderAvailableError)
        assert alpha.calls == 3
        assert orchestrator.get_circuits()["alpha"]["state"] == "half-open"

        await orchestrator.compress(image_bytes)
        assert orchestrator.get_circuits()["alpha"]["state"] == "closed"

    @pytest.mark.asyncio
    async def test_cancelled_half_open_loser_can_still_recover(
        self, make_config, fake_clock, image_bytes
    ):
        alpha = StubProvider("alpha", delay=0.2)
        beta = StubProvider(
            "beta",
            outcomes=[None],
            default_error=ProviderAPIError("beta down", provider="beta", status_code=500),
        )
        orchestrator = CompressionOrchestrator(
            make_config(
                priority=("alpha", "beta"),
                cancel_losing_attempts=True,
                circuit_breaker=CircuitBreakerConfig(
                    failure_threshold=1,
                    reset_timeout_ms=1000,
                    half_open_max_attempts=1,
                    successes_to_close=1,
                ),
            ),
            providers={"alpha": alpha, "beta": beta},
            clock=fake_clock,
        )
        orchestrator.circuits.record_failure("alpha")
        fake_clock.advance(1)

        result = await orchestrator.compress(image_bytes)
        await asyncio.sleep(0.01)

        assert result.provider == "beta"
        assert alpha.cancelled == 1
        assert orchestrator.get_circuits()["alpha"]["state"] == "half-open"
        assert orchestrator.circuits.is_available("alpha") is True

        # Next trial is granted and its success closes the circuit
        result = await orchestrator.compress(image_bytes)
        assert result.provider == "alpha"
        assert orchestrator.get_circuits()["alpha"]["state"] == "closed"


@pytest.mark.unit
class TestFailureCategories:
    @pytest.mark.asyncio
    async def test_all_quota_is_exhausted(self, make_orchestrator, provider_factory, image_bytes):
        alpha = provider_factory.quota_provider("alpha")
        beta = provider_factory.quota_provider("beta")
        orchestrator = make_orchestrator(alpha, beta)

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.compress(image_bytes)

        assert exc_info.value.category == FailureCategory.EXHAUSTED
        assert alpha.calls == 1  # quota errors are not retried
        assert orchestrator.get_metrics()["requests_failed"] == 1

    @pytest.mark.asyncio
    async def test_rejections_are_not_retryable(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        orchestrator = make_orchestrator(provider_factory.rejecting_provider("alpha"))
        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.compress(image_bytes)
        assert exc_info.value.category == FailureCategory.REJECTED
        assert exc_info.value.is_retryable is False


@pytest.mark.unit
class TestRequestIdCorrelation:
    @pytest.mark.asyncio
    async def test_request_id_is_generated_and_cleared(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        alpha = provider_factory.success_provider("alpha")
        await make_orchestrator(alpha).compress(image_bytes)

        assert len(alpha.seen_request_ids[0]) == 12
        assert get_request_id() is None

    @pytest.mark.asyncio
    async def test_inherited_request_id_is_kept(
        self, make_orchestrator, provider_factory, image_bytes
    ):
        alpha = provider_factory.success_provider("alpha")
        set_request_id("caller-1")
        await make_orchestrator(alpha).compress(image_bytes, dedupe_key="img1")

        assert alpha.seen_request_ids == ["caller-1"]
        assert get_request_id() == "caller-1"


@pytest.mark.unit
class TestIntrospection:
    def test_should_compress_threshold(self, make_orchestrator, provider_factory):
        orchestrator = make_orchestrator(provider_factory.success_provider("alpha"))
        assert orchestrator.should_compress(100 * KB) is True
        assert orchestrator.should_compress(100 * KB - 1) is False

    def test_select_tier(self, make_orchestrator, provider_factory):
        orchestrator = make_orchestrator(provider_factory.success_provider("alpha"))
        assert orchestrator.select_tier(2 * MB).width == 800

    @pytest.mark.asyncio
    async def test_health_covers_unconfigured_providers(self, make_orchestrator, provider_factory):
        alpha = provider_factory.success_provider("alpha")
        gamma = provider_factory.unconfigured_provider("gamma")
        orchestrator = make_orchestrator(alpha, gamma)

        health = await orchestrator.check_health()

        assert health["alpha"].status == HealthState.OK
        assert health["gamma"].status == HealthState.UNCONFIGURED
        assert list(orchestrator.get_quotas()) == ["alpha"]
        assert list(orchestrator.get_circuits()) == ["alpha"]
        assert list(orchestrator.get_debug_info()) == ["alpha"]

    @pytest.mark.asyncio
    async def test_health_survives_unreadable_response(self, make_orchestrator, provider_factory):
        class GarbledProvider(StubProvider):
            async def _probe_health(self, start_time):
                raise ValueError("could not convert string to float: 'n/a'")

        alpha = provider_factory.success_provider("alpha")
        orchestrator = make_orchestrator(alpha, GarbledProvider("beta"))

        health = await orchestrator.check_health()

        assert health["alpha"].status == HealthState.OK
        assert health["beta"].status == HealthState.ERROR
        assert health["beta"].health_score == 0
        assert "could not convert" in health["beta"].message

    @pytest.mark.asyncio
    async def test_quota_snapshot_is_a_copy(self, make_orchestrator, provider_factory):
        alpha = provider_factory.success_provider("alpha")
        orchestrator = make_orchestrator(alpha)

        quota = orchestrator.get_quotas()["alpha"]
        quota.used = 999
        assert orchestrator.get_quotas()["alpha"].used == 0


@pytest.mark.unit
class TestFactory:
    @pytest.mark.asyncio
    async def test_create_from_settings(self, monkeypatch):
        for name in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None, TINIFY_API_KEY="tiny-key")
        orchestrator = create_compression_orchestrator(settings)

        assert set(orchestrator.providers) == {"tinypng", "cloudinary"}
        assert orchestrator.get_configured_providers() == ["tinypng"]
        assert list(orchestrator.get_circuits()) == ["tinypng"]
        await orchestrator.aclose()
