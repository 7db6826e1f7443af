"""
Unit Tests for pydantic Settings and their conversion to CompressionServiceConfig
"""

import math

import pytest
from pydantic import ValidationError

from compression_service.core.config.settings import Settings


def make_settings(**values):
    return Settings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "TINIFY_API_KEY",
        "CLOUDINARY_CLOUD_NAME",
        "CLOUDINARY_API_KEY",
        "CLOUDINARY_API_SECRET",
        "COMPRESSION_PROVIDER_PRIORITY",
        "COMPRESSION_QUALITY_TIERS",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.unit
class TestSettings:
    def test_defaults(self):
        settings = make_settings()
        assert settings.COMPRESSION_PROVIDER_PRIORITY == ["tinypng", "cloudinary"]
        assert settings.COMPRESSION_TIMEOUT_MS == 30_000
        assert settings.CB_FAILURE_THRESHOLD == 3
        assert settings.logging.LOG_LEVEL == "INFO"

    def test_application_group(self):
        settings = make_settings(ENVIRONMENT="test", API_PORT=9000, LOG_FORMAT="console")
        assert settings.app.ENVIRONMENT == "test"
        assert settings.app.API_PORT == 9000
        assert settings.logging.LOG_FORMAT == "console"

    def test_log_level_is_normalized(self):
        assert make_settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            make_settings(LOG_LEVEL="LOUD")

    def test_priority_is_normalized(self):
        settings = make_settings(COMPRESSION_PROVIDER_PRIORITY=["Cloudinary", " TinyPNG "])
        assert settings.COMPRESSION_PROVIDER_PRIORITY == ["cloudinary", "tinypng"]

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(COMPRESSION_PROVIDER_PRIORITY=["imgix"])

    def test_tiers_must_ascend(self):
        with pytest.raises(ValidationError):
            make_settings(COMPRESSION_QUALITY_TIERS=[(2048, "good", 1000), (1024, "eco", 800)])

    def test_last_tier_must_be_unbounded(self):
        with pytest.raises(ValidationError):
            make_settings(COMPRESSION_QUALITY_TIERS=[(1024, "good", 1000)])

    def test_priority_from_environment(self, monkeypatch):
        monkeypatch.setenv("COMPRESSION_PROVIDER_PRIORITY", '["cloudinary"]')
        assert make_settings().COMPRESSION_PROVIDER_PRIORITY == ["cloudinary"]


@pytest.mark.unit
class TestToServiceConfig:
    def test_missing_credentials_leave_providers_unconfigured(self):
        config = make_settings().to_service_config()
        assert config.tinypng is None
        assert config.cloudinary is None

    def test_credentials_are_carried(self):
        config = make_settings(
            TINIFY_API_KEY="tiny-key",
            CLOUDINARY_CLOUD_NAME="demo",
            CLOUDINARY_API_KEY="123",
            CLOUDINARY_API_SECRET="s3cr3t",
        ).to_service_config()
        assert config.tinypng.api_key == "tiny-key"
        assert config.cloudinary.cloud_name == "demo"
        assert config.cloudinary.api_secret == "s3cr3t"

    def test_partial_cloudinary_credentials(self):
        config = make_settings(CLOUDINARY_CLOUD_NAME="demo").to_service_config()
        assert config.cloudinary.cloud_name == "demo"
        assert config.cloudinary.api_key == ""

    def test_numeric_settings_are_carried(self):
        config = make_settings(
            COMPRESSION_MAX_RETRIES=4,
            COMPRESSION_RETRY_DELAY_MS=250,
            CB_FAILURE_THRESHOLD=5,
            CB_HALF_OPEN_MAX_ATTEMPTS=2,
            COMPRESSION_CANCEL_LOSING_ATTEMPTS=True,
        ).to_service_config()
        assert config.max_retries == 4
        assert config.retry_delay_ms == 250
        assert config.circuit_breaker.failure_threshold == 5
        assert config.circuit_breaker.half_open_max_attempts == 2
        assert config.cancel_losing_attempts is True

    def test_quality_tiers_are_converted(self):
        config = make_settings(
            COMPRESSION_QUALITY_TIERS=[(1024, "good", 1200), (float("inf"), "low", 500)]
        ).to_service_config()
        assert [tier.quality for tier in config.quality_tiers] == ["good", "low"]
        assert math.isinf(config.quality_tiers[-1].max_size)
        assert config.quality_tiers[0].width == 1200


@pytest.mark.unit
class TestSettingsSingleton:
    def test_reload_replaces_global_instance(self, monkeypatch):
        from compression_service.core.config.settings import get_settings, reload_settings

        monkeypatch.setenv("TINIFY_API_KEY", "from-env")
        settings = reload_settings()
        assert get_settings() is settings
        assert settings.TINIFY_API_KEY == "from-env"

        monkeypatch.delenv("TINIFY_API_KEY")
        assert reload_settings().TINIFY_API_KEY is None
