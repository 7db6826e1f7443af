"""
Compression Provider Registry

Builds one provider instance per known backend from a
``CompressionServiceConfig``. Every known provider is instantiated, even
without credentials: unconfigured ones still answer health checks with
``unconfigured`` but are never attempted.

Architectural Decision: Centralized provider registration
- Single location mapping provider names to classes and configs
- New backends are added with register_provider_class(), no orchestrator change

Author: System Architect
Date: 2026-10-19
"""

from collections.abc import Callable

import httpx

from compression_service.core.config.constants import ProviderName
from compression_service.core.logging.logger import get_logger
from compression_service.models import CompressionServiceConfig
from compression_service.providers.base_provider import BaseCompressionProvider
from compression_service.providers.cloudinary_provider import CloudinaryProvider
from compression_service.providers.tinypng_provider import TinyPNGProvider

logger = get_logger(__name__)

# name -> callable(config, **provider_kwargs) -> provider
ProviderBuilder = Callable[..., BaseCompressionProvider]

_PROVIDER_BUILDERS: dict[str, ProviderBuilder] = {
    ProviderName.TINYPNG.value: lambda config, **kwargs: TinyPNGProvider(config.tinypng, **kwargs),
    ProviderName.CLOUDINARY.value: lambda config, **kwargs: CloudinaryProvider(
        config.cloudinary, **kwargs
    ),
}


def register_provider_class(name: str, builder: ProviderBuilder) -> None:
    """
    Register a builder for an additional provider.

    Args:
        name: Provider name used in the priority list
        builder: ``builder(config, **kwargs)`` returning a BaseCompressionProvider
    """
    _PROVIDER_BUILDERS[name] = builder
    logger.info("Registered provider builder", stage="5.F", provider=name)


def known_providers() -> list[str]:
    return list(_PROVIDER_BUILDERS)


def build_providers(
    config: CompressionServiceConfig,
    client: httpx.AsyncClient | None = None,
) -> dict[str, BaseCompressionProvider]:
    """
    Instantiate every known provider.

    STAGE-5.F: Provider discovery

    Args:
        config: Service configuration (credentials and timeouts)
        client: Optional shared httpx client handed to every provider

    Returns:
        ``{name: provider}`` with providers named in ``config.provider_priority``
        first, in that order, followed by any other known provider.
    """
    ordered = list(dict.fromkeys([*config.provider_priority, *_PROVIDER_BUILDERS]))
    providers: dict[str, BaseCompressionProvider] = {}

    for name in ordered:
        builder = _PROVIDER_BUILDERS.get(name)
        if builder is None:
            logger.warning("Unknown provider in priority list", stage="5.F", provider=name)
            continue
        providers[name] = builder(
            config,
            timeout_ms=config.timeout_ms,
            download_timeout_ms=config.download_timeout_ms,
            health_timeout_ms=config.health_timeout_ms,
            client=client,
        )

    logger.info(
        "Providers discovered",
        stage="5.F",
        configured=[name for name, p in providers.items() if p.is_configured()],
        unconfigured=[name for name, p in providers.items() if not p.is_configured()],
    )
    return providers
