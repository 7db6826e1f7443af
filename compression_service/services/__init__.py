"""
Services Module

- CompressionOrchestrator: the compress() entry point and introspection
- ProviderRacer: first-success race with per-provider retry
- QualityTierSelector: size-based compression policy
"""

from .compression_orchestrator import CompressionOrchestrator, create_compression_orchestrator
from .provider_racer import AttemptOutcome, ProviderRacer, RaceOutcome
from .quality_tiers import QualityTierSelector, select_tier, validate_tiers

__all__ = [
    "CompressionOrchestrator",
    "create_compression_orchestrator",
    "ProviderRacer",
    "AttemptOutcome",
    "RaceOutcome",
    "QualityTierSelector",
    "select_tier",
    "validate_tiers",
]
