"""
Quality Tier Selector

Maps an input size to a compression policy: bigger inputs get more
aggressive quality settings and a smaller target width. Selection is the
first tier whose ``max_size`` is at least the input size, so with a valid
table the result is monotonic in size and every size matches some tier.
"""

from collections.abc import Sequence

from compression_service.core.config.constants import Stage
from compression_service.core.exceptions import ConfigurationError
from compression_service.core.logging.logger import get_logger
from compression_service.models import DEFAULT_QUALITY_TIERS, QualityTier

logger = get_logger(__name__)


def validate_tiers(tiers: Sequence[QualityTier]) -> tuple[QualityTier, ...]:
    """
    Check a tier table.

    Raises:
        ConfigurationError: Empty table, sizes not strictly ascending, or a
            bounded last tier
    """
    tiers = tuple(tiers)
    if not tiers:
        raise ConfigurationError("Quality tier table must not be empty")

    for previous, current in zip(tiers, tiers[1:]):
        if current.max_size <= previous.max_size:
            raise ConfigurationError(
                "Quality tiers must be strictly ascending by max_size",
                details={"previous": previous.max_size, "current": current.max_size},
            )

    if not tiers[-1].unbounded:
        raise ConfigurationError(
            "The last quality tier must be unbounded",
            details={"max_size": tiers[-1].max_size},
        ).with_suggestion("End the table with a tier whose max_size is infinity")

    return tiers


class QualityTierSelector:
    """Pure, size-based tier lookup over a validated table."""

    def __init__(self, tiers: Sequence[QualityTier] = DEFAULT_QUALITY_TIERS):
        self.tiers = validate_tiers(tiers)

    def select_tier(self, byte_size: int) -> QualityTier:
        for tier in self.tiers:
            if byte_size <= tier.max_size:
                logger.debug(
                    "Quality tier selected",
                    stage=Stage.TIER_SELECTION.value,
                    byte_size=byte_size,
                    quality=tier.quality,
                    width=tier.width,
                )
                return tier
        # Unreachable with a validated table
        return self.tiers[-1]


def select_tier(byte_size: int, tiers: Sequence[QualityTier] = DEFAULT_QUALITY_TIERS) -> QualityTier:
    """Convenience wrapper for a one-off lookup."""
    return QualityTierSelector(tiers).select_tier(byte_size)
