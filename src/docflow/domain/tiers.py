from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TierConfig:
    """Extraction service pricing tier limits."""

    name: str
    max_tokens: int
    refill_rate: float
    max_concurrent: int
    description: str


TIER_CONFIGS: dict[str, TierConfig] = {
    "STANDARD": TierConfig(
        name="STANDARD",
        max_tokens=15,
        refill_rate=15.0,
        max_concurrent=15,
        description="S0 Standard Tier - 15 req/sec",
    ),
    "FREE": TierConfig(
        name="FREE",
        max_tokens=1,
        refill_rate=1.0,
        max_concurrent=1,
        description="F0 Free Tier - 1 req/sec",
    ),
}


def get_tier_config(tier: str | None) -> TierConfig:
    """Return the tier config by name (case-insensitive), defaulting to FREE."""

    normalized = (tier or "").strip().upper()
    return TIER_CONFIGS.get(normalized, TIER_CONFIGS["FREE"])
