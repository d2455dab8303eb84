"""
FEE TIER → RATES REGISTRY
Single source of truth for OKX spot maker/taker fee rates
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class FeeTier:
    tier_id: str
    maker_rate: float
    taker_rate: float


FEE_TIERS: Mapping[str, FeeTier] = MappingProxyType({
    "VIP0": FeeTier("VIP0", maker_rate=0.0008, taker_rate=0.0010),
    "VIP1": FeeTier("VIP1", maker_rate=0.0007, taker_rate=0.0009),
    "VIP2": FeeTier("VIP2", maker_rate=0.0006, taker_rate=0.0008),
    "VIP3": FeeTier("VIP3", maker_rate=0.0005, taker_rate=0.0007),
    "VIP4": FeeTier("VIP4", maker_rate=0.0004, taker_rate=0.0006),
    "VIP5": FeeTier("VIP5", maker_rate=0.0002, taker_rate=0.0004),
})

# Lowest tier, used for unknown ids
DEFAULT_FEE_TIER = "VIP0"


def get_fee_tier(tier_id: str) -> FeeTier:
    """Rates for a tier id; unknown ids fall back to the lowest tier."""
    return FEE_TIERS.get((tier_id or "").upper(), FEE_TIERS[DEFAULT_FEE_TIER])
