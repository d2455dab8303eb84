"""
ASSET → MARKET IMPACT PROFILE REGISTRY
Per-instrument coefficients for the square-root impact estimate
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class AssetImpactProfile:
    symbol: str
    temporary_impact: float
    permanent_impact: float
    volatility: float


IMPACT_PROFILES: Mapping[str, AssetImpactProfile] = MappingProxyType({
    "BTC-USDT": AssetImpactProfile("BTC-USDT", temporary_impact=0.0001, permanent_impact=0.0003, volatility=0.02),
    "ETH-USDT": AssetImpactProfile("ETH-USDT", temporary_impact=0.00015, permanent_impact=0.0004, volatility=0.025),
    "SOL-USDT": AssetImpactProfile("SOL-USDT", temporary_impact=0.0002, permanent_impact=0.0005, volatility=0.035),
    "BNB-USDT": AssetImpactProfile("BNB-USDT", temporary_impact=0.00018, permanent_impact=0.00045, volatility=0.03),
    "XRP-USDT": AssetImpactProfile("XRP-USDT", temporary_impact=0.00025, permanent_impact=0.0006, volatility=0.04),
    "ADA-USDT": AssetImpactProfile("ADA-USDT", temporary_impact=0.00025, permanent_impact=0.0006, volatility=0.04),
    "DOGE-USDT": AssetImpactProfile("DOGE-USDT", temporary_impact=0.0003, permanent_impact=0.0007, volatility=0.045),
    "AVAX-USDT": AssetImpactProfile("AVAX-USDT", temporary_impact=0.00022, permanent_impact=0.00055, volatility=0.038),
})

# Reference asset for symbols without a profile
DEFAULT_IMPACT_SYMBOL = "BTC-USDT"


def get_impact_profile(symbol: str) -> AssetImpactProfile:
    return IMPACT_PROFILES.get((symbol or "").upper(), IMPACT_PROFILES[DEFAULT_IMPACT_SYMBOL])
