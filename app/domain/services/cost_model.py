"""
COST MODEL
Expected cost of a market BUY order against one order book snapshot

RESPONSIBILITIES:
- Walk the ask side for a quantity-weighted fill price and slippage vs mid
- Estimate exchange fees from the fee tier with a fixed maker/taker split
- Estimate market impact with a square-root, single-period approximation
- Aggregate the three into a net cost

RULES:
❌ No I/O, no clocks, no logging
❌ No rounding or clamping (formatting belongs to consumers)
❌ No extrapolation beyond visible depth
✅ Empty book sides are a precondition error, never a zero result
✅ Unknown fee tiers / symbols fall back to documented defaults
"""

import math
from dataclasses import dataclass
from typing import Callable

from app.domain.costs.fee_tiers import get_fee_tier
from app.domain.costs.impact_profiles import get_impact_profile
from app.domain.models import OrderBookSnapshot, OrderParameters

# Market orders mostly cross the spread; 10% is assumed to rest as maker
MARKET_ORDER_MAKER_PROPORTION = 0.1

# Visible ask depth × this factor stands in for daily traded volume
DAILY_VOLUME_DEPTH_MULTIPLIER = 100.0

VolumeEstimator = Callable[[OrderBookSnapshot], float]


class CostModelError(Exception):
    """Snapshot cannot be priced"""


class InsufficientBookDepth(CostModelError):
    """One side of the book is empty"""


class DegenerateBookError(CostModelError):
    """Book produces an unusable reference value (zero mid, zero volume)"""


@dataclass(frozen=True)
class ExecutionEstimate:
    execution_price: float
    mid_price: float
    slippage: float
    slippage_fraction: float
    filled_quantity_usd: float


@dataclass(frozen=True)
class FeeEstimate:
    fees: float
    fee_fraction: float
    maker_proportion: float


@dataclass(frozen=True)
class ImpactEstimate:
    market_impact: float
    market_impact_fraction: float
    estimated_volume: float
    share_of_volume: float


@dataclass(frozen=True)
class CostEstimate:
    """All four stages for one snapshot/parameter pair"""
    execution: ExecutionEstimate
    fees: FeeEstimate
    impact: ImpactEstimate
    net_cost: float
    net_cost_fraction: float


def _require_positive_quantity(quantity_usd: float) -> None:
    if not math.isfinite(quantity_usd) or quantity_usd <= 0:
        raise ValueError("Quantity must be a positive USD amount")


def _require_depth(snapshot: OrderBookSnapshot) -> None:
    if not snapshot.asks:
        raise InsufficientBookDepth(f"No asks in {snapshot.symbol} book")
    if not snapshot.bids:
        raise InsufficientBookDepth(f"No bids in {snapshot.symbol} book")


def calculate_mid_price(snapshot: OrderBookSnapshot) -> float:
    _require_depth(snapshot)
    mid_price = (snapshot.best_ask + snapshot.best_bid) / 2
    if mid_price <= 0:
        raise DegenerateBookError(f"Mid price of {snapshot.symbol} book is {mid_price}")
    return mid_price


def calculate_execution_price(snapshot: OrderBookSnapshot, quantity_usd: float) -> ExecutionEstimate:
    """
    Walk the asks best-first, taking min(remaining, level notional) from each
    level until the quantity is filled or the book runs out.

    Each level contributes price x (taken / quantity_usd). When visible depth
    is smaller than the order the weights sum to less than one, so the price
    understates the true fill; this is a known limitation and is not
    corrected. ``filled_quantity_usd`` reports how much the book absorbed.
    """
    _require_positive_quantity(quantity_usd)
    mid_price = calculate_mid_price(snapshot)

    remaining = quantity_usd
    filled = 0.0
    weighted_sum = 0.0
    for price, size in snapshot.asks:
        if remaining <= 0:
            break
        taken = min(remaining, price * size)
        weighted_sum += price * taken
        filled += taken
        remaining -= taken

    if filled <= 0:
        raise InsufficientBookDepth(f"Asks in {snapshot.symbol} book have no notional")

    execution_price = weighted_sum / quantity_usd
    slippage = execution_price - mid_price
    return ExecutionEstimate(
        execution_price=execution_price,
        mid_price=mid_price,
        slippage=slippage,
        slippage_fraction=slippage / mid_price,
        filled_quantity_usd=filled,
    )


def calculate_fees(
    quantity_usd: float,
    fee_tier_id: str,
    maker_proportion: float = MARKET_ORDER_MAKER_PROPORTION,
) -> FeeEstimate:
    """Fee = q × (taker share × taker rate + maker share × maker rate)"""
    _require_positive_quantity(quantity_usd)
    if not 0 <= maker_proportion <= 1:
        raise ValueError("Maker proportion must be within [0, 1]")

    tier = get_fee_tier(fee_tier_id)
    taker_fee = quantity_usd * tier.taker_rate * (1 - maker_proportion)
    maker_fee = quantity_usd * tier.maker_rate * maker_proportion
    fees = taker_fee + maker_fee
    return FeeEstimate(
        fees=fees,
        fee_fraction=fees / quantity_usd,
        maker_proportion=maker_proportion,
    )


def estimate_daily_volume(snapshot: OrderBookSnapshot) -> float:
    """Coarse daily volume proxy from visible ask notional."""
    return snapshot.ask_notional * DAILY_VOLUME_DEPTH_MULTIPLIER


def calculate_market_impact(
    snapshot: OrderBookSnapshot,
    quantity_usd: float,
    symbol: str,
    volume_estimator: VolumeEstimator = estimate_daily_volume,
) -> ImpactEstimate:
    """
    Square-root impact for a single immediate execution:

        fraction = σ × (1 + permanent) × sqrt(q / V) × temporary

    This is not an execution-schedule model; there is no trade-off between
    trading speed and risk, just the one-shot price displacement.
    """
    _require_positive_quantity(quantity_usd)
    _require_depth(snapshot)

    estimated_volume = volume_estimator(snapshot)
    if not math.isfinite(estimated_volume) or estimated_volume <= 0:
        raise DegenerateBookError(f"Estimated volume for {symbol} is {estimated_volume}")

    profile = get_impact_profile(symbol)
    share_of_volume = quantity_usd / estimated_volume
    impact_fraction = (
        profile.volatility
        * (1 + profile.permanent_impact)
        * math.sqrt(share_of_volume)
        * profile.temporary_impact
    )
    return ImpactEstimate(
        market_impact=quantity_usd * impact_fraction,
        market_impact_fraction=impact_fraction,
        estimated_volume=estimated_volume,
        share_of_volume=share_of_volume,
    )


class CostModel:
    """
    Bundles the cost stages with the two modeling assumptions that are
    meant to be swapped out: the maker share of a market order and the
    daily volume estimate.
    """

    def __init__(
        self,
        maker_proportion: float = MARKET_ORDER_MAKER_PROPORTION,
        volume_estimator: VolumeEstimator = estimate_daily_volume,
    ):
        if not 0 <= maker_proportion <= 1:
            raise ValueError("Maker proportion must be within [0, 1]")
        self.maker_proportion = maker_proportion
        self.volume_estimator = volume_estimator

    def estimate(self, snapshot: OrderBookSnapshot, params: OrderParameters) -> CostEstimate:
        execution = calculate_execution_price(snapshot, params.quantity_usd)
        fees = calculate_fees(params.quantity_usd, params.fee_tier, self.maker_proportion)
        impact = calculate_market_impact(
            snapshot,
            params.quantity_usd,
            params.symbol,
            volume_estimator=self.volume_estimator,
        )

        return CostEstimate(
            execution=execution,
            fees=fees,
            impact=impact,
            net_cost=execution.slippage + fees.fees + impact.market_impact,
            net_cost_fraction=(
                execution.slippage_fraction + fees.fee_fraction + impact.market_impact_fraction
            ),
        )
